"""Thresholded fractal Perlin noise.

Samples libtcod's fBm Perlin noise over the map and maps every normalized
sample in [0, 1] to a tile through a fixed threshold table, low values being
deep water and high values forest.
"""

from __future__ import annotations

import logging
import math

import numpy as np
import tcod.noise

from tilesmith import config
from tilesmith.errors import ConfigurationError
from tilesmith.generators.base import BaseGridGenerator
from tilesmith.tiles import TileKind
from tilesmith.types import TileCoord
from tilesmith.util import rng as rng_streams

logger = logging.getLogger(__name__)

# (upper bound of the normalized sample, tile), ascending.
NOISE_THRESHOLDS: tuple[tuple[float, TileKind], ...] = (
    (0.2, TileKind.DEEP_WATER),
    (0.4, TileKind.WATER),
    (0.5, TileKind.COASTAL_WATER),
    (0.55, TileKind.WET_SAND),
    (0.6, TileKind.SAND),
    (0.7, TileKind.GRASS),
    (0.8, TileKind.BUSHES),
    (1.0, TileKind.FOREST),
)

_BOUNDS = np.array([bound for bound, _ in NOISE_THRESHOLDS[:-1]])
_TILES = np.array([tile for _, tile in NOISE_THRESHOLDS], dtype=np.int8)


def value_to_tile(values: np.ndarray) -> np.ndarray:
    """Map normalized samples to tiles; a sample on a bound takes the lower tile."""
    return _TILES[np.digitize(values, _BOUNDS, right=True)]


class PerlinNoiseGenerator(BaseGridGenerator):
    """Tile grid from thresholded Perlin noise.

    Args:
        width: Grid width in cells.
        height: Grid height in cells.
        seed: Noise seed. Drawn from the ``"map.noise"`` stream when None.
        scale: Noise coordinates span ``[0, scale)`` on both axes.
        octaves: Number of fBm octaves.
        persistence: Amplitude factor between octaves, in (0, 1].
        lacunarity: Frequency factor between octaves, > 1.
    """

    def __init__(
        self,
        width: TileCoord,
        height: TileCoord,
        seed: int | None = None,
        scale: float = config.NOISE_DEFAULT_SCALE,
        octaves: int = config.NOISE_DEFAULT_OCTAVES,
        persistence: float = config.NOISE_DEFAULT_PERSISTENCE,
        lacunarity: float = config.NOISE_DEFAULT_LACUNARITY,
    ) -> None:
        super().__init__(width, height)
        if scale <= 0:
            raise ConfigurationError(f"noise scale must be > 0, got {scale}")
        if octaves < 1:
            raise ConfigurationError(f"noise octaves must be >= 1, got {octaves}")
        if not 0 < persistence <= 1:
            raise ConfigurationError(
                f"noise persistence must be in (0, 1], got {persistence}"
            )
        if lacunarity <= 1:
            raise ConfigurationError(f"noise lacunarity must be > 1, got {lacunarity}")
        self.seed = rng_streams.resolve_seed(seed, "map.noise")
        self.scale = scale
        self.octaves = octaves
        self.persistence = persistence
        self.lacunarity = lacunarity

    @property
    def hurst(self) -> float:
        """libtcod's fBm weighs octave i by ``lacunarity ** (-hurst * i)``."""
        return -math.log(self.persistence) / math.log(self.lacunarity)

    def _make_noise(self) -> tcod.noise.Noise:
        return tcod.noise.Noise(
            dimensions=2,
            algorithm=tcod.noise.Algorithm.PERLIN,
            implementation=tcod.noise.Implementation.FBM,
            hurst=self.hurst,
            lacunarity=self.lacunarity,
            octaves=self.octaves,
            seed=self.seed & 0xFFFFFFFF,
        )

    def sample(self) -> np.ndarray:
        """Normalized noise values shaped ``(height, width)``, clipped to [0, 1]."""
        xs = np.arange(self.width, dtype=np.float32) / self.width * self.scale
        ys = np.arange(self.height, dtype=np.float32) / self.height * self.scale
        # sample_ogrid returns values indexed [x, y].
        raw = self._make_noise().sample_ogrid([xs, ys]).T
        return np.clip((raw + 1.0) * 0.5, 0.0, 1.0)

    def generate(self) -> np.ndarray:
        values = self.sample()
        logger.debug(
            "Perlin noise @ scale=%.2f: min=%.3f max=%.3f mean=%.3f (samples=%d)",
            self.scale,
            float(values.min()),
            float(values.max()),
            float(values.mean()),
            values.size,
        )
        return value_to_tile(values)
