"""Generation requests: validation, dispatch by method, metrics bundling.

This is the whole job of the map editor's ``/generate`` endpoint without the
HTTP layer. A request names a generation method and its parameters; the
response carries the grid, the tile palette and the metrics suite computed
over the grid.

Usage:
    request = GenerateRequest.from_dict({"generationMethod": "wfc",
                                         "width": 25, "height": 25,
                                         "wfcSeed": 3})
    response = generate(request)
    payload = response.to_dict()
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field, fields
from typing import Any

from tilesmith import config, metrics
from tilesmith.errors import RequestError
from tilesmith.generators.base import BaseGridGenerator
from tilesmith.generators.cellular import CellularAutomatonGenerator
from tilesmith.generators.noise import PerlinNoiseGenerator
from tilesmith.generators.seeding import (
    default_seed_configuration,
    painted_restrictions,
)
from tilesmith.generators.terrain_rules import TerrainRuleGenerator
from tilesmith.generators.wfc_solver import WFCSolver
from tilesmith.tiles import tile_colors
from tilesmith.types import IntGrid

logger = logging.getLogger(__name__)

# JSON key of the editor API -> GenerateRequest field.
_CAMEL_CASE_KEYS = {
    "generationMethod": "generation_method",
    "randomnessFactor": "randomness_factor",
    "paintedTiles": "painted_tiles",
    "prevGrid": "prev_grid",
    "noiseScale": "noise_scale",
    "noiseOctaves": "noise_octaves",
    "noisePersistence": "noise_persistence",
    "noiseLacunarity": "noise_lacunarity",
    "wfcSeed": "wfc_seed",
    "wfcMaxRetries": "wfc_max_retries",
    "waterBorder": "water_border",
    "landCenter": "land_center",
}

_NOISE_FIELDS = (
    "noise_scale",
    "noise_octaves",
    "noise_persistence",
    "noise_lacunarity",
)


@dataclass
class GenerateRequest:
    """Parameters of one generation request.

    ``painted_tiles`` and ``prev_grid`` are row-major grids; -1 in
    ``painted_tiles`` marks an unpainted cell. ``seed`` drives the peer
    generators and ``wfc_seed`` the tile solver; either falls back to the
    named RNG streams when None.
    """

    generation_method: str
    width: int = config.DEFAULT_WIDTH
    height: int = config.DEFAULT_HEIGHT
    iterations: int = config.TERRAIN_RULES_DEFAULT_ITERATIONS
    randomness_factor: float = config.TERRAIN_RULES_DEFAULT_RANDOMNESS
    painted_tiles: list[list[int]] = field(default_factory=list)
    prev_grid: list[list[int]] = field(default_factory=list)
    noise_scale: float = config.NOISE_DEFAULT_SCALE
    noise_octaves: int = config.NOISE_DEFAULT_OCTAVES
    noise_persistence: float = config.NOISE_DEFAULT_PERSISTENCE
    noise_lacunarity: float = config.NOISE_DEFAULT_LACUNARITY
    wfc_seed: int | None = None
    wfc_max_retries: int = config.WFC_MAX_RETRIES
    water_border: bool = False
    land_center: bool = False
    seed: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GenerateRequest:
        """Build a request from a JSON body, camelCase or snake_case keys.

        Unknown keys are ignored. Omitted or zero-valued noise parameters take
        their defaults, as the editor leaves them out for other methods.

        Raises:
            RequestError: If ``generationMethod`` is missing.
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _CAMEL_CASE_KEYS.get(key, key)
            if name in known and value is not None:
                kwargs[name] = value
        if "generation_method" not in kwargs:
            raise RequestError("generationMethod is required")
        for name in _NOISE_FIELDS:
            if kwargs.get(name) == 0:
                del kwargs[name]
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        """The request with the editor's camelCase keys."""
        to_camel = {snake: camel for camel, snake in _CAMEL_CASE_KEYS.items()}
        return {to_camel.get(k, k): v for k, v in asdict(self).items()}

    def validate(self) -> None:
        """Reject requests no generator should see.

        Raises:
            RequestError: For an unknown method or non-positive dimensions.
        """
        if self.generation_method not in GENERATORS:
            raise RequestError(
                f"Unknown generation method {self.generation_method!r}; "
                f"expected one of {sorted(GENERATORS)}"
            )
        for name in ("width", "height"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise RequestError(
                    f"{name} must be a positive integer, got {value!r}"
                )


@dataclass
class GenerateResponse:
    """A generated grid plus everything the editor displays next to it."""

    grid: IntGrid
    colors: list[str]
    entropy: float
    adjacency: dict[int, dict[int, int]]
    frequencies: dict[int, float]
    autocorr: dict[tuple[int, int], float]
    fractal_dim: float
    spectrum: list[list[float]]
    cluster_sizes: list[int]

    @classmethod
    def from_grid(cls, grid: IntGrid) -> GenerateResponse:
        """Run the metrics suite over ``grid``."""
        return cls(
            grid=grid,
            colors=tile_colors(),
            entropy=metrics.tile_entropy(grid),
            adjacency=metrics.adjacency_counts(grid),
            frequencies=metrics.tile_frequencies(grid),
            autocorr=metrics.autocorrelation(grid),
            fractal_dim=metrics.fractal_dimension(grid),
            spectrum=metrics.spectral_spectrum(grid),
            cluster_sizes=metrics.cluster_sizes(grid),
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON shape of the response; map keys become strings."""
        return {
            "grid": self.grid,
            "colors": self.colors,
            "entropy": self.entropy,
            "adjacency": {
                str(i): {str(j): n for j, n in row.items()}
                for i, row in self.adjacency.items()
            },
            "frequencies": {str(t): f for t, f in self.frequencies.items()},
            "autocorr": {f"{dx},{dy}": v for (dx, dy), v in self.autocorr.items()},
            "fractalDim": self.fractal_dim,
            "spectrum": self.spectrum,
            "clusterSizes": self.cluster_sizes,
        }


# =============================================================================
# Dispatch
# =============================================================================


def _wfc(request: GenerateRequest) -> BaseGridGenerator:
    seeds = default_seed_configuration(
        request.width,
        request.height,
        water_border=request.water_border,
        land_center=request.land_center,
    )
    if request.painted_tiles:
        for restriction in painted_restrictions(
            request.painted_tiles, request.width, request.height
        ):
            seeds.add(restriction)
    return WFCSolver(
        request.width,
        request.height,
        max_retries=request.wfc_max_retries,
        seed=request.wfc_seed,
        seed_configuration=seeds,
    )


def _cellular(request: GenerateRequest) -> BaseGridGenerator:
    return CellularAutomatonGenerator(
        request.width,
        request.height,
        iterations=request.iterations,
        seed=request.seed,
        prev_grid=request.prev_grid,
        painted_tiles=request.painted_tiles,
    )


def _terrain_rules(request: GenerateRequest) -> BaseGridGenerator:
    return TerrainRuleGenerator(
        request.width,
        request.height,
        iterations=request.iterations,
        randomness_factor=request.randomness_factor,
        painted_tiles=request.painted_tiles,
        seed=request.seed,
    )


def _noise(request: GenerateRequest) -> BaseGridGenerator:
    return PerlinNoiseGenerator(
        request.width,
        request.height,
        seed=request.seed,
        scale=request.noise_scale,
        octaves=request.noise_octaves,
        persistence=request.noise_persistence,
        lacunarity=request.noise_lacunarity,
    )


GENERATORS: dict[str, Callable[[GenerateRequest], BaseGridGenerator]] = {
    "wfc": _wfc,
    "ca": _cellular,
    "mlca": _terrain_rules,
    "noise": _noise,
}


def generate(request: GenerateRequest) -> GenerateResponse:
    """Validate ``request``, run its generator and compute the metrics.

    Raises:
        RequestError: If the request is rejected before generation.
        TilesmithError: Any failure reported by the generator itself, such as
            ``SolveExhaustedError`` or ``ConfigurationError``.
    """
    request.validate()
    generator = GENERATORS[request.generation_method](request)
    grid = generator.generate_grid()
    logger.info(
        "Generated %dx%d grid with method %r",
        request.width,
        request.height,
        request.generation_method,
    )
    return GenerateResponse.from_grid(grid)
