"""Layered terrain-rule automaton.

Starts from painted tiles plus random noise and relaxes the grid with an
ordered table of terrain rules. Rules come in four layers, evaluated in this
order for every cell:

1. Coastal cleanup: vegetation touching water turns to sand
2. Beaches: grass by the water becomes sand, sand becomes wet sand
3. Terrain: water deepens away from land and shallows next to it
4. Vegetation: bushes and forest are born, survive and die by crowding

The first rule whose source tile and neighbor count match wins. Neighbors are
the 8 surrounding cells, and cells beyond the map edge count as DEEP_WATER so
that maps drift toward islands.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from tilesmith import config
from tilesmith.errors import ConfigurationError
from tilesmith.generators.base import BaseGridGenerator, paint_layer
from tilesmith.generators.cellular import MOORE_OFFSETS
from tilesmith.tiles import NUM_TILE_KINDS, WATER_FAMILY, TileKind
from tilesmith.types import TileCoord
from tilesmith.util import rng as rng_streams

logger = logging.getLogger(__name__)

# Tiles counted as "land" by the terrain layer (everything but open water).
_LAND = frozenset(
    {
        TileKind.FOREST,
        TileKind.BUSHES,
        TileKind.GRASS,
        TileKind.SAND,
        TileKind.WET_SAND,
    }
)
_GRASS = frozenset({TileKind.GRASS})
_BUSHES = frozenset({TileKind.BUSHES})
_FOREST = frozenset({TileKind.FOREST})


@dataclass(frozen=True)
class TerrainRule:
    """Turn ``source`` into ``target`` by neighbor count.

    Attributes:
        source: Tile the cell must currently be.
        target: Tile the cell becomes.
        neighbor_types: Tiles counted among the 8 neighbors.
        min_count: Inclusive lower bound, or None for unbounded.
        max_count: Inclusive upper bound, or None for unbounded.
    """

    source: TileKind
    target: TileKind
    neighbor_types: frozenset[TileKind]
    min_count: int | None = None
    max_count: int | None = None

    def matches(self, tiles: np.ndarray, counts: np.ndarray) -> np.ndarray:
        hit = tiles == self.source
        if self.min_count is not None:
            hit &= counts >= self.min_count
        if self.max_count is not None:
            hit &= counts <= self.max_count
        return hit


def default_rules() -> list[TerrainRule]:
    """The four rule layers in evaluation order."""
    T = TileKind
    water = WATER_FAMILY

    coastal_cleanup = [
        TerrainRule(T.FOREST, T.SAND, water, 1, None),
        TerrainRule(T.BUSHES, T.SAND, water, 1, None),
    ]

    beaches = [
        TerrainRule(T.GRASS, T.SAND, water, 1, None),
        TerrainRule(T.SAND, T.WET_SAND, water, 2, None),
    ]

    terrain = [
        # Erosion toward water
        TerrainRule(T.WET_SAND, T.COASTAL_WATER, _LAND, None, 4),
        TerrainRule(T.COASTAL_WATER, T.WATER, _LAND, None, 2),
        TerrainRule(T.WATER, T.DEEP_WATER, _LAND, None, 1),
        # Sediment buildup away from water
        TerrainRule(T.DEEP_WATER, T.WATER, _LAND, 1, None),
        TerrainRule(T.WATER, T.COASTAL_WATER, _LAND, 2, None),
        TerrainRule(T.COASTAL_WATER, T.WET_SAND, _LAND, 5, None),
        TerrainRule(T.WET_SAND, T.SAND, _LAND, 6, None),
        TerrainRule(T.SAND, T.GRASS, _LAND, 7, None),
    ]

    vegetation = [
        # Birth
        TerrainRule(T.GRASS, T.BUSHES, _GRASS, 8, 8),
        TerrainRule(T.GRASS, T.BUSHES, _BUSHES, 2, 7),
        TerrainRule(T.BUSHES, T.FOREST, _BUSHES, 8, 8),
        TerrainRule(T.BUSHES, T.FOREST, _FOREST, 3, 6),
        # Survival
        TerrainRule(T.BUSHES, T.BUSHES, _BUSHES, 2, 7),
        TerrainRule(T.FOREST, T.FOREST, _FOREST, 3, 6),
        # Dying
        TerrainRule(T.BUSHES, T.GRASS, _BUSHES, None, 1),
        TerrainRule(T.BUSHES, T.GRASS, _BUSHES, 8, 8),
        TerrainRule(T.FOREST, T.BUSHES, _FOREST, None, 2),
        TerrainRule(T.FOREST, T.BUSHES, _FOREST, 7, 8),
    ]

    return coastal_cleanup + beaches + terrain + vegetation


def count_neighbor_types(
    tiles: np.ndarray, neighbor_types: frozenset[TileKind]
) -> np.ndarray:
    """Per-cell count of Moore neighbors whose tile is in ``neighbor_types``.

    Off-grid neighbors are DEEP_WATER.
    """
    height, width = tiles.shape
    padded = np.pad(tiles, 1, constant_values=TileKind.DEEP_WATER)
    member = np.isin(padded, [int(t) for t in neighbor_types]).astype(np.int8)
    counts = np.zeros((height, width), dtype=np.int8)
    for dx, dy in MOORE_OFFSETS:
        counts += member[1 + dy : 1 + dy + height, 1 + dx : 1 + dx + width]
    return counts


def apply_rules(
    tiles: np.ndarray,
    rules: Sequence[TerrainRule],
    randomness: float,
    rng: np.random.Generator,
) -> np.ndarray:
    """Run one synchronous pass of ``rules`` over the grid.

    With ``randomness == 0`` every matching rule fires. Otherwise a matching
    rule fires only where a uniform draw is below ``randomness``; cells where
    it does not fire fall through to the next rule.
    """
    next_tiles = tiles.copy()
    decided = np.zeros(tiles.shape, dtype=bool)
    counts_cache: dict[frozenset[TileKind], np.ndarray] = {}
    for rule in rules:
        counts = counts_cache.get(rule.neighbor_types)
        if counts is None:
            counts = count_neighbor_types(tiles, rule.neighbor_types)
            counts_cache[rule.neighbor_types] = counts
        hit = rule.matches(tiles, counts) & ~decided
        if randomness != 0:
            hit &= rng.random(tiles.shape) < randomness
        next_tiles[hit] = rule.target
        decided |= hit
    return next_tiles


class TerrainRuleGenerator(BaseGridGenerator):
    """Relax painted plus random tiles with the layered terrain rules.

    Args:
        width: Grid width in cells.
        height: Grid height in cells.
        iterations: Rule passes to run.
        randomness_factor: Chance in [0, 1] that a matching rule fires; 0
            makes every pass deterministic.
        painted_tiles: ``height`` x ``width`` grid, -1 for cells that start
            random. None (or empty) starts fully random.
        seed: Seed for the random tiles and rule draws. Drawn from the
            ``"map.terrain_rules"`` stream when None.
        rules: Rule table, ``default_rules()`` by default.
    """

    def __init__(
        self,
        width: TileCoord,
        height: TileCoord,
        iterations: int = config.TERRAIN_RULES_DEFAULT_ITERATIONS,
        randomness_factor: float = config.TERRAIN_RULES_DEFAULT_RANDOMNESS,
        painted_tiles: Sequence[Sequence[int]] | None = None,
        seed: int | None = None,
        rules: Sequence[TerrainRule] | None = None,
    ) -> None:
        super().__init__(width, height)
        if iterations < 0:
            raise ConfigurationError(f"iterations must be >= 0, got {iterations}")
        if not 0.0 <= randomness_factor <= 1.0:
            raise ConfigurationError(
                f"randomness_factor must be in [0, 1], got {randomness_factor}"
            )
        self.iterations = iterations
        self.randomness_factor = randomness_factor
        self.painted_tiles = painted_tiles
        self.seed = rng_streams.resolve_seed(seed, "map.terrain_rules")
        self.rules = list(rules) if rules is not None else default_rules()

    def initial_grid(self, rng: np.random.Generator) -> np.ndarray:
        tiles = rng.integers(0, NUM_TILE_KINDS, size=(self.height, self.width))
        tiles = tiles.astype(np.int8)
        if not self.painted_tiles:
            logger.info("Initialized %d random tiles", tiles.size)
            return tiles

        painted = paint_layer(self.painted_tiles, self.width, self.height)
        is_painted = painted != -1
        tiles[is_painted] = painted[is_painted]

        painted_count = int(is_painted.sum())
        logger.info(
            "Initialized %d painted tiles and %d random tiles",
            painted_count,
            tiles.size - painted_count,
        )
        return tiles

    def generate(self) -> np.ndarray:
        rng = rng_streams.numpy_generator(self.seed)
        tiles = self.initial_grid(rng)
        for i in range(self.iterations):
            tiles = apply_rules(tiles, self.rules, self.randomness_factor, rng)
            logger.info("Terrain rule iteration %d complete", i)
        return tiles
