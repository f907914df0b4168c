"""Game-of-Life cellular automaton on two tile states.

Live cells are FOREST and dead cells are SAND. Each step evaluates an ordered
rule list per cell against its 8-cell Moore neighborhood; the first rule that
matches decides the next state, and a cell no rule matches keeps its state.
Cells outside the grid are not counted.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from tilesmith import config
from tilesmith.errors import ConfigurationError
from tilesmith.generators.base import BaseGridGenerator
from tilesmith.tiles import NUM_TILE_KINDS, TileKind
from tilesmith.types import TileCoord
from tilesmith.util import rng as rng_streams

logger = logging.getLogger(__name__)

ALIVE = TileKind.FOREST
DEAD = TileKind.SAND

# Moore neighborhood offsets (dx, dy).
MOORE_OFFSETS = tuple(
    (dx, dy) for dy in (-1, 0, 1) for dx in (-1, 0, 1) if (dx, dy) != (0, 0)
)


@dataclass(frozen=True)
class LifeRule:
    """Turn a cell into ``target`` when its neighbor count is in range.

    Attributes:
        current: State the cell must be in, or None for any state.
        neighbor: State whose neighbors are counted.
        min_count: Inclusive lower bound on the count.
        max_count: Inclusive upper bound, or None for unbounded.
        target: State the cell takes when the rule matches.
    """

    current: TileKind | None
    neighbor: TileKind
    min_count: int
    max_count: int | None
    target: TileKind

    def matches(self, states: np.ndarray, counts: np.ndarray) -> np.ndarray:
        """Boolean mask of the cells this rule applies to."""
        hit = counts >= self.min_count
        if self.max_count is not None:
            hit &= counts <= self.max_count
        if self.current is not None:
            hit &= states == self.current
        return hit


def life_rules() -> list[LifeRule]:
    """Conway's rules: survival on 2-3, birth on 3, death otherwise."""
    return [
        LifeRule(ALIVE, ALIVE, 2, 3, ALIVE),
        LifeRule(DEAD, ALIVE, 3, 3, ALIVE),
        # Under- and overpopulation
        LifeRule(None, ALIVE, 0, 1, DEAD),
        LifeRule(None, ALIVE, 4, None, DEAD),
    ]


def count_neighbors(states: np.ndarray, state: int) -> np.ndarray:
    """Per-cell count of Moore neighbors in ``state``; off-grid cells count 0."""
    height, width = states.shape
    padded = np.pad(states == state, 1, constant_values=False).astype(np.int8)
    counts = np.zeros((height, width), dtype=np.int8)
    for dx, dy in MOORE_OFFSETS:
        counts += padded[1 + dy : 1 + dy + height, 1 + dx : 1 + dx + width]
    return counts


def step(states: np.ndarray, rules: Sequence[LifeRule]) -> np.ndarray:
    """Apply one synchronous generation of ``rules``."""
    next_states = states.copy()
    decided = np.zeros(states.shape, dtype=bool)
    counts_by_state: dict[int, np.ndarray] = {}
    for rule in rules:
        if rule.neighbor not in counts_by_state:
            counts_by_state[rule.neighbor] = count_neighbors(states, rule.neighbor)
        hit = rule.matches(states, counts_by_state[rule.neighbor]) & ~decided
        next_states[hit] = rule.target
        decided |= hit
    return next_states


class CellularAutomatonGenerator(BaseGridGenerator):
    """Evolve a random (or previous) grid with Game-of-Life rules.

    Args:
        width: Grid width in cells.
        height: Grid height in cells.
        iterations: Generations to run; 0 returns the starting grid.
        seed: Seed for the starting grid. Drawn from the ``"map.cellular"``
            stream when None.
        prev_grid: Row-major grid to continue from instead of a random one.
        painted_tiles: Editor overrides applied to the starting grid. Values
            of GRASS or denser force a live cell, other tiles force a dead
            cell, -1 leaves the cell alone. Only the overlap with the grid is
            used.
        rules: Rule list, ``life_rules()`` by default.
    """

    def __init__(
        self,
        width: TileCoord,
        height: TileCoord,
        iterations: int = config.CA_DEFAULT_ITERATIONS,
        seed: int | None = None,
        prev_grid: Sequence[Sequence[int]] | None = None,
        painted_tiles: Sequence[Sequence[int]] | None = None,
        rules: Sequence[LifeRule] | None = None,
        life_probability: float = config.CA_LIFE_PROBABILITY,
    ) -> None:
        super().__init__(width, height)
        if iterations < 0:
            raise ConfigurationError(f"iterations must be >= 0, got {iterations}")
        if not 0.0 <= life_probability <= 1.0:
            raise ConfigurationError(
                f"life_probability must be in [0, 1], got {life_probability}"
            )
        self.iterations = iterations
        self.seed = rng_streams.resolve_seed(seed, "map.cellular")
        self.prev_grid = prev_grid
        self.painted_tiles = painted_tiles
        self.rules = list(rules) if rules is not None else life_rules()
        self.life_probability = life_probability

    def initial_grid(self) -> np.ndarray:
        if self.prev_grid:
            try:
                states = np.asarray(self.prev_grid, dtype=np.int16)
            except ValueError as exc:
                raise ConfigurationError(
                    f"prev_grid is not rectangular: {exc}"
                ) from exc
            if states.shape != (self.height, self.width):
                raise ConfigurationError(
                    f"prev_grid is {states.shape[::-1]}, expected "
                    f"{(self.width, self.height)}"
                )
            if states.min() < 0 or states.max() >= NUM_TILE_KINDS:
                raise ConfigurationError("prev_grid contains non-tile values")
            states = states.astype(np.int8)
        else:
            rng = rng_streams.numpy_generator(self.seed)
            alive = rng.random((self.height, self.width)) < self.life_probability
            states = np.where(alive, ALIVE, DEAD).astype(np.int8)

        if self.painted_tiles:
            self._apply_paint(states)
        return states

    def _apply_paint(self, states: np.ndarray) -> None:
        for y, row in enumerate(self.painted_tiles[: self.height]):
            for x, value in enumerate(row[: self.width]):
                if value == -1:
                    continue
                if not 0 <= value < NUM_TILE_KINDS:
                    raise ConfigurationError(
                        f"Painted value {value!r} at ({x}, {y}) is not a tile kind"
                    )
                states[y, x] = ALIVE if value >= TileKind.GRASS else DEAD

    def generate(self) -> np.ndarray:
        states = self.initial_grid()
        for _ in range(self.iterations):
            states = step(states, self.rules)
        logger.debug(
            "Cellular automaton ran %d generation(s): %d of %d cells alive",
            self.iterations,
            int((states == ALIVE).sum()),
            states.size,
        )
        return states
