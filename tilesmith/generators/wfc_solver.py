"""Constraint-propagation tile solver (Wave Function Collapse style).

The solver fills a grid with TileKind values so that no two orthogonally
adjacent tiles violate the compatibility table in ``tilesmith.tiles``.

Usage:
    from tilesmith.generators.wfc_solver import WFCSolver
    from tilesmith.generators.seeding import default_seed_configuration

    seeds = default_seed_configuration(25, 25)
    grid = WFCSolver(25, 25, seed=7, seed_configuration=seeds).solve()

Algorithm:
    Each attempt starts from a fresh grid where every cell may become any
    tile, then narrows the cells named by the seed configuration. It then
    repeats three steps until every cell is resolved:

    1. Select: among unresolved cells, find those with the fewest remaining
       candidates and draw one of them at random (row-major candidate order).
    2. Collapse: draw one tile from the cell's candidates (ascending ordinal
       order) and fix it.
    3. Propagate: recompute the candidates of unresolved cells next to
       resolved ones until nothing changes.

    A cell running out of candidates is a contradiction. The attempt is thrown
    away and a new one starts on a fresh grid; there is no backtracking. The
    whole solve shares one ``random.Random`` seeded once, so a given seed
    always reproduces the same sequence of attempts and the same result.

Representation:
    Candidate sets are uint8 bitsets stored in a numpy array shaped
    ``(height, width)``, so ``wave[y, x]`` is the cell at column x, row y and
    ``tolist()`` of the tile array is already the row-major export format.
"""

from __future__ import annotations

import logging
import random
from collections import deque
from collections.abc import Iterable
from typing import Protocol

import numpy as np

from tilesmith import config
from tilesmith.errors import (
    ContradictionError,
    DimensionError,
    SolveCancelledError,
    SolveExhaustedError,
)
from tilesmith.generators.base import BaseGridGenerator
from tilesmith.generators.seeding import SeedConfiguration
from tilesmith.tiles import (
    ALL_TILES_MASK,
    COMPATIBILITY_MASKS,
    POPCOUNT_TABLE,
    TileKind,
    allowed,
    mask_to_tiles,
    popcount,
)
from tilesmith.types import IntGrid, TileCoord, TileMask, TilePos
from tilesmith.util import rng as rng_streams

logger = logging.getLogger(__name__)

# Orthogonal neighbor offsets (dx, dy): up, down, left, right.
NEIGHBOR_OFFSETS: tuple[TilePos, ...] = ((0, -1), (0, 1), (-1, 0), (1, 0))

# Sentinel stored in WFCGrid.tiles for cells without a fixed tile.
UNRESOLVED = -1


class CancelSignal(Protocol):
    """Anything with a ``threading.Event``-style ``is_set()``."""

    def is_set(self) -> bool: ...


# =============================================================================
# Grid & cells
# =============================================================================


class WFCGrid:
    """Cell state for a single solve attempt.

    Every cell holds a candidate bitset (``wave``), a resolved flag and, once
    resolved, its tile. Candidate sets only ever shrink: ``restrict`` and
    ``resolve`` intersect, nothing widens a domain again.
    """

    def __init__(self, width: TileCoord, height: TileCoord) -> None:
        self.width = width
        self.height = height
        self.wave = np.full((height, width), ALL_TILES_MASK, dtype=np.uint8)
        self.resolved = np.zeros((height, width), dtype=bool)
        self.tiles = np.full((height, width), UNRESOLVED, dtype=np.int8)

    def in_bounds(self, x: TileCoord, y: TileCoord) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def domain(self, x: TileCoord, y: TileCoord) -> tuple[TileKind, ...]:
        """Candidate tiles of a cell, ascending by ordinal."""
        return mask_to_tiles(int(self.wave[y, x]))

    def domain_size(self, x: TileCoord, y: TileCoord) -> int:
        return popcount(int(self.wave[y, x]))

    def domain_sizes(self) -> np.ndarray:
        """Candidate count of every cell, shaped ``(height, width)``."""
        return POPCOUNT_TABLE[self.wave]

    def is_resolved(self, x: TileCoord, y: TileCoord) -> bool:
        return bool(self.resolved[y, x])

    def tile_at(self, x: TileCoord, y: TileCoord) -> TileKind | None:
        """The fixed tile of a resolved cell, or None."""
        tile = int(self.tiles[y, x])
        return None if tile == UNRESOLVED else TileKind(tile)

    def restrict(self, x: TileCoord, y: TileCoord, mask: TileMask) -> TileMask:
        """Intersect a cell's candidates with ``mask`` and return the result.

        The cell is not marked resolved even when a single candidate is left.
        An empty result is stored as is; callers decide whether that is a
        contradiction.
        """
        narrowed = int(self.wave[y, x]) & mask
        self.wave[y, x] = narrowed
        return narrowed

    def resolve(self, x: TileCoord, y: TileCoord, tile: TileKind) -> None:
        """Fix ``tile`` in a cell.

        Raises:
            ContradictionError: If ``tile`` is no longer a candidate of the cell.
        """
        if not self.wave[y, x] & (1 << tile):
            raise ContradictionError(
                f"{tile.name} is not a candidate at ({x}, {y})", position=(x, y)
            )
        self.wave[y, x] = 1 << tile
        self.resolved[y, x] = True
        self.tiles[y, x] = tile

    def resolved_positions(self) -> list[TilePos]:
        """Resolved cells in row-major order."""
        return [(int(x), int(y)) for y, x in np.argwhere(self.resolved)]

    def neighbors(self, x: TileCoord, y: TileCoord) -> Iterable[TilePos]:
        """In-bounds orthogonal neighbors of a cell."""
        for dx, dy in NEIGHBOR_OFFSETS:
            nx, ny = x + dx, y + dy
            if self.in_bounds(nx, ny):
                yield nx, ny

    def is_complete(self) -> bool:
        return bool(self.resolved.all())

    def export(self) -> IntGrid:
        """Convert a fully resolved grid into the row-major ordinal matrix.

        Raises:
            ContradictionError: If any cell is still unresolved.
        """
        if not self.is_complete():
            raise ContradictionError("Cannot export a partially resolved grid")
        return self.tiles.astype(int).tolist()


# =============================================================================
# Select, collapse, propagate
# =============================================================================


def find_min_entropy_cell(grid: WFCGrid, rng: random.Random) -> TilePos | None:
    """Pick the next cell to collapse.

    Entropy here is the plain candidate count. The cells sharing the lowest
    count are listed in row-major order and one is drawn with
    ``rng.randrange``.

    Returns:
        (x, y) of the chosen cell, or None when every cell is resolved.

    Raises:
        ContradictionError: If an unresolved cell has no candidates left.
    """
    unresolved = ~grid.resolved
    if not unresolved.any():
        return None

    sizes = grid.domain_sizes()
    empty = unresolved & (sizes == 0)
    if empty.any():
        y, x = (int(v) for v in np.argwhere(empty)[0])
        raise ContradictionError(
            f"Cell ({x}, {y}) has no candidate tiles", position=(x, y)
        )

    min_size = sizes[unresolved].min()
    # argwhere walks the array in C order, i.e. row by row.
    candidates = np.argwhere(unresolved & (sizes == min_size))
    y, x = candidates[rng.randrange(len(candidates))]
    return int(x), int(y)


def collapse_cell(
    grid: WFCGrid, x: TileCoord, y: TileCoord, rng: random.Random
) -> TileKind:
    """Resolve a cell to one of its candidates, drawn uniformly.

    Raises:
        ContradictionError: If the cell has no candidates.
    """
    domain = grid.domain(x, y)
    if not domain:
        raise ContradictionError(
            f"Cannot collapse ({x}, {y}): no candidate tiles", position=(x, y)
        )
    tile = domain[rng.randrange(len(domain))]
    grid.resolve(x, y, tile)
    return tile


def _allowed_by_resolved_neighbors(grid: WFCGrid, x: TileCoord, y: TileCoord) -> int:
    """Intersection of the compatibility masks of a cell's resolved neighbors."""
    mask = ALL_TILES_MASK
    for nx, ny in grid.neighbors(x, y):
        if grid.resolved[ny, nx]:
            mask &= int(COMPATIBILITY_MASKS[grid.tiles[ny, nx]])
    return mask


def propagate(grid: WFCGrid, sources: Iterable[TilePos] | None = None) -> int:
    """Narrow unresolved cells until they agree with their resolved neighbors.

    Breadth-first worklist: for every popped cell, each unresolved orthogonal
    neighbor keeps only the tiles that every one of *its* resolved neighbors
    allows. A neighbor whose candidates shrank is queued in turn.

    Args:
        grid: Grid to update in place.
        sources: Cells to start from. Defaults to every resolved cell; on a
            grid that was already consistent, the freshly collapsed cell alone
            reaches the same fixed point.

    Returns:
        Number of domain reductions performed.

    Raises:
        ContradictionError: As soon as a neighbor is left without candidates.
            The queue is not drained any further.
    """
    queue = deque(grid.resolved_positions() if sources is None else sources)
    reductions = 0

    while queue:
        x, y = queue.popleft()
        for nx, ny in grid.neighbors(x, y):
            if grid.resolved[ny, nx]:
                continue

            current = int(grid.wave[ny, nx])
            narrowed = current & _allowed_by_resolved_neighbors(grid, nx, ny)
            if narrowed == current:
                continue
            if narrowed == 0:
                grid.wave[ny, nx] = 0
                raise ContradictionError(
                    f"Propagation left no candidate tiles at ({nx}, {ny})",
                    position=(nx, ny),
                )

            grid.wave[ny, nx] = narrowed
            reductions += 1
            queue.append((nx, ny))

    return reductions


def grid_is_consistent(tiles: IntGrid) -> bool:
    """Check every orthogonal pair of a finished grid against the table.

    The table is directional, and either tile of a pair may have been
    resolved first, so a pair passes if it is legal in at least one
    direction.
    """
    height = len(tiles)
    for y, row in enumerate(tiles):
        for x, tile in enumerate(row):
            for nx, ny in ((x + 1, y), (x, y + 1)):
                if ny >= height or nx >= len(tiles[ny]):
                    continue
                other = tiles[ny][nx]
                if not (allowed(tile, other) or allowed(other, tile)):
                    return False
    return True


# =============================================================================
# Solver
# =============================================================================


class WFCSolver(BaseGridGenerator):
    """Attempt/retry loop around select, collapse and propagate.

    Attributes:
        seed: Seed of the solve's single PRNG. When None is passed, a 64-bit
            seed is drawn from the ``"map.wfc"`` stream and stored here so the
            run can be reproduced.
        attempts_used: Attempts the last ``solve`` call started.
    """

    def __init__(
        self,
        width: TileCoord,
        height: TileCoord,
        max_retries: int = config.WFC_MAX_RETRIES,
        seed: int | None = None,
        seed_configuration: SeedConfiguration | None = None,
        cancel_event: CancelSignal | None = None,
    ) -> None:
        super().__init__(width, height)
        if (
            isinstance(max_retries, bool)
            or not isinstance(max_retries, int)
            or max_retries <= 0
        ):
            raise DimensionError(
                f"max_retries must be a positive integer, got {max_retries!r}"
            )
        self.max_retries = max_retries
        self.seed = rng_streams.resolve_seed(seed, "map.wfc")
        self.seed_configuration = seed_configuration
        self.cancel_event = cancel_event
        self.attempts_used = 0

        # Validated up front: a malformed configuration fails the same way on
        # every attempt and must not be retried.
        self._seed_masks: dict[TilePos, TileMask] = (
            seed_configuration.combined_masks(width, height)
            if seed_configuration is not None
            else {}
        )

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise SolveCancelledError(self.attempts_used)

    def new_grid(self) -> WFCGrid:
        """Fresh grid with the seed configuration applied."""
        grid = WFCGrid(self.width, self.height)
        for (x, y), mask in self._seed_masks.items():
            grid.restrict(x, y, mask)
        return grid

    def _run_attempt(self, rng: random.Random) -> IntGrid:
        grid = self.new_grid()
        for _ in range(self.width * self.height):
            self._check_cancelled()
            target = find_min_entropy_cell(grid, rng)
            if target is None:
                break
            x, y = target

            self._check_cancelled()
            collapse_cell(grid, x, y, rng)

            self._check_cancelled()
            propagate(grid, [(x, y)])

        return grid.export()

    def solve(self) -> IntGrid:
        """Run attempts until one resolves every cell.

        Returns:
            Row-major matrix of TileKind ordinals, ``height`` rows of
            ``width`` columns.

        Raises:
            SolveExhaustedError: If all ``max_retries`` attempts hit a
                contradiction.
            SolveCancelledError: If the cancel signal was set.
        """
        rng = random.Random(self.seed)
        self.attempts_used = 0

        for attempt in range(1, self.max_retries + 1):
            self.attempts_used = attempt
            self._check_cancelled()
            try:
                result = self._run_attempt(rng)
            except ContradictionError as exc:
                logger.debug(
                    "WFC attempt %d/%d failed: %s", attempt, self.max_retries, exc
                )
                continue

            logger.info(
                "WFC solved %dx%d grid in %d attempt(s) (seed=%d)",
                self.width,
                self.height,
                attempt,
                self.seed,
            )
            return result

        logger.warning(
            "WFC gave up on %dx%d grid after %d attempt(s) (seed=%d)",
            self.width,
            self.height,
            self.max_retries,
            self.seed,
        )
        raise SolveExhaustedError(self.max_retries)

    def generate(self) -> np.ndarray:
        return np.array(self.solve(), dtype=np.int8)


def solve(
    width: TileCoord,
    height: TileCoord,
    max_retries: int = config.WFC_MAX_RETRIES,
    seed: int | None = None,
    seed_configuration: SeedConfiguration | None = None,
    cancel_event: CancelSignal | None = None,
) -> IntGrid:
    """Solve a ``width`` x ``height`` grid.

    Raises:
        DimensionError: For non-positive dimensions or retry budget.
        ConfigurationError: For a malformed seed configuration.
        SolveExhaustedError: If every attempt hit a contradiction.
        SolveCancelledError: If ``cancel_event`` was set mid-solve.
    """
    solver = WFCSolver(
        width,
        height,
        max_retries=max_retries,
        seed=seed,
        seed_configuration=seed_configuration,
        cancel_event=cancel_event,
    )
    return solver.solve()
