"""Tests for the constraint-propagation tile solver.

Covers the cell grid, the three solver steps (select, collapse, propagate) in
isolation, and the attempt/retry loop behind ``solve``.
"""

from __future__ import annotations

import json
import logging
import random
import threading
from pathlib import Path
from unittest import mock

import numpy as np
import pytest

from tilesmith.errors import (
    ConfigurationError,
    ContradictionError,
    DimensionError,
    SolveCancelledError,
    SolveExhaustedError,
)
from tilesmith.generators import wfc_solver
from tilesmith.generators.seeding import (
    SeedConfiguration,
    SeedRestriction,
    border_ring,
    center_circle,
    default_seed_configuration,
)
from tilesmith.generators.wfc_solver import (
    WFCGrid,
    WFCSolver,
    collapse_cell,
    find_min_entropy_cell,
    grid_is_consistent,
    propagate,
    solve,
)
from tilesmith.tiles import (
    ALL_TILES_MASK,
    LAND_FAMILY,
    WATER_FAMILY,
    TileKind,
    allowed,
    tiles_to_mask,
)

GOLDEN_DIR = Path(__file__).parent / "golden"


class FixedRNG:
    """RNG stand-in whose ``randrange`` always returns the same index."""

    def __init__(self, index: int = 0) -> None:
        self.index = index
        self.calls: list[int] = []

    def randrange(self, stop: int) -> int:
        self.calls.append(stop)
        return min(self.index, stop - 1)


def only(*tiles: TileKind) -> SeedConfiguration:
    """Seed configuration pinning (0, 0), (1, 0), ... to the given tiles."""
    seeds = SeedConfiguration()
    for x, tile in enumerate(tiles):
        seeds.add(SeedRestriction(f"pin_{x}", ((x, 0),), frozenset({tile})))
    return seeds


# =============================================================================
# Grid & cells
# =============================================================================


class TestWFCGrid:
    def test_fresh_grid_has_full_domains(self) -> None:
        grid = WFCGrid(4, 3)
        assert grid.wave.shape == (3, 4)
        assert (grid.wave == ALL_TILES_MASK).all()
        assert not grid.resolved.any()
        assert grid.domain(3, 2) == tuple(TileKind)
        assert grid.tile_at(0, 0) is None

    def test_restrict_intersects(self) -> None:
        grid = WFCGrid(2, 2)
        grid.restrict(1, 0, tiles_to_mask(WATER_FAMILY))
        grid.restrict(1, 0, tiles_to_mask({TileKind.WATER, TileKind.SAND}))
        assert grid.domain(1, 0) == (TileKind.WATER,)
        # Narrowed to one candidate but not resolved.
        assert not grid.is_resolved(1, 0)
        assert grid.domain(0, 0) == tuple(TileKind)

    def test_resolve_fixes_tile(self) -> None:
        grid = WFCGrid(2, 2)
        grid.resolve(1, 1, TileKind.GRASS)
        assert grid.is_resolved(1, 1)
        assert grid.tile_at(1, 1) is TileKind.GRASS
        assert grid.domain(1, 1) == (TileKind.GRASS,)
        assert grid.resolved_positions() == [(1, 1)]

    def test_resolve_outside_domain_is_a_contradiction(self) -> None:
        grid = WFCGrid(1, 1)
        grid.restrict(0, 0, tiles_to_mask(LAND_FAMILY))
        with pytest.raises(ContradictionError):
            grid.resolve(0, 0, TileKind.WATER)

    def test_neighbors_are_orthogonal_and_in_bounds(self) -> None:
        grid = WFCGrid(3, 3)
        assert sorted(grid.neighbors(1, 1)) == [(0, 1), (1, 0), (1, 2), (2, 1)]
        assert sorted(grid.neighbors(0, 0)) == [(0, 1), (1, 0)]

    def test_export_is_row_major(self) -> None:
        grid = WFCGrid(3, 2)
        for y in range(2):
            for x in range(3):
                grid.resolve(x, y, TileKind(x + 3 * y))
        assert grid.export() == [[0, 1, 2], [3, 4, 5]]

    def test_partial_grid_cannot_be_exported(self) -> None:
        grid = WFCGrid(2, 1)
        grid.resolve(0, 0, TileKind.SAND)
        with pytest.raises(ContradictionError):
            grid.export()


# =============================================================================
# Entropy selector
# =============================================================================


class TestFindMinEntropyCell:
    def test_returns_none_when_everything_is_resolved(self) -> None:
        grid = WFCGrid(2, 1)
        grid.resolve(0, 0, TileKind.SAND)
        grid.resolve(1, 0, TileKind.SAND)
        assert find_min_entropy_cell(grid, FixedRNG()) is None

    def test_picks_the_smallest_domain(self) -> None:
        grid = WFCGrid(3, 3)
        grid.restrict(2, 1, tiles_to_mask(WATER_FAMILY))
        grid.restrict(0, 2, tiles_to_mask(LAND_FAMILY))
        rng = FixedRNG()
        assert find_min_entropy_cell(grid, rng) == (2, 1)
        assert rng.calls == [1]

    def test_resolved_cells_are_ignored(self) -> None:
        grid = WFCGrid(2, 1)
        grid.resolve(0, 0, TileKind.SAND)
        assert find_min_entropy_cell(grid, FixedRNG()) == (1, 0)

    def test_ties_are_drawn_in_row_major_order(self) -> None:
        grid = WFCGrid(3, 3)
        mask = tiles_to_mask({TileKind.SAND, TileKind.GRASS})
        for x, y in [(2, 2), (0, 1), (2, 0)]:
            grid.restrict(x, y, mask)
        # Row-major candidates: (2, 0), (0, 1), (2, 2)
        assert find_min_entropy_cell(grid, FixedRNG(0)) == (2, 0)
        assert find_min_entropy_cell(grid, FixedRNG(1)) == (0, 1)
        assert find_min_entropy_cell(grid, FixedRNG(2)) == (2, 2)

    def test_empty_domain_fails_fast(self) -> None:
        grid = WFCGrid(3, 1)
        grid.restrict(2, 0, 0)
        rng = FixedRNG()
        with pytest.raises(ContradictionError) as exc_info:
            find_min_entropy_cell(grid, rng)
        assert exc_info.value.position == (2, 0)
        assert rng.calls == []


# =============================================================================
# Collapser
# =============================================================================


class TestCollapseCell:
    def test_draws_from_ascending_domain(self) -> None:
        domain = {TileKind.FOREST, TileKind.WATER, TileKind.SAND}
        for index, expected in enumerate(
            [TileKind.WATER, TileKind.SAND, TileKind.FOREST]
        ):
            grid = WFCGrid(1, 1)
            grid.restrict(0, 0, tiles_to_mask(domain))
            rng = FixedRNG(index)
            assert collapse_cell(grid, 0, 0, rng) is expected
            assert rng.calls == [3]
            assert grid.tile_at(0, 0) is expected
            assert grid.domain(0, 0) == (expected,)

    def test_touches_only_the_target_cell(self) -> None:
        grid = WFCGrid(3, 3)
        collapse_cell(grid, 1, 1, FixedRNG(0))
        assert grid.resolved.sum() == 1
        assert (grid.domain_sizes()[~grid.resolved] == 8).all()

    def test_empty_domain_is_a_contradiction(self) -> None:
        grid = WFCGrid(1, 1)
        grid.restrict(0, 0, 0)
        with pytest.raises(ContradictionError):
            collapse_cell(grid, 0, 0, FixedRNG())


# =============================================================================
# Propagator
# =============================================================================


class TestPropagate:
    def test_narrows_orthogonal_neighbors_only(self) -> None:
        grid = WFCGrid(3, 3)
        grid.resolve(1, 1, TileKind.DEEP_WATER)
        assert propagate(grid) == 4
        for x, y in [(1, 0), (0, 1), (2, 1), (1, 2)]:
            assert grid.domain(x, y) == (TileKind.DEEP_WATER, TileKind.WATER)
        for x, y in [(0, 0), (2, 0), (0, 2), (2, 2)]:
            assert grid.domain(x, y) == tuple(TileKind)

    def test_intersects_over_all_resolved_neighbors(self) -> None:
        grid = WFCGrid(3, 1)
        grid.resolve(0, 0, TileKind.GRASS)
        grid.resolve(2, 0, TileKind.WET_SAND)
        propagate(grid)
        assert grid.domain(1, 0) == (TileKind.SAND,)
        # A single remaining candidate does not mark the cell resolved.
        assert not grid.is_resolved(1, 0)

    def test_keeps_existing_restrictions(self) -> None:
        grid = WFCGrid(2, 1)
        grid.restrict(1, 0, tiles_to_mask({TileKind.WATER, TileKind.SAND}))
        grid.resolve(0, 0, TileKind.DEEP_WATER)
        propagate(grid)
        assert grid.domain(1, 0) == (TileKind.WATER,)

    def test_contradiction_stops_propagation(self) -> None:
        grid = WFCGrid(3, 2)
        grid.resolve(0, 0, TileKind.DEEP_WATER)
        grid.resolve(2, 0, TileKind.FOREST)
        with pytest.raises(ContradictionError) as exc_info:
            propagate(grid)
        assert exc_info.value.position == (1, 0)

    def test_is_idempotent_at_fixed_point(self) -> None:
        grid = WFCGrid(4, 4)
        grid.resolve(0, 0, TileKind.SAND)
        grid.resolve(3, 2, TileKind.BUSHES)
        propagate(grid)
        before = grid.wave.copy()
        assert propagate(grid) == 0
        np.testing.assert_array_equal(grid.wave, before)

    def test_collapsed_cell_as_source_matches_full_scan(self) -> None:
        full = WFCGrid(4, 4)
        local = WFCGrid(4, 4)
        for grid in (full, local):
            grid.resolve(1, 1, TileKind.GRASS)
            propagate(grid)
            grid.resolve(2, 1, TileKind.SAND)
        propagate(full)
        propagate(local, [(2, 1)])
        np.testing.assert_array_equal(full.wave, local.wave)

    def test_compatibility_is_applied_from_the_resolved_side(self) -> None:
        """The table is directional: which tile lands first matters."""
        water_first = WFCGrid(2, 1)
        water_first.resolve(0, 0, TileKind.COASTAL_WATER)
        propagate(water_first)
        assert TileKind.SAND in water_first.domain(1, 0)

        sand_first = WFCGrid(2, 1)
        sand_first.resolve(0, 0, TileKind.SAND)
        propagate(sand_first)
        assert TileKind.COASTAL_WATER not in sand_first.domain(1, 0)

    def test_domains_never_grow(self) -> None:
        rng = random.Random(3)
        grid = WFCGrid(6, 6)
        previous = grid.domain_sizes().copy()
        try:
            while (target := find_min_entropy_cell(grid, rng)) is not None:
                collapse_cell(grid, *target, rng)
                sizes = grid.domain_sizes().copy()
                assert (sizes <= previous).all()
                previous = sizes

                propagate(grid, [target])
                sizes = grid.domain_sizes().copy()
                assert (sizes <= previous).all()
                previous = sizes
        except ContradictionError:
            assert (grid.domain_sizes() <= previous).all()


# =============================================================================
# Solver
# =============================================================================


class TestSolveValidation:
    @pytest.mark.parametrize(
        ("width", "height", "retries"),
        [(0, 5, 10), (5, 0, 10), (-1, 5, 10), (5, 5, 0), (5, 5, -3), (True, 5, 1)],
    )
    def test_rejects_bad_dimensions(self, width: int, height: int, retries: int):
        with mock.patch.object(wfc_solver, "find_min_entropy_cell") as select:
            with pytest.raises(DimensionError):
                solve(width, height, max_retries=retries, seed=1)
        select.assert_not_called()

    def test_dimension_error_is_a_value_error(self) -> None:
        with pytest.raises(ValueError):
            solve(0, 0)

    def test_rejects_seed_outside_grid(self) -> None:
        seeds = SeedConfiguration(
            [SeedRestriction("stray", ((9, 9),), frozenset({TileKind.SAND}))]
        )
        with pytest.raises(ConfigurationError):
            solve(3, 3, seed=1, seed_configuration=seeds)

    def test_rejects_seed_without_tiles(self) -> None:
        seeds = SeedConfiguration([SeedRestriction("none", ((0, 0),), frozenset())])
        with pytest.raises(ConfigurationError):
            solve(3, 3, seed=1, seed_configuration=seeds)

    def test_rejects_seeds_that_cancel_out(self) -> None:
        seeds = SeedConfiguration(
            [
                SeedRestriction("water", ((1, 1),), WATER_FAMILY),
                SeedRestriction("land", ((1, 1),), LAND_FAMILY),
            ]
        )
        with pytest.raises(ConfigurationError):
            solve(3, 3, seed=1, seed_configuration=seeds)


class TestSolve:
    def test_output_shape_and_values(self) -> None:
        grid = solve(7, 4, max_retries=50, seed=11)
        assert len(grid) == 4
        assert all(len(row) == 7 for row in grid)
        assert all(0 <= tile < 8 for row in grid for tile in row)
        assert all(type(tile) is int for row in grid for tile in row)

    @pytest.mark.parametrize("seed", range(1, 9))
    def test_output_respects_compatibility(self, seed: int) -> None:
        try:
            grid = solve(8, 8, max_retries=50, seed=seed)
        except SolveExhaustedError:
            pytest.skip("no solution found for this seed")
        assert grid_is_consistent(grid)

    def test_same_seed_same_grid(self) -> None:
        assert solve(6, 6, seed=42) == solve(6, 6, seed=42)

    def test_different_seeds_give_different_grids(self) -> None:
        grids = {json.dumps(solve(6, 6, seed=seed)) for seed in range(1, 6)}
        assert len(grids) > 1

    def test_missing_seed_is_drawn_and_recorded(self) -> None:
        solver = WFCSolver(5, 5)
        grid = solver.solve()
        assert isinstance(solver.seed, int)
        assert solve(5, 5, seed=solver.seed) == grid

    @pytest.mark.parametrize(("width", "height"), [(1, 1), (1, 12), (12, 1)])
    def test_degenerate_shapes_terminate(self, width: int, height: int) -> None:
        with mock.patch.object(
            wfc_solver, "collapse_cell", wraps=wfc_solver.collapse_cell
        ) as collapse:
            solver = WFCSolver(width, height, max_retries=50, seed=5)
            grid = solver.solve()
        assert len(grid) == height
        assert len(grid[0]) == width
        assert collapse.call_count <= solver.attempts_used * width * height

    def test_generate_grid_matches_solve(self) -> None:
        assert WFCSolver(5, 4, seed=9).generate_grid() == solve(5, 4, seed=9)

    def test_logs_success(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="tilesmith.generators.wfc_solver"):
            solve(4, 4, seed=2)
        assert any("WFC solved 4x4 grid" in r.getMessage() for r in caplog.records)


class TestSeeding:
    @pytest.mark.parametrize("seed", [1, 2, 3, 4])
    def test_border_ring_stays_water(self, seed: int) -> None:
        width, height = 9, 7
        seeds = SeedConfiguration([border_ring(width, height)])
        grid = solve(width, height, max_retries=50, seed=seed, seed_configuration=seeds)
        for y in range(height):
            for x in range(width):
                if x in (0, width - 1) or y in (0, height - 1):
                    assert TileKind(grid[y][x]) in WATER_FAMILY

    def test_center_circle_stays_land(self) -> None:
        width = height = 11
        circle = center_circle(width, height)
        seeds = SeedConfiguration([circle])
        grid = solve(width, height, max_retries=50, seed=8, seed_configuration=seeds)
        for x, y in circle.cells:
            assert TileKind(grid[y][x]) in LAND_FAMILY

    @pytest.mark.parametrize("size", [7, 8])
    def test_border_and_center_together_on_small_maps(self, size: int) -> None:
        seeds = default_seed_configuration(size, size)
        disc = next(r for r in seeds if r.name == "center_circle")
        assert disc.cells

        grid = solve(size, size, max_retries=2000, seed=1, seed_configuration=seeds)
        assert grid_is_consistent(grid)
        for y in range(size):
            for x in range(size):
                if x in (0, size - 1) or y in (0, size - 1):
                    assert TileKind(grid[y][x]) in WATER_FAMILY
        for x, y in disc.cells:
            assert TileKind(grid[y][x]) in LAND_FAMILY

    def test_seeds_narrow_but_do_not_collapse(self) -> None:
        solver = WFCSolver(
            7, 7, seed=1, seed_configuration=SeedConfiguration([border_ring(7, 7)])
        )
        grid = solver.new_grid()
        assert not grid.resolved.any()
        assert grid.domain(0, 0) == tuple(sorted(WATER_FAMILY))
        assert grid.domain(3, 3) == tuple(TileKind)


class TestRetries:
    def test_incompatible_pins_exhaust_retries(self) -> None:
        solver = WFCSolver(
            2,
            1,
            max_retries=7,
            seed=1,
            seed_configuration=only(TileKind.DEEP_WATER, TileKind.FOREST),
        )
        with pytest.raises(SolveExhaustedError) as exc_info:
            solver.solve()
        assert exc_info.value.attempts == 7
        assert solver.attempts_used == 7
        assert not hasattr(exc_info.value, "grid")

    def test_exhaustion_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.DEBUG, logger="tilesmith.generators.wfc_solver"):
            with pytest.raises(SolveExhaustedError):
                solve(
                    2,
                    1,
                    max_retries=3,
                    seed=1,
                    seed_configuration=only(TileKind.FOREST, TileKind.DEEP_WATER),
                )
        failed = [r for r in caplog.records if "attempt" in r.getMessage()]
        assert len([r for r in failed if r.levelno == logging.DEBUG]) == 3
        assert any(r.levelno == logging.WARNING for r in caplog.records)

    def test_compatible_pins_solve_first_time(self) -> None:
        solver = WFCSolver(
            3,
            1,
            seed=1,
            seed_configuration=only(TileKind.WET_SAND, TileKind.SAND, TileKind.GRASS),
        )
        assert solver.solve() == [[3, 4, 5]]
        assert solver.attempts_used == 1

    def test_directional_pair_succeeds_only_in_one_order(self) -> None:
        """Sand then coastal water contradicts; the reverse order is legal."""
        for seed in range(1, 6):
            solver = WFCSolver(
                2,
                1,
                max_retries=50,
                seed=seed,
                seed_configuration=only(TileKind.SAND, TileKind.COASTAL_WATER),
            )
            assert solver.solve() == [[4, 2]]

        with mock.patch.object(
            wfc_solver, "find_min_entropy_cell", side_effect=[(0, 0), None]
        ):
            solver = WFCSolver(
                2,
                1,
                max_retries=1,
                seed=1,
                seed_configuration=only(TileKind.SAND, TileKind.COASTAL_WATER),
            )
            with pytest.raises(SolveExhaustedError):
                solver.solve()

    def test_contradiction_triggers_a_fresh_attempt(self) -> None:
        calls = {"count": 0}
        real_propagate = wfc_solver.propagate

        def flaky_propagate(grid, sources=None):
            calls["count"] += 1
            if calls["count"] == 1:
                raise ContradictionError("forced", position=(0, 0))
            return real_propagate(grid, sources)

        # A 1-row grid grows as one segment and never contradicts by itself.
        solver = WFCSolver(4, 1, seed=4)
        with mock.patch.object(wfc_solver, "propagate", side_effect=flaky_propagate):
            grid = solver.solve()
        assert solver.attempts_used == 2
        assert grid_is_consistent(grid)


class TestCancellation:
    def test_cancel_before_start(self) -> None:
        event = threading.Event()
        event.set()
        with pytest.raises(SolveCancelledError) as exc_info:
            solve(5, 5, seed=1, cancel_event=event)
        assert exc_info.value.attempts == 1

    def test_cancel_mid_attempt(self) -> None:
        class CancelAfter:
            def __init__(self, checks: int) -> None:
                self.remaining = checks

            def is_set(self) -> bool:
                self.remaining -= 1
                return self.remaining < 0

        with mock.patch.object(
            wfc_solver, "collapse_cell", wraps=wfc_solver.collapse_cell
        ) as collapse:
            with pytest.raises(SolveCancelledError):
                solve(5, 5, seed=1, cancel_event=CancelAfter(5))
        assert 0 < collapse.call_count < 25

    def test_unset_event_does_not_interfere(self) -> None:
        assert solve(4, 4, seed=3, cancel_event=threading.Event()) == solve(
            4, 4, seed=3
        )


# =============================================================================
# Consistency checker & golden output
# =============================================================================


class TestGridIsConsistent:
    def test_accepts_directional_pair_in_either_order(self) -> None:
        assert grid_is_consistent([[TileKind.COASTAL_WATER, TileKind.SAND]])
        assert grid_is_consistent([[TileKind.SAND], [TileKind.COASTAL_WATER]])

    def test_rejects_incompatible_pair(self) -> None:
        assert not allowed(TileKind.WATER, TileKind.FOREST)
        assert not grid_is_consistent([[1, 1], [1, 7]])


class TestGolden:
    def test_5x5_seed_1_matches_recorded_grid(self) -> None:
        """Pins selection, collapse and propagation order.

        Regenerate ``golden/wfc_5x5_seed1.json`` only after an intentional
        change to the order in which the solver draws from its PRNG.
        """
        golden = GOLDEN_DIR / "wfc_5x5_seed1.json"
        expected = json.loads(golden.read_text())

        grid = solve(5, 5, max_retries=50, seed=1)
        assert grid_is_consistent(expected)
        assert grid == expected

    def test_recorded_grid_is_reached_on_the_first_attempt(self) -> None:
        solver = WFCSolver(5, 5, seed=1)
        solver.solve()
        assert solver.attempts_used == 1
