"""Tests for tile kinds, bitset helpers and the compatibility table."""

from __future__ import annotations

import pytest

from tilesmith.tiles import (
    ALL_TILES_MASK,
    COMPATIBILITY_MASKS,
    LAND_FAMILY,
    SHORE_AND_LAND,
    TILE_COLORS,
    WATER_FAMILY,
    TileKind,
    allowed,
    compatibility_table,
    hex_to_rgb,
    mask_to_tiles,
    popcount,
    tile_colors,
    tiles_to_mask,
)


class TestTileKind:
    def test_eight_ordered_kinds(self) -> None:
        assert len(TileKind) == 8
        assert [int(t) for t in TileKind] == list(range(8))
        assert TileKind.DEEP_WATER == 0
        assert TileKind.FOREST == 7

    def test_families(self) -> None:
        assert WATER_FAMILY == {
            TileKind.DEEP_WATER,
            TileKind.WATER,
            TileKind.COASTAL_WATER,
        }
        assert LAND_FAMILY == {
            TileKind.SAND,
            TileKind.GRASS,
            TileKind.BUSHES,
            TileKind.FOREST,
        }
        assert not WATER_FAMILY & LAND_FAMILY
        assert TileKind.WET_SAND in SHORE_AND_LAND
        assert not WATER_FAMILY & SHORE_AND_LAND

    def test_every_tile_has_a_color(self) -> None:
        assert set(TILE_COLORS) == set(TileKind)
        colors = tile_colors()
        assert len(colors) == 8
        assert colors[TileKind.GRASS] == TILE_COLORS[TileKind.GRASS]

    def test_hex_to_rgb(self) -> None:
        assert hex_to_rgb("#ff8000") == (255, 128, 0)
        assert hex_to_rgb("000000") == (0, 0, 0)


# =============================================================================
# Bitsets
# =============================================================================


class TestBitsets:
    def test_mask_round_trip_is_sorted(self) -> None:
        mask = tiles_to_mask([TileKind.FOREST, TileKind.WATER, TileKind.SAND])
        assert mask == 0b10010010
        assert mask_to_tiles(mask) == (TileKind.WATER, TileKind.SAND, TileKind.FOREST)

    def test_full_and_empty_masks(self) -> None:
        assert mask_to_tiles(ALL_TILES_MASK) == tuple(TileKind)
        assert mask_to_tiles(0) == ()
        assert popcount(ALL_TILES_MASK) == 8
        assert popcount(0) == 0
        assert popcount(0b1010) == 2

    def test_tiles_to_mask_rejects_unknown_values(self) -> None:
        with pytest.raises(ValueError):
            tiles_to_mask([8])
        with pytest.raises(ValueError):
            tiles_to_mask([-1])


# =============================================================================
# Compatibility
# =============================================================================


class TestCompatibility:
    def test_every_tile_may_neighbor_itself(self) -> None:
        for tile in TileKind:
            assert allowed(tile, tile)

    def test_masks_match_table(self) -> None:
        table = compatibility_table()
        for source in TileKind:
            assert mask_to_tiles(int(COMPATIBILITY_MASKS[source])) == tuple(
                sorted(table[source])
            )

    def test_deep_water_and_forest_never_touch(self) -> None:
        assert not allowed(TileKind.DEEP_WATER, TileKind.FOREST)
        assert not allowed(TileKind.FOREST, TileKind.DEEP_WATER)

    def test_relation_is_directional(self) -> None:
        """Coastal water accepts sand next to it, sand does not accept it back."""
        assert allowed(TileKind.COASTAL_WATER, TileKind.SAND)
        assert not allowed(TileKind.SAND, TileKind.COASTAL_WATER)

    def test_only_coastal_sand_pair_is_asymmetric(self) -> None:
        asymmetric = {
            (a, b)
            for a in TileKind
            for b in TileKind
            if allowed(a, b) and not allowed(b, a)
        }
        assert asymmetric == {(TileKind.COASTAL_WATER, TileKind.SAND)}

    def test_table_copy_does_not_leak_state(self) -> None:
        table = compatibility_table()
        table[TileKind.SAND] = frozenset()
        assert compatibility_table()[TileKind.SAND]

    def test_masks_are_read_only(self) -> None:
        with pytest.raises(ValueError):
            COMPATIBILITY_MASKS[0] = 0
