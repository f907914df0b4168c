"""
Tile kinds and the neighbor compatibility relation.

This module defines:
- `TileKind`: the closed, ordered set of eight terrain tiles, a gradient from
  deep water to dense forest. Grids store plain integer ordinals of these.
- Tile families used by seed configurations and the terrain-rule automaton.
- The display color of every tile, shared by PNG export and service responses.
- The compatibility table: for every source tile, the tiles that may sit in an
  orthogonally adjacent cell once the source tile has been placed. The table
  is declared per source tile and is not a symmetric closure, so a neighbor
  pair can be legal in one resolution order and illegal in the other.

Candidate sets are handled as uint8 bitsets: bit i set means TileKind(i) is
still possible. Eight tile kinds fit in one byte, so intersection is a bitwise
AND and enumeration in ascending ordinal order is a table lookup.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import IntEnum

import numpy as np

from tilesmith.types import TileMask


class TileKind(IntEnum):
    """Terrain tiles ordered from deepest water to densest vegetation."""

    DEEP_WATER = 0
    WATER = 1
    COASTAL_WATER = 2
    WET_SAND = 3
    SAND = 4
    GRASS = 5
    BUSHES = 6
    FOREST = 7


NUM_TILE_KINDS = len(TileKind)

# Bitset with every tile kind possible (0b11111111).
ALL_TILES_MASK: TileMask = (1 << NUM_TILE_KINDS) - 1

# =============================================================================
# TILE FAMILIES
# =============================================================================

WATER_FAMILY: frozenset[TileKind] = frozenset(
    {TileKind.DEEP_WATER, TileKind.WATER, TileKind.COASTAL_WATER}
)

LAND_FAMILY: frozenset[TileKind] = frozenset(
    {TileKind.SAND, TileKind.GRASS, TileKind.BUSHES, TileKind.FOREST}
)

# Everything that is not open water, wet sand included.
SHORE_AND_LAND: frozenset[TileKind] = frozenset(TileKind) - WATER_FAMILY

# =============================================================================
# DISPLAY COLORS
# =============================================================================

TILE_COLORS: dict[TileKind, str] = {
    TileKind.DEEP_WATER: "#1b3a6b",
    TileKind.WATER: "#2b5ea7",
    TileKind.COASTAL_WATER: "#4f93d2",
    TileKind.WET_SAND: "#b9a36e",
    TileKind.SAND: "#e8d8a0",
    TileKind.GRASS: "#7cb342",
    TileKind.BUSHES: "#4d8a2f",
    TileKind.FOREST: "#2a5219",
}


def tile_colors() -> list[str]:
    """Return the tile colors as a list indexed by TileKind ordinal."""
    return [TILE_COLORS[tile] for tile in TileKind]


def hex_to_rgb(color: str) -> tuple[int, int, int]:
    """Convert a ``#rrggbb`` string into an RGB byte triple."""
    value = color.lstrip("#")
    return (int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16))


# =============================================================================
# BITSET HELPERS
# =============================================================================

# Precomputed popcount lookup table for uint8 values (0-255)
POPCOUNT_TABLE = np.array([bin(i).count("1") for i in range(256)], dtype=np.uint8)
POPCOUNT_TABLE.flags.writeable = False

# Tiles contained in each mask, ascending by ordinal.
_MASK_TILES: tuple[tuple[TileKind, ...], ...] = tuple(
    tuple(tile for tile in TileKind if mask & (1 << tile)) for mask in range(256)
)


def is_valid_tile(value: int) -> bool:
    """Return True if ``value`` is the ordinal of a TileKind."""
    return isinstance(value, int | np.integer) and 0 <= value < NUM_TILE_KINDS


def tiles_to_mask(tiles: Iterable[int]) -> TileMask:
    """Pack tile ordinals into a candidate bitset.

    Raises:
        ValueError: If any value is not a TileKind ordinal.
    """
    mask = 0
    for tile in tiles:
        if not is_valid_tile(tile):
            raise ValueError(f"Not a tile kind: {tile!r}")
        mask |= 1 << int(tile)
    return mask


def mask_to_tiles(mask: TileMask) -> tuple[TileKind, ...]:
    """Unpack a candidate bitset into tiles, sorted by ascending ordinal."""
    return _MASK_TILES[int(mask) & ALL_TILES_MASK]


def popcount(mask: TileMask) -> int:
    """Count the candidate tiles in a bitset."""
    return int(POPCOUNT_TABLE[int(mask) & ALL_TILES_MASK])


# =============================================================================
# COMPATIBILITY TABLE
# =============================================================================

# Source tile -> tiles allowed on any of its four orthogonal sides.
# COASTAL_WATER lists SAND but SAND does not list COASTAL_WATER: a beach may
# run straight into the shallows only when the water was placed first.
_COMPATIBILITY: dict[TileKind, frozenset[TileKind]] = {
    TileKind.DEEP_WATER: frozenset({TileKind.DEEP_WATER, TileKind.WATER}),
    TileKind.WATER: frozenset(
        {TileKind.DEEP_WATER, TileKind.WATER, TileKind.COASTAL_WATER}
    ),
    TileKind.COASTAL_WATER: frozenset(
        {TileKind.WATER, TileKind.COASTAL_WATER, TileKind.WET_SAND, TileKind.SAND}
    ),
    TileKind.WET_SAND: frozenset(
        {TileKind.COASTAL_WATER, TileKind.WET_SAND, TileKind.SAND}
    ),
    TileKind.SAND: frozenset({TileKind.WET_SAND, TileKind.SAND, TileKind.GRASS}),
    TileKind.GRASS: frozenset(
        {TileKind.SAND, TileKind.GRASS, TileKind.BUSHES, TileKind.FOREST}
    ),
    TileKind.BUSHES: frozenset({TileKind.GRASS, TileKind.BUSHES, TileKind.FOREST}),
    TileKind.FOREST: frozenset({TileKind.GRASS, TileKind.BUSHES, TileKind.FOREST}),
}

# COMPATIBILITY_MASKS[source] = bitset of tiles allowed next to `source`.
COMPATIBILITY_MASKS = np.array(
    [tiles_to_mask(_COMPATIBILITY[tile]) for tile in TileKind], dtype=np.uint8
)
COMPATIBILITY_MASKS.flags.writeable = False


def allowed(source: int, candidate: int) -> bool:
    """Return True if ``candidate`` may be placed next to a resolved ``source``."""
    return bool(COMPATIBILITY_MASKS[source] & (1 << candidate))


def compatibility_table() -> dict[TileKind, frozenset[TileKind]]:
    """Return a copy of the compatibility relation keyed by source tile."""
    return dict(_COMPATIBILITY)
