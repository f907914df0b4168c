from __future__ import annotations

from typing import TypeAlias

# =============================================================================
# GRID COORDINATES (Always integers)
# =============================================================================

TileCoord = int  # Column (x) or row (y) index into a grid

# Position of one cell; x is the column, y is the row.
TilePos: TypeAlias = tuple[TileCoord, TileCoord]  # Example: (5, 3) = column 5, row 3

# =============================================================================
# GRID DATA
# =============================================================================

# Row-major tile matrix as produced by every generator and consumed by the
# metrics suite: grid[y][x] is the TileKind ordinal at column x, row y.
IntGrid: TypeAlias = list[list[int]]

# Bitset of candidate tiles; bit i set means TileKind(i) is still possible.
TileMask: TypeAlias = int

# =============================================================================
# RANDOMNESS
# =============================================================================

RandomSeed: TypeAlias = int | str | None
