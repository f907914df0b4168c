"""Seed configurations: positional domain restrictions applied before solving.

A seed configuration only narrows the candidate tiles of some cells; it never
collapses a cell. Two canonical restrictions mirror what the map editor
requests most often:

- ``border_ring``: the outermost ring of cells may only hold water tiles
- ``center_circle``: a filled disc around the map center may only hold land

Painted tiles from the editor become single-tile restrictions through
``painted_restrictions``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from tilesmith import config
from tilesmith.errors import ConfigurationError
from tilesmith.generators.base import paint_layer
from tilesmith.tiles import LAND_FAMILY, WATER_FAMILY, TileKind, tiles_to_mask
from tilesmith.types import TileCoord, TileMask, TilePos

if TYPE_CHECKING:
    from tilesmith.generators.wfc_solver import WFCGrid


@dataclass(frozen=True)
class SeedRestriction:
    """Restrict every listed cell to the ``allowed`` tiles.

    Attributes:
        name: Label used in log and error messages.
        cells: (x, y) positions the restriction applies to.
        allowed: Tiles the cells may still become.
    """

    name: str
    cells: tuple[TilePos, ...]
    allowed: frozenset[TileKind]

    @property
    def mask(self) -> TileMask:
        """The allowed tiles as a candidate bitset."""
        try:
            return tiles_to_mask(self.allowed)
        except ValueError as exc:
            raise ConfigurationError(f"Seed restriction {self.name!r}: {exc}") from exc


@dataclass
class SeedConfiguration:
    """Ordered collection of seed restrictions.

    Restrictions on the same cell intersect. A configuration that leaves any
    cell with no candidate at all is rejected as malformed instead of being
    retried, because every attempt would fail the same way.
    """

    restrictions: list[SeedRestriction] = field(default_factory=list)

    def add(self, restriction: SeedRestriction) -> SeedConfiguration:
        self.restrictions.append(restriction)
        return self

    def __iter__(self) -> Iterator[SeedRestriction]:
        return iter(self.restrictions)

    def __len__(self) -> int:
        return len(self.restrictions)

    def combined_masks(
        self, width: TileCoord, height: TileCoord
    ) -> dict[TilePos, TileMask]:
        """Validate the configuration and fold it into one mask per cell.

        Raises:
            ConfigurationError: If a restriction allows no tiles, names an
                unknown tile, touches a cell outside the grid, or combines with
                another restriction into an empty candidate set.
        """
        masks: dict[TilePos, TileMask] = {}
        for restriction in self.restrictions:
            if not restriction.allowed:
                raise ConfigurationError(
                    f"Seed restriction {restriction.name!r} allows no tiles"
                )
            mask = restriction.mask
            for x, y in restriction.cells:
                if not (0 <= x < width and 0 <= y < height):
                    raise ConfigurationError(
                        f"Seed restriction {restriction.name!r} references "
                        f"({x}, {y}) outside a {width}x{height} grid"
                    )
                combined = masks.get((x, y), mask) & mask
                if combined == 0:
                    raise ConfigurationError(
                        f"Seed restriction {restriction.name!r} leaves no "
                        f"candidate tile at ({x}, {y})"
                    )
                masks[(x, y)] = combined
        return masks

    def apply(self, grid: WFCGrid) -> None:
        """Narrow the domains of a fresh grid; no cell is collapsed."""
        for (x, y), mask in self.combined_masks(grid.width, grid.height).items():
            grid.restrict(x, y, mask)


def border_ring(
    width: TileCoord,
    height: TileCoord,
    allowed: Iterable[TileKind] = WATER_FAMILY,
) -> SeedRestriction:
    """Restrict the outermost ring of cells, water tiles by default."""
    cells = tuple(
        (x, y)
        for y in range(height)
        for x in range(width)
        if x == 0 or y == 0 or x == width - 1 or y == height - 1
    )
    return SeedRestriction("border_ring", cells, frozenset(allowed))


def center_circle(
    width: TileCoord,
    height: TileCoord,
    radius: int = config.WFC_LAND_CENTER_RADIUS,
    allowed: Iterable[TileKind] = LAND_FAMILY,
    margin: int = 0,
) -> SeedRestriction:
    """Restrict a filled disc centered on ``(width // 2, height // 2)``.

    A cell belongs to the disc when ``dx*dx + dy*dy <= radius*radius`` and it
    lies at least ``margin`` cells from every edge of the grid. With the
    default margin of 0 only the cells outside the grid are dropped.
    """
    cx, cy = width // 2, height // 2
    cells = tuple(
        (x, y)
        for y in range(max(margin, cy - radius), min(height - margin, cy + radius + 1))
        for x in range(max(margin, cx - radius), min(width - margin, cx + radius + 1))
        if (x - cx) ** 2 + (y - cy) ** 2 <= radius * radius
    )
    return SeedRestriction("center_circle", cells, frozenset(allowed))


def painted_restrictions(
    painted: Sequence[Sequence[int]],
    width: TileCoord | None = None,
    height: TileCoord | None = None,
) -> list[SeedRestriction]:
    """Turn an editor paint layer into single-tile restrictions.

    ``painted[y][x]`` is a tile ordinal, or -1 for an unpainted cell. When
    ``width`` and ``height`` are given the layer must cover exactly that grid.

    Raises:
        ConfigurationError: If the layer is not a rectangular matrix of
            integers, has the wrong dimensions, or holds a value that is
            neither -1 nor a tile ordinal.
    """
    if not painted:
        return []
    layer = paint_layer(painted, width, height)
    by_tile: dict[int, list[TilePos]] = {}
    for y, x in np.argwhere(layer != -1):
        by_tile.setdefault(int(layer[y, x]), []).append((int(x), int(y)))
    return [
        SeedRestriction(
            f"painted_{TileKind(tile).name.lower()}",
            tuple(cells),
            frozenset({TileKind(tile)}),
        )
        for tile, cells in sorted(by_tile.items())
    ]


def default_seed_configuration(
    width: TileCoord,
    height: TileCoord,
    *,
    water_border: bool = True,
    land_center: bool = True,
    radius: int = config.WFC_LAND_CENTER_RADIUS,
) -> SeedConfiguration:
    """Build the editor's canonical configuration from its two toggles.

    With both toggles on, the land disc keeps ``WFC_LAND_EDGE_MARGIN`` cells
    away from every edge so that it never overlaps the water ring and a shore
    fits between them. On small maps the disc shrinks, down to no cells at all.
    """
    seeds = SeedConfiguration()
    if water_border:
        seeds.add(border_ring(width, height))
    if land_center:
        margin = config.WFC_LAND_EDGE_MARGIN if water_border else 0
        seeds.add(center_circle(width, height, radius, margin=margin))
    return seeds
