"""Base class for grid generators."""

from __future__ import annotations

import abc
from collections.abc import Sequence

import numpy as np

from tilesmith.errors import ConfigurationError, DimensionError
from tilesmith.tiles import NUM_TILE_KINDS
from tilesmith.types import IntGrid, TileCoord


def validate_dimensions(width: TileCoord, height: TileCoord) -> None:
    """Reject grid sizes that are not positive integers.

    Raises:
        DimensionError: If either dimension is not an int greater than zero.
    """
    for name, value in (("width", width), ("height", height)):
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise DimensionError(f"{name} must be a positive integer, got {value!r}")


def paint_layer(
    painted: Sequence[Sequence[int]],
    width: TileCoord | None = None,
    height: TileCoord | None = None,
) -> np.ndarray:
    """Validate an editor paint layer and return it as an int16 array.

    ``painted[y][x]`` is a tile ordinal, or -1 for an unpainted cell. The
    dimensions are only checked when ``width`` and ``height`` are given.

    Raises:
        ConfigurationError: If the layer is ragged, is not a 2-D matrix, holds
            anything but integers, has the wrong dimensions, or holds a value
            that is neither -1 nor a tile ordinal.
    """
    try:
        layer = np.asarray(painted)
    except ValueError as exc:
        raise ConfigurationError(f"painted_tiles is not rectangular: {exc}") from exc
    if layer.ndim != 2:
        raise ConfigurationError(
            f"painted_tiles must be a matrix of rows, got {layer.ndim} dimension(s)"
        )
    if layer.size and layer.dtype.kind not in "iu":
        raise ConfigurationError(
            f"painted_tiles must hold integers, got {layer.dtype} values"
        )
    if width is not None and height is not None and layer.shape != (height, width):
        raise ConfigurationError(
            f"painted_tiles dimensions {layer.shape[1]}x{layer.shape[0]} do not "
            f"match the requested {width}x{height} grid"
        )
    if ((layer < -1) | (layer >= NUM_TILE_KINDS)).any():
        raise ConfigurationError("painted_tiles contains non-tile values")
    return layer.astype(np.int16)


class BaseGridGenerator(abc.ABC):
    """Abstract base class for tile grid generation algorithms.

    Subclasses return a ``(height, width)`` array of TileKind ordinals; the
    array is indexed ``[y, x]`` so that ``tolist()`` yields the row-major
    matrix consumed by the metrics suite and the service layer.
    """

    def __init__(self, width: TileCoord, height: TileCoord) -> None:
        validate_dimensions(width, height)
        self.width = width
        self.height = height

    @abc.abstractmethod
    def generate(self) -> np.ndarray:
        """Generate a grid of tile ordinals shaped ``(height, width)``."""
        raise NotImplementedError

    def generate_grid(self) -> IntGrid:
        """Generate a grid and return it as nested Python lists."""
        return self.generate().astype(int).tolist()
