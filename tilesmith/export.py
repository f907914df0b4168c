"""Saving and loading generated grids.

Grids travel as row-major lists of TileKind ordinals. They are written as
JSON documents or rendered to PNG, one solid square per tile in the tile's
display color.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import numpy as np
from PIL import Image

from tilesmith import config
from tilesmith.errors import ConfigurationError
from tilesmith.tiles import NUM_TILE_KINDS, hex_to_rgb, tile_colors
from tilesmith.types import IntGrid

logger = logging.getLogger(__name__)

# PALETTE[tile] = (r, g, b)
PALETTE = np.array([hex_to_rgb(color) for color in tile_colors()], dtype=np.uint8)
PALETTE.flags.writeable = False


def grid_to_array(grid: IntGrid) -> np.ndarray:
    """Validate a row-major grid and convert it to an int8 array.

    Raises:
        ConfigurationError: If the grid is empty, ragged, or holds values that
            are not tile ordinals.
    """
    try:
        array = np.asarray(grid, dtype=np.int16)
    except ValueError as exc:
        raise ConfigurationError(f"Grid is not rectangular: {exc}") from exc
    if array.ndim != 2 or array.size == 0:
        raise ConfigurationError(f"Expected a non-empty 2-D grid, got {array.shape}")
    if array.min() < 0 or array.max() >= NUM_TILE_KINDS:
        raise ConfigurationError("Grid contains values that are not tile kinds")
    return array.astype(np.int8)


def grid_to_image(grid: IntGrid, cell_size: int = config.PNG_CELL_SIZE) -> Image.Image:
    """Render a grid as an RGB image, ``cell_size`` pixels per tile edge."""
    if cell_size < 1:
        raise ConfigurationError(f"cell_size must be >= 1, got {cell_size}")
    pixels = PALETTE[grid_to_array(grid)]
    pixels = np.repeat(np.repeat(pixels, cell_size, axis=0), cell_size, axis=1)
    return Image.fromarray(np.ascontiguousarray(pixels))


def save_png(
    grid: IntGrid, path: str | Path, cell_size: int = config.PNG_CELL_SIZE
) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    grid_to_image(grid, cell_size).save(path)
    logger.info("Wrote %s", path)
    return path


def save_json(document: Any, path: str | Path) -> Path:
    """Write any JSON-serializable document (a grid or a response dict)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as f:
        json.dump(document, f, indent=2)
    logger.info("Wrote %s", path)
    return path


def load_grid_json(path: str | Path) -> IntGrid:
    """Read a grid saved by ``save_json``.

    Accepts either a bare grid or a document with a top-level ``"grid"`` key,
    as written for service responses.

    Raises:
        ConfigurationError: If the file holds no valid grid.
    """
    with Path(path).open() as f:
        document = json.load(f)
    if isinstance(document, dict):
        if "grid" not in document:
            raise ConfigurationError(f"{path} has no 'grid' entry")
        document = document["grid"]
    return grid_to_array(document).astype(int).tolist()
