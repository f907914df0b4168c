"""Structural metrics over finished tile grids.

Every function takes the row-major integer matrix that the generators
produce (a nested list or a 2-D numpy array) and knows nothing about how the
grid was made.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import TypeAlias

import numpy as np

from tilesmith import config
from tilesmith.types import IntGrid

logger = logging.getLogger(__name__)

GridLike: TypeAlias = IntGrid | np.ndarray

# Orthogonal offsets (dy, dx) used by adjacency counting and flood fill.
_ORTHOGONAL = ((0, 1), (1, 0), (0, -1), (-1, 0))


def _as_array(grid: GridLike) -> np.ndarray:
    array = np.asarray(grid, dtype=np.int64)
    if array.ndim != 2:
        raise ValueError(f"Expected a 2-D grid, got shape {array.shape}")
    return array


def is_uniform(grid: GridLike) -> bool:
    """True if the grid is empty or holds a single tile value."""
    array = _as_array(grid)
    return array.size == 0 or bool((array == array.flat[0]).all())


def tile_frequencies(grid: GridLike) -> dict[int, float]:
    """Relative frequency of every tile value that occurs in the grid."""
    array = _as_array(grid)
    values, counts = np.unique(array, return_counts=True)
    return {
        int(v): float(c) / array.size for v, c in zip(values, counts, strict=True)
    }


def tile_entropy(grid: GridLike) -> float:
    """Shannon entropy ``-sum(p * log2(p))`` of the tile distribution, in bits."""
    p = np.array(list(tile_frequencies(grid).values()))
    return float(-(p * np.log2(p)).sum()) if p.size else 0.0


def adjacency_counts(grid: GridLike) -> dict[int, dict[int, int]]:
    """Count ordered orthogonal neighbor pairs.

    ``result[i][j]`` is how often a cell holding ``i`` has a neighbor holding
    ``j``; every unordered pair is therefore counted once from each side.
    Every tile present in the grid gets an entry, possibly empty.
    """
    array = _as_array(grid)
    height, width = array.shape
    result: dict[int, dict[int, int]] = {int(v): {} for v in np.unique(array)}
    for dy, dx in _ORTHOGONAL:
        rows = slice(max(0, -dy), height - max(0, dy))
        cols = slice(max(0, -dx), width - max(0, dx))
        src = array[rows, cols]
        dst = array[max(0, dy) : height + min(0, dy), max(0, dx) : width + min(0, dx)]
        if src.size == 0:
            continue
        pairs, counts = np.unique(
            np.stack([src.ravel(), dst.ravel()]), axis=1, return_counts=True
        )
        for (i, j), count in zip(pairs.T, counts, strict=True):
            row = result[int(i)]
            row[int(j)] = row.get(int(j), 0) + int(count)
    return result


def autocorrelation(
    grid: GridLike, max_lag: int = config.AUTOCORRELATION_MAX_LAG
) -> dict[tuple[int, int], float]:
    """Spatial autocorrelation of tile values for lags ``0..max_lag``.

    Keys are ``(dx, dy)`` with dx along columns and dy along rows. Each value
    is the sum of centered products at that lag divided by the total sum of
    squared deviations, so lag (0, 0) is 1.0. A uniform grid yields 0.0 for
    every lag.
    """
    array = _as_array(grid).astype(np.float64)
    height, width = array.shape
    centered = array - array.mean()
    var_sum = float((centered * centered).sum())

    result: dict[tuple[int, int], float] = {}
    for dx in range(max_lag + 1):
        for dy in range(max_lag + 1):
            if var_sum == 0 or dx >= width or dy >= height:
                result[(dx, dy)] = 0.0
                continue
            a = centered[: height - dy, : width - dx]
            b = centered[dy:, dx:]
            result[(dx, dy)] = float((a * b).sum()) / var_sum
    return result


def cluster_sizes(grid: GridLike) -> list[int]:
    """Sizes of the 4-connected same-tile regions, in row-major discovery order."""
    array = _as_array(grid)
    height, width = array.shape
    seen = np.zeros(array.shape, dtype=bool)
    sizes: list[int] = []
    for y in range(height):
        for x in range(width):
            if seen[y, x]:
                continue
            tile = array[y, x]
            seen[y, x] = True
            queue = deque([(y, x)])
            size = 0
            while queue:
                cy, cx = queue.popleft()
                size += 1
                for dy, dx in _ORTHOGONAL:
                    ny, nx = cy + dy, cx + dx
                    if (
                        0 <= ny < height
                        and 0 <= nx < width
                        and not seen[ny, nx]
                        and array[ny, nx] == tile
                    ):
                        seen[ny, nx] = True
                        queue.append((ny, nx))
            sizes.append(size)
    return sizes


def fractal_dimension(grid: GridLike) -> float:
    """Box-counting dimension of the non-zero (non deep water) cells.

    Works on the top-left ``n`` x ``n`` square, ``n`` being the shorter grid
    side, with box edges 1, 2, 4, ... up to ``n``. The slope of
    ``log(boxes hit)`` against ``log(1 / edge)`` is fitted by least squares.
    Uniform grids, and grids with fewer than two usable scales, report 2.0,
    the dimension of a flat surface.
    """
    array = _as_array(grid)
    if is_uniform(array):
        return 2.0

    n = min(array.shape)
    filled = array[:n, :n] != 0
    log_counts: list[float] = []
    log_inverse_sizes: list[float] = []
    size = 1
    while size <= n:
        boxes = n // size
        trimmed = filled[: boxes * size, : boxes * size]
        hit = trimmed.reshape(boxes, size, boxes, size).any(axis=(1, 3))
        count = int(hit.sum())
        if count > 0:
            log_counts.append(np.log(count))
            log_inverse_sizes.append(np.log(1.0 / size))
        size *= 2

    if len(log_counts) < 2:
        logger.debug("Fractal dimension needs two box sizes, got %d", len(log_counts))
        return 2.0
    slope, _ = np.polyfit(log_inverse_sizes, log_counts, 1)
    return float(slope)


def spectral_spectrum(grid: GridLike) -> list[list[float]]:
    """Magnitude of the 2-D discrete Fourier transform of the tile values.

    ``spectrum[u][v] = |sum_y sum_x grid[y][x] * exp(-2*pi*i*(u*y/H + v*x/W))|``.
    A uniform grid gets an all-zero spectrum.
    """
    array = _as_array(grid)
    if is_uniform(array):
        return np.zeros(array.shape).tolist()
    return np.abs(np.fft.fft2(array.astype(np.float64))).tolist()
