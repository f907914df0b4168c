"""Procedural terrain tile maps.

Grids of terrain tiles are produced by one of four interchangeable strategies
and analysed by the metrics suite:

- WFCSolver: constraint-propagation tile solver (Wave Function Collapse style)
- CellularAutomatonGenerator: Game-of-Life relaxation on two tile states
- TerrainRuleGenerator: layered terrain-rule automaton
- PerlinNoiseGenerator: thresholded fractal Perlin noise

Every generator returns the same contract: a row-major matrix of TileKind
ordinals, ``height`` rows of ``width`` columns.
"""

from .errors import (
    ConfigurationError,
    ContradictionError,
    DimensionError,
    RequestError,
    SolveCancelledError,
    SolveExhaustedError,
    TilesmithError,
)
from .generators.wfc_solver import WFCSolver, solve
from .tiles import TileKind

__all__ = [
    "ConfigurationError",
    "ContradictionError",
    "DimensionError",
    "RequestError",
    "SolveCancelledError",
    "SolveExhaustedError",
    "TileKind",
    "TilesmithError",
    "WFCSolver",
    "solve",
]
