"""Tile grid generators.

Four interchangeable strategies, all returning a ``(height, width)`` grid of
TileKind ordinals:
- WFCSolver: constraint-propagation tile solver with whole-grid retries
- CellularAutomatonGenerator: Game-of-Life on FOREST/SAND
- TerrainRuleGenerator: layered terrain-rule automaton
- PerlinNoiseGenerator: thresholded fBm Perlin noise

Seed configurations narrow the solver's starting domains:
- SeedConfiguration, SeedRestriction, border_ring, center_circle
"""

from .base import BaseGridGenerator
from .cellular import CellularAutomatonGenerator, LifeRule
from .noise import PerlinNoiseGenerator
from .seeding import (
    SeedConfiguration,
    SeedRestriction,
    border_ring,
    center_circle,
    default_seed_configuration,
    painted_restrictions,
)
from .terrain_rules import TerrainRule, TerrainRuleGenerator
from .wfc_solver import WFCGrid, WFCSolver, solve

__all__ = [
    "BaseGridGenerator",
    "CellularAutomatonGenerator",
    "LifeRule",
    "PerlinNoiseGenerator",
    "SeedConfiguration",
    "SeedRestriction",
    "TerrainRule",
    "TerrainRuleGenerator",
    "WFCGrid",
    "WFCSolver",
    "border_ring",
    "center_circle",
    "default_seed_configuration",
    "painted_restrictions",
    "solve",
]
