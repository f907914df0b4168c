"""
Configuration constants.

Centralizes the default parameters of every generator, the metrics suite and
the command line tools. Organized by functional area for easy maintenance.
"""

from pathlib import Path

# =============================================================================
# GENERAL
# =============================================================================

# Master seed for the named RNG streams (see tilesmith.util.rng).
# None gives non-deterministic runs.
RANDOM_SEED = None

# Default map size used by the CLI and by service requests that omit it.
DEFAULT_WIDTH = 25
DEFAULT_HEIGHT = 25

# =============================================================================
# WAVE FUNCTION COLLAPSE
# =============================================================================

# Whole-grid restarts allowed before a solve is declared exhausted.
WFC_MAX_RETRIES = 50

# Radius of the land disc forced around the map center by the seed
# configuration (membership test dx*dx + dy*dy <= radius*radius).
WFC_LAND_CENTER_RADIUS = 3

# Cells the land disc keeps clear of each map edge while the water border is
# on: the ring itself plus room for a DEEP_WATER -> WATER -> COASTAL_WATER ->
# SAND shore. Small maps end up with a smaller (possibly empty) disc.
WFC_LAND_EDGE_MARGIN = 3

# =============================================================================
# CELLULAR AUTOMATON (Game of Life)
# =============================================================================

CA_LIFE_PROBABILITY = 0.5  # Chance that a fresh cell starts alive
CA_DEFAULT_ITERATIONS = 5

# =============================================================================
# LAYERED TERRAIN RULES
# =============================================================================

TERRAIN_RULES_DEFAULT_ITERATIONS = 5
TERRAIN_RULES_DEFAULT_RANDOMNESS = 0.5  # Chance a matching rule actually fires

# =============================================================================
# PERLIN NOISE
# =============================================================================

NOISE_DEFAULT_SCALE = 1.0
NOISE_DEFAULT_OCTAVES = 4
NOISE_DEFAULT_PERSISTENCE = 0.9  # Amplitude decay per octave
NOISE_DEFAULT_LACUNARITY = 1.8  # Frequency multiplier per octave

# =============================================================================
# METRICS
# =============================================================================

AUTOCORRELATION_MAX_LAG = 3

# =============================================================================
# EXPORT & BATCH GENERATION
# =============================================================================

PNG_CELL_SIZE = 16  # Pixels per tile edge in rendered maps

BATCH_OUTPUT_DIR = Path("output_maps")
BATCH_MAPS_PER_METHOD = 100
BATCH_METHODS = ("mlca", "noise", "wfc")

# Files written by `tilesmith analyze`.
ANALYSIS_RECORDS_CSV = Path("map_metrics_individual.csv")
ANALYSIS_AVERAGES_CSV = Path("map_metrics_averages.csv")
