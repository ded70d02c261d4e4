"""Constants for placement: world grid, category spacing tables, and relation vocabulary."""

from typing import Dict, FrozenSet, Tuple

# World grid: GRID_SIZE x GRID_SIZE tiles of TILE_SIZE metres
GRID_SIZE: int = 40
TILE_SIZE: float = 10.0
HEIGHT_SCALE: float = 2.0  # World metres per elevation level
MAX_ELEVATION: int = 16  # Heightmap cells hold integers in [0, MAX_ELEVATION]

# Scene zone margins
SCENE_MARGIN: float = 10.0  # Inset used for "center" zones and structure keywords
EDGE_BAND: float = 10.0  # Depth of cardinal edge strips

# Over-request factor to absorb sampler undercount + collision filtering.
# Poisson returns 60-80% of requested, validation filters ~50%.
PLACEMENT_OVERREQUEST: float = 1.8

# Sampling bounds
DEFAULT_MAX_ATTEMPTS: int = 30  # Bridson candidates per active sample
DEFAULT_CLUSTER_RETRIES: int = 20  # Re-samples per cluster point
STRUCTURE_NUDGE_ATTEMPTS: int = 32

# Asset categories
CATEGORIES: Tuple[str, ...] = ("props", "nature", "buildings", "characters", "creatures", "vehicles")

# Per-category clearance (metres, centre to centre)
CATEGORY_MIN_DISTANCE: Dict[str, float] = {
    "props": 1.5,       # Small items can be close together
    "nature": 3.0,      # Trees/plants need some space
    "buildings": 8.0,   # Structures need room
    "characters": 2.0,  # NPCs can be close
    "creatures": 2.0,
    "vehicles": 4.0,
}

DEFAULT_MIN_DISTANCE: float = 2.0

# Pair overrides (symmetric). Anything attached to or standing beside a
# building needs far less than building-to-building clearance.
PAIR_MIN_DISTANCE: Dict[FrozenSet[str], float] = {
    frozenset({"buildings"}): 8.0,
    frozenset({"buildings", "vehicles"}): 5.0,
    frozenset({"buildings", "nature"}): 4.0,
    frozenset({"buildings", "characters"}): 2.0,
    frozenset({"buildings", "creatures"}): 2.0,
    frozenset({"buildings", "props"}): 1.5,
    frozenset({"nature", "props"}): 1.5,
    frozenset({"nature", "characters"}): 1.5,
    frozenset({"characters", "props"}): 1.0,
    frozenset({"props"}): 1.0,
}

# Footprint penetration tolerated per pair (metres)
PAIR_OVERLAP_TOLERANCE: Dict[FrozenSet[str], float] = {
    frozenset({"nature"}): 0.25,  # Canopies may brush
    frozenset({"nature", "props"}): 0.1,
}

DEFAULT_FOOTPRINT_RADIUS: float = 1.0

# Relation-specific standoff (metres from the structure edge) used by zone descriptors
STANDOFF_DISTANCES: Dict[str, float] = {
    "at": 0.0,
    "beside": 3.0,
    "next to": 3.0,
    "near": 6.0,
    "around": 8.0,
    "in front of": 6.0,
    "behind": 6.0,
    "left of": 5.0,
    "right of": 5.0,
    "far from": 30.0,
}

# Structure side that directional standoff relations offset toward
STANDOFF_SIDES: Dict[str, str] = {
    "in front of": "front",
    "behind": "back",
    "left of": "left",
    "right of": "right",
}

# Compass directions: +Z is north, +X is east
DIRECTIONS: Dict[str, Tuple[float, float]] = {
    "north": (0.0, 1.0),
    "south": (0.0, -1.0),
    "east": (1.0, 0.0),
    "west": (-1.0, 0.0),
}

DIRECTION_ALIASES: Dict[str, str] = {
    "n": "north", "s": "south", "e": "east", "w": "west",
    "northern": "north", "southern": "south", "eastern": "east", "western": "west",
}

DIAGONAL_ALIASES: Dict[str, Tuple[str, str]] = {
    "ne": ("north", "east"), "northeast": ("north", "east"),
    "nw": ("north", "west"), "northwest": ("north", "west"),
    "se": ("south", "east"), "southeast": ("south", "east"),
    "sw": ("south", "west"), "southwest": ("south", "west"),
}

CENTER_TERMS: FrozenSet[str] = frozenset({"center", "centre", "middle", "central"})

# Half-size of the region built around explicit coordinates
COORDINATE_ZONE_HALF_SIZE: float = 5.0

# Density multipliers for atmosphere requests
DENSITY_MULTIPLIER: Dict[str, float] = {"sparse": 0.5, "medium": 1.0, "high": 1.5}
