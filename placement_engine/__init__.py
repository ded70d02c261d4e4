"""
Placement Engine Module

Turns declarative placement requests into collision-free, terrain-anchored
asset transforms inside a bounded grid world.

Design:
    Request → zone / relation graph → sampled candidates → spacing validation → terrain anchoring

Components:
    - schema: Data structures (requests, world grid, instances, results)
    - constants: Grid constants, spacing tables, zone vocabulary
    - sampling: Poisson, cluster, ring, edge and grid samplers
    - spacing: Footprint overlap and pairwise clearance checks
    - locations: Zone descriptors and pattern placement
    - terrain: Height anchoring, terrain edits and rebalancing
    - cameras / composition: Camera-aware composition helpers
    - registry / resolver: Relationship graphs resolved in dependency order
    - validator: Request validation and parsing
    - engine: Memoizing entry point
"""

from .schema import (
    AssetFootprint,
    Diagnostic,
    DiagnosticKind,
    NodeReport,
    NodeStatus,
    Pattern,
    PatternRequest,
    PlacedInstance,
    PlacementResult,
    Region,
    Relation,
    RelationNode,
    RelationshipRequest,
    SubjectKind,
    SubjectSpec,
    WorldGrid,
)
from .config import EngineConfig, ConfigError, load_config
from .sampling import (
    poisson_disk_sampling,
    cluster_placement,
    ring_placement,
    edge_placement,
    grid_placement,
    check_rectangular_collision,
)
from .spacing import AcceptanceOrder, calculate_min_distance, compute_footprint_overlap, validate_placements
from .locations import ResolvedZone, parse_semantic_location, execute_asset_placement
from .terrain import (
    TerrainOp,
    TerrainChange,
    RebalanceReport,
    apply_terrain_height,
    apply_terrain_modification,
    apply_zone_modification,
    revert_terrain_changes,
    rebalance_placements,
)
from .cameras import CAMERA_ARCHETYPES, CompositionCamera, get_camera
from .composition import (
    LayerSpec,
    frame_placement,
    behind_placement,
    facing_rotation,
    density_gradient_sampling,
    leading_line_placement,
    background_placement,
    execute_layered_placement,
)
from .registry import StructureRegistry, PassContext, InvalidReferenceError
from .resolver import STRATEGIES, facing_to_angle, resolve_relationship_placements
from .validator import build_request, parse_request, parse_requests, validate_request_dict, RequestValidationError
from .engine import PlacementEngine

__all__ = [
    # Schema
    "AssetFootprint",
    "Diagnostic",
    "DiagnosticKind",
    "NodeReport",
    "NodeStatus",
    "Pattern",
    "PatternRequest",
    "PlacedInstance",
    "PlacementResult",
    "Region",
    "Relation",
    "RelationNode",
    "RelationshipRequest",
    "SubjectKind",
    "SubjectSpec",
    "WorldGrid",
    # Config
    "EngineConfig",
    "ConfigError",
    "load_config",
    # Sampling
    "poisson_disk_sampling",
    "cluster_placement",
    "ring_placement",
    "edge_placement",
    "grid_placement",
    "check_rectangular_collision",
    # Spacing
    "AcceptanceOrder",
    "calculate_min_distance",
    "compute_footprint_overlap",
    "validate_placements",
    # Locations
    "ResolvedZone",
    "parse_semantic_location",
    "execute_asset_placement",
    # Terrain
    "TerrainOp",
    "TerrainChange",
    "RebalanceReport",
    "apply_terrain_height",
    "apply_terrain_modification",
    "apply_zone_modification",
    "revert_terrain_changes",
    "rebalance_placements",
    # Composition
    "CAMERA_ARCHETYPES",
    "CompositionCamera",
    "get_camera",
    "LayerSpec",
    "frame_placement",
    "behind_placement",
    "facing_rotation",
    "density_gradient_sampling",
    "leading_line_placement",
    "background_placement",
    "execute_layered_placement",
    # Relationships
    "StructureRegistry",
    "PassContext",
    "InvalidReferenceError",
    "STRATEGIES",
    "facing_to_angle",
    "resolve_relationship_placements",
    # Validation
    "build_request",
    "parse_request",
    "parse_requests",
    "validate_request_dict",
    "RequestValidationError",
    # Engine
    "PlacementEngine",
]
