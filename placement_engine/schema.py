"""Data structures for placement requests, world state, and placement results."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, NamedTuple, Optional, Tuple, Union

import numpy as np

from .constants import GRID_SIZE, TILE_SIZE, HEIGHT_SCALE, MAX_ELEVATION

Point = Tuple[float, float]  # (x, z) on the ground plane

EDGE_EPSILON = 1e-6  # Keeps clamped points off the exclusive max edge


def rotate_local(yaw: float, lx: float, lz: float) -> Point:
    """Rotate a local offset (+Z forward, +X right) into world space by yaw."""
    c, s = math.cos(yaw), math.sin(yaw)
    return (lx * c + lz * s, -lx * s + lz * c)


def heading(origin: Point, target: Point) -> float:
    """Yaw that makes something at origin face target (atan2(dx, dz))."""
    return math.atan2(target[0] - origin[0], target[1] - origin[1])


def wrap_angle(angle: float) -> float:
    """Wrap to (-pi, pi]."""
    wrapped = math.fmod(angle + math.pi, 2.0 * math.pi)
    if wrapped <= 0:
        wrapped += 2.0 * math.pi
    return wrapped - math.pi


def _clamp_span(lo: float, hi: float, bound_lo: float, bound_hi: float, min_extent: float) -> Tuple[float, float]:
    extent = min(min_extent, hi - lo, bound_hi - bound_lo)
    new_lo = min(max(lo, bound_lo), bound_hi)
    new_hi = max(min(hi, bound_hi), bound_lo)
    if new_hi - new_lo < extent:
        new_lo = max(min(new_lo, bound_hi - extent), bound_lo)
        new_hi = new_lo + extent
    return new_lo, new_hi


class Pose(NamedTuple):
    """Ground position plus yaw for a candidate that has no instance yet."""
    x: float
    z: float
    yaw: float = 0.0


@dataclass(frozen=True)
class Region:
    """Axis-aligned rectangle on the XZ plane."""
    min_x: float
    max_x: float
    min_z: float
    max_z: float

    @classmethod
    def from_center(cls, x: float, z: float, half_w: float, half_d: float) -> "Region":
        return cls(x - half_w, x + half_w, z - half_d, z + half_d)

    @property
    def center(self) -> Point:
        return ((self.min_x + self.max_x) / 2, (self.min_z + self.max_z) / 2)

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def depth(self) -> float:
        return self.max_z - self.min_z

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.depth <= 0

    def contains(self, x: float, z: float) -> bool:
        return self.min_x <= x <= self.max_x and self.min_z <= z <= self.max_z

    def inset(self, margin: float) -> "Region":
        """Shrink by margin on every side, never past the centre."""
        cx, cz = self.center
        return Region(
            min(self.min_x + margin, cx), max(self.max_x - margin, cx),
            min(self.min_z + margin, cz), max(self.max_z - margin, cz),
        )

    def clamp_to(self, bounds: "Region", min_extent: float = 0.0) -> Tuple["Region", bool]:
        """
        Intersect with bounds. Returns (region, was_clamped).

        An axis left narrower than `min_extent` (a region lying partly or
        wholly outside bounds) is widened back inside bounds, up to its
        original size.
        """
        min_x, max_x = _clamp_span(self.min_x, self.max_x, bounds.min_x, bounds.max_x, min_extent)
        min_z, max_z = _clamp_span(self.min_z, self.max_z, bounds.min_z, bounds.max_z, min_extent)
        clamped = Region(min_x, max_x, min_z, max_z)
        return clamped, clamped != self

    def clamp_point(self, x: float, z: float) -> Point:
        """Nearest point with min <= v < max on both axes."""
        return (min(max(x, self.min_x), max(self.max_x - EDGE_EPSILON, self.min_x)),
                min(max(z, self.min_z), max(self.max_z - EDGE_EPSILON, self.min_z)))

    def to_dict(self) -> dict:
        return {"min_x": self.min_x, "max_x": self.max_x, "min_z": self.min_z, "max_z": self.max_z}


@dataclass(frozen=True)
class AssetFootprint:
    """Shape approximation supplied by the asset pipeline: a circle or an oriented box."""
    radius: Optional[float] = None
    half_extents: Optional[Tuple[float, float]] = None  # (hx, hz) in local space
    height: float = 2.0
    vertical_offset: float = 0.0

    def __post_init__(self):
        if self.radius is None and self.half_extents is None:
            raise ValueError("Footprint needs a radius or half_extents")
        if self.radius is not None and self.radius <= 0:
            raise ValueError(f"Footprint radius must be positive, got {self.radius}")
        if self.half_extents is not None and min(self.half_extents) <= 0:
            raise ValueError(f"Footprint half_extents must be positive, got {self.half_extents}")

    @property
    def is_circle(self) -> bool:
        return self.half_extents is None

    @property
    def bounding_radius(self) -> float:
        if self.is_circle:
            return self.radius
        return math.hypot(*self.half_extents)

    @property
    def extents_xz(self) -> Tuple[float, float]:
        """Local half-extents; a circle reports (r, r)."""
        if self.is_circle:
            return (self.radius, self.radius)
        return self.half_extents

    def scaled(self, scale: float) -> "AssetFootprint":
        if scale == 1.0:
            return self
        return AssetFootprint(
            radius=self.radius * scale if self.radius is not None else None,
            half_extents=(self.half_extents[0] * scale, self.half_extents[1] * scale)
            if self.half_extents is not None else None,
            height=self.height * scale,
            vertical_offset=self.vertical_offset * scale,
        )

    def rect_at(self, x: float, z: float, yaw: float = 0.0) -> Region:
        """World-space AABB of the footprint at (x, z) rotated by yaw."""
        if self.is_circle:
            return Region.from_center(x, z, self.radius, self.radius)
        hx, hz = self.half_extents
        c, s = abs(math.cos(yaw)), abs(math.sin(yaw))
        return Region.from_center(x, z, hx * c + hz * s, hx * s + hz * c)

    def to_dict(self) -> dict:
        result = {"height": self.height, "vertical_offset": self.vertical_offset}
        if self.radius is not None:
            result["radius"] = self.radius
        if self.half_extents is not None:
            result["half_extents"] = list(self.half_extents)
        return result


@dataclass
class WorldGrid:
    """N x N tile world backing a heightmap and a texture-index map.

    The heightmap is indexed [iz, ix] and holds integer elevation levels;
    world height is level * height_scale.
    """
    size: int
    tile_size: float
    heightmap: np.ndarray
    texture: Optional[np.ndarray] = None
    height_scale: float = HEIGHT_SCALE
    max_elevation: int = MAX_ELEVATION

    def __post_init__(self):
        self.heightmap = np.asarray(self.heightmap, dtype=np.int32)
        if self.heightmap.shape != (self.size, self.size):
            raise ValueError(f"Heightmap shape {self.heightmap.shape} does not match grid size {self.size}")
        if self.texture is None:
            self.texture = np.zeros((self.size, self.size), dtype=np.int32)
        else:
            self.texture = np.asarray(self.texture, dtype=np.int32)

    @classmethod
    def flat(cls, size: int = GRID_SIZE, tile_size: float = TILE_SIZE, level: int = 0, **kwargs) -> "WorldGrid":
        return cls(size, tile_size, np.full((size, size), level, dtype=np.int32), **kwargs)

    @property
    def world_size(self) -> float:
        return self.size * self.tile_size

    def bounds(self) -> Region:
        return Region(0.0, self.world_size, 0.0, self.world_size)

    def in_bounds(self, x: float, z: float) -> bool:
        return 0.0 <= x < self.world_size and 0.0 <= z < self.world_size

    def tile_index(self, x: float, z: float) -> Tuple[int, int]:
        """Nearest tile (ix, iz) containing the point, clamped to the grid."""
        ix = min(max(int(math.floor(x / self.tile_size)), 0), self.size - 1)
        iz = min(max(int(math.floor(z / self.tile_size)), 0), self.size - 1)
        return ix, iz

    def elevation_at(self, x: float, z: float) -> int:
        ix, iz = self.tile_index(x, z)
        return int(self.heightmap[iz, ix])

    def height_at(self, x: float, z: float) -> float:
        return self.elevation_at(x, z) * self.height_scale

    def tiles_under(self, rect: Region) -> List[Tuple[int, int]]:
        """Tiles (ix, iz) whose cell intersects rect."""
        ix0, iz0 = self.tile_index(rect.min_x, rect.min_z)
        ix1, iz1 = self.tile_index(rect.max_x, rect.max_z)
        return [(ix, iz) for iz in range(iz0, iz1 + 1) for ix in range(ix0, ix1 + 1)]

    def copy(self) -> "WorldGrid":
        return WorldGrid(self.size, self.tile_size, self.heightmap.copy(), self.texture.copy(),
                         self.height_scale, self.max_elevation)


@dataclass
class PlacedInstance:
    """Concrete transform for one asset instance."""
    id: str
    category: str
    position: Tuple[float, float, float]  # (x, y, z)
    yaw: float  # Radians, 0 faces +Z
    footprint: AssetFootprint
    scale: float = 1.0
    name: Optional[str] = None
    kind: Optional[str] = None
    tags: Dict[str, Any] = field(default_factory=dict)

    @property
    def x(self) -> float:
        return self.position[0]

    @property
    def y(self) -> float:
        return self.position[1]

    @property
    def z(self) -> float:
        return self.position[2]

    @property
    def xz(self) -> Point:
        return (self.position[0], self.position[2])

    @property
    def world_footprint(self) -> AssetFootprint:
        return self.footprint.scaled(self.scale)

    def rect(self) -> Region:
        return self.world_footprint.rect_at(self.x, self.z, self.yaw)

    def to_dict(self) -> dict:
        result = {
            "id": self.id,
            "category": self.category,
            "position": list(self.position),
            "yaw": self.yaw,
            "scale": self.scale,
            "footprint": self.footprint.to_dict(),
        }
        if self.name is not None:
            result["name"] = self.name
        if self.kind is not None:
            result["kind"] = self.kind
        if self.tags:
            result["tags"] = dict(self.tags)
        return result


class Pattern(str, Enum):
    CLUSTER = "cluster"
    RING = "ring"
    EDGE = "edge"
    GRID = "grid"
    POISSON = "poisson"
    FOCAL = "focal"
    RANDOM = "random"


class SubjectKind(str, Enum):
    STRUCTURE = "structure"
    DECORATION = "decoration"
    ARRANGEMENT = "arrangement"
    ATMOSPHERE = "atmosphere"
    NPC = "npc"


class Relation(str, Enum):
    # Structures
    AT = "at"
    NEXT_TO = "next_to"
    FACING = "facing"
    BEHIND = "behind"
    # Decorations
    ATTACHED_TO = "attached_to"
    ADJACENT_TO = "adjacent_to"
    LEANING_AGAINST = "leaning_against"
    FLANKING = "flanking"
    # Arrangements
    CLUSTER = "cluster"
    GRID = "grid"
    ROW = "row"
    SURROUNDING = "surrounding"
    # Atmosphere
    SCATTERED_NEAR = "scattered_near"
    SCATTERED = "scattered"
    ALONG = "along"
    FRAMING = "framing"
    # NPCs
    NEAR = "near"
    AT_ENTRANCE = "at_entrance"
    WITHIN = "within"


ALLOWED_RELATIONS: Dict[SubjectKind, FrozenSet[Relation]] = {
    SubjectKind.STRUCTURE: frozenset({Relation.AT, Relation.NEXT_TO, Relation.FACING, Relation.BEHIND}),
    SubjectKind.DECORATION: frozenset({Relation.ATTACHED_TO, Relation.ADJACENT_TO,
                                       Relation.LEANING_AGAINST, Relation.FLANKING}),
    SubjectKind.ARRANGEMENT: frozenset({Relation.CLUSTER, Relation.GRID, Relation.ROW, Relation.SURROUNDING}),
    SubjectKind.ATMOSPHERE: frozenset({Relation.SCATTERED_NEAR, Relation.SCATTERED, Relation.ALONG,
                                       Relation.FRAMING, Relation.SURROUNDING}),
    SubjectKind.NPC: frozenset({Relation.NEAR, Relation.AT_ENTRANCE, Relation.WITHIN, Relation.FACING}),
}

# Relations that need a reference to anchor on
REFERENCE_REQUIRED: FrozenSet[Relation] = frozenset({
    Relation.NEXT_TO, Relation.FACING, Relation.BEHIND,
    Relation.ATTACHED_TO, Relation.ADJACENT_TO, Relation.LEANING_AGAINST, Relation.FLANKING,
    Relation.SCATTERED_NEAR, Relation.NEAR, Relation.AT_ENTRANCE, Relation.WITHIN,
})


@dataclass
class SubjectSpec:
    """What is being placed."""
    category: str
    footprint: AssetFootprint
    count: int = 1
    scale: float = 1.0

    def to_dict(self) -> dict:
        return {"category": self.category, "footprint": self.footprint.to_dict(),
                "count": self.count, "scale": self.scale}


@dataclass
class PatternRequest:
    """Scatter `count` assets of one category in a zone using a sampling pattern."""
    category: str
    count: int
    pattern: Pattern
    footprint: AssetFootprint
    region: str = "center"  # Zone descriptor
    min_distance: Optional[float] = None
    radius: float = 15.0  # Cluster spread / ring radius / edge depth
    jitter: float = 0.3
    scale: float = 1.0
    request_id: Optional[str] = None

    kind = "pattern"

    def to_dict(self) -> dict:
        result = {
            "type": self.kind,
            "category": self.category,
            "count": self.count,
            "pattern": self.pattern.value,
            "footprint": self.footprint.to_dict(),
            "region": self.region,
            "radius": self.radius,
            "jitter": self.jitter,
            "scale": self.scale,
        }
        if self.min_distance is not None:
            result["min_distance"] = self.min_distance
        if self.request_id is not None:
            result["id"] = self.request_id
        return result


@dataclass
class RelationNode:
    """One node of a relationship graph: subject, relation, reference."""
    name: str
    kind: SubjectKind
    subject: SubjectSpec
    relation: Relation
    reference: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)

    def dependencies(self) -> List[str]:
        """Every name this node anchors on (reference plus path endpoints)."""
        deps = [self.reference] if self.reference else []
        for key in ("from", "to"):
            value = self.params.get(key)
            if isinstance(value, str):
                deps.append(value)
        return deps

    def to_dict(self) -> dict:
        result = {
            "name": self.name,
            "kind": self.kind.value,
            "subject": self.subject.to_dict(),
            "relation": self.relation.value,
        }
        if self.reference is not None:
            result["reference"] = self.reference
        if self.params:
            result["params"] = dict(self.params)
        return result


@dataclass
class RelationshipRequest:
    """A DAG of relation nodes resolved in dependency order."""
    nodes: List[RelationNode]
    request_id: Optional[str] = None

    kind = "relationship"

    def to_dict(self) -> dict:
        result = {"type": self.kind, "nodes": [n.to_dict() for n in self.nodes]}
        if self.request_id is not None:
            result["id"] = self.request_id
        return result


PlacementRequest = Union[PatternRequest, RelationshipRequest]


class DiagnosticKind(str, Enum):
    UNSATISFIABLE_REGION = "unsatisfiable_region"
    INVALID_REFERENCE = "invalid_reference"
    OUT_OF_BOUNDS = "out_of_bounds"
    TERRAIN_INCONSISTENCY = "terrain_inconsistency"


@dataclass
class Diagnostic:
    """Something the engine could not fully satisfy. Never raised, always reported."""
    kind: DiagnosticKind
    message: str
    subject: Optional[str] = None
    deficit: int = 0
    instance_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        result = {"kind": self.kind.value, "message": self.message}
        if self.subject is not None:
            result["subject"] = self.subject
        if self.deficit:
            result["deficit"] = self.deficit
        if self.instance_ids:
            result["instance_ids"] = list(self.instance_ids)
        return result


class NodeStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


@dataclass
class NodeReport:
    """Outcome of one pattern request or relation node."""
    node: str
    status: NodeStatus
    requested: int
    placed: int
    reasons: List[str] = field(default_factory=list)

    @classmethod
    def from_counts(cls, node: str, requested: int, placed: int, reasons: Optional[List[str]] = None) -> "NodeReport":
        if placed >= requested:
            status = NodeStatus.SUCCESS
        elif placed > 0:
            status = NodeStatus.PARTIAL
        else:
            status = NodeStatus.FAILURE
        return cls(node, status, requested, placed, list(reasons or []))

    def to_dict(self) -> dict:
        return {"node": self.node, "status": self.status.value, "requested": self.requested,
                "placed": self.placed, "reasons": list(self.reasons)}


@dataclass
class PlacementResult:
    """Accepted instances plus everything that could not be satisfied."""
    instances: List[PlacedInstance] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    reports: List[NodeReport] = field(default_factory=list)

    @property
    def deficit(self) -> int:
        return sum(r.requested - r.placed for r in self.reports if r.placed < r.requested)

    @property
    def has_deficit(self) -> bool:
        return self.deficit > 0

    @property
    def succeeded(self) -> bool:
        return all(r.status == NodeStatus.SUCCESS for r in self.reports)

    def summary(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in NodeStatus}
        for report in self.reports:
            counts[report.status.value] += 1
        counts["instances"] = len(self.instances)
        counts["diagnostics"] = len(self.diagnostics)
        counts["deficit"] = self.deficit
        return counts

    def to_dict(self) -> dict:
        return {
            "instances": [inst.to_dict() for inst in self.instances],
            "diagnostics": [d.to_dict() for d in self.diagnostics],
            "reports": [r.to_dict() for r in self.reports],
            "summary": self.summary(),
        }
