"""
Per-pass placement state.

A StructureRegistry maps normalized names to placed structures and
arrangements so later relation nodes can anchor on them. A PassContext
bundles the registry with the world, config, random source and everything
accepted so far; one is created per request and discarded afterwards.
"""

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence

import numpy as np

from .config import EngineConfig
from .sampling import as_rng
from .schema import Diagnostic, NodeReport, PlacedInstance, PlacementResult, Point, Region, WorldGrid, rotate_local
from .terrain import apply_terrain_height

logger = logging.getLogger(__name__)

SIDES = ("front", "back", "left", "right")
SIDE_ALIASES = {"entrance": "front", "door": "front", "rear": "back"}


class InvalidReferenceError(Exception):
    """Raised when a name is not registered in the current pass."""
    pass


def normalize_name(name: str) -> str:
    return " ".join(str(name).lower().split())


class Anchor(NamedTuple):
    """Point next to a structure plus a yaw (toward it, or its outward normal)."""
    x: float
    z: float
    yaw: float


@dataclass
class Arrangement:
    """A named group of items placed together."""
    name: str
    center: Point
    radius: float
    members: List[str] = field(default_factory=list)  # Instance ids


class StructureRegistry:
    """Insertion-ordered, name-normalized lookup for one placement pass."""

    def __init__(self):
        self._structures: "OrderedDict[str, PlacedInstance]" = OrderedDict()
        self._arrangements: "OrderedDict[str, Arrangement]" = OrderedDict()

    def __contains__(self, name: str) -> bool:
        key = normalize_name(name)
        return key in self._structures or key in self._arrangements

    def __len__(self) -> int:
        return len(self._structures) + len(self._arrangements)

    def register(self, name: str, instance: PlacedInstance) -> str:
        key = normalize_name(name)
        if key in self._structures:
            logger.warning(f"Structure '{key}' registered twice; keeping the latest")
        self._structures[key] = instance
        return key

    def get(self, name: str) -> Optional[PlacedInstance]:
        return self._structures.get(normalize_name(name))

    def require(self, name: str) -> PlacedInstance:
        instance = self.get(name)
        if instance is None:
            raise InvalidReferenceError(f"Unknown structure '{name}'")
        return instance

    def names(self) -> List[str]:
        return list(self._structures) + list(self._arrangements)

    def structures(self) -> List[PlacedInstance]:
        return list(self._structures.values())

    def register_arrangement(self, name: str, center: Point, radius: float,
                             members: Iterable[str] = ()) -> Arrangement:
        key = normalize_name(name)
        arrangement = Arrangement(key, center, radius, list(members))
        self._arrangements[key] = arrangement
        return arrangement

    def get_arrangement(self, name: str) -> Optional[Arrangement]:
        return self._arrangements.get(normalize_name(name))

    def anchor_point(self, name: str) -> Point:
        """Centre of a structure or arrangement."""
        structure = self.get(name)
        if structure is not None:
            return structure.xz
        arrangement = self.get_arrangement(name)
        if arrangement is not None:
            return arrangement.center
        raise InvalidReferenceError(f"Unknown structure or arrangement '{name}'")

    def extent(self, name: str) -> float:
        """Rough radius of a structure or arrangement."""
        structure = self.get(name)
        if structure is not None:
            return structure.world_footprint.bounding_radius
        arrangement = self.get_arrangement(name)
        if arrangement is not None:
            return arrangement.radius
        raise InvalidReferenceError(f"Unknown structure or arrangement '{name}'")

    def adjacent_position(self, name: str, side: str = "front", distance: float = 3.0) -> Anchor:
        """
        Point `distance` metres off one side of a structure, facing it.

        Sides are relative to the structure's yaw: front is its local +Z.
        Arrangements have no orientation; their sides use compass axes.
        """
        side = SIDE_ALIASES.get(side, side)
        if side not in SIDES:
            raise ValueError(f"Invalid side: {side}")

        structure = self.get(name)
        if structure is not None:
            (cx, cz), yaw = structure.xz, structure.yaw
            hx, hz = structure.world_footprint.extents_xz
        else:
            arrangement = self.get_arrangement(name)
            if arrangement is None:
                raise InvalidReferenceError(f"Unknown structure or arrangement '{name}'")
            (cx, cz), yaw = arrangement.center, 0.0
            hx = hz = arrangement.radius

        local, facing = {
            "front": ((0.0, hz + distance), yaw + math.pi),
            "back": ((0.0, -(hz + distance)), yaw),
            "left": ((-(hx + distance), 0.0), yaw + math.pi / 2),
            "right": ((hx + distance, 0.0), yaw - math.pi / 2),
        }[side]
        dx, dz = rotate_local(yaw, *local)
        return Anchor(cx + dx, cz + dz, facing)

    def surface_position(self, name: str, surface: str = "front", horizontal: float = 0.5,
                         offset: float = 0.0) -> Anchor:
        """
        Point on one face of a structure at a lateral fraction, with the
        face's outward normal as yaw.

        Args:
            horizontal: 0..1 across the face.
            offset: Distance pushed out from the face along its normal.
        """
        structure = self.require(name)
        surface = SIDE_ALIASES.get(surface, surface)
        if surface not in SIDES:
            raise ValueError(f"Invalid surface: {surface}")

        hx, hz = structure.world_footprint.extents_xz
        t = min(max(horizontal, 0.0), 1.0) - 0.5
        yaw = structure.yaw
        local, normal = {
            "front": ((t * 2 * hx, hz + offset), yaw),
            "back": ((-t * 2 * hx, -(hz + offset)), yaw + math.pi),
            "left": ((-(hx + offset), t * 2 * hz), yaw - math.pi / 2),
            "right": ((hx + offset, -t * 2 * hz), yaw + math.pi / 2),
        }[surface]
        dx, dz = rotate_local(yaw, *local)
        return Anchor(structure.x + dx, structure.z + dz, normal)


@dataclass
class PassContext:
    """Everything one placement pass reads and accumulates."""
    world: WorldGrid
    config: EngineConfig = field(default_factory=EngineConfig)
    registry: StructureRegistry = field(default_factory=StructureRegistry)
    existing: List[PlacedInstance] = field(default_factory=list)
    rng: Optional[np.random.RandomState] = None
    instances: List[PlacedInstance] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    reports: List[NodeReport] = field(default_factory=list)
    _counters: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self):
        self.rng = as_rng(self.config.seed if self.rng is None else self.rng)
        self.existing = list(self.existing)

    @property
    def bounds(self) -> Region:
        return self.world.bounds()

    def occupied(self) -> List[PlacedInstance]:
        """Existing world instances plus everything accepted this pass."""
        return self.existing + self.instances

    def next_id(self, prefix: str) -> str:
        key = normalize_name(prefix).replace(" ", "_") or "item"
        self._counters[key] = self._counters.get(key, 0) + 1
        return f"{key}_{self._counters[key]:03d}"

    def accept(self, candidates: Sequence[PlacedInstance], prefix: str) -> List[PlacedInstance]:
        """Assign final ids, anchor to terrain and record validated candidates."""
        accepted = [apply_terrain_height(replace(c, id=self.next_id(prefix)), self.world) for c in candidates]
        self.instances.extend(accepted)
        return accepted

    def report(self, report: NodeReport) -> NodeReport:
        self.reports.append(report)
        return report

    def diagnose(self, diagnostic: Diagnostic) -> Diagnostic:
        self.diagnostics.append(diagnostic)
        return diagnostic

    def result(self) -> PlacementResult:
        return PlacementResult(list(self.instances), list(self.diagnostics), list(self.reports))
