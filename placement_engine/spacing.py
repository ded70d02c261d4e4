"""
Footprint and spacing policy.

Two checks guard every accepted placement: centre distance against the
category-pair clearance table, and the shape-based footprint overlap test.
Acceptance is first-come-first-accepted over the candidate order.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from .constants import (
    CATEGORY_MIN_DISTANCE, DEFAULT_MIN_DISTANCE, PAIR_MIN_DISTANCE, PAIR_OVERLAP_TOLERANCE,
)
from .sampling import check_rectangular_collision
from .schema import PlacedInstance, Region

logger = logging.getLogger(__name__)


class AcceptanceOrder(str, Enum):
    """Which candidate wins when two collide."""
    INSERTION = "insertion"  # Caller order
    FOOTPRINT_SIZE = "footprint_size"  # Larger bounding radius first, stable


def calculate_min_distance(category_a: str, category_b: str) -> float:
    """Symmetric centre-to-centre clearance for a category pair."""
    pair = PAIR_MIN_DISTANCE.get(frozenset({category_a, category_b}))
    if pair is not None:
        return pair
    return max(CATEGORY_MIN_DISTANCE.get(category_a, DEFAULT_MIN_DISTANCE),
               CATEGORY_MIN_DISTANCE.get(category_b, DEFAULT_MIN_DISTANCE))


def overlap_tolerance(category_a: str, category_b: str) -> float:
    return PAIR_OVERLAP_TOLERANCE.get(frozenset({category_a, category_b}), 0.0)


def _axes(yaw: float):
    """World directions of a box's local X and Z axes."""
    c, s = math.cos(yaw), math.sin(yaw)
    return (c, -s), (s, c)


def _circle_box_depth(cx, cz, r, bx, bz, yaw, hx, hz) -> float:
    dx, dz = cx - bx, cz - bz
    c, s = math.cos(yaw), math.sin(yaw)
    lx = dx * c - dz * s
    lz = dx * s + dz * c
    qx = min(max(lx, -hx), hx)
    qz = min(max(lz, -hz), hz)
    if qx == lx and qz == lz:
        # Centre inside the box
        return r + min(hx - abs(lx), hz - abs(lz))
    return max(0.0, r - math.hypot(lx - qx, lz - qz))


def _box_box_depth(a: PlacedInstance, b: PlacedInstance) -> float:
    (ahx, ahz), (bhx, bhz) = a.world_footprint.extents_xz, b.world_footprint.extents_xz
    a_axes, b_axes = _axes(a.yaw), _axes(b.yaw)
    dx, dz = b.x - a.x, b.z - a.z
    depth = math.inf
    for nx, nz in a_axes + b_axes:
        ra = ahx * abs(a_axes[0][0] * nx + a_axes[0][1] * nz) + ahz * abs(a_axes[1][0] * nx + a_axes[1][1] * nz)
        rb = bhx * abs(b_axes[0][0] * nx + b_axes[0][1] * nz) + bhz * abs(b_axes[1][0] * nx + b_axes[1][1] * nz)
        overlap = ra + rb - abs(dx * nx + dz * nz)
        if overlap <= 0:
            return 0.0
        depth = min(depth, overlap)
    return depth


def compute_footprint_overlap(a: PlacedInstance, b: PlacedInstance) -> float:
    """
    Penetration depth (metres) between two placed footprints; 0 means clear.

    Circles and oriented boxes are supported in any combination. A rectangle
    broad phase skips the exact test for distant pairs.
    """
    if not check_rectangular_collision(a.rect(), b.rect()):
        return 0.0

    fa, fb = a.world_footprint, b.world_footprint
    if fa.is_circle and fb.is_circle:
        return max(0.0, fa.radius + fb.radius - math.hypot(a.x - b.x, a.z - b.z))
    if fa.is_circle:
        return _circle_box_depth(a.x, a.z, fa.radius, b.x, b.z, b.yaw, *fb.extents_xz)
    if fb.is_circle:
        return _circle_box_depth(b.x, b.z, fb.radius, a.x, a.z, a.yaw, *fa.extents_xz)
    return _box_box_depth(a, b)


def pair_conflict(a: PlacedInstance, b: PlacedInstance, min_distance_floor: float = 0.0) -> Optional[str]:
    """Reason the pair cannot coexist, or None."""
    required = max(min_distance_floor, calculate_min_distance(a.category, b.category))
    if math.hypot(a.x - b.x, a.z - b.z) < required:
        return "min_distance"
    if compute_footprint_overlap(a, b) > overlap_tolerance(a.category, b.category):
        return "overlap"
    return None


@dataclass
class Rejection:
    instance: PlacedInstance
    reason: str  # out_of_bounds | min_distance | overlap
    conflicting_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {"id": self.instance.id, "reason": self.reason, "conflicting_id": self.conflicting_id}


@dataclass
class ValidationOutcome:
    accepted: List[PlacedInstance] = field(default_factory=list)
    rejected: List[Rejection] = field(default_factory=list)

    def reasons(self) -> List[str]:
        return sorted({r.reason for r in self.rejected})


def order_candidates(candidates: Sequence[PlacedInstance], order: AcceptanceOrder) -> List[PlacedInstance]:
    if order == AcceptanceOrder.FOOTPRINT_SIZE:
        return sorted(candidates, key=lambda c: -c.world_footprint.bounding_radius)
    return list(candidates)


def validate_placements(candidates: Sequence[PlacedInstance], existing: Iterable[PlacedInstance],
                        bounds: Region, order: AcceptanceOrder = AcceptanceOrder.INSERTION,
                        min_distance_floor: float = 0.0) -> ValidationOutcome:
    """
    Filter candidates against existing instances and each other.

    Args:
        candidates: Proposed instances.
        existing: Instances already in the world (never displaced).
        bounds: World rectangle; x and z must satisfy min <= v < max.
        order: Acceptance priority; callers choose how collisions are won.
        min_distance_floor: Extra clearance applied among these candidates
            (a request's own min_distance). Table clearance still applies.

    Returns:
        ValidationOutcome with accepted instances in acceptance order.
    """
    outcome = ValidationOutcome()
    placed = list(existing)
    own: List[PlacedInstance] = []

    for candidate in order_candidates(candidates, order):
        if not (bounds.min_x <= candidate.x < bounds.max_x and bounds.min_z <= candidate.z < bounds.max_z):
            outcome.rejected.append(Rejection(candidate, "out_of_bounds"))
            continue

        rejection = None
        for other in placed:
            reason = pair_conflict(candidate, other)
            if reason:
                rejection = Rejection(candidate, reason, other.id)
                break
        if rejection is None:
            for other in own:
                reason = pair_conflict(candidate, other, min_distance_floor)
                if reason:
                    rejection = Rejection(candidate, reason, other.id)
                    break

        if rejection is not None:
            outcome.rejected.append(rejection)
            continue
        own.append(candidate)
        outcome.accepted.append(candidate)

    if outcome.rejected:
        logger.debug(f"Validation: {len(outcome.accepted)} accepted, {len(outcome.rejected)} rejected "
                     f"({', '.join(outcome.reasons())})")
    return outcome
