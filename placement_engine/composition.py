"""
Camera-aware composition.

Placement helpers that arrange subjects for a shot: depth bands inside a
camera's field of view, placement strictly behind a reference, density
falloff around a focal point, leading lines, and background framing. The
layered executor runs depth layers back-to-front and rejects nearer
candidates that would hide what is already placed.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .cameras import CameraRig, camera_rig, depth_band, get_camera, DEFAULT_ARCHETYPE
from .locations import parse_semantic_location
from .registry import PassContext
from .sampling import RandomSource, as_rng, edge_placement, poisson_disk_sampling
from .schema import (
    Diagnostic, DiagnosticKind, NodeReport, PlacedInstance, Point, Pose, Region, SubjectSpec,
    heading, rotate_local, wrap_angle,
)
from .spacing import validate_placements

logger = logging.getLogger(__name__)

ROLE_ORDER = {"background": 0, "midground": 1, "foreground": 2}

# Share of background subjects per edge: edges away from the camera get more
EDGE_WEIGHT_BASE = 0.25
EDGE_WEIGHT_SWING = 0.10
EDGE_FORWARD = {"N": (0.0, 1.0), "S": (0.0, -1.0), "E": (1.0, 0.0), "W": (-1.0, 0.0)}


def facing_rotation(subject: Point, target: Point) -> float:
    """Yaw for subject to face target: atan2(dx, dz), 0 faces +Z."""
    return heading(subject, target)


def frame_placement(archetype: str, count: int, role: str, focal: Point, view_yaw: float = 0.0,
                    bounds: Optional[Region] = None, rng: RandomSource = None) -> List[Pose]:
    """
    Spread `count` subjects across the camera's field of view within the
    depth band for `role`, each facing the camera.
    """
    rng = as_rng(rng)
    rig = camera_rig(archetype, focal, view_yaw)
    near, far = depth_band(rig.camera.name, role)
    half = rig.camera.half_fov * 0.85  # Keep clear of the frame edge

    poses = []
    for i in range(max(count, 0)):
        # Even slots across the wedge, jittered inside each slot
        slot = (i + rng.uniform(0.2, 0.8)) / count
        bearing = -half + 2 * half * slot
        x, z = rig.point_at(bearing, rng.uniform(near, far))
        if bounds is not None:
            x, z = bounds.clamp_point(x, z)
        poses.append(Pose(x, z, facing_rotation((x, z), rig.position)))
    return poses


def behind_placement(reference: Point, count: int, min_offset: float,
                     foreground: Sequence[Point] = (), view_yaw: float = 0.0, spread: float = 10.0,
                     bounds: Optional[Region] = None, rng: RandomSource = None) -> List[Pose]:
    """
    Place subjects behind `reference` as seen from a camera looking along view_yaw.

    Every returned subject is strictly farther from the reference than the
    farthest foreground point plus `min_offset`. Candidates that fall short
    after clamping to bounds are dropped, so fewer than `count` may return.
    """
    rng = as_rng(rng)
    rx, rz = reference
    nearest_allowed = max((math.hypot(fx - rx, fz - rz) for fx, fz in foreground), default=0.0) + min_offset
    depth_margin = max(min_offset, 1.0)

    poses = []
    for _ in range(max(count, 0)):
        depth = nearest_allowed + rng.uniform(0.1, 1.0) * depth_margin
        lateral = rng.uniform(-spread / 2, spread / 2)
        dx, dz = rotate_local(view_yaw, lateral, depth)
        x, z = rx + dx, rz + dz
        if bounds is not None:
            x, z = bounds.clamp_point(x, z)
        if math.hypot(x - rx, z - rz) <= nearest_allowed:
            logger.debug(f"Behind placement dropped ({x:.1f}, {z:.1f}): too close after clamping")
            continue
        poses.append(Pose(x, z, facing_rotation((x, z), reference)))
    return poses


def density_gradient_sampling(region: Region, falloff_center: Point, falloff_radius: float,
                              near_distance: float = 2.0, far_distance: float = 8.0,
                              count: Optional[int] = None, max_attempts: int = 300,
                              rng: RandomSource = None) -> List[Point]:
    """
    Variable-radius dart throwing: dense near falloff_center, sparse far away.

    The spacing required at a point grows linearly from `near_distance` at
    the centre to `far_distance` at `falloff_radius` and beyond. Two points
    must be at least the mean of their spacings apart. Sampling stops after
    `max_attempts` consecutive misses or once `count` points are placed.
    """
    if region.is_empty or near_distance <= 0:
        return []
    rng = as_rng(rng)
    fx, fz = falloff_center
    span = far_distance - near_distance

    def spacing(x, z):
        t = min(math.hypot(x - fx, z - fz) / falloff_radius, 1.0) if falloff_radius > 0 else 1.0
        return near_distance + span * t

    capacity = count if count is not None else int(region.width * region.depth / (near_distance ** 2 * 0.5)) + 1
    samples = np.empty((max(capacity, 1), 3))  # x, z, spacing
    n = 0
    misses = 0
    while misses < max_attempts and n < capacity:
        x = rng.uniform(region.min_x, region.max_x)
        z = rng.uniform(region.min_z, region.max_z)
        r = spacing(x, z)
        if n:
            placed = samples[:n]
            dist = np.hypot(placed[:, 0] - x, placed[:, 1] - z)
            if np.any(dist < (placed[:, 2] + r) / 2):
                misses += 1
                continue
        samples[n] = (x, z, r)
        n += 1
        misses = 0

    return [(float(x), float(z)) for x, z, _ in samples[:n]]


def leading_line_placement(start: Point, end: Point, count: int, jitter: float = 2.0,
                           rng: RandomSource = None) -> List[Pose]:
    """Evenly spaced points from start to end with perpendicular jitter, facing along the line."""
    if count <= 0:
        return []
    rng = as_rng(rng)
    sx, sz = start
    dx, dz = end[0] - sx, end[1] - sz
    length = math.hypot(dx, dz)
    if length == 0:
        return [Pose(sx, sz, 0.0) for _ in range(count)]

    ux, uz = dx / length, dz / length
    yaw = facing_rotation(start, end)
    poses = []
    for i in range(count):
        t = (i + 0.5) / count
        offset = rng.uniform(-jitter, jitter) if jitter > 0 else 0.0
        # Perpendicular is (uz, -ux)
        poses.append(Pose(sx + ux * t * length + uz * offset, sz + uz * t * length - ux * offset, yaw))
    return poses


def _edge_counts(count: int, view_yaw: float, camera_aware: bool) -> Dict[str, int]:
    forward = (math.sin(view_yaw), math.cos(view_yaw))
    weights = {}
    for edge, (ex, ez) in EDGE_FORWARD.items():
        swing = EDGE_WEIGHT_SWING * (ex * forward[0] + ez * forward[1]) if camera_aware else 0.0
        weights[edge] = EDGE_WEIGHT_BASE + swing

    # Largest remainder so the shares add up to count
    raw = {edge: w * count for edge, w in weights.items()}
    counts = {edge: int(math.floor(v)) for edge, v in raw.items()}
    leftover = count - sum(counts.values())
    for edge in sorted(raw, key=lambda e: raw[e] - counts[e], reverse=True)[:leftover]:
        counts[edge] += 1
    return counts


def background_placement(region: Region, focal: Point, count: int, view_yaw: float = 0.0,
                         band: float = 12.0, camera_aware: bool = True,
                         rng: RandomSource = None) -> List[Pose]:
    """
    Frame the scene with subjects along the region's edges, facing the focal point.

    With `camera_aware`, edges the camera looks toward receive more subjects
    than the edges behind it.
    """
    rng = as_rng(rng)
    poses = []
    for edge, n in _edge_counts(count, view_yaw, camera_aware).items():
        if n <= 0:
            continue
        for x, z in edge_placement(region, edge, n, depth=band, inset=3.0, rng=rng):
            poses.append(Pose(x, z, facing_rotation((x, z), focal)))
    return poses


@dataclass
class LayerSpec:
    """
    One depth layer of a layered composition.

    A "behind" layer stays behind the (x, z) points in params["foreground"].
    """
    name: str
    role: str  # background | midground | foreground
    subject: SubjectSpec
    placement: str = "frame"  # frame | behind | background | density | line | scatter
    params: Dict[str, Any] = field(default_factory=dict)


def _occludes(rig: CameraRig, near: PlacedInstance, far: PlacedInstance) -> bool:
    """True if `near` sits between the camera and `far` and covers its centre."""
    near_distance = rig.distance_to(near.xz)
    if near_distance >= rig.distance_to(far.xz) or near_distance == 0:
        return False
    angular_radius = math.atan2(near.world_footprint.bounding_radius, near_distance)
    return abs(wrap_angle(rig.bearing(near.xz) - rig.bearing(far.xz))) < angular_radius


def _layer_poses(layer: LayerSpec, candidates: int, context: PassContext, rig: CameraRig,
                 focal: Point) -> List[Pose]:
    params = layer.params
    rng = context.rng
    zone = parse_semantic_location(params.get("zone"), context.bounds, context.registry,
                                   context.config.edge_band, context.config.scene_margin)
    spacing = params.get("min_distance", 2.0 * layer.subject.footprint.scaled(layer.subject.scale).bounding_radius)

    if layer.placement == "frame":
        return frame_placement(rig.camera.name, candidates, layer.role, focal, rig.view_yaw, context.bounds, rng)
    if layer.placement == "behind":
        # Foreground layers are placed after this one, so their points come from params
        foreground = [tuple(p) for p in params.get("foreground", ())]
        return behind_placement(focal, candidates, params.get("min_offset", 5.0), foreground, rig.view_yaw,
                                params.get("spread", 20.0), context.bounds, rng)
    if layer.placement == "background":
        return background_placement(zone.region, focal, candidates, rig.view_yaw, params.get("band", 12.0),
                                    params.get("camera_aware", True), rng)
    if layer.placement == "density":
        points = density_gradient_sampling(zone.region, focal, params.get("falloff_radius", 30.0),
                                           params.get("near_distance", spacing),
                                           params.get("far_distance", spacing * 4),
                                           candidates, rng=rng)
        return [Pose(x, z, rng.uniform(-math.pi, math.pi)) for x, z in points]
    if layer.placement == "line":
        start = params.get("start", rig.position)
        end = params.get("end", focal)
        return leading_line_placement(tuple(start), tuple(end), candidates, params.get("jitter", 2.0), rng)
    if layer.placement == "scatter":
        points = poisson_disk_sampling(zone.region, spacing, candidates, context.config.max_attempts, rng)
        return [Pose(x, z, facing_rotation((x, z), focal)) for x, z in points]
    raise ValueError(f"Invalid layer placement: {layer.placement}")


def execute_layered_placement(layers: Sequence[LayerSpec], context: PassContext, focal: Point,
                              archetype: str = DEFAULT_ARCHETYPE, view_yaw: float = 0.0) -> List[PlacedInstance]:
    """
    Place composition layers back-to-front.

    Each layer's candidates are validated against everything placed so far,
    then any candidate that would hide an instance from an earlier (farther)
    layer is rejected. Shortfalls are reported per layer.

    Returns:
        Instances placed by all layers, in placement order.
    """
    if get_camera(archetype) is None:
        logger.warning(f"Unknown camera archetype '{archetype}', using {DEFAULT_ARCHETYPE}")
        archetype = DEFAULT_ARCHETYPE
    rig = camera_rig(archetype, focal, view_yaw)
    ordered = sorted(layers, key=lambda layer: ROLE_ORDER.get(layer.role, 1))
    layered: List[PlacedInstance] = []

    for layer in ordered:
        count = layer.subject.count
        candidates = int(math.ceil(count * context.config.overrequest))
        poses = _layer_poses(layer, candidates, context, rig, focal)
        proposed = [
            PlacedInstance(f"candidate_{i}", layer.subject.category, (p.x, 0.0, p.z), p.yaw,
                           layer.subject.footprint, layer.subject.scale, name=layer.name,
                           kind=f"layer:{layer.placement}", tags={"role": layer.role})
            for i, p in enumerate(poses)
        ]
        outcome = validate_placements(proposed, context.occupied(), context.bounds, context.config.order)

        visible = []
        occluded = 0
        for candidate in outcome.accepted:
            if len(visible) >= count:
                break
            if any(_occludes(rig, candidate, far) for far in layered):
                occluded += 1
                continue
            visible.append(candidate)

        placed = context.accept(visible, layer.name)
        layered.extend(placed)

        reasons = outcome.reasons() + (["occlusion"] if occluded else [])
        context.report(NodeReport.from_counts(layer.name, count, len(placed), reasons))
        if len(placed) < count:
            context.diagnose(Diagnostic(
                DiagnosticKind.UNSATISFIABLE_REGION,
                f"Layer '{layer.name}' placed {len(placed)}/{count}",
                subject=layer.name, deficit=count - len(placed), instance_ids=[i.id for i in placed],
            ))
            logger.warning(f"Layer '{layer.name}': deficit of {count - len(placed)}")
        else:
            logger.info(f"Layer '{layer.name}' ({layer.role}): placed {len(placed)}")

    return layered
