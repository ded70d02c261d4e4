"""
Semantic location resolver and pattern placement.

Zone descriptors ("north", "northeast corner", "120, 80", "near the
fountain") resolve to regions of the world. `execute_asset_placement` turns a
PatternRequest into validated, terrain-anchored instances inside that region.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from .constants import (
    CATEGORY_MIN_DISTANCE, CENTER_TERMS, COORDINATE_ZONE_HALF_SIZE, DEFAULT_MIN_DISTANCE,
    DIAGONAL_ALIASES, DIRECTION_ALIASES, DIRECTIONS, EDGE_BAND, SCENE_MARGIN,
    STANDOFF_DISTANCES, STANDOFF_SIDES,
)
from .registry import PassContext, StructureRegistry, normalize_name
from .sampling import (
    cluster_placement, edge_placement, grid_placement, poisson_disk_sampling,
    ring_placement, uniform_placement,
)
from .schema import (
    Diagnostic, DiagnosticKind, NodeReport, Pattern, PatternRequest, PlacedInstance,
    PlacementResult, Point, Pose, Region, WorldGrid, heading,
)
from .spacing import validate_placements

logger = logging.getLogger(__name__)

_COORDINATES = re.compile(
    r"^(?:(?:at|around|near)\s+)?\(?\s*(-?\d+(?:\.\d+)?)\s*(?:,\s*|\s+)(-?\d+(?:\.\d+)?)\s*\)?$"
)

# Exact patterns place exactly `count` candidates
EXACT_PATTERNS = frozenset({Pattern.RING, Pattern.GRID, Pattern.FOCAL})


@dataclass
class ResolvedZone:
    """Where a descriptor points to."""
    region: Region
    center: Point
    source: str  # direction | quadrant | center | coordinates | structure | default
    clamped: bool = False
    edge: Optional[str] = None  # Cardinal edge for direction zones (N/S/E/W)
    anchor: Optional[str] = None  # Structure name for structure zones
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def to_dict(self) -> dict:
        result = {"region": self.region.to_dict(), "center": list(self.center),
                  "source": self.source, "clamped": self.clamped}
        if self.edge:
            result["edge"] = self.edge
        if self.anchor:
            result["anchor"] = self.anchor
        return result


def _tokens(text: str) -> List[str]:
    return re.sub(r"[^a-z0-9]+", " ", text).split()


def _directions(tokens: Iterable[str]) -> List[str]:
    """Compass words in order of appearance, aliases expanded, duplicates removed."""
    found: List[str] = []
    for token in tokens:
        names = DIAGONAL_ALIASES.get(token) or (DIRECTION_ALIASES.get(token, token),)
        for name in names:
            if name in DIRECTIONS and name not in found:
                found.append(name)
    return found


def _edge_zone(bounds: Region, direction: str, band: float) -> Region:
    if direction == "north":
        return Region(bounds.min_x, bounds.max_x, bounds.max_z - band, bounds.max_z)
    if direction == "south":
        return Region(bounds.min_x, bounds.max_x, bounds.min_z, bounds.min_z + band)
    if direction == "east":
        return Region(bounds.max_x - band, bounds.max_x, bounds.min_z, bounds.max_z)
    return Region(bounds.min_x, bounds.min_x + band, bounds.min_z, bounds.max_z)


def _quadrant(bounds: Region, vertical: str, horizontal: str) -> Region:
    cx, cz = bounds.center
    min_z, max_z = (cz, bounds.max_z) if vertical == "north" else (bounds.min_z, cz)
    min_x, max_x = (cx, bounds.max_x) if horizontal == "east" else (bounds.min_x, cx)
    return Region(min_x, max_x, min_z, max_z)


def _structure_zone(text: str, registry: StructureRegistry,
                    bounds: Region) -> Optional[Tuple[Region, Point, str]]:
    """(region, center, name) for '<relation> <structure>' or a bare structure name."""
    relation, name = "at", text
    for phrase in sorted(STANDOFF_DISTANCES, key=len, reverse=True):
        if text.startswith(phrase + " "):
            relation, name = phrase, text[len(phrase) + 1:]
            break
    if name.startswith("the "):
        name = name[4:]
    if name not in registry:
        return None

    standoff = STANDOFF_DISTANCES[relation]
    extent = registry.extent(name)
    cx, cz = registry.anchor_point(name)

    if relation in STANDOFF_SIDES:
        anchor = registry.adjacent_position(name, STANDOFF_SIDES[relation], standoff)
        half = max(standoff / 2, COORDINATE_ZONE_HALF_SIZE)
        return Region.from_center(anchor.x, anchor.z, half, half), (anchor.x, anchor.z), name

    if relation == "far from":
        # Quadrant diagonally opposite the structure
        wx, wz = bounds.center
        region = _quadrant(bounds, "south" if cz >= wz else "north", "west" if cx >= wx else "east")
        return region, region.center, name

    reach = extent + standoff
    return Region.from_center(cx, cz, reach, reach), (cx, cz), name


def parse_semantic_location(descriptor: Optional[str], world_bounds: Region,
                            registry: Optional[StructureRegistry] = None,
                            edge_band: float = EDGE_BAND, margin: float = SCENE_MARGIN) -> ResolvedZone:
    """
    Resolve a zone descriptor to a region of the world.

    Precedence: explicit coordinates, registered structures, diagonals,
    cardinal directions, centre terms. Anything else is the full world.
    Regions reaching outside the world are clamped and flagged OUT_OF_BOUNDS.
    """
    text = normalize_name(descriptor or "")
    tokens = _tokens(text)

    match = _COORDINATES.match(text)
    if match:
        x, z = float(match.group(1)), float(match.group(2))
        half = COORDINATE_ZONE_HALF_SIZE
        zone = ResolvedZone(Region.from_center(x, z, half, half), (x, z), "coordinates")
    else:
        zone = None
        structure = _structure_zone(text, registry, world_bounds) if registry is not None and text else None
        if structure is not None:
            region, center, name = structure
            zone = ResolvedZone(region, center, "structure", anchor=name)

        if zone is None:
            directions = _directions(tokens)
            vertical = next((d for d in directions if d in ("north", "south")), None)
            horizontal = next((d for d in directions if d in ("east", "west")), None)
            if vertical and horizontal:
                region = _quadrant(world_bounds, vertical, horizontal)
                zone = ResolvedZone(region, region.center, "quadrant")
            elif directions:
                region = _edge_zone(world_bounds, directions[0], edge_band)
                zone = ResolvedZone(region, region.center, "direction", edge=directions[0][0].upper())
            elif CENTER_TERMS.intersection(tokens):
                region = world_bounds.inset(margin)
                zone = ResolvedZone(region, region.center, "center")
            else:
                if text:
                    logger.debug(f"Unrecognized zone '{descriptor}', using the full world")
                zone = ResolvedZone(world_bounds, world_bounds.center, "default")

    region, clamped = zone.region.clamp_to(world_bounds, 2 * COORDINATE_ZONE_HALF_SIZE)
    if clamped:
        zone.region = region
        if not region.contains(*zone.center):
            zone.center = region.center
        zone.center = world_bounds.clamp_point(*zone.center)
        zone.clamped = True
        zone.diagnostics.append(Diagnostic(
            DiagnosticKind.OUT_OF_BOUNDS,
            f"Zone '{descriptor}' extends outside the world and was clamped",
            subject=descriptor,
        ))
        logger.warning(f"Zone '{descriptor}' clamped to world bounds")
    return zone


def _candidate_poses(request: PatternRequest, zone: ResolvedZone, candidates: int,
                     min_distance: float, context: PassContext) -> List[Pose]:
    rng = context.rng
    config = context.config
    pattern = request.pattern

    if pattern == Pattern.FOCAL:
        return [Pose(zone.center[0], zone.center[1], 0.0)]

    if pattern == Pattern.RING:
        points = ring_placement(zone.center, request.radius, candidates, request.jitter, rng)
        return [Pose(x, z, heading((x, z), zone.center)) for x, z in points]

    if pattern == Pattern.CLUSTER:
        points = cluster_placement(zone.center, candidates, request.radius, min_distance,
                                   config.cluster_retries, rng)
        return [Pose(x, z, heading((x, z), zone.center) + rng.uniform(-0.5, 0.5)) for x, z in points]

    if pattern == Pattern.GRID:
        side = int(math.ceil(math.sqrt(candidates)))
        points = grid_placement(zone.region, side, side, request.jitter, rng=rng)[:candidates]
        return [Pose(x, z, 0.0) for x, z in points]

    if pattern == Pattern.EDGE:
        edge = zone.edge or "N"
        points = edge_placement(context.bounds, edge, candidates, depth=request.radius,
                                inset=config.scene_margin / 2, min_distance=min_distance,
                                max_attempts=config.max_attempts, rng=rng)
        center = context.bounds.center
        return [Pose(x, z, heading((x, z), center)) for x, z in points]

    if pattern == Pattern.POISSON:
        points = poisson_disk_sampling(zone.region, min_distance, candidates, config.max_attempts, rng)
    else:
        points = uniform_placement(zone.region, candidates, rng)
    return [Pose(x, z, rng.uniform(-math.pi, math.pi)) for x, z in points]


def execute_asset_placement(request: PatternRequest, world: WorldGrid,
                            existing: Iterable[PlacedInstance] = (),
                            context: Optional[PassContext] = None) -> PlacementResult:
    """
    Place a pattern request: resolve the zone, over-request candidates,
    validate, keep the first `count` accepted and anchor them to terrain.

    Never raises for a well-formed request; a shortfall is reported as an
    UNSATISFIABLE_REGION diagnostic with the deficit.

    Args:
        request: Pattern request to place.
        world: Grid providing bounds and heights.
        existing: Instances already in the world (ignored when `context` is given).
        context: Pass to accumulate into; a fresh one is created when omitted.

    Returns:
        PlacementResult for this request only.
    """
    if context is None:
        context = PassContext(world, existing=list(existing))
    label = request.request_id or f"{request.category}:{request.pattern.value}"
    first_instance = len(context.instances)
    first_diagnostic = len(context.diagnostics)

    zone = parse_semantic_location(request.region, context.bounds, context.registry,
                                   context.config.edge_band, context.config.scene_margin)
    context.diagnostics.extend(zone.diagnostics)

    count = request.count
    if request.pattern == Pattern.FOCAL and count != 1:
        logger.warning(f"{label}: focal pattern places a single instance, ignoring count={count}")
        count = 1

    min_distance = request.min_distance
    if min_distance is None:
        min_distance = CATEGORY_MIN_DISTANCE.get(request.category, DEFAULT_MIN_DISTANCE)
    # Spacing below the footprint diameter only produces overlaps
    sample_distance = max(min_distance, 2.0 * request.footprint.scaled(request.scale).bounding_radius)

    if request.pattern in EXACT_PATTERNS:
        candidates = count
    else:
        candidates = int(math.ceil(count * context.config.overrequest))

    poses = _candidate_poses(request, zone, candidates, sample_distance, context)
    proposed = [
        PlacedInstance(f"candidate_{i}", request.category, (pose.x, 0.0, pose.z), pose.yaw,
                       request.footprint, request.scale, kind=request.pattern.value)
        for i, pose in enumerate(poses)
    ]
    outcome = validate_placements(proposed, context.occupied(), context.bounds,
                                  context.config.order, min_distance)
    accepted = context.accept(outcome.accepted[:count], request.category)

    reasons = outcome.reasons()
    if len(poses) < candidates:
        reasons = sorted(set(reasons) | {"sampler_undercount"})
    report = context.report(NodeReport.from_counts(label, count, len(accepted), reasons))

    if len(accepted) < count:
        deficit = count - len(accepted)
        context.diagnose(Diagnostic(
            DiagnosticKind.UNSATISFIABLE_REGION,
            f"Placed {len(accepted)}/{count} {request.category} in '{request.region}'",
            subject=label, deficit=deficit, instance_ids=[i.id for i in accepted],
        ))
        logger.warning(f"{label}: deficit of {deficit} ({', '.join(reasons) or 'no candidates'})")
    else:
        logger.info(f"{label}: placed {len(accepted)} {request.category}")

    return PlacementResult(context.instances[first_instance:], context.diagnostics[first_diagnostic:], [report])
