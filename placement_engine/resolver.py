"""
Relationship resolver.

Resolves a RelationshipRequest node by node in dependency order. Each
subject kind has one strategy (see STRATEGIES); a strategy turns the node's
relation into candidate poses around its reference, and a shared commit
step validates them against everything already placed. Structures and
arrangements are registered as they land so later nodes can anchor on them.

Failures stay local: a node whose reference is missing, cyclic or itself
failed gets an INVALID_REFERENCE diagnostic, a node whose params cannot be
used (an unknown side, surface or depth role) gets an UNSATISFIABLE_REGION
diagnostic, and the rest of the graph keeps going.
"""

import logging
import math
from collections import deque
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from .composition import behind_placement, frame_placement, leading_line_placement
from .cameras import DEFAULT_ARCHETYPE
from .constants import (
    CATEGORY_MIN_DISTANCE, DEFAULT_MIN_DISTANCE, DENSITY_MULTIPLIER, STANDOFF_DISTANCES,
)
from .locations import parse_semantic_location
from .registry import InvalidReferenceError, PassContext, normalize_name
from .sampling import cluster_placement, poisson_disk_sampling, ring_placement
from .schema import (
    Diagnostic, DiagnosticKind, NodeReport, PlacedInstance, PlacementResult, Point, Pose, Region,
    Relation, RelationNode, RelationshipRequest, SubjectKind, WorldGrid, heading, rotate_local, wrap_angle,
)
from .spacing import validate_placements

logger = logging.getLogger(__name__)


class Facing(NamedTuple):
    """Resolved facing keyword: an absolute yaw, or an offset from 'toward the reference'."""
    angle: float
    relative: bool
    keyword: str


ABSOLUTE_FACING = {"north": 0.0, "east": math.pi / 2, "south": math.pi, "west": -math.pi / 2}
RELATIVE_FACING = {
    "toward": 0.0,
    "away": math.pi,
    "left": -math.pi / 2,
    "right": math.pi / 2,
    "inherit": 0.0,
    "toward_camera": 0.0,
}
FACING_ALIASES = {
    "towards": "toward", "facing": "toward", "away_from": "away", "outward": "away",
    "camera": "toward_camera", "same": "inherit", "n": "north", "s": "south", "e": "east", "w": "west",
}

ATTACH_GAP = 0.2
LEAN_GAP = 0.05


def facing_to_angle(keyword: Optional[str]) -> Facing:
    """
    Map a facing keyword to an angle.

    Absolute keywords (north/east/south/west) give a world yaw with north = 0.
    Relative keywords give an offset applied to the yaw that faces the
    reference; `inherit` copies the reference's yaw and `toward_camera`
    faces against the view direction. Unknown keywords fall back to toward.
    """
    key = normalize_name(keyword or "toward").replace(" ", "_")
    key = FACING_ALIASES.get(key, key)
    if key in ABSOLUTE_FACING:
        return Facing(ABSOLUTE_FACING[key], False, key)
    if key in RELATIVE_FACING:
        return Facing(RELATIVE_FACING[key], True, key)
    logger.debug(f"Unknown facing '{keyword}', using toward")
    return Facing(0.0, True, "toward")


def resolve_yaw(facing: Facing, position: Point, reference: Optional[Point] = None,
                reference_yaw: float = 0.0, view_yaw: float = 0.0) -> float:
    if not facing.relative:
        return facing.angle
    if facing.keyword == "inherit":
        return reference_yaw
    if facing.keyword == "toward_camera":
        return wrap_angle(view_yaw + math.pi)
    if reference is None or (reference[0] == position[0] and reference[1] == position[1]):
        return wrap_angle(reference_yaw + facing.angle)
    return wrap_angle(heading(position, reference) + facing.angle)


class StrategyOutcome(NamedTuple):
    requested: int
    placed: List[PlacedInstance]
    reasons: List[str]


def _own_radius(node: RelationNode) -> float:
    return node.subject.footprint.scaled(node.subject.scale).bounding_radius


def _spacing(node: RelationNode) -> float:
    spacing = node.params.get("spacing")
    if spacing is not None:
        return float(spacing)
    return max(CATEGORY_MIN_DISTANCE.get(node.subject.category, DEFAULT_MIN_DISTANCE), 2.0 * _own_radius(node))


def _overrequest(count: int, context: PassContext) -> int:
    return int(math.ceil(count * context.config.overrequest))


def _orient(node: RelationNode, poses: Iterable[Pose], default: str, reference: Optional[Point] = None,
            reference_yaw: float = 0.0) -> List[Pose]:
    facing = facing_to_angle(node.params.get("facing", default))
    view_yaw = float(node.params.get("view_yaw", 0.0))
    return [Pose(p.x, p.z, resolve_yaw(facing, (p.x, p.z), reference, reference_yaw, view_yaw)) for p in poses]


def _lateral(anchor, count: int, step: float) -> List[Pose]:
    """`count` poses centred on anchor, spread across its facing direction."""
    rx, rz = rotate_local(anchor.yaw, 1.0, 0.0)
    return [Pose(anchor.x + rx * (i - (count - 1) / 2) * step, anchor.z + rz * (i - (count - 1) / 2) * step,
                 anchor.yaw) for i in range(count)]


def _commit(node: RelationNode, poses: Sequence[Pose], context: PassContext, limit: int,
            min_distance_floor: float = 0.0):
    subject = node.subject
    proposed = [
        PlacedInstance(f"candidate_{i}", subject.category, (p.x, 0.0, p.z), p.yaw, subject.footprint,
                       subject.scale, name=node.name, kind=node.kind.value,
                       tags={"relation": node.relation.value})
        for i, p in enumerate(poses)
    ]
    outcome = validate_placements(proposed, context.occupied(), context.bounds, context.config.order,
                                  min_distance_floor)
    placed = context.accept(outcome.accepted[:limit], node.name)
    reasons = outcome.reasons()
    if len(poses) < limit:
        reasons = sorted(set(reasons) | {"sampler_undercount"})
    return placed, reasons


def _position(node: RelationNode, context: PassContext, margin: float) -> Point:
    """params.position, pulled `margin` inside the world and flagged when it lies outside."""
    x, z = (float(v) for v in node.params["position"])
    bounds = context.bounds
    if bounds.min_x <= x < bounds.max_x and bounds.min_z <= z < bounds.max_z:
        return x, z
    point = bounds.inset(margin).clamp_point(x, z)
    context.diagnose(Diagnostic(
        DiagnosticKind.OUT_OF_BOUNDS,
        f"'{node.name}' position ({x:g}, {z:g}) is outside the world, clamped to ({point[0]:.1f}, {point[1]:.1f})",
        subject=node.name,
    ))
    logger.warning(f"Node '{node.name}': position ({x:g}, {z:g}) clamped to world bounds")
    return point


def _zone(node: RelationNode, context: PassContext, default: str = "center"):
    return parse_semantic_location(node.params.get("zone", default), context.bounds, context.registry,
                                   context.config.edge_band, context.config.scene_margin)


def _spiral(base: Pose, step: float, attempts: int) -> List[Pose]:
    """Offsets around base at 45 degree steps, one ring further out every eight."""
    poses = []
    for k in range(attempts):
        ring = 1 + k // 8
        angle = (k % 8) * math.pi / 4
        poses.append(Pose(base.x + math.sin(angle) * ring * step, base.z + math.cos(angle) * ring * step, base.yaw))
    return poses


def resolve_structure_placement(node: RelationNode, context: PassContext) -> StrategyOutcome:
    """
    Place one structure: at a zone/position, next to or facing a reference,
    or behind it. A colliding base point is nudged outward in a spiral.
    """
    registry = context.registry
    params = node.params
    own = _own_radius(node)
    if node.subject.count != 1:
        logger.warning(f"Structure '{node.name}' places a single instance, ignoring count={node.subject.count}")

    if node.relation == Relation.AT:
        if "position" in params:
            point = _position(node, context, own)
        else:
            zone = _zone(node, context, node.reference or "center")
            context.diagnostics.extend(zone.diagnostics)
            point = zone.center
        base = _orient(node, [Pose(*point)], "south", context.bounds.center)[0]
    elif node.relation == Relation.NEXT_TO:
        gap = float(params.get("distance", STANDOFF_DISTANCES["next to"]))
        anchor = registry.adjacent_position(node.reference, params.get("side", "right"), gap + own)
        ref = registry.anchor_point(node.reference)
        reference_yaw = registry.get(node.reference).yaw if registry.get(node.reference) else 0.0
        base = _orient(node, [Pose(anchor.x, anchor.z, anchor.yaw)], "inherit", ref, reference_yaw)[0]
    elif node.relation == Relation.FACING:
        gap = float(params.get("distance", 15.0))
        anchor = registry.adjacent_position(node.reference, "front", gap + own)
        base = _orient(node, [Pose(anchor.x, anchor.z, anchor.yaw)], "toward",
                       registry.anchor_point(node.reference))[0]
    else:
        reference = registry.require(node.reference)
        view_yaw = float(params.get("view_yaw", reference.yaw + math.pi))
        foreground = [registry.anchor_point(name) for name in params.get("foreground", ())]
        offset = reference.world_footprint.bounding_radius + own + float(params.get("distance", 2.0))
        poses = behind_placement(reference.xz, 1, offset, foreground, view_yaw, spread=0.0,
                                 bounds=context.bounds, rng=context.rng)
        if not poses:
            return StrategyOutcome(1, [], ["behind_unreachable"])
        base = _orient(node, poses, "inherit", reference.xz, reference.yaw)[0]

    step = max(own, 2.0)
    candidates = [base] + _spiral(base, step, context.config.structure_nudge_attempts)
    for attempt, pose in enumerate(candidates):
        placed, reasons = _commit(node, [pose], context, 1)
        if placed:
            if attempt:
                logger.debug(f"Structure '{node.name}' nudged {attempt} step(s) from its base point")
            context.registry.register(node.name, placed[0])
            return StrategyOutcome(1, placed, [])
    return StrategyOutcome(1, [], reasons)


def resolve_decoration_relationship(node: RelationNode, context: PassContext) -> StrategyOutcome:
    """Attach, lean or place decorations beside a structure, or flank it."""
    registry = context.registry
    params = node.params
    count = node.subject.count
    own = _own_radius(node)
    ref = registry.anchor_point(node.reference)

    if node.relation in (Relation.ATTACHED_TO, Relation.LEANING_AGAINST):
        reference = registry.require(node.reference)
        gap = ATTACH_GAP if node.relation == Relation.ATTACHED_TO else LEAN_GAP
        lean = float(params.get("lean", 0.26))
        surface = params.get("surface", "front")
        fractions = params.get("horizontal")
        if fractions is None:
            fractions = [(i + 1) / (count + 1) for i in range(count)]
        elif not isinstance(fractions, (list, tuple)):
            fractions = [fractions] * count
        poses = []
        for h in fractions[:count]:
            anchor = registry.surface_position(node.reference, surface, h, offset=own + gap)
            # Attached items show the face normal; leaning items face the wall
            yaw = anchor.yaw if node.relation == Relation.ATTACHED_TO else wrap_angle(anchor.yaw + math.pi)
            poses.append(Pose(anchor.x, anchor.z, yaw))
        if "facing" in params:
            poses = _orient(node, poses, "away", ref, reference.yaw)
        placed, reasons = _commit(node, poses, context, count)
        if node.relation == Relation.LEANING_AGAINST:
            for instance in placed:
                instance.tags["lean"] = lean
        return StrategyOutcome(count, placed, reasons)

    reference_yaw = registry.get(node.reference).yaw if registry.get(node.reference) else 0.0
    step = 2.0 * own + float(params.get("spacing", 0.5))

    if node.relation == Relation.ADJACENT_TO:
        gap = float(params.get("distance", 1.0))
        anchor = registry.adjacent_position(node.reference, params.get("side", "front"), gap + own)
        poses = _orient(node, _lateral(anchor, count, step), "away", ref, reference_yaw)
        placed, reasons = _commit(node, poses, context, count)
        return StrategyOutcome(count, placed, reasons)

    # Flanking: alternate left and right, each further pair one step out
    gap = float(params.get("distance", 1.0))
    poses = []
    for i in range(count):
        side = "left" if i % 2 == 0 else "right"
        anchor = registry.adjacent_position(node.reference, side, gap + own + (i // 2) * step)
        poses.append(Pose(anchor.x, anchor.z, anchor.yaw))
    poses = _orient(node, poses, "inherit", ref, reference_yaw)
    placed, reasons = _commit(node, poses, context, count)
    return StrategyOutcome(count, placed, reasons)


def resolve_arrangement(node: RelationNode, context: PassContext) -> StrategyOutcome:
    """
    Place a named group (cluster, grid, row or ring) and register it as an
    arrangement other nodes can reference.
    """
    registry = context.registry
    params = node.params
    count = node.subject.count
    own = _own_radius(node)
    spacing = _spacing(node)

    if node.relation == Relation.ROW:
        rows, cols = 1, count
    else:
        cols = int(params.get("cols", math.ceil(math.sqrt(count))))
        rows = int(params.get("rows", math.ceil(count / cols)))
    spread = float(params.get("radius", max(6.0, spacing * math.sqrt(count))))

    if node.reference and node.relation == Relation.SURROUNDING:
        center = registry.anchor_point(node.reference)
    elif node.reference:
        # Beside the reference, far enough out that the group clears it
        if node.relation == Relation.CLUSTER:
            half_size = spread + own
        else:
            half_size = (max(rows, cols) - 1) / 2 * spacing + own
        gap = float(params.get("distance", STANDOFF_DISTANCES["next to"]))
        anchor = registry.adjacent_position(node.reference, params.get("side", "front"), gap + half_size)
        center = (anchor.x, anchor.z)
    elif "position" in params:
        center = _position(node, context, own)
    else:
        zone = _zone(node, context)
        context.diagnostics.extend(zone.diagnostics)
        center = zone.center

    floor = 0.0
    if node.relation == Relation.CLUSTER:
        points = cluster_placement(center, _overrequest(count, context), spread, spacing,
                                   context.config.cluster_retries, context.rng)
        poses = _orient(node, [Pose(x, z) for x, z in points], "toward", center)
        floor = spacing
    elif node.relation in (Relation.GRID, Relation.ROW):
        axis_yaw = ABSOLUTE_FACING.get(params.get("direction", "north"), 0.0)
        poses = []
        for r in range(rows):
            for c in range(cols):
                dx, dz = rotate_local(axis_yaw, (c - (cols - 1) / 2) * spacing, (r - (rows - 1) / 2) * spacing)
                poses.append(Pose(center[0] + dx, center[1] + dz))
        poses = _orient(node, poses[:count], "south", center)
    else:
        default_radius = registry.extent(node.reference) + own + 3.0 if node.reference else 6.0
        radius = float(params.get("radius", default_radius))
        points = ring_placement(center, radius, count, float(params.get("jitter", 0.0)), context.rng)
        poses = _orient(node, [Pose(x, z) for x, z in points], "toward", center)

    placed, reasons = _commit(node, poses, context, count, floor)
    if placed:
        extent = max(math.hypot(i.x - center[0], i.z - center[1]) for i in placed) + own
        registry.register_arrangement(node.name, center, extent, [i.id for i in placed])
    return StrategyOutcome(count, placed, reasons)


def resolve_atmosphere_relationship(node: RelationNode, context: PassContext) -> StrategyOutcome:
    """Ambient scatter: near a reference, across a zone, along a path, framing a shot, or ringed."""
    registry = context.registry
    params = node.params
    density = params.get("density", "medium")
    count = max(1, int(round(node.subject.count * DENSITY_MULTIPLIER.get(density, 1.0))))
    own = _own_radius(node)
    spacing = _spacing(node)
    rng = context.rng

    if node.relation in (Relation.SCATTERED_NEAR, Relation.SCATTERED):
        if node.relation == Relation.SCATTERED_NEAR:
            cx, cz = registry.anchor_point(node.reference)
            reach = registry.extent(node.reference) + float(params.get("radius", 12.0))
            region = Region.from_center(cx, cz, reach, reach)
        else:
            zone = _zone(node, context, "")
            context.diagnostics.extend(zone.diagnostics)
            region = zone.region
        points = poisson_disk_sampling(region, spacing, _overrequest(count, context),
                                       context.config.max_attempts, rng)
        poses = [Pose(x, z, rng.uniform(-math.pi, math.pi)) for x, z in points]
        if "facing" in params:
            poses = _orient(node, poses, "toward", region.center)

    elif node.relation == Relation.ALONG:
        start_name = params.get("from", node.reference)
        end_name = params.get("to")
        start, end = registry.anchor_point(start_name), registry.anchor_point(end_name)
        length = math.hypot(end[0] - start[0], end[1] - start[1])
        # Keep clear of the endpoint footprints
        trim_start = registry.extent(start_name) + own + 1.0
        trim_end = registry.extent(end_name) + own + 1.0
        if length <= trim_start + trim_end:
            return StrategyOutcome(count, [], ["path_too_short"])
        ux, uz = (end[0] - start[0]) / length, (end[1] - start[1]) / length
        start = (start[0] + ux * trim_start, start[1] + uz * trim_start)
        end = (end[0] - ux * trim_end, end[1] - uz * trim_end)
        poses = leading_line_placement(start, end, count, float(params.get("jitter", 1.0)), rng)
        if "facing" in params:
            poses = _orient(node, poses, "toward", end)

    elif node.relation == Relation.FRAMING:
        if node.reference:
            focal = registry.anchor_point(node.reference)
        else:
            zone = _zone(node, context)
            focal = zone.center
        poses = frame_placement(params.get("camera", DEFAULT_ARCHETYPE), _overrequest(count, context),
                                params.get("role", "foreground"), focal, float(params.get("view_yaw", 0.0)),
                                context.bounds, rng)

    else:
        if node.reference:
            center = registry.anchor_point(node.reference)
            radius = float(params.get("radius", registry.extent(node.reference) + own + 4.0))
        else:
            zone = _zone(node, context)
            center, radius = zone.center, float(params.get("radius", 10.0))
        points = ring_placement(center, radius, count, float(params.get("jitter", 0.2)), rng)
        poses = _orient(node, [Pose(x, z) for x, z in points], "away", center)

    placed, reasons = _commit(node, poses, context, count, spacing)
    return StrategyOutcome(count, placed, reasons)


def resolve_npc_placement(node: RelationNode, context: PassContext) -> StrategyOutcome:
    """Characters near, at the entrance of, within, or facing a reference."""
    registry = context.registry
    params = node.params
    count = node.subject.count
    own = _own_radius(node)
    rng = context.rng
    ref = registry.anchor_point(node.reference)
    extent = registry.extent(node.reference)
    structure = registry.get(node.reference)
    reference_yaw = structure.yaw if structure else 0.0

    if node.relation == Relation.NEAR:
        distance = extent + own + float(params.get("distance", 3.0))
        poses = []
        for _ in range(_overrequest(count, context)):
            angle = rng.uniform(-math.pi, math.pi)
            r = distance + rng.uniform(0.0, 2.0)
            poses.append(Pose(ref[0] + math.sin(angle) * r, ref[1] + math.cos(angle) * r))
        poses = _orient(node, poses, "toward", ref, reference_yaw)

    elif node.relation == Relation.WITHIN:
        arrangement = registry.get_arrangement(node.reference)
        if arrangement is not None:
            region = Region.from_center(arrangement.center[0], arrangement.center[1],
                                        arrangement.radius, arrangement.radius)
        else:
            reach = extent + float(params.get("distance", 6.0))
            region = Region.from_center(ref[0], ref[1], reach, reach)
        points = poisson_disk_sampling(region, _spacing(node), _overrequest(count, context),
                                       context.config.max_attempts, rng)
        poses = [Pose(x, z, rng.uniform(-math.pi, math.pi)) for x, z in points]
        if "facing" in params:
            poses = _orient(node, poses, "toward", ref, reference_yaw)

    else:
        if node.relation == Relation.AT_ENTRANCE:
            gap, side, default = float(params.get("distance", 2.0)), "front", "away"
        else:
            gap, side, default = float(params.get("distance", 4.0)), params.get("side", "front"), "toward"
        anchor = registry.adjacent_position(node.reference, side, gap + own)
        poses = _orient(node, _lateral(anchor, count, 2.0 * own + 1.0), default, ref, reference_yaw)

    placed, reasons = _commit(node, poses, context, count)
    return StrategyOutcome(count, placed, reasons)


STRATEGIES: Dict[SubjectKind, Callable[[RelationNode, PassContext], StrategyOutcome]] = {
    SubjectKind.STRUCTURE: resolve_structure_placement,
    SubjectKind.DECORATION: resolve_decoration_relationship,
    SubjectKind.ARRANGEMENT: resolve_arrangement,
    SubjectKind.ATMOSPHERE: resolve_atmosphere_relationship,
    SubjectKind.NPC: resolve_npc_placement,
}


def dependency_order(nodes: Sequence[RelationNode]) -> Tuple[List[RelationNode], List[RelationNode]]:
    """
    Kahn's topological sort, stable by input order.

    Returns:
        (ordered, cyclic): nodes that can be placed in order, and nodes
        caught in or behind a dependency cycle.
    """
    index = {normalize_name(n.name): i for i, n in enumerate(nodes)}
    in_degree = [0] * len(nodes)
    dependents: List[List[int]] = [[] for _ in nodes]
    for i, node in enumerate(nodes):
        for dep in node.dependencies():
            j = index.get(normalize_name(dep))
            if j is not None and j != i:
                in_degree[i] += 1
                dependents[j].append(i)

    queue = deque(i for i, d in enumerate(in_degree) if d == 0)
    order = []
    while queue:
        i = queue.popleft()
        order.append(i)
        for j in sorted(dependents[i]):
            in_degree[j] -= 1
            if in_degree[j] == 0:
                queue.append(j)

    placed = set(order)
    return [nodes[i] for i in order], [n for i, n in enumerate(nodes) if i not in placed]


def _invalid(context: PassContext, node: RelationNode, message: str) -> None:
    context.diagnose(Diagnostic(DiagnosticKind.INVALID_REFERENCE, message, subject=node.name))
    context.report(NodeReport.from_counts(node.name, node.subject.count, 0, ["invalid_reference"]))
    logger.warning(f"Node '{node.name}': {message}")


def _unusable(context: PassContext, node: RelationNode, message: str) -> None:
    count = node.subject.count
    context.diagnose(Diagnostic(DiagnosticKind.UNSATISFIABLE_REGION, f"'{node.name}' has unusable params: {message}",
                                subject=node.name, deficit=count))
    context.report(NodeReport.from_counts(node.name, count, 0, ["invalid_params"]))
    logger.warning(f"Node '{node.name}': unusable params: {message}")


def resolve_relationship_placements(request: RelationshipRequest, world: WorldGrid,
                                    existing: Iterable[PlacedInstance] = (),
                                    context: Optional[PassContext] = None) -> PlacementResult:
    """
    Resolve every node of a relationship graph.

    Nodes run in dependency order so each reference exists before anything
    anchors on it. A node is skipped with INVALID_REFERENCE when a
    reference is unknown, part of a cycle, or failed to place, and fails
    with invalid_params when its params cannot be used; everything else
    still runs.

    Args:
        request: Relationship graph.
        world: Grid providing bounds and heights.
        existing: Instances already in the world (ignored when `context` is given).
        context: Pass to accumulate into; a fresh one is created when omitted.

    Returns:
        PlacementResult for this request only.
    """
    if context is None:
        context = PassContext(world, existing=list(existing))
    first_instance = len(context.instances)
    first_diagnostic = len(context.diagnostics)
    first_report = len(context.reports)

    nodes = list(request.nodes)
    ordered, cyclic = dependency_order(nodes)
    known = {normalize_name(n.name) for n in nodes}
    failed = {normalize_name(n.name) for n in cyclic}

    for node in ordered:
        deps = node.dependencies()
        missing = [d for d in deps if normalize_name(d) not in known and d not in context.registry]
        broken = [d for d in deps if normalize_name(d) in failed]
        if missing or broken:
            reason = f"unknown reference(s) {missing}" if missing else f"reference(s) {broken} failed to place"
            _invalid(context, node, reason)
            failed.add(normalize_name(node.name))
            continue

        try:
            outcome = STRATEGIES[node.kind](node, context)
        except InvalidReferenceError as e:
            _invalid(context, node, str(e))
            failed.add(normalize_name(node.name))
            continue
        except (ValueError, TypeError) as e:
            _unusable(context, node, str(e))
            failed.add(normalize_name(node.name))
            continue

        placed = len(outcome.placed)
        context.report(NodeReport.from_counts(node.name, outcome.requested, placed, outcome.reasons))
        if placed == 0:
            failed.add(normalize_name(node.name))
        if placed < outcome.requested:
            context.diagnose(Diagnostic(
                DiagnosticKind.UNSATISFIABLE_REGION,
                f"'{node.name}' {node.relation.value} placed {placed}/{outcome.requested}",
                subject=node.name, deficit=outcome.requested - placed,
                instance_ids=[i.id for i in outcome.placed],
            ))
            logger.warning(f"Node '{node.name}': placed {placed}/{outcome.requested} "
                           f"({', '.join(outcome.reasons) or 'no candidates'})")
        else:
            logger.debug(f"Node '{node.name}': placed {placed}")

    # Cyclic nodes are reported after the rest, in input order
    for node in cyclic:
        _invalid(context, node, "dependency cycle")

    logger.info(f"Resolved {len(nodes)} nodes: {len(context.instances) - first_instance} instances, "
                f"{len(failed)} failed")
    return PlacementResult(context.instances[first_instance:], context.diagnostics[first_diagnostic:],
                           context.reports[first_report:])
