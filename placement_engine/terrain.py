"""
Terrain integration: anchoring instances to the heightmap and editing it.

Heights use the nearest tile (no interpolation). Edits keep the heightmap
shape and integer range, and return TerrainChange records so a caller can
undo them with `revert_terrain_changes`.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .schema import AssetFootprint, Diagnostic, DiagnosticKind, PlacedInstance, Point, Region, WorldGrid
from .spacing import compute_footprint_overlap, overlap_tolerance

logger = logging.getLogger(__name__)

HEIGHT_EPSILON = 1e-6


class TerrainOp(str, Enum):
    FLATTEN = "flatten"
    RAISE = "raise"
    LOWER = "lower"
    SMOOTH = "smooth"


@dataclass
class TerrainChange:
    """One heightmap cell before and after an edit."""
    ix: int
    iz: int
    old: int
    new: int

    def to_dict(self) -> dict:
        return {"ix": self.ix, "iz": self.iz, "old": self.old, "new": self.new}


def apply_terrain_height(instance: PlacedInstance, world: WorldGrid) -> PlacedInstance:
    """Copy of instance with y = tile height under its centre + vertical offset."""
    y = world.height_at(instance.x, instance.z) + instance.world_footprint.vertical_offset
    return replace(instance, position=(instance.x, y, instance.z))


def _rounded_mean(values: np.ndarray) -> int:
    # Half rounds up, unlike round()
    return int(np.floor(values.mean() + 0.5))


def _modify_tiles(world: WorldGrid, tiles: Sequence[Tuple[int, int]], op: TerrainOp,
                  amount: int = 1, level: Optional[int] = None) -> List[TerrainChange]:
    if not tiles:
        return []
    op = TerrainOp(op)
    heightmap = world.heightmap
    ixs = np.array([t[0] for t in tiles])
    izs = np.array([t[1] for t in tiles])
    old = heightmap[izs, ixs].copy()

    if op == TerrainOp.FLATTEN:
        target = level if level is not None else _rounded_mean(old)
        new = np.full_like(old, target)
    elif op == TerrainOp.RAISE:
        new = old + amount
    elif op == TerrainOp.LOWER:
        new = old - amount
    else:
        snapshot = heightmap.copy()
        new = np.empty_like(old)
        for i, (ix, iz) in enumerate(tiles):
            window = snapshot[max(iz - 1, 0):iz + 2, max(ix - 1, 0):ix + 2]
            new[i] = _rounded_mean(window)

    new = np.clip(new, 0, world.max_elevation).astype(heightmap.dtype)
    heightmap[izs, ixs] = new

    changes = [TerrainChange(int(ix), int(iz), int(o), int(n))
               for ix, iz, o, n in zip(ixs, izs, old, new) if o != n]
    logger.debug(f"Terrain {op.value}: {len(changes)}/{len(tiles)} cells changed")
    return changes


def apply_terrain_modification(world: WorldGrid, footprint: AssetFootprint, position: Point,
                               op: TerrainOp = TerrainOp.FLATTEN, amount: int = 1,
                               level: Optional[int] = None, yaw: float = 0.0) -> List[TerrainChange]:
    """
    Edit the heightmap cells under a footprint, in place.

    Args:
        world: Grid whose heightmap is modified.
        footprint: Shape whose world rectangle selects the cells.
        position: (x, z) of the footprint centre.
        op: flatten (to `level`, or the rounded mean of the covered cells),
            raise/lower by `amount`, or smooth (3x3 mean).
        yaw: Footprint rotation.

    Returns:
        Changed cells, for undo.
    """
    rect = footprint.rect_at(position[0], position[1], yaw)
    return _modify_tiles(world, world.tiles_under(rect), op, amount, level)


def apply_zone_modification(world: WorldGrid, region: Region, op: TerrainOp = TerrainOp.FLATTEN,
                            amount: int = 1, level: Optional[int] = None) -> List[TerrainChange]:
    """Same edit over every cell intersecting a zone rectangle."""
    clamped, _ = region.clamp_to(world.bounds())
    return _modify_tiles(world, world.tiles_under(clamped), op, amount, level)


def revert_terrain_changes(world: WorldGrid, changes: Iterable[TerrainChange]) -> None:
    for change in reversed(list(changes)):
        world.heightmap[change.iz, change.ix] = change.old


@dataclass
class RebalanceReport:
    instances: List[PlacedInstance] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)  # Ids whose y changed
    invalidated: List[str] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "updated": list(self.updated),
            "invalidated": list(self.invalidated),
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


def rebalance_placements(instances: Sequence[PlacedInstance], world: WorldGrid,
                         step_tolerance: int = 1) -> RebalanceReport:
    """
    Re-derive y for every instance after a terrain edit.

    Instances whose y changed are re-checked: the ground under the footprint
    must not step more than `step_tolerance` levels, and the instance must
    not overlap another one sitting on the same plane. Failures are reported,
    never moved. Running twice without a new edit changes nothing.
    """
    report = RebalanceReport()
    for instance in instances:
        anchored = apply_terrain_height(instance, world)
        if abs(anchored.y - instance.y) > HEIGHT_EPSILON:
            report.updated.append(anchored.id)
        report.instances.append(anchored)

    changed = set(report.updated)
    for instance in report.instances:
        if instance.id not in changed:
            continue

        levels = [world.heightmap[iz, ix] for ix, iz in world.tiles_under(instance.rect())]
        problem = None
        if max(levels) - min(levels) > step_tolerance:
            problem = f"ground under '{instance.id}' steps {max(levels) - min(levels)} levels"
        else:
            for other in report.instances:
                if other.id == instance.id or abs(other.y - instance.y) > HEIGHT_EPSILON:
                    continue
                if compute_footprint_overlap(instance, other) > overlap_tolerance(instance.category, other.category):
                    problem = f"'{instance.id}' overlaps '{other.id}' on the same plane"
                    break

        if problem:
            report.invalidated.append(instance.id)
            report.diagnostics.append(Diagnostic(DiagnosticKind.TERRAIN_INCONSISTENCY, problem,
                                                 subject=instance.name, instance_ids=[instance.id]))
            logger.warning(f"Rebalance: {problem}")

    logger.info(f"Rebalanced {len(report.instances)} instances: "
                f"{len(report.updated)} updated, {len(report.invalidated)} invalidated")
    return report
