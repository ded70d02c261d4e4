"""
Point-generation primitives for scattering assets.

Every sampler is a pure function of its arguments and a random source:
`rng` accepts a seed or a numpy RandomState, so identical seeds give
identical point sets. Rejection loops are bounded by explicit parameters;
a sampler that runs out of budget returns fewer points, it never raises.
"""

import logging
import math
from typing import List, Optional, Union

import numpy as np

from .constants import DEFAULT_MAX_ATTEMPTS, DEFAULT_CLUSTER_RETRIES
from .schema import Point, Region

logger = logging.getLogger(__name__)

RandomSource = Union[None, int, np.random.RandomState]

# Ring jitter is a fraction of the angular step; below one half, neighbours cannot swap
MAX_RING_JITTER: float = 0.49

EDGE_NAMES = {"n": "N", "north": "N", "s": "S", "south": "S",
              "e": "E", "east": "E", "w": "W", "west": "W"}


def as_rng(rng: RandomSource = None) -> np.random.RandomState:
    """Return rng itself if it is a RandomState, else a RandomState seeded with it."""
    if isinstance(rng, np.random.RandomState):
        return rng
    return np.random.RandomState(rng)


def check_rectangular_collision(a: Region, b: Region, padding: float = 0.0) -> bool:
    """True if the rectangles are closer than `padding` on both axes. Touching edges are clear."""
    separated = (a.max_x + padding <= b.min_x or b.max_x + padding <= a.min_x or
                 a.max_z + padding <= b.min_z or b.max_z + padding <= a.min_z)
    return not separated


def poisson_disk_sampling(region: Region, min_distance: float, count: Optional[int] = None,
                          max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                          rng: RandomSource = None) -> List[Point]:
    """
    Bridson's Poisson disk sampling in a rectangular region.

    Args:
        region: Sampling rectangle (world coordinates).
        min_distance: Minimum distance between any two samples.
        count: Target number of points; None fills the region.
        max_attempts: Consecutive rejected candidates before an active sample retires.
        rng: Seed or RandomState.

    Returns:
        Up to `count` points. Fewer points is a normal outcome when the region is
        too small for the requested density.
    """
    if min_distance <= 0 or region.is_empty or (count is not None and count <= 0):
        return []
    rng = as_rng(rng)

    cell_size = min_distance / math.sqrt(2.0)
    grid_w = max(1, int(math.ceil(region.width / cell_size)))
    grid_h = max(1, int(math.ceil(region.depth / cell_size)))
    grid = {}  # (gx, gz) -> point index
    points: List[Point] = []
    active: List[int] = []
    min_sq = min_distance * min_distance

    def to_cell(x, z):
        gx = min(int((x - region.min_x) / cell_size), grid_w - 1)
        gz = min(int((z - region.min_z) / cell_size), grid_h - 1)
        return gx, gz

    def fits(x, z):
        if not region.contains(x, z):
            return False
        gx, gz = to_cell(x, z)
        for dz in range(-2, 3):
            for dx in range(-2, 3):
                idx = grid.get((gx + dx, gz + dz))
                if idx is None:
                    continue
                px, pz = points[idx]
                if (x - px) ** 2 + (z - pz) ** 2 < min_sq:
                    return False
        return True

    def add(x, z):
        grid[to_cell(x, z)] = len(points)
        active.append(len(points))
        points.append((x, z))

    add(rng.uniform(region.min_x, region.max_x), rng.uniform(region.min_z, region.max_z))

    while active and (count is None or len(points) < count):
        slot = rng.randint(len(active))
        px, pz = points[active[slot]]
        for _ in range(max_attempts):
            angle = rng.uniform(0.0, 2.0 * math.pi)
            radius = rng.uniform(min_distance, 2.0 * min_distance)
            x = px + math.sin(angle) * radius
            z = pz + math.cos(angle) * radius
            if fits(x, z):
                add(x, z)
                break
        else:
            active.pop(slot)

    if count is not None and len(points) < count:
        logger.debug(f"Poisson undercount: requested {count}, got {len(points)} at min_distance={min_distance}")
    return points if count is None else points[:count]


def cluster_placement(center: Point, count: int, spread: float, min_distance: float,
                      max_retries: int = DEFAULT_CLUSTER_RETRIES,
                      rng: RandomSource = None) -> List[Point]:
    """Area-uniform radial scatter around center; a point that cannot clear
    min_distance within `max_retries` draws is dropped."""
    rng = as_rng(rng)
    cx, cz = center
    points: List[Point] = []
    dropped = 0

    for _ in range(max(count, 0)):
        for _ in range(max(max_retries, 1)):
            r = spread * math.sqrt(rng.uniform(0.0, 1.0))  # sqrt for uniform area density
            angle = rng.uniform(0.0, 2.0 * math.pi)
            x = cx + math.sin(angle) * r
            z = cz + math.cos(angle) * r
            if all((x - px) ** 2 + (z - pz) ** 2 >= min_distance ** 2 for px, pz in points):
                points.append((x, z))
                break
        else:
            dropped += 1

    if dropped:
        logger.debug(f"Cluster dropped {dropped}/{count} points after {max_retries} retries each")
    return points


def ring_placement(center: Point, radius: float, count: int, jitter: float = 0.0,
                   rng: RandomSource = None) -> List[Point]:
    """
    Even angular spacing (2π/count) around center.

    `jitter` is a fraction of the angular step, clamped below one half so two
    neighbours can never cross. The first point sits at yaw 0 (+Z).
    """
    if count <= 0:
        return []
    cx, cz = center
    step = 2.0 * math.pi / count
    fraction = min(max(jitter, 0.0), MAX_RING_JITTER)
    rng = as_rng(rng) if fraction > 0 else None

    points = []
    for i in range(count):
        angle = i * step
        if rng is not None:
            angle += rng.uniform(-fraction, fraction) * step
        points.append((cx + math.sin(angle) * radius, cz + math.cos(angle) * radius))
    return points


def edge_band(region: Region, edge: str, depth: float, inset: float = 0.0) -> Region:
    """Strip of `depth` metres along one edge of region (after inset)."""
    key = EDGE_NAMES.get(edge.strip().lower())
    if key is None:
        raise ValueError(f"Invalid edge: {edge}")
    inner = region.inset(inset)
    if key == "N":
        return Region(inner.min_x, inner.max_x, max(inner.max_z - depth, inner.min_z), inner.max_z)
    if key == "S":
        return Region(inner.min_x, inner.max_x, inner.min_z, min(inner.min_z + depth, inner.max_z))
    if key == "E":
        return Region(max(inner.max_x - depth, inner.min_x), inner.max_x, inner.min_z, inner.max_z)
    return Region(inner.min_x, min(inner.min_x + depth, inner.max_x), inner.min_z, inner.max_z)


def edge_placement(region: Region, edge: str, count: int, depth: float, inset: float = 0.0,
                   jitter: float = 2.0, min_distance: Optional[float] = None,
                   max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                   rng: RandomSource = None) -> List[Point]:
    """Poisson points in a boundary band with jitter perpendicular to the edge."""
    band = edge_band(region, edge, depth, inset)
    rng = as_rng(rng)
    if min_distance is None:
        min_distance = max(4.0, min(8.0, depth * 0.4))

    positions = poisson_disk_sampling(band, min_distance, count, max_attempts, rng)
    horizontal = EDGE_NAMES[edge.strip().lower()] in ("N", "S")

    points = []
    for x, z in positions:
        offset = rng.uniform(-jitter, jitter) if jitter > 0 else 0.0
        if horizontal:
            z += offset
        else:
            x += offset
        points.append(band.clamp_point(x, z))
    return points


def grid_placement(region: Region, rows: int, cols: int, jitter: float = 0.0, inset: float = 0.0,
                   rng: RandomSource = None) -> List[Point]:
    """rows x cols lattice inside region; jitter is a fraction of the cell step."""
    if rows <= 0 or cols <= 0:
        return []
    inner = region.inset(inset)
    step_x = inner.width / (cols + 1)
    step_z = inner.depth / (rows + 1)
    rng = as_rng(rng) if jitter > 0 else None

    points = []
    for row in range(1, rows + 1):
        for col in range(1, cols + 1):
            x = inner.min_x + col * step_x
            z = inner.min_z + row * step_z
            if rng is not None:
                x += rng.uniform(-0.5, 0.5) * step_x * jitter
                z += rng.uniform(-0.5, 0.5) * step_z * jitter
            points.append((x, z))
    return points


def uniform_placement(region: Region, count: int, rng: RandomSource = None) -> List[Point]:
    """Plain uniform draws with no spacing guarantee."""
    rng = as_rng(rng)
    return [(rng.uniform(region.min_x, region.max_x), rng.uniform(region.min_z, region.max_z))
            for _ in range(max(count, 0))]
