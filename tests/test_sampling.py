"""Tests for the point samplers."""

import math
from itertools import combinations

import pytest

from placement_engine.sampling import (
    check_rectangular_collision,
    cluster_placement,
    edge_band,
    edge_placement,
    grid_placement,
    poisson_disk_sampling,
    ring_placement,
)
from placement_engine.schema import Region


def _min_pair_distance(points):
    return min(math.hypot(a[0] - b[0], a[1] - b[1]) for a, b in combinations(points, 2))


class TestPoissonDiskSampling:
    """Bridson sampling."""

    def test_same_seed_same_points(self):
        region = Region(0, 80, 0, 60)
        assert poisson_disk_sampling(region, 5.0, rng=3) == poisson_disk_sampling(region, 5.0, rng=3)

    def test_different_seed_different_points(self):
        region = Region(0, 80, 0, 60)
        assert poisson_disk_sampling(region, 5.0, rng=3) != poisson_disk_sampling(region, 5.0, rng=4)

    def test_fills_large_empty_region(self):
        points = poisson_disk_sampling(Region(0, 100, 0, 100), 4.0, rng=0)
        assert len(points) >= 15

    def test_respects_min_distance_and_region(self):
        region = Region(10, 60, 20, 70)
        points = poisson_disk_sampling(region, 4.0, rng=1)
        assert _min_pair_distance(points) >= 4.0 - 1e-9
        assert all(region.contains(x, z) for x, z in points)

    def test_count_caps_output(self):
        points = poisson_disk_sampling(Region(0, 100, 0, 100), 4.0, count=12, rng=0)
        assert len(points) == 12

    def test_small_region_returns_fewer(self):
        points = poisson_disk_sampling(Region(0, 8, 0, 8), 4.0, count=50, rng=0)
        assert 0 < len(points) <= 10

    def test_degenerate_inputs(self):
        assert poisson_disk_sampling(Region(0, 0, 0, 10), 2.0, rng=0) == []
        assert poisson_disk_sampling(Region(0, 10, 0, 10), 0.0, rng=0) == []
        assert poisson_disk_sampling(Region(0, 10, 0, 10), 2.0, count=0, rng=0) == []


class TestClusterPlacement:

    def test_points_within_spread_and_apart(self):
        points = cluster_placement((50.0, 50.0), 10, spread=12.0, min_distance=2.0, rng=5)
        assert len(points) <= 10
        assert all(math.hypot(x - 50, z - 50) <= 12.0 + 1e-9 for x, z in points)
        if len(points) > 1:
            assert _min_pair_distance(points) >= 2.0

    def test_overfull_cluster_drops_points(self):
        points = cluster_placement((0.0, 0.0), 40, spread=3.0, min_distance=2.0, max_retries=5, rng=5)
        assert len(points) < 40


class TestRingPlacement:

    def test_exact_spacing_without_jitter(self):
        points = ring_placement((0.0, 0.0), 10.0, 6)
        assert len(points) == 6
        angles = [math.atan2(x, z) for x, z in points]
        for (x, z) in points:
            assert math.hypot(x, z) == pytest.approx(10.0)
        for a, b in zip(angles, angles[1:] + angles[:1]):
            step = (b - a) % (2 * math.pi)
            assert step == pytest.approx(math.pi / 3)

    def test_first_point_faces_north(self):
        x, z = ring_placement((5.0, 5.0), 2.0, 4)[0]
        assert (x, z) == pytest.approx((5.0, 7.0))

    def test_jitter_never_reorders(self):
        points = ring_placement((0.0, 0.0), 10.0, 12, jitter=5.0, rng=2)
        angles = [math.atan2(x, z) % (2 * math.pi) for x, z in points]
        # First point may jitter below zero; unwrap it
        if angles[0] > math.pi:
            angles[0] -= 2 * math.pi
        assert angles == sorted(angles)

    def test_zero_count(self):
        assert ring_placement((0.0, 0.0), 10.0, 0) == []


class TestEdgePlacement:

    def test_points_stay_in_band(self):
        region = Region(0, 200, 0, 200)
        points = edge_placement(region, "north", 8, depth=10.0, rng=0)
        band = edge_band(region, "N", 10.0)
        assert points
        assert all(band.contains(x, z) for x, z in points)
        assert all(z >= 190.0 for _, z in points)

    def test_invalid_edge(self):
        with pytest.raises(ValueError):
            edge_placement(Region(0, 10, 0, 10), "up", 3, depth=2.0)


class TestGridPlacement:

    def test_lattice_size(self):
        points = grid_placement(Region(0, 40, 0, 30), rows=2, cols=3)
        assert len(points) == 6
        assert sorted({x for x, _ in points}) == pytest.approx([10.0, 20.0, 30.0])
        assert sorted({z for _, z in points}) == pytest.approx([10.0, 20.0])


def test_rectangular_collision():
    a = Region(0, 10, 0, 10)
    assert check_rectangular_collision(a, Region(5, 15, 5, 15))
    assert not check_rectangular_collision(a, Region(10, 20, 0, 10))  # Touching edges
    assert check_rectangular_collision(a, Region(11, 20, 0, 10), padding=2.0)
