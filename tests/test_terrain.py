"""Tests for terrain anchoring, heightmap edits and rebalancing."""

import numpy as np
import pytest

from placement_engine.schema import AssetFootprint, DiagnosticKind, Region, WorldGrid
from placement_engine.terrain import (
    TerrainOp,
    apply_terrain_height,
    apply_terrain_modification,
    apply_zone_modification,
    rebalance_placements,
    revert_terrain_changes,
)


def _small_world(levels):
    levels = np.asarray(levels, dtype=np.int32)
    return WorldGrid(levels.shape[0], 10.0, levels)


class TestTerrainHeight:

    def test_height_plus_scaled_offset(self, make_instance):
        world = WorldGrid.flat(level=2)
        instance = make_instance("lamp", 15, 15, footprint=AssetFootprint(radius=0.5, vertical_offset=0.5), scale=2.0)
        anchored = apply_terrain_height(instance, world)
        assert anchored.y == pytest.approx(2 * world.height_scale + 1.0)
        assert anchored.xz == instance.xz
        assert instance.y == 0.0

    def test_nearest_tile(self, make_instance):
        world = _small_world([[0, 0], [0, 5]])
        assert apply_terrain_height(make_instance("a", 15, 15), world).y == pytest.approx(10.0)
        assert apply_terrain_height(make_instance("b", 5, 15), world).y == 0.0


class TestTerrainModification:

    def test_flatten_to_rounded_mean(self):
        world = _small_world([[1, 2, 0, 0], [3, 4, 0, 0], [0, 0, 0, 0], [0, 0, 0, 0]])
        changes = apply_zone_modification(world, Region(0, 19, 0, 19), TerrainOp.FLATTEN)
        assert world.heightmap[:2, :2].tolist() == [[3, 3], [3, 3]]
        assert len(changes) == 3  # The 3 cell already held the target

    def test_flatten_to_level_under_footprint(self):
        world = _small_world(np.full((4, 4), 5))
        footprint = AssetFootprint(half_extents=(4.0, 4.0))
        apply_terrain_modification(world, footprint, (15.0, 15.0), TerrainOp.FLATTEN, level=2)
        assert world.heightmap[1, 1] == 2
        assert world.heightmap[3, 3] == 5

    def test_raise_and_lower_clamp(self):
        world = _small_world(np.full((3, 3), 10))
        apply_zone_modification(world, Region(0, 29, 0, 29), TerrainOp.RAISE, amount=20)
        assert world.heightmap.max() == world.max_elevation
        apply_zone_modification(world, Region(0, 29, 0, 29), TerrainOp.LOWER, amount=40)
        assert world.heightmap.min() == 0
        assert world.heightmap.dtype == np.int32
        assert world.heightmap.shape == (3, 3)

    def test_smooth_uses_neighbourhood(self):
        world = _small_world([[0, 0, 0], [0, 9, 0], [0, 0, 0]])
        apply_zone_modification(world, Region(10, 19, 10, 19), TerrainOp.SMOOTH)
        assert world.heightmap[1, 1] == 1

    def test_zone_outside_world_is_clamped(self):
        world = _small_world(np.zeros((3, 3)))
        changes = apply_zone_modification(world, Region(25, 60, 25, 60), TerrainOp.RAISE)
        assert [(c.ix, c.iz) for c in changes] == [(2, 2)]

    def test_revert(self):
        world = _small_world([[1, 2], [3, 4]])
        original = world.heightmap.copy()
        changes = apply_zone_modification(world, Region(0, 19, 0, 19), TerrainOp.RAISE, amount=3)
        changes += apply_zone_modification(world, Region(0, 9, 0, 9), TerrainOp.FLATTEN, level=0)
        revert_terrain_changes(world, changes)
        assert np.array_equal(world.heightmap, original)


class TestRebalance:

    def test_unchanged_ground_is_untouched(self, world, make_instance):
        instances = [make_instance("a", 100, 100, world=world), make_instance("b", 200, 200, world=world)]
        report = rebalance_placements(instances, world)
        assert report.updated == []
        assert report.invalidated == []
        assert [i.position for i in report.instances] == [i.position for i in instances]

    def test_reanchors_and_is_idempotent(self, world, make_instance):
        instances = [make_instance("a", 55, 55, world=world), make_instance("b", 155, 155, world=world)]
        apply_zone_modification(world, Region(50, 59, 50, 59), TerrainOp.RAISE, amount=2)

        first = rebalance_placements(instances, world)
        assert first.updated == ["a"]
        assert first.instances[0].y == pytest.approx(2 * world.height_scale)
        assert first.invalidated == []

        second = rebalance_placements(first.instances, world)
        assert second.updated == []
        assert second.invalidated == []

    def test_uneven_ground_invalidates(self, world, make_instance):
        # Footprint straddles tiles 0 and 1; only tile 1 (the centre) is raised
        rock = make_instance("rock", 10.5, 5, footprint=AssetFootprint(radius=2.0), world=world)
        apply_zone_modification(world, Region(10.5, 19, 0.5, 9), TerrainOp.RAISE, amount=3)

        report = rebalance_placements([rock], world)
        assert report.updated == ["rock"]
        assert report.invalidated == ["rock"]
        assert report.diagnostics[0].kind == DiagnosticKind.TERRAIN_INCONSISTENCY
        assert "steps 3 levels" in report.diagnostics[0].message

    def test_step_tolerance(self, world, make_instance):
        rock = make_instance("rock", 10.5, 5, footprint=AssetFootprint(radius=2.0), world=world)
        apply_zone_modification(world, Region(10.5, 19, 0.5, 9), TerrainOp.RAISE, amount=3)
        assert rebalance_placements([rock], world, step_tolerance=3).invalidated == []

    def test_overlap_on_same_plane_invalidates(self, world, make_instance):
        a = make_instance("a", 55.0, 55.0, world=world)
        b = make_instance("b", 55.5, 55.0, world=world)
        apply_zone_modification(world, Region(50, 59, 50, 59), TerrainOp.RAISE)
        report = rebalance_placements([a, b], world)
        assert report.invalidated == ["a", "b"]
