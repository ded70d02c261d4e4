"""Tests for zone descriptors and pattern placement."""

import math

import pytest

from placement_engine import PassContext
from placement_engine.locations import execute_asset_placement, parse_semantic_location
from placement_engine.registry import StructureRegistry
from placement_engine.schema import (
    EDGE_EPSILON, AssetFootprint, DiagnosticKind, NodeStatus, Pattern, PatternRequest, Region, WorldGrid,
)
from placement_engine.spacing import pair_conflict

WORLD = Region(0.0, 400.0, 0.0, 400.0)


class TestParseSemanticLocation:

    def test_cardinal_band(self):
        zone = parse_semantic_location("north", WORLD)
        assert zone.source == "direction"
        assert zone.edge == "N"
        assert zone.region == Region(0.0, 400.0, 390.0, 400.0)

    def test_west_alias(self):
        zone = parse_semantic_location("along the western edge", WORLD, edge_band=20)
        assert zone.region == Region(0.0, 20.0, 0.0, 400.0)

    @pytest.mark.parametrize("descriptor", ["northeast", "NE corner", "north east", "the north-east"])
    def test_diagonal_quadrant(self, descriptor):
        zone = parse_semantic_location(descriptor, WORLD)
        assert zone.source == "quadrant"
        assert zone.region == Region(200.0, 400.0, 200.0, 400.0)

    def test_words_containing_direction_letters(self):
        # "scene" must not read as "ne"
        zone = parse_semantic_location("the whole scene", WORLD)
        assert zone.source == "default"
        assert zone.region == WORLD

    def test_center_inset(self):
        zone = parse_semantic_location("town centre", WORLD, margin=25)
        assert zone.source == "center"
        assert zone.region == Region(25.0, 375.0, 25.0, 375.0)

    @pytest.mark.parametrize("descriptor", ["120, 80", "(120, 80)", "at 120 80", "around 120,80"])
    def test_coordinates(self, descriptor):
        zone = parse_semantic_location(descriptor, WORLD)
        assert zone.source == "coordinates"
        assert zone.center == (120.0, 80.0)
        assert zone.region.contains(120.0, 80.0)

    def test_out_of_bounds_is_clamped(self):
        zone = parse_semantic_location("398, 398", WORLD)
        assert zone.clamped
        assert zone.region.max_x == 400.0 and zone.region.max_z == 400.0
        assert [d.kind for d in zone.diagnostics] == [DiagnosticKind.OUT_OF_BOUNDS]

    def test_zone_wholly_outside_keeps_its_size(self):
        zone = parse_semantic_location("450, 450", WORLD)
        assert zone.clamped
        assert zone.region == Region(390.0, 400.0, 390.0, 400.0)
        assert zone.center == (395.0, 395.0)
        assert [d.kind for d in zone.diagnostics] == [DiagnosticKind.OUT_OF_BOUNDS]

    def test_clamped_points_stay_off_the_max_edge(self, world):
        x, z = WORLD.clamp_point(500.0, -3.0)
        assert (x, z) == (400.0 - EDGE_EPSILON, 0.0)
        assert world.in_bounds(x, z)

    def test_unknown_descriptor_is_full_world(self):
        zone = parse_semantic_location("somewhere pleasant", WORLD)
        assert zone.region == WORLD
        assert not zone.diagnostics

    def test_structure_relations(self, make_instance, house_footprint):
        registry = StructureRegistry()
        registry.register("Tavern", make_instance("tavern", 200, 200, "buildings", house_footprint))

        near = parse_semantic_location("near the tavern", WORLD, registry)
        assert near.source == "structure"
        assert near.anchor == "tavern"
        assert near.center == (200.0, 200.0)
        assert near.region.width > 2 * 6.0

        front = parse_semantic_location("in front of the tavern", WORLD, registry)
        # Front is local +Z at yaw 0: 5 m half depth + 6 m standoff
        assert front.center == pytest.approx((200.0, 211.0))

        behind = parse_semantic_location("behind the tavern", WORLD, registry)
        assert behind.center == pytest.approx((200.0, 189.0))

    def test_unregistered_name_falls_through(self):
        zone = parse_semantic_location("near the mill", WORLD, StructureRegistry())
        assert zone.source == "default"


def _request(**kwargs):
    defaults = dict(category="props", count=10, pattern=Pattern.POISSON, footprint=AssetFootprint(radius=0.5))
    defaults.update(kwargs)
    return PatternRequest(**defaults)


class TestExecuteAssetPlacement:

    def test_partial_fulfillment(self, world):
        request = _request(count=50, region="5, 5", min_distance=4.0)
        result = execute_asset_placement(request, world)
        assert len(result.instances) <= 10
        assert result.has_deficit
        assert result.reports[0].status in (NodeStatus.PARTIAL, NodeStatus.FAILURE)
        assert any(d.kind == DiagnosticKind.UNSATISFIABLE_REGION and d.deficit == 50 - len(result.instances)
                   for d in result.diagnostics)

    def test_same_seed_same_layout(self, world, config):
        request = _request(category="nature", count=15, region="north", footprint=AssetFootprint(radius=1.5))
        first = execute_asset_placement(request, world, context=PassContext(world, config))
        second = execute_asset_placement(request, world, context=PassContext(world, config))
        assert [i.position for i in first.instances] == [i.position for i in second.instances]

    def test_instances_separated_and_in_bounds(self, world, context):
        request = _request(category="nature", count=30, region="center", footprint=AssetFootprint(radius=1.5))
        result = execute_asset_placement(request, world, context=context)
        assert len(result.instances) == 30
        for i, a in enumerate(result.instances):
            assert world.in_bounds(a.x, a.z)
            for b in result.instances[i + 1:]:
                assert pair_conflict(a, b) is None

    def test_respects_existing(self, world, make_instance, house_footprint):
        house = make_instance("house", 200, 200, "buildings", house_footprint)
        request = _request(count=20, pattern=Pattern.CLUSTER, region="200, 200", radius=12.0)
        result = execute_asset_placement(request, world, existing=[house])
        assert all(pair_conflict(i, house) is None for i in result.instances)
        assert house not in result.instances

    def test_ring_is_exact(self, world):
        request = _request(count=6, pattern=Pattern.RING, region="100, 100", radius=10.0, jitter=0.0)
        result = execute_asset_placement(request, world)
        assert len(result.instances) == 6
        for instance in result.instances:
            assert math.hypot(instance.x - 100, instance.z - 100) == pytest.approx(10.0)
            # Ring members face the centre
            assert math.atan2(100 - instance.x, 100 - instance.z) == pytest.approx(instance.yaw)

    def test_focal_places_one(self, world):
        result = execute_asset_placement(_request(count=3, pattern=Pattern.FOCAL, region="50, 60"), world)
        assert len(result.instances) == 1
        assert result.instances[0].xz == (50.0, 60.0)

    def test_focal_outside_world_is_clamped_and_placed(self, world):
        result = execute_asset_placement(_request(count=1, pattern=Pattern.FOCAL, region="450, 450"), world)
        assert [i.xz for i in result.instances] == [(395.0, 395.0)]
        assert [d.kind for d in result.diagnostics] == [DiagnosticKind.OUT_OF_BOUNDS]

    def test_edge_pattern_uses_descriptor_edge(self, world):
        request = _request(category="nature", count=8, pattern=Pattern.EDGE, region="east",
                           radius=12.0, footprint=AssetFootprint(radius=1.5))
        result = execute_asset_placement(request, world)
        assert result.instances
        assert all(i.x >= 400 - 5 - 12 for i in result.instances)

    def test_grid_pattern(self, world):
        result = execute_asset_placement(_request(count=9, pattern=Pattern.GRID, region="center", jitter=0.0), world)
        assert len(result.instances) == 9
        assert len({round(i.x, 6) for i in result.instances}) == 3

    def test_terrain_anchoring(self):
        hilly = WorldGrid.flat(level=3)
        footprint = AssetFootprint(radius=0.5, vertical_offset=0.25)
        result = execute_asset_placement(_request(count=4, footprint=footprint, region="center"), hilly)
        assert all(i.y == pytest.approx(3 * hilly.height_scale + 0.25) for i in result.instances)

    def test_ids_are_sequential(self, world, context):
        result = execute_asset_placement(_request(count=3, region="center"), world, context=context)
        assert [i.id for i in result.instances] == ["props_001", "props_002", "props_003"]
