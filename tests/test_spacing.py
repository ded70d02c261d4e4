"""Tests for footprint overlap and placement validation."""

import math

import pytest

from placement_engine.schema import AssetFootprint, Region
from placement_engine.spacing import (
    AcceptanceOrder,
    calculate_min_distance,
    compute_footprint_overlap,
    pair_conflict,
    validate_placements,
)

BOUNDS = Region(0.0, 400.0, 0.0, 400.0)


class TestMinDistance:

    def test_symmetric(self):
        assert calculate_min_distance("buildings", "props") == calculate_min_distance("props", "buildings")

    def test_pair_table(self):
        assert calculate_min_distance("buildings", "buildings") == 8.0
        assert calculate_min_distance("buildings", "props") == 1.5

    def test_falls_back_to_category_defaults(self):
        assert calculate_min_distance("vehicles", "props") == 4.0
        assert calculate_min_distance("unknown", "unknown") == 2.0


class TestFootprintOverlap:

    def test_circles(self, make_instance):
        a = make_instance("a", 0, 0, footprint=AssetFootprint(radius=2.0))
        b = make_instance("b", 3, 0, footprint=AssetFootprint(radius=2.0))
        assert compute_footprint_overlap(a, b) == pytest.approx(1.0)
        c = make_instance("c", 5, 0, footprint=AssetFootprint(radius=2.0))
        assert compute_footprint_overlap(a, c) == 0.0

    def test_circle_and_box(self, make_instance):
        box = make_instance("box", 0, 0, footprint=AssetFootprint(half_extents=(4.0, 1.0)))
        near = make_instance("near", 0, 1.5, footprint=AssetFootprint(radius=1.0))
        far = make_instance("far", 0, 2.5, footprint=AssetFootprint(radius=1.0))
        assert compute_footprint_overlap(box, near) == pytest.approx(0.5)
        assert compute_footprint_overlap(far, box) == 0.0

    def test_rotation_matters_for_boxes(self, make_instance):
        wide = AssetFootprint(half_extents=(5.0, 0.5))
        a = make_instance("a", 0, 0, footprint=wide)
        # Along the long axis of `a` a circle at x=4 overlaps; rotate `a` a quarter turn and it clears
        post = make_instance("p", 4.0, 0, footprint=AssetFootprint(radius=0.4))
        assert compute_footprint_overlap(a, post) > 0
        turned = make_instance("t", 0, 0, footprint=wide, yaw=math.pi / 2)
        assert compute_footprint_overlap(turned, post) == 0.0

    def test_box_box_separating_axis(self, make_instance):
        box = AssetFootprint(half_extents=(2.0, 2.0))
        a = make_instance("a", 0, 0, footprint=box)
        b = make_instance("b", 3.5, 0, footprint=box)
        assert compute_footprint_overlap(a, b) == pytest.approx(0.5)
        # Diamond corner reaches 2.83 from its centre, short of a's face at x=2
        c = make_instance("c", 4.9, 0, footprint=box, yaw=math.pi / 4)
        assert compute_footprint_overlap(a, c) == 0.0


class TestValidatePlacements:

    def test_rejects_out_of_bounds(self, make_instance):
        edge = make_instance("edge", 400.0, 10.0)
        inside = make_instance("in", 399.9, 10.0)
        outcome = validate_placements([edge, inside], [], BOUNDS)
        assert [i.id for i in outcome.accepted] == ["in"]
        assert outcome.rejected[0].reason == "out_of_bounds"

    def test_first_come_first_accepted(self, make_instance):
        a = make_instance("a", 50, 50)
        b = make_instance("b", 50.5, 50)
        outcome = validate_placements([a, b], [], BOUNDS)
        assert [i.id for i in outcome.accepted] == ["a"]
        assert outcome.rejected[0].conflicting_id == "a"

    def test_existing_instances_win(self, make_instance):
        existing = make_instance("old", 50, 50, category="buildings", footprint=AssetFootprint(radius=4.0))
        candidate = make_instance("new", 55, 50, category="buildings", footprint=AssetFootprint(radius=1.0))
        outcome = validate_placements([candidate], [existing], BOUNDS)
        assert not outcome.accepted
        assert outcome.reasons() == ["min_distance"]

    def test_footprint_size_order(self, make_instance):
        small = make_instance("small", 50, 50, footprint=AssetFootprint(radius=0.5))
        big = make_instance("big", 51, 50, footprint=AssetFootprint(radius=3.0))
        insertion = validate_placements([small, big], [], BOUNDS, AcceptanceOrder.INSERTION)
        by_size = validate_placements([small, big], [], BOUNDS, AcceptanceOrder.FOOTPRINT_SIZE)
        assert [i.id for i in insertion.accepted] == ["small"]
        assert [i.id for i in by_size.accepted] == ["big"]

    def test_floor_applies_only_between_candidates(self, make_instance):
        existing = make_instance("old", 50, 50)
        a = make_instance("a", 52, 50)
        b = make_instance("b", 54, 50)
        outcome = validate_placements([a, b], [existing], BOUNDS, min_distance_floor=3.0)
        assert [i.id for i in outcome.accepted] == ["a"]

    def test_accepted_pairs_are_separated(self, make_instance):
        candidates = [make_instance(f"c{i}", 10 + (i % 10) * 1.2, 10 + (i // 10) * 1.2) for i in range(100)]
        outcome = validate_placements(candidates, [], BOUNDS)
        for i, a in enumerate(outcome.accepted):
            for b in outcome.accepted[i + 1:]:
                assert pair_conflict(a, b) is None
