"""Tests for cameras and camera-aware composition."""

import math
from itertools import combinations

import pytest

from placement_engine.cameras import camera_rig, depth_band, get_camera
from placement_engine.composition import (
    ROLE_ORDER,
    LayerSpec,
    _edge_counts,
    _occludes,
    background_placement,
    behind_placement,
    density_gradient_sampling,
    execute_layered_placement,
    facing_rotation,
    frame_placement,
    leading_line_placement,
)
from placement_engine.schema import AssetFootprint, NodeStatus, Region, SubjectSpec

WORLD = Region(0.0, 400.0, 0.0, 400.0)


def test_facing_rotation():
    assert facing_rotation((0, 0), (10, 0)) == pytest.approx(math.pi / 2)
    assert facing_rotation((0, 0), (0, 10)) == pytest.approx(0.0)
    assert abs(facing_rotation((0, 0), (0, -5))) == pytest.approx(math.pi)


class TestCameras:

    def test_catalog_lookup(self):
        assert get_camera("Close_Up").distance == 12.0
        assert get_camera("crane") is None
        assert get_camera(None) is None

    def test_depth_band_scales_with_distance(self):
        assert depth_band("close_up", "foreground") == pytest.approx((3.6, 8.4))
        assert depth_band("tracking_behind", "background") == pytest.approx((52.0, 72.0))
        with pytest.raises(ValueError):
            depth_band("close_up", "sky")

    def test_rig_sits_behind_focal(self):
        rig = camera_rig("wide_establishing", (200.0, 200.0))
        assert rig.position == pytest.approx((200.0, 130.0))
        assert rig.in_view((200.0, 200.0))
        assert not rig.in_view((200.0, 100.0))

        turned = camera_rig("tracking_behind", (200.0, 200.0), view_yaw=math.pi / 2)
        assert turned.position == pytest.approx((160.0, 200.0))
        assert turned.bearing((200.0, 200.0)) == pytest.approx(0.0)


class TestFramePlacement:

    def test_subjects_in_view_and_band(self):
        rig = camera_rig("tracking_behind", (200.0, 200.0))
        near, far = depth_band("tracking_behind", "midground")
        poses = frame_placement("tracking_behind", 5, "midground", (200.0, 200.0), rng=1)
        assert len(poses) == 5
        for pose in poses:
            assert rig.in_view((pose.x, pose.z))
            assert near - 1e-9 <= rig.distance_to((pose.x, pose.z)) <= far + 1e-9
            assert pose.yaw == pytest.approx(facing_rotation((pose.x, pose.z), rig.position))

    def test_slots_spread_left_to_right(self):
        rig = camera_rig("orbit", (100.0, 100.0))
        poses = frame_placement("orbit", 4, "foreground", (100.0, 100.0), rng=2)
        bearings = [rig.bearing((p.x, p.z)) for p in poses]
        assert bearings == sorted(bearings)


class TestBehindPlacement:

    def test_strictly_behind_foreground(self):
        poses = behind_placement((200.0, 200.0), 20, min_offset=5.0, foreground=[(200.0, 220.0)], rng=3)
        assert len(poses) == 20
        assert all(math.hypot(p.x - 200, p.z - 200) > 25.0 for p in poses)

    def test_drops_candidates_clamped_short(self):
        # Looking east from next to the east edge: nothing fits behind
        poses = behind_placement((395.0, 200.0), 10, min_offset=5.0, foreground=[(395.0, 220.0)],
                                 view_yaw=math.pi / 2, bounds=WORLD, rng=3)
        assert poses == []


class TestDensityGradient:

    def test_denser_near_centre(self):
        region = Region(0.0, 100.0, 0.0, 100.0)
        points = density_gradient_sampling(region, (50.0, 50.0), 40.0, near_distance=2.0, far_distance=8.0, rng=0)
        inner = [p for p in points if math.hypot(p[0] - 50, p[1] - 50) < 10]
        outer = [p for p in points if math.hypot(p[0] - 50, p[1] - 50) > 40]
        inner_density = len(inner) / (math.pi * 10 ** 2)
        outer_density = len(outer) / (100 * 100 - math.pi * 40 ** 2)
        assert inner_density > 2 * outer_density

    def test_pairs_respect_mean_spacing(self):
        def spacing(p):
            return 2.0 + 6.0 * min(math.hypot(p[0] - 30, p[1] - 30) / 20.0, 1.0)

        points = density_gradient_sampling(Region(0, 60, 0, 60), (30.0, 30.0), 20.0, rng=4)
        for a, b in combinations(points, 2):
            assert math.hypot(a[0] - b[0], a[1] - b[1]) >= (spacing(a) + spacing(b)) / 2 - 1e-9

    def test_count_cap(self):
        points = density_gradient_sampling(Region(0, 60, 0, 60), (30.0, 30.0), 20.0, count=7, rng=4)
        assert len(points) == 7


def test_leading_line():
    poses = leading_line_placement((0.0, 0.0), (100.0, 0.0), 4, jitter=0.0)
    assert [p.x for p in poses] == pytest.approx([12.5, 37.5, 62.5, 87.5])
    assert all(p.z == pytest.approx(0.0) for p in poses)
    assert all(p.yaw == pytest.approx(math.pi / 2) for p in poses)
    assert leading_line_placement((0.0, 0.0), (1.0, 1.0), 0) == []


class TestBackgroundPlacement:

    def test_edge_shares(self):
        assert _edge_counts(10, 0.0, True) == {"N": 4, "S": 2, "E": 2, "W": 2}
        assert sum(_edge_counts(10, 0.0, False).values()) == 10
        # Looking east favours the east edge
        east = _edge_counts(20, math.pi / 2, True)
        assert east["E"] > east["W"]

    def test_points_hug_edges_and_face_focal(self):
        poses = background_placement(WORLD, (200.0, 200.0), 12, band=12.0, rng=5)
        assert 0 < len(poses) <= 12
        for pose in poses:
            to_edge = min(pose.x, 400 - pose.x, pose.z, 400 - pose.z)
            assert to_edge <= 3.0 + 12.0 + 1e-9
            assert pose.yaw == pytest.approx(facing_rotation((pose.x, pose.z), (200.0, 200.0)))


class TestLayeredPlacement:

    def _layers(self):
        return [
            LayerSpec("bushes", "foreground", SubjectSpec("nature", AssetFootprint(radius=1.0), 3)),
            LayerSpec("hills", "background", SubjectSpec("nature", AssetFootprint(radius=2.0), 6), "background"),
            LayerSpec("hero", "midground", SubjectSpec("characters", AssetFootprint(radius=0.5), 1)),
        ]

    def test_back_to_front(self, context):
        placed = execute_layered_placement(self._layers(), context, (200.0, 200.0), "tracking_behind")
        assert [r.node for r in context.reports] == ["hills", "hero", "bushes"]
        roles = [ROLE_ORDER[i.tags["role"]] for i in placed]
        assert roles == sorted(roles)
        assert placed == context.instances

    def test_nearer_layers_never_hide_farther_ones(self, context):
        placed = execute_layered_placement(self._layers(), context, (200.0, 200.0), "tracking_behind")
        rig = camera_rig("tracking_behind", (200.0, 200.0))
        for i, far in enumerate(placed):
            for near in placed[i + 1:]:
                if ROLE_ORDER[near.tags["role"]] > ROLE_ORDER[far.tags["role"]]:
                    assert not _occludes(rig, near, far)

    def test_behind_layer_uses_given_foreground(self, context):
        ridge = LayerSpec("ridge", "background", SubjectSpec("nature", AssetFootprint(radius=1.0), 4), "behind",
                          {"foreground": [(200.0, 215.0)], "min_offset": 5.0})
        placed = execute_layered_placement([ridge], context, (200.0, 200.0))
        assert placed
        assert all(math.hypot(i.x - 200, i.z - 200) > 20.0 for i in placed)

    def test_shortfall_is_reported(self, context):
        crowd = LayerSpec("crowd", "foreground", SubjectSpec("characters", AssetFootprint(radius=0.5), 40),
                          "scatter", {"zone": "200, 200", "min_distance": 4.0})
        execute_layered_placement([crowd], context, (200.0, 200.0))
        report = context.reports[0]
        assert report.status != NodeStatus.SUCCESS
        assert context.diagnostics[0].deficit == 40 - report.placed

    def test_unknown_placement(self, context):
        layer = LayerSpec("odd", "midground", SubjectSpec("props", AssetFootprint(radius=0.5)), "spiral")
        with pytest.raises(ValueError):
            execute_layered_placement([layer], context, (200.0, 200.0))
