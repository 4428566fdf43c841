"""
Tests for world <-> road frame conversion.
"""

import math

import numpy as np
import pytest

from behavior.traffic import lane_center
from road.frame_transform import (
    closest_waypoint,
    next_waypoint,
    to_cartesian,
    to_road_frame,
)


class TestClosestAndNextWaypoint:

    def test_closest_waypoint(self, rectangular_road_map):
        assert closest_waypoint(rectangular_road_map, 512.0, -3.0) == 10

    def test_closest_waypoint_tie_prefers_first(self, rectangular_road_map):
        # (525, 0) is exactly 25 m from waypoints 10 and 11
        assert closest_waypoint(rectangular_road_map, 525.0, 0.0) == 10

    def test_next_waypoint_skips_waypoint_behind(self, rectangular_road_map):
        assert next_waypoint(rectangular_road_map, 510.0, -2.0, 0.0) == 11

    def test_next_waypoint_keeps_waypoint_ahead(self, rectangular_road_map):
        assert next_waypoint(rectangular_road_map, 490.0, -2.0, 0.0) == 10

    def test_next_waypoint_depends_on_heading(self, rectangular_road_map):
        assert next_waypoint(rectangular_road_map, 490.0, -2.0, math.pi) == 11

    def test_next_waypoint_wraps_to_first(self, rectangular_road_map):
        last = len(rectangular_road_map) - 1
        assert closest_waypoint(rectangular_road_map, 2.0, 40.0) == last
        assert next_waypoint(rectangular_road_map, 2.0, 40.0, -math.pi / 2.0) == 0

    def test_next_waypoint_handles_unnormalized_heading(self, rectangular_road_map):
        assert next_waypoint(rectangular_road_map, 490.0, -2.0, 4.0 * math.pi) == 10


class TestToRoadFrame:

    def test_straight_edge_coordinates(self, rectangular_road_map):
        s, d = to_road_frame(rectangular_road_map, 512.0, -6.0, 0.0)
        assert s == pytest.approx(512.0)
        assert d == pytest.approx(6.0)

    def test_sign_of_d(self, rectangular_road_map):
        # outside the loop (away from the reference point) is positive
        assert to_road_frame(rectangular_road_map, 700.0, -3.0, 0.0).d == pytest.approx(3.0)
        assert to_road_frame(rectangular_road_map, 700.0, 3.0, 0.0).d == pytest.approx(-3.0)

    def test_right_edge(self, rectangular_road_map):
        # right edge heads +y starting at s=2000; outside is +x
        s, d = to_road_frame(rectangular_road_map, 2010.0, 130.0, math.pi / 2.0)
        assert s == pytest.approx(2130.0)
        assert d == pytest.approx(10.0)

    def test_across_lap_seam(self, rectangular_road_map):
        # on the closing segment from (0, 50) down to (0, 0)
        s, d = to_road_frame(rectangular_road_map, -6.0, 20.0, -math.pi / 2.0)
        assert s == pytest.approx(11980.0)
        assert d == pytest.approx(6.0)


class TestToCartesian:

    def test_straight_edge(self, rectangular_road_map):
        x, y = to_cartesian(rectangular_road_map, 512.0, 6.0)
        assert x == pytest.approx(512.0)
        assert y == pytest.approx(-6.0)

    def test_wraps_progress_beyond_track_length(self, rectangular_road_map):
        length = rectangular_road_map.track_length
        np.testing.assert_allclose(
            to_cartesian(rectangular_road_map, length + 30.0, 2.0),
            to_cartesian(rectangular_road_map, 30.0, 2.0),
        )

    def test_wraps_negative_progress(self, rectangular_road_map):
        x, y = to_cartesian(rectangular_road_map, -20.0, 0.0)
        assert x == pytest.approx(0.0)
        assert y == pytest.approx(20.0)

    def test_closing_segment_interpolates_back_to_first_waypoint(self, circular_road_map):
        last = len(circular_road_map) - 1
        closing = circular_road_map.track_length - circular_road_map.s[last]
        x, y = to_cartesian(circular_road_map, circular_road_map.s[last] + closing / 2.0, 0.0)
        midpoint = [
            (circular_road_map.x[last] + circular_road_map.x[0]) / 2.0,
            (circular_road_map.y[last] + circular_road_map.y[0]) / 2.0,
        ]
        np.testing.assert_allclose([x, y], midpoint, atol=1e-9)


class TestRoundTrip:

    def test_every_waypoint_round_trips(self, circular_road_map):
        for i in range(len(circular_road_map)):
            heading = circular_road_map.segment_headings[i]
            s, d = to_road_frame(circular_road_map, circular_road_map.x[i], circular_road_map.y[i], heading)
            x, y = to_cartesian(circular_road_map, s, d)
            assert x == pytest.approx(circular_road_map.x[i], abs=1e-6)
            assert y == pytest.approx(circular_road_map.y[i], abs=1e-6)

    def test_every_waypoint_round_trips_on_rectangle(self, rectangular_road_map):
        for i in range(len(rectangular_road_map)):
            heading = rectangular_road_map.segment_headings[i]
            s, d = to_road_frame(rectangular_road_map, rectangular_road_map.x[i], rectangular_road_map.y[i], heading)
            x, y = to_cartesian(rectangular_road_map, s, d)
            assert x == pytest.approx(rectangular_road_map.x[i], abs=1e-6)
            assert y == pytest.approx(rectangular_road_map.y[i], abs=1e-6)

    def test_offset_points_round_trip_mid_segment(self, rectangular_road_map):
        for s in (120.0, 2420.0, 5530.0, 9010.0):
            for d in (-3.0, 2.0, 6.0, 10.0):
                x, y = to_cartesian(rectangular_road_map, s, d)
                heading = rectangular_road_map.segment_headings[rectangular_road_map.segment_index(s)]
                back = to_road_frame(rectangular_road_map, x, y, heading)
                assert back.s == pytest.approx(s, abs=1e-6)
                assert back.d == pytest.approx(d, abs=1e-6)


class TestLaneContainment:

    @pytest.mark.parametrize("lane", [0, 1, 2])
    def test_lane_centerline_stays_in_lane_band(self, circular_road_map, lane):
        lane_width = 4.0
        d_center = lane_center(lane, lane_width)
        for i in range(0, len(circular_road_map) - 1, 7):
            s = circular_road_map.s[i] + 0.5 * (circular_road_map.s[i + 1] - circular_road_map.s[i])
            x, y = to_cartesian(circular_road_map, s, d_center)
            heading = circular_road_map.segment_headings[i]
            _, d = to_road_frame(circular_road_map, x, y, heading)
            assert lane * lane_width <= d < (lane + 1) * lane_width
