"""
Shared synthetic road maps.

Both tracks run counter-clockwise around the default frame reference point
(1000, 2000), so positive d is the outside of the loop, to the right of the
driving direction, matching the simulator's highway map.
"""

import numpy as np
import pytest

from road.road_map import RoadMap


def _road_map_from_positions(x: np.ndarray, y: np.ndarray) -> RoadMap:
    seg = np.hypot(np.diff(x), np.diff(y))
    s = np.concatenate([[0.0], np.cumsum(seg)])
    closing = np.hypot(x[0] - x[-1], y[0] - y[-1])
    headings = np.arctan2(np.roll(y, -1) - y, np.roll(x, -1) - x)
    # unit normal pointing to the right of travel
    dx = np.sin(headings)
    dy = -np.cos(headings)
    return RoadMap(x, y, s, dx, dy, track_length=s[-1] + closing)


@pytest.fixture
def circular_road_map() -> RoadMap:
    """Radius 300 m loop sampled with 120 waypoints (~15.7 m apart)."""
    theta = np.linspace(0.0, 2.0 * np.pi, 120, endpoint=False)
    return _road_map_from_positions(1000.0 + 300.0 * np.cos(theta), 2000.0 + 300.0 * np.sin(theta))


@pytest.fixture
def rectangular_road_map() -> RoadMap:
    """
    2000 x 4000 m rectangle with waypoints every 50 m.

    The bottom edge runs along y=0 from x=0 to x=1950 heading +x, so there
    s == x and d == -y.
    """
    bottom = [(x, 0.0) for x in np.arange(0.0, 2000.0, 50.0)]
    right = [(2000.0, y) for y in np.arange(0.0, 4000.0, 50.0)]
    top = [(x, 4000.0) for x in np.arange(2000.0, 0.0, -50.0)]
    left = [(0.0, y) for y in np.arange(4000.0, 0.0, -50.0)]
    points = np.array(bottom + right + top + left)
    return _road_map_from_positions(points[:, 0], points[:, 1])


@pytest.fixture
def telemetry_payload():
    """Factory for simulator telemetry payloads (degrees, mph)."""
    def _make(x, y, yaw_deg=0.0, speed_mph=0.0, previous_path=(), sensor_fusion=(),
              s=0.0, d=6.0, end_path_s=0.0, end_path_d=0.0):
        previous_path = list(previous_path)
        return {
            "x": float(x),
            "y": float(y),
            "s": float(s),
            "d": float(d),
            "yaw": float(yaw_deg),
            "speed": float(speed_mph),
            "previous_path_x": [float(p[0]) for p in previous_path],
            "previous_path_y": [float(p[1]) for p in previous_path],
            "end_path_s": float(end_path_s),
            "end_path_d": float(end_path_d),
            "sensor_fusion": [list(map(float, r)) for r in sensor_fusion],
        }
    return _make
