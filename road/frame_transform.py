"""
Conversions between world (x, y) and road frame (s, d) coordinates.

The road frame is defined by the RoadMap centerline polyline:
  * s: longitudinal progress along the centerline (wraps at track_length)
  * d: signed lateral offset, positive to the right of the driving direction

to_road_frame is a local approximation; it is only meaningful for positions
close to the polyline.
"""

from __future__ import annotations

import math
from typing import NamedTuple, Tuple

import numpy as np

from road.road_map import RoadMap


class RoadFramePoint(NamedTuple):
    s: float
    d: float


def _angle_between(a: float, b: float) -> float:
    """Absolute angle between two headings, in [0, pi]."""
    diff = abs(a - b) % (2.0 * math.pi)
    return min(2.0 * math.pi - diff, diff)


def closest_waypoint(road_map: RoadMap, x: float, y: float) -> int:
    """Index of the waypoint nearest to (x, y); first one wins ties."""
    distances = np.hypot(road_map.x - x, road_map.y - y)
    return int(np.argmin(distances))


def next_waypoint(road_map: RoadMap, x: float, y: float, heading: float) -> int:
    """
    Index of the next waypoint ahead of (x, y) for the given heading (rad).

    The closest waypoint is skipped in favor of its successor when it lies
    more than pi/4 away from the heading, i.e. behind or beside the vehicle.
    """
    index = closest_waypoint(road_map, x, y)
    direction = math.atan2(road_map.y[index] - y, road_map.x[index] - x)
    if _angle_between(heading, direction) > math.pi / 4.0:
        index = (index + 1) % len(road_map)
    return index


def to_road_frame(road_map: RoadMap, x: float, y: float, heading: float) -> RoadFramePoint:
    """Project (x, y) onto the centerline segment ending at the next waypoint."""
    next_wp = next_waypoint(road_map, x, y, heading)
    prev_wp = next_wp - 1 if next_wp > 0 else len(road_map) - 1

    n_x = road_map.x[next_wp] - road_map.x[prev_wp]
    n_y = road_map.y[next_wp] - road_map.y[prev_wp]
    x_x = x - road_map.x[prev_wp]
    x_y = y - road_map.y[prev_wp]

    proj_norm = (x_x * n_x + x_y * n_y) / (n_x * n_x + n_y * n_y)
    proj_x = proj_norm * n_x
    proj_y = proj_norm * n_y

    d = math.hypot(x_x - proj_x, x_y - proj_y)

    # Positions no farther from the reference point than their projection
    # lie on the reference point's side, which is the negative side.
    center_x = road_map.frame_reference_point[0] - road_map.x[prev_wp]
    center_y = road_map.frame_reference_point[1] - road_map.y[prev_wp]
    center_to_pos = math.hypot(center_x - x_x, center_y - x_y)
    center_to_ref = math.hypot(center_x - proj_x, center_y - proj_y)
    if center_to_pos <= center_to_ref:
        d = -d

    s = float(road_map.s[prev_wp]) + math.hypot(proj_x, proj_y)
    return RoadFramePoint(s=s, d=float(d))


def to_cartesian(road_map: RoadMap, s: float, d: float) -> Tuple[float, float]:
    """
    Place a point at progress s and lateral offset d.

    s is wrapped modulo the track length before the segment lookup. On the
    closing segment (last waypoint back to the first) the point is
    extrapolated along that segment's heading, which is less accurate when
    the stored progress there does not match the chord length.
    """
    s = road_map.wrap(s)
    prev_wp = road_map.segment_index(s)
    seg_s = s - road_map.s[prev_wp]
    if seg_s < 0.0:
        # progress before the first waypoint belongs to the closing segment
        seg_s += road_map.track_length

    heading = road_map.segment_headings[prev_wp]
    seg_x = road_map.x[prev_wp] + seg_s * math.cos(heading)
    seg_y = road_map.y[prev_wp] + seg_s * math.sin(heading)

    perp_heading = heading - math.pi / 2.0
    return (
        float(seg_x + d * math.cos(perp_heading)),
        float(seg_y + d * math.sin(perp_heading)),
    )
