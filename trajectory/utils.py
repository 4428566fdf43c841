from __future__ import annotations

import math
from typing import Tuple

import numpy as np

MPH_TO_MPS = 0.44704


def mph_to_mps(speed_mph: float) -> float:
    return float(speed_mph) * MPH_TO_MPS


def deg2rad(angle_deg: float) -> float:
    return float(angle_deg) * math.pi / 180.0


def to_local_frame(
    points: np.ndarray,
    origin: Tuple[float, float],
    heading: float,
) -> np.ndarray:
    """
    Express world points in a frame centered at origin with heading along +x.

    Args:
        points: (N, 2) world coordinates
        origin: frame origin in world coordinates
        heading: frame x-axis direction in world (radians)
    """
    shifted = np.asarray(points, dtype=float) - np.asarray(origin, dtype=float)
    cos_h = math.cos(-heading)
    sin_h = math.sin(-heading)
    local_x = shifted[:, 0] * cos_h - shifted[:, 1] * sin_h
    local_y = shifted[:, 0] * sin_h + shifted[:, 1] * cos_h
    return np.column_stack([local_x, local_y])


def to_world_frame(
    points: np.ndarray,
    origin: Tuple[float, float],
    heading: float,
) -> np.ndarray:
    """Inverse of to_local_frame."""
    local = np.asarray(points, dtype=float)
    cos_h = math.cos(heading)
    sin_h = math.sin(heading)
    world_x = local[:, 0] * cos_h - local[:, 1] * sin_h + origin[0]
    world_y = local[:, 0] * sin_h + local[:, 1] * cos_h + origin[1]
    return np.column_stack([world_x, world_y])


def path_end_heading(points: np.ndarray, fallback: float) -> Tuple[float, float]:
    """
    Direction of travel at the end of a point path.

    Returns (heading, back_distance): the heading from the last point that
    differs from the final one, and the distance to that point. Paths whose
    points all coincide (a held stop) yield ``fallback`` and 0.
    """
    points = np.asarray(points, dtype=float).reshape(-1, 2)
    if len(points) < 2:
        return fallback, 0.0
    offsets = points[-1] - points[:-1]
    distances = np.hypot(offsets[:, 0], offsets[:, 1])
    moved = np.nonzero(distances > 0.0)[0]
    if len(moved) == 0:
        return fallback, 0.0
    i = moved[-1]
    return float(math.atan2(offsets[i, 1], offsets[i, 0])), float(distances[i])
