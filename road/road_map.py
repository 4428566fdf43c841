"""
Road map: the fixed polyline of highway centerline waypoints.
Loaded once at startup and shared read-only by every planning session.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_FRAME_REFERENCE_POINT = (1000.0, 2000.0)


class RoadMapError(ValueError):
    """Raised when waypoint data cannot describe a valid periodic road."""


class RoadMap:
    """
    Immutable, periodic sequence of waypoints.

    Progress wraps at ``track_length``; the last waypoint connects back to
    the first through a closing segment covering ``[s[-1], track_length)``.
    """

    def __init__(
        self,
        x,
        y,
        s,
        dx,
        dy,
        track_length: float,
        frame_reference_point: Tuple[float, float] = DEFAULT_FRAME_REFERENCE_POINT,
    ):
        arrays = [np.array(values, dtype=float) for values in (x, y, s, dx, dy)]
        lengths = {len(a) for a in arrays}
        if len(lengths) != 1:
            raise RoadMapError(f"Waypoint columns have mismatched lengths: {sorted(lengths)}")
        if arrays[0].ndim != 1 or len(arrays[0]) < 2:
            raise RoadMapError("Road map needs at least 2 waypoints to interpolate")
        if not all(np.all(np.isfinite(a)) for a in arrays):
            raise RoadMapError("Road map contains non-finite values")

        self.x, self.y, self.s, self.dx, self.dy = arrays
        if np.any(np.diff(self.s) < 0.0):
            bad = int(np.argmax(np.diff(self.s) < 0.0)) + 1
            raise RoadMapError(f"Waypoint progress is not sorted (index {bad}, s={self.s[bad]:.3f})")

        self.track_length = float(track_length)
        if not np.isfinite(self.track_length) or self.track_length <= self.s[-1]:
            raise RoadMapError(
                f"Track length {self.track_length} must exceed last waypoint progress {self.s[-1]:.3f}"
            )

        # Includes the closing segment last -> first.
        seg_dx = np.roll(self.x, -1) - self.x
        seg_dy = np.roll(self.y, -1) - self.y
        if np.any(np.hypot(seg_dx, seg_dy) == 0.0):
            raise RoadMapError("Road map has consecutive waypoints at the same position")
        self.segment_headings = np.arctan2(seg_dy, seg_dx)

        ref_x, ref_y = frame_reference_point
        self.frame_reference_point = (float(ref_x), float(ref_y))

        for a in (*arrays, self.segment_headings):
            a.flags.writeable = False

    def __len__(self) -> int:
        return len(self.x)

    def wrap(self, s: float) -> float:
        """Wrap progress into [0, track_length)."""
        wrapped = float(s) % self.track_length
        # float modulo can round up to the modulus itself
        return 0.0 if wrapped >= self.track_length else wrapped

    def segment_index(self, s: float) -> int:
        """
        Index of the segment whose progress bracket contains ``s``.

        Segment ``i`` covers ``[s[i], s[i+1])``; the last index covers the
        closing segment back to the first waypoint. ``s`` is wrapped first.
        Progress before the first waypoint falls into the closing segment.
        """
        s = self.wrap(s)
        index = int(np.searchsorted(self.s, s, side="right")) - 1
        if index < 0:
            return len(self) - 1
        return index


def load_road_map(
    path: Union[str, Path],
    track_length: float,
    frame_reference_point: Tuple[float, float] = DEFAULT_FRAME_REFERENCE_POINT,
) -> RoadMap:
    """
    Load waypoints from a whitespace-separated ``x y s dx dy`` file.

    Raises:
        FileNotFoundError: if the file does not exist
        RoadMapError: if the data is malformed or inconsistent
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Road map file not found: {path}")

    try:
        data = np.loadtxt(path, dtype=float, ndmin=2)
    except ValueError as e:
        raise RoadMapError(f"Could not parse road map {path}: {e}") from e

    if data.shape[1] != 5:
        raise RoadMapError(f"Expected 5 columns (x y s dx dy) in {path}, got {data.shape[1]}")

    road_map = RoadMap(
        data[:, 0], data[:, 1], data[:, 2], data[:, 3], data[:, 4],
        track_length=track_length,
        frame_reference_point=frame_reference_point,
    )
    logger.info(
        "Loaded road map from %s: %d waypoints, track length %.3f",
        path, len(road_map), road_map.track_length,
    )
    return road_map
