"""
Per-cycle traffic model built from the sensor fusion snapshot.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence


def lane_center(lane: int, lane_width: float) -> float:
    """Lateral offset d of a lane's centerline."""
    return lane_width * lane + lane_width / 2.0


def is_in_lane(d: float, lane: int, lane_width: float) -> bool:
    """True if d falls in the [lane*W, (lane+1)*W) band."""
    return lane_width * lane <= d < lane_width * (lane + 1)


def progress_gap(target_s: float, ego_s: float, track_length: Optional[float] = None) -> float:
    """
    Signed longitudinal gap from ego to target.

    With a track length the gap is wrapped into [-L/2, L/2) so traffic just
    across the lap seam is still seen as nearby.
    """
    gap = target_s - ego_s
    if track_length:
        half = track_length / 2.0
        gap = (gap + half) % track_length - half
    return gap


@dataclass(frozen=True)
class TrackedObject:
    """Vehicle reported by sensor fusion; no identity across cycles."""
    id: int
    x: float
    y: float
    vx: float  # m/s
    vy: float  # m/s
    s: float
    d: float

    @property
    def speed(self) -> float:
        return math.hypot(self.vx, self.vy)

    def propagated_s(self, cycles: int, step_time: float) -> float:
        """Constant-velocity estimate of s after `cycles` steps of `step_time`."""
        return self.s + cycles * step_time * self.speed

    @classmethod
    def from_sensor_fusion(cls, record: Sequence[float]) -> "TrackedObject":
        """Build from a ``[id, x, y, vx, vy, s, d]`` record."""
        if len(record) < 7:
            raise ValueError(f"Sensor fusion record needs 7 fields, got {len(record)}")
        return cls(
            id=int(record[0]),
            x=float(record[1]),
            y=float(record[2]),
            vx=float(record[3]),
            vy=float(record[4]),
            s=float(record[5]),
            d=float(record[6]),
        )
