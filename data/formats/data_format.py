"""
Data format definitions for planner telemetry and cycle recordings.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any
import numpy as np

from behavior.traffic import TrackedObject


@dataclass
class Telemetry:
    """One inbound telemetry event, already converted to SI units."""
    x: float
    y: float
    yaw: float  # radians
    speed: float  # m/s
    s: float  # advisory, as reported by the simulator
    d: float
    leftover: np.ndarray  # [N, 2] unconsumed points of the previous trajectory
    end_path_s: float = 0.0
    end_path_d: float = 0.0
    sensor_fusion: List[TrackedObject] = field(default_factory=list)
    timestamp: Optional[float] = None


@dataclass
class CycleRecord:
    """Everything worth keeping from one planning cycle."""
    timestamp: float
    cycle_id: int
    # Ego pose as received
    ego_x: float
    ego_y: float
    ego_yaw: float  # radians
    ego_speed: float  # m/s
    ego_s: float  # planning progress (end of leftover trajectory)
    # Behavior decision
    lane: int
    reference_speed: float  # m/s
    too_close: bool
    lane_change: int  # -1 left, 0 keep, +1 right
    # Trajectory
    trajectory_points: np.ndarray  # [horizon, 2]
    reused_count: int
    num_tracked_objects: int = 0
    duration: float = 0.0  # seconds spent planning
    session_id: str = "default"  # planning session that produced the cycle
    metadata: Optional[Dict[str, Any]] = None
