"""
Trajectory generation.
Fits a spline through sparse anchors on the target lane and resamples it at
the reference speed, continuing from the trajectory already in flight.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np
from scipy.interpolate import CubicSpline

from behavior.traffic import lane_center
from road.frame_transform import to_cartesian
from road.road_map import RoadMap
from trajectory.utils import path_end_heading, to_local_frame, to_world_frame

logger = logging.getLogger(__name__)


class TrajectoryFitError(ValueError):
    """Raised when the anchors cannot define a usable trajectory curve."""


@dataclass
class TrajectoryConfig:
    """Configuration for trajectory generation."""

    step_time: float = 0.02  # s between consecutive points
    horizon: int = 50  # points per trajectory
    anchor_spacing: float = 30.0  # m of progress between lane anchors
    anchor_count: int = 3
    lookahead_x: float = 30.0  # m, local x used to calibrate point spacing
    lane_width: float = 4.0  # m


@dataclass
class Trajectory:
    """Planned trajectory in world coordinates."""

    points: np.ndarray  # (horizon, 2)
    reused_count: int  # leading points copied from the leftover trajectory
    reference_point: tuple
    reference_heading: float  # radians
    anchors: np.ndarray  # (K, 2) world anchors used for the fit

    @property
    def x(self) -> np.ndarray:
        return self.points[:, 0]

    @property
    def y(self) -> np.ndarray:
        return self.points[:, 1]

    def __len__(self) -> int:
        return len(self.points)


class TrajectoryGenerator:
    """Spline-based trajectory generator."""

    def __init__(self, config: TrajectoryConfig) -> None:
        if config.horizon < 1:
            raise ValueError(f"horizon must be positive, got {config.horizon}")
        if config.step_time <= 0.0:
            raise ValueError(f"step_time must be positive, got {config.step_time}")
        self.config = config

    def _reference(self, x: float, y: float, yaw: float, leftover: np.ndarray):
        """Reference point, heading and the two starting anchors."""
        if len(leftover) < 2:
            prev = (x - math.cos(yaw), y - math.sin(yaw))
            return (x, y), yaw, np.array([prev, (x, y)], dtype=float)

        ref = leftover[-1]
        # a held stop repeats one point; look back to where the path last moved
        heading, back = path_end_heading(leftover, yaw)
        back = back if back > 0.0 else 1.0
        prev = (ref[0] - back * math.cos(heading), ref[1] - back * math.sin(heading))
        return (float(ref[0]), float(ref[1])), heading, np.array([prev, ref], dtype=float)

    def build_anchors(
        self,
        road_map: RoadMap,
        x: float,
        y: float,
        yaw: float,
        leftover: np.ndarray,
        ego_s: float,
        lane: int,
    ):
        """Return (reference_point, reference_heading, anchors) in world frame."""
        cfg = self.config
        ref_point, ref_heading, start = self._reference(x, y, yaw, leftover)
        d = lane_center(lane, cfg.lane_width)
        ahead = [
            to_cartesian(road_map, ego_s + k * cfg.anchor_spacing, d)
            for k in range(1, cfg.anchor_count + 1)
        ]
        anchors = np.vstack([start, np.array(ahead, dtype=float).reshape(-1, 2)])
        return ref_point, ref_heading, anchors

    def fit(self, local_anchors: np.ndarray) -> CubicSpline:
        """Fit a natural cubic spline y(x) through anchors in the local frame."""
        if len(local_anchors) < 2:
            raise TrajectoryFitError(f"Need at least 2 anchors, got {len(local_anchors)}")
        if not np.all(np.isfinite(local_anchors)):
            raise TrajectoryFitError("Anchors contain non-finite values")
        xs = local_anchors[:, 0]
        if np.any(np.diff(xs) <= 0.0):
            raise TrajectoryFitError(
                f"Anchor x values are not strictly increasing in the local frame: {np.round(xs, 3).tolist()}"
            )
        return CubicSpline(xs, local_anchors[:, 1], bc_type="natural")

    def generate(
        self,
        road_map: RoadMap,
        x: float,
        y: float,
        yaw: float,
        leftover,
        ego_s: float,
        lane: int,
        reference_speed: float,
    ) -> Trajectory:
        """
        Build the next trajectory.

        Args:
            road_map: road centerline
            x, y, yaw: ego pose (yaw in radians)
            leftover: (N, 2) unconsumed points of the previous trajectory
            ego_s: progress where the leftover trajectory ends
            lane: target lane
            reference_speed: target speed (m/s)

        Returns:
            Trajectory with exactly `horizon` points
        """
        cfg = self.config
        leftover = np.asarray(leftover, dtype=float).reshape(-1, 2)
        if len(leftover) > cfg.horizon:
            leftover = leftover[:cfg.horizon]

        ref_point, ref_heading, anchors = self.build_anchors(
            road_map, x, y, yaw, leftover, ego_s, lane
        )
        spline = self.fit(to_local_frame(anchors, ref_point, ref_heading))

        remaining = cfg.horizon - len(leftover)
        if remaining == 0:
            new_points = np.empty((0, 2))
        elif reference_speed <= 0.0:
            logger.debug("Reference speed is zero, holding at (%.2f, %.2f)", *ref_point)
            new_points = np.tile(np.asarray(ref_point, dtype=float), (remaining, 1))
        else:
            target_x = cfg.lookahead_x
            target_y = float(spline(target_x))
            target_dist = math.hypot(target_x, target_y)
            n_steps = target_dist / (cfg.step_time * reference_speed)
            local_x = np.arange(1, remaining + 1) * (target_x / n_steps)
            local = np.column_stack([local_x, spline(local_x)])
            new_points = to_world_frame(local, ref_point, ref_heading)

        points = np.vstack([leftover, new_points])
        if not np.all(np.isfinite(points)):
            raise TrajectoryFitError("Generated trajectory contains non-finite points")

        return Trajectory(
            points=points,
            reused_count=len(leftover),
            reference_point=ref_point,
            reference_heading=ref_heading,
            anchors=anchors,
        )


def build_trajectory_generator(lanes_cfg: dict, trajectory_cfg: dict) -> TrajectoryGenerator:
    """Build a TrajectoryGenerator from the config dictionaries."""
    config = TrajectoryConfig(
        step_time=float(trajectory_cfg.get("step_time", 0.02)),
        horizon=int(trajectory_cfg.get("horizon", 50)),
        anchor_spacing=float(trajectory_cfg.get("anchor_spacing", 30.0)),
        anchor_count=int(trajectory_cfg.get("anchor_count", 3)),
        lookahead_x=float(trajectory_cfg.get("lookahead_x", 30.0)),
        lane_width=float(lanes_cfg.get("width", 4.0)),
    )
    return TrajectoryGenerator(config)
