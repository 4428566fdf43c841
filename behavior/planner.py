"""
Behavior planner: lane keeping, lane change selection and reference speed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from behavior.traffic import TrackedObject, is_in_lane, progress_gap
from trajectory.utils import mph_to_mps

logger = logging.getLogger(__name__)


@dataclass
class BehaviorConfig:
    """Configuration for the behavior planner."""

    lane_width: float = 4.0  # m
    lane_count: int = 3
    safe_distance: float = 30.0  # m
    max_speed: float = mph_to_mps(49.5)  # m/s
    speed_step: float = mph_to_mps(0.224)  # m/s per cycle
    step_time: float = 0.02  # s


@dataclass
class PlannerState:
    """State carried from one planning cycle to the next."""

    lane: int
    reference_speed: float  # m/s


@dataclass
class BehaviorDecision:
    """Outcome of one behavior planning cycle."""

    state: PlannerState
    ego_s: float
    too_close: bool
    left_free: bool
    right_free: bool
    lane_change: int  # -1 left, 0 keep, +1 right


class BehaviorPlanner:
    """Rule-based highway behavior: follow, slow down, or pass."""

    def __init__(self, config: BehaviorConfig, track_length: Optional[float] = None) -> None:
        if config.lane_count < 1:
            raise ValueError(f"lane_count must be at least 1, got {config.lane_count}")
        self.config = config
        self.track_length = track_length

    def initial_state(self, lane: int = 1) -> PlannerState:
        state = PlannerState(lane=lane, reference_speed=0.0)
        self._check_state(state)
        return state

    def _check_state(self, state: PlannerState) -> None:
        if not 0 <= state.lane < self.config.lane_count:
            raise ValueError(
                f"Lane {state.lane} outside valid range 0..{self.config.lane_count - 1}"
            )
        if not 0.0 <= state.reference_speed <= self.config.max_speed + 1e-9:
            raise ValueError(
                f"Reference speed {state.reference_speed:.3f} outside [0, {self.config.max_speed:.3f}]"
            )

    def _gaps_in_lane(
        self,
        objects: Sequence[TrackedObject],
        lane: int,
        ego_s: float,
        leftover_count: int,
    ) -> list:
        cfg = self.config
        return [
            progress_gap(obj.propagated_s(leftover_count, cfg.step_time), ego_s, self.track_length)
            for obj in objects
            if is_in_lane(obj.d, lane, cfg.lane_width)
        ]

    def _lane_is_free(
        self,
        objects: Sequence[TrackedObject],
        lane: int,
        ego_s: float,
        leftover_count: int,
    ) -> bool:
        if not 0 <= lane < self.config.lane_count:
            return False
        safe = self.config.safe_distance
        gaps = self._gaps_in_lane(objects, lane, ego_s, leftover_count)
        return not any(-safe < gap < safe for gap in gaps)

    def plan(
        self,
        state: PlannerState,
        ego_s: float,
        objects: Sequence[TrackedObject],
        leftover_count: int = 0,
    ) -> BehaviorDecision:
        """
        Decide lane and reference speed for the next trajectory.

        Args:
            state: persistent state from the previous cycle (not mutated)
            ego_s: ego progress where the new trajectory starts
            objects: tracked traffic for this cycle
            leftover_count: number of leftover trajectory points; traffic is
                propagated by the time they take to be consumed

        Returns:
            BehaviorDecision holding the new state
        """
        self._check_state(state)
        cfg = self.config
        lane = state.lane

        ahead = self._gaps_in_lane(objects, lane, ego_s, leftover_count)
        too_close = any(0.0 < gap < cfg.safe_distance for gap in ahead)

        left_free = False
        right_free = False
        lane_change = 0
        if too_close:
            left_free = self._lane_is_free(objects, lane - 1, ego_s, leftover_count)
            right_free = self._lane_is_free(objects, lane + 1, ego_s, leftover_count)
            if left_free:
                lane_change = -1
            elif right_free:
                lane_change = 1

        speed = state.reference_speed
        if too_close:
            speed = max(0.0, speed - cfg.speed_step)
        elif speed < cfg.max_speed:
            speed = min(cfg.max_speed, speed + cfg.speed_step)

        new_lane = lane + lane_change
        if lane_change:
            logger.info(
                "Lane change %d -> %d at s=%.1f (left_free=%s right_free=%s)",
                lane, new_lane, ego_s, left_free, right_free,
            )

        return BehaviorDecision(
            state=PlannerState(lane=new_lane, reference_speed=speed),
            ego_s=ego_s,
            too_close=too_close,
            left_free=left_free,
            right_free=right_free,
            lane_change=lane_change,
        )


def build_behavior_planner(
    lanes_cfg: dict,
    behavior_cfg: dict,
    trajectory_cfg: dict,
    track_length: Optional[float] = None,
) -> BehaviorPlanner:
    """Build a BehaviorPlanner from the config dictionaries."""
    config = BehaviorConfig(
        lane_width=float(lanes_cfg.get("width", 4.0)),
        lane_count=int(lanes_cfg.get("count", 3)),
        safe_distance=float(behavior_cfg.get("safe_distance", 30.0)),
        max_speed=mph_to_mps(behavior_cfg.get("max_speed_mph", 49.5)),
        speed_step=mph_to_mps(behavior_cfg.get("speed_step_mph", 0.224)),
        step_time=float(trajectory_cfg.get("step_time", 0.02)),
    )
    return BehaviorPlanner(config, track_length=track_length)
