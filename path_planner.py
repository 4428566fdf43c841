"""
Highway path planner cycle driver.
Connects road geometry, behavior planning and trajectory generation, one
cycle per telemetry event.
"""

import time
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np
import yaml

from behavior.planner import BehaviorDecision, BehaviorPlanner, PlannerState, build_behavior_planner
from bridge.messages import (
    EVENT_PREFIX,
    MANUAL_MESSAGE,
    TelemetryError,
    decode_frame,
    encode_control,
    parse_telemetry,
)
from data.formats.data_format import CycleRecord, Telemetry
from data.recorder import CycleRecorder
from road.frame_transform import to_road_frame
from road.road_map import DEFAULT_FRAME_REFERENCE_POINT, RoadMap, RoadMapError, load_road_map
from trajectory.generator import (
    Trajectory,
    TrajectoryFitError,
    TrajectoryGenerator,
    build_trajectory_generator,
)
from trajectory.utils import path_end_heading

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config" / "planner_config.yaml"
DEFAULT_TRACK_LENGTH = 6945.554


def load_config(config_path: Optional[str] = None) -> dict:
    """Load configuration from YAML file or use defaults."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f) or {}
        logger.info(f"Loaded configuration from {config_path}")
        return config
    else:
        logger.warning(f"Config file not found at {config_path}, using defaults")
        return {}


def load_road_map_from_config(config: dict, map_path: Optional[str] = None) -> RoadMap:
    """Load the road map named in the `road_map` config section."""
    map_cfg = config.get("road_map", {})
    path = map_path or map_cfg.get("path", "data/highway_map.csv")
    reference = map_cfg.get("frame_reference_point", DEFAULT_FRAME_REFERENCE_POINT)
    return load_road_map(
        path,
        track_length=float(map_cfg.get("track_length", DEFAULT_TRACK_LENGTH)),
        frame_reference_point=(float(reference[0]), float(reference[1])),
    )


@dataclass
class CycleResult:
    """Output of one planning cycle."""
    cycle_id: int
    decision: BehaviorDecision
    trajectory: Trajectory
    duration: float  # seconds


class PathPlanner:
    """
    Per-vehicle planning session.

    Owns the only state that survives between cycles (lane and reference
    speed). The state is committed only when a cycle completes, so a rejected
    or failed cycle leaves it untouched.
    """

    def __init__(self, road_map: RoadMap,
                 behavior_planner: BehaviorPlanner,
                 trajectory_generator: TrajectoryGenerator,
                 initial_lane: int = 1,
                 recorder: Optional[CycleRecorder] = None,
                 cycle_budget: Optional[float] = None,
                 session_id: str = "default"):
        """
        Initialize planning session.

        Args:
            road_map: Shared, read-only road map
            behavior_planner: Lane and speed decision logic
            trajectory_generator: Spline trajectory generator
            initial_lane: Lane the vehicle starts in
            recorder: Optional cycle recorder
            cycle_budget: Cycle duration (s) above which a cycle is logged as slow;
                defaults to the trajectory step time
            session_id: Tags recorded cycles so sessions sharing a recorder can be told apart
        """
        self.road_map = road_map
        self.behavior = behavior_planner
        self.generator = trajectory_generator
        self.recorder = recorder
        self.session_id = session_id
        self.cycle_budget = (
            cycle_budget if cycle_budget is not None else trajectory_generator.config.step_time
        )
        self.state: PlannerState = behavior_planner.initial_state(initial_lane)
        self.cycle_count = 0

    def usable_leftover(self, telemetry: Telemetry) -> np.ndarray:
        """Leftover points that fit in the next trajectory."""
        return telemetry.leftover[:self.generator.config.horizon]

    def planning_s(self, telemetry: Telemetry) -> float:
        """Progress at which the new trajectory starts (end of the usable leftover)."""
        leftover = self.usable_leftover(telemetry)
        if len(leftover) == 0:
            return to_road_frame(self.road_map, telemetry.x, telemetry.y, telemetry.yaw).s
        end_x, end_y = leftover[-1]
        heading, _ = path_end_heading(leftover, telemetry.yaw)
        return to_road_frame(self.road_map, float(end_x), float(end_y), heading).s

    def step(self, telemetry: Telemetry) -> CycleResult:
        """
        Run one planning cycle.

        Raises:
            TrajectoryFitError: if no valid trajectory can be fitted; the
                persistent state is left unchanged
        """
        start_time = time.perf_counter()
        leftover = self.usable_leftover(telemetry)
        leftover_count = len(leftover)

        ego_s = self.planning_s(telemetry)
        decision = self.behavior.plan(self.state, ego_s, telemetry.sensor_fusion, leftover_count)
        trajectory = self.generator.generate(
            self.road_map,
            telemetry.x,
            telemetry.y,
            telemetry.yaw,
            leftover,
            ego_s,
            decision.state.lane,
            decision.state.reference_speed,
        )

        self.state = decision.state
        cycle_id = self.cycle_count
        self.cycle_count += 1

        duration = time.perf_counter() - start_time
        if duration > self.cycle_budget:
            logger.warning(
                "[SLOW] planning cycle %d duration=%.4fs budget=%.4fs objects=%d leftover=%d",
                cycle_id, duration, self.cycle_budget,
                len(telemetry.sensor_fusion), leftover_count,
            )

        result = CycleResult(
            cycle_id=cycle_id,
            decision=decision,
            trajectory=trajectory,
            duration=duration,
        )
        if self.recorder is not None:
            try:
                self.recorder.record_cycle(self._cycle_record(telemetry, result))
            except Exception as e:
                logger.error(f"Failed to record cycle {cycle_id} session={self.session_id}: {e}", exc_info=True)
        return result

    def _cycle_record(self, telemetry: Telemetry, result: CycleResult) -> CycleRecord:
        decision = result.decision
        return CycleRecord(
            timestamp=telemetry.timestamp if telemetry.timestamp is not None else time.time(),
            cycle_id=result.cycle_id,
            session_id=self.session_id,
            ego_x=telemetry.x,
            ego_y=telemetry.y,
            ego_yaw=telemetry.yaw,
            ego_speed=telemetry.speed,
            ego_s=decision.ego_s,
            lane=decision.state.lane,
            reference_speed=decision.state.reference_speed,
            too_close=decision.too_close,
            lane_change=decision.lane_change,
            trajectory_points=result.trajectory.points,
            reused_count=result.trajectory.reused_count,
            num_tracked_objects=len(telemetry.sensor_fusion),
            duration=result.duration,
        )

    def handle_message(self, raw: str) -> Optional[str]:
        """
        Handle one simulator frame and return the reply frame, if any.

        Rejected telemetry and failed fits produce no reply, so the vehicle
        keeps driving the trajectory it already has.
        """
        try:
            decoded = decode_frame(raw)
            if decoded is None:
                return MANUAL_MESSAGE if raw and raw.startswith(EVENT_PREFIX) and len(raw) > 2 else None
            event, payload = decoded
            if event != "telemetry":
                return None
            telemetry = parse_telemetry(payload, timestamp=time.time())
            result = self.step(telemetry)
        except TelemetryError as e:
            logger.warning(f"[REJECT] telemetry cycle skipped: {e}")
            return None
        except TrajectoryFitError as e:
            logger.error(f"[FIT_FAILED] cycle skipped, state kept lane={self.state.lane}: {e}")
            return None
        return encode_control(result.trajectory.points)


def build_path_planner(config: dict, road_map: RoadMap,
                       recorder: Optional[CycleRecorder] = None,
                       session_id: str = "default") -> PathPlanner:
    """Build a PathPlanner session from the config dictionary."""
    lanes_cfg = config.get("lanes", {})
    behavior_cfg = config.get("behavior", {})
    trajectory_cfg = config.get("trajectory", {})

    behavior_planner = build_behavior_planner(
        lanes_cfg, behavior_cfg, trajectory_cfg, track_length=road_map.track_length
    )
    trajectory_generator = build_trajectory_generator(lanes_cfg, trajectory_cfg)
    cycle_budget = trajectory_cfg.get("cycle_budget_s")
    return PathPlanner(
        road_map,
        behavior_planner,
        trajectory_generator,
        initial_lane=int(lanes_cfg.get("initial_lane", 1)),
        recorder=recorder,
        cycle_budget=float(cycle_budget) if cycle_budget is not None else None,
        session_id=session_id,
    )


def _configure_logging(level: str) -> None:
    log_dir = Path(__file__).parent / 'tmp' / 'logs'
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(str(log_dir / 'path_planner.log'))
        ]
    )


def main():
    """Main entry point."""
    import argparse
    from bridge.server import create_app, run_server

    parser = argparse.ArgumentParser(description='Run highway path planner')
    parser.add_argument('--config', type=str, default=None,
                        help='Path to configuration YAML file (default: config/planner_config.yaml)')
    parser.add_argument('--map', type=str, default=None,
                        help='Road map file (overrides road_map.path)')
    parser.add_argument('--host', type=str, default=None,
                        help='Bind address (overrides server.host)')
    parser.add_argument('--port', type=int, default=None,
                        help='Port (overrides server.port)')
    parser.add_argument('--record', action='store_true', default=None,
                        help='Record planning cycles to HDF5')
    parser.add_argument('--no-record', dest='record', action='store_false',
                        help='Disable recording')
    parser.add_argument('--recording_dir', type=str, default=None,
                        help='Directory for recordings')
    parser.add_argument('--log-level', type=str, default='INFO',
                        help='Logging level (default: INFO)')
    args = parser.parse_args()

    _configure_logging(args.log_level)
    config = load_config(args.config)

    try:
        road_map = load_road_map_from_config(config, args.map)
    except (FileNotFoundError, RoadMapError) as e:
        logger.error(f"Refusing to start: {e}")
        raise SystemExit(1) from e

    server_cfg = config.get("server", {})
    recording_cfg = config.get("recording", {})
    record = args.record if args.record is not None else bool(recording_cfg.get("enabled", False))

    recorder = None
    if record:
        recorder = CycleRecorder(
            args.recording_dir or recording_cfg.get("output_dir", "data/recordings"),
            horizon=int(config.get("trajectory", {}).get("horizon", 50)),
            flush_every=int(recording_cfg.get("flush_every", 50)),
        )

    app = create_app(road_map, config, recorder=recorder)
    try:
        run_server(
            app,
            host=args.host or server_cfg.get("host", "0.0.0.0"),
            port=args.port or int(server_cfg.get("port", 4567)),
        )
    finally:
        if recorder is not None:
            recorder.close()


if __name__ == "__main__":
    main()
