"""
FastAPI server bridging the driving simulator and the path planner.
Serves the simulator's websocket protocol and a JSON API for tools.
"""

import itertools
import time
import logging
from pathlib import Path
from typing import Dict, Optional

from fastapi import Body, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
import uvicorn

from bridge.messages import TelemetryError, parse_telemetry
from data.recorder import CycleRecorder
from path_planner import PathPlanner, build_path_planner
from road.road_map import RoadMap
from trajectory.generator import TrajectoryFitError

# Log slow requests to spot cycles that overrun the simulator cadence.
SLOW_REQUEST_SECONDS = 0.02


def _get_bridge_logger() -> logging.Logger:
    log_path = Path(__file__).resolve().parents[1] / "tmp" / "logs" / "path_planner_bridge.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)

    bridge_logger = logging.getLogger("path_planner_bridge")
    bridge_logger.setLevel(logging.INFO)

    if not any(isinstance(h, logging.FileHandler) and h.baseFilename == str(log_path)
               for h in bridge_logger.handlers):
        handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
        handler.setFormatter(formatter)
        bridge_logger.addHandler(handler)
        bridge_logger.propagate = False

    return bridge_logger


logger = _get_bridge_logger()


def create_app(road_map: RoadMap, config: dict,
               recorder: Optional[CycleRecorder] = None) -> FastAPI:
    """
    Create the bridge application.

    Every websocket connection and every HTTP session id gets its own
    PathPlanner; only the road map (and the recorder) are shared. Recorded
    cycles carry their session id: the HTTP session_id, or "ws-<n>" for the
    n-th simulator connection.
    """
    app = FastAPI(title="Highway Path Planner Bridge")
    sessions: Dict[str, PathPlanner] = {}
    app.state.sessions = sessions

    connection_ids = itertools.count(1)

    def new_session(session_id: str) -> PathPlanner:
        return build_path_planner(config, road_map, recorder=recorder, session_id=session_id)

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "waypoints": len(road_map),
            "track_length": road_map.track_length,
            "sessions": len(sessions),
        }

    @app.post("/api/telemetry")
    async def receive_telemetry(payload: dict = Body(...), session_id: str = "default"):
        """
        Run one planning cycle for a session.

        Args:
            payload: Telemetry in simulator units (degrees, mph)
            session_id: Planning session; created on first use
        """
        start_time = time.time()
        try:
            telemetry = parse_telemetry(payload, timestamp=start_time)
        except TelemetryError as e:
            logger.warning("[REJECT] /api/telemetry session=%s %s", session_id, e)
            raise HTTPException(status_code=422, detail=str(e))

        planner = sessions.get(session_id)
        if planner is None:
            planner = sessions[session_id] = new_session(session_id)
            logger.info("[SESSION] created session=%s", session_id)

        try:
            result = planner.step(telemetry)
        except TrajectoryFitError as e:
            logger.error("[FIT_FAILED] /api/telemetry session=%s %s", session_id, e)
            raise HTTPException(status_code=409, detail=str(e))

        duration = time.time() - start_time
        if duration > SLOW_REQUEST_SECONDS:
            logger.warning(
                "[SLOW] /api/telemetry duration=%.3fs session=%s cycle=%d",
                duration, session_id, result.cycle_id,
            )

        decision = result.decision
        return {
            "session_id": session_id,
            "cycle_id": result.cycle_id,
            "next_x": result.trajectory.x.tolist(),
            "next_y": result.trajectory.y.tolist(),
            "lane": decision.state.lane,
            "reference_speed": decision.state.reference_speed,
            "too_close": decision.too_close,
            "lane_change": decision.lane_change,
            "duration": result.duration,
        }

    @app.get("/api/sessions/{session_id}/state")
    async def get_session_state(session_id: str):
        """Persistent planner state of a session."""
        planner = sessions.get(session_id)
        if planner is None:
            raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
        return {
            "session_id": session_id,
            "lane": planner.state.lane,
            "reference_speed": planner.state.reference_speed,
            "cycle_count": planner.cycle_count,
        }

    @app.delete("/api/sessions/{session_id}")
    async def reset_session(session_id: str):
        """Drop a session; the next telemetry starts from the initial state."""
        if sessions.pop(session_id, None) is None:
            raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
        logger.info("[SESSION] reset session=%s", session_id)
        return {"status": "reset", "session_id": session_id}

    @app.websocket("/socket.io/")
    async def simulator_socket(websocket: WebSocket):
        """Simulator connection; one planning session per connection."""
        await websocket.accept()
        session_id = f"ws-{next(connection_ids)}"
        planner = new_session(session_id)
        logger.info("[CONNECT] simulator connected from %s session=%s", websocket.client, session_id)
        try:
            while True:
                raw = await websocket.receive_text()
                reply = planner.handle_message(raw)
                if reply is not None:
                    await websocket.send_text(reply)
        except WebSocketDisconnect:
            logger.info(
                "[DISCONNECT] session=%s disconnected after %d cycles", session_id, planner.cycle_count
            )

    return app


def run_server(app: FastAPI, host: str = "0.0.0.0", port: int = 4567):
    """Run the bridge server."""
    logger.info("Starting path planner bridge on %s:%d", host, port)
    print(f"Starting Highway Path Planner Bridge on {host}:{port}")
    print("Endpoints:")
    print("  WS   /socket.io/ - Simulator telemetry/control")
    print("  POST /api/telemetry - Run one planning cycle")
    print("  GET  /api/sessions/{id}/state - Planner state of a session")
    print("  GET  /api/health - Health check")

    uvicorn.run(app, host=host, port=port)
