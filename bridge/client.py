"""
Python client helper for the path planner bridge.
Drives the JSON API from tools and scripted scenarios.
"""

import requests
from typing import Dict, List, Optional, Sequence, Tuple


class PlannerBridgeClient:
    """Client for the path planner bridge server."""

    def __init__(self, base_url: str = "http://localhost:4567", session_id: str = "default"):
        """
        Initialize bridge client.

        Args:
            base_url: Base URL of the bridge server
            session_id: Planning session used for telemetry
        """
        self.base_url = base_url.rstrip("/")
        self.session_id = session_id
        self.session = requests.Session()

    def _build_telemetry_payload(
        self,
        x: float,
        y: float,
        yaw_deg: float,
        speed_mph: float,
        s: float = 0.0,
        d: float = 0.0,
        previous_path: Optional[Sequence[Tuple[float, float]]] = None,
        end_path_s: float = 0.0,
        end_path_d: float = 0.0,
        sensor_fusion: Optional[Sequence[Sequence[float]]] = None,
    ) -> dict:
        previous_path = list(previous_path or [])
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
            "sensor_fusion": [[float(v) for v in record] for record in (sensor_fusion or [])],
        }

    def send_telemetry(self, **telemetry) -> Optional[Dict]:
        """
        Run one planning cycle on the server.

        Keyword arguments are those of _build_telemetry_payload.

        Returns:
            Cycle response (next_x, next_y, lane, ...) or None if the cycle
            was rejected or the server is unreachable
        """
        payload = self._build_telemetry_payload(**telemetry)
        try:
            response = self.session.post(
                f"{self.base_url}/api/telemetry",
                params={"session_id": self.session_id},
                json=payload,
                timeout=1.0,
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException:
            return None

    @staticmethod
    def trajectory_points(response: Dict) -> List[Tuple[float, float]]:
        """(x, y) pairs of a cycle response."""
        return list(zip(response["next_x"], response["next_y"]))

    def get_session_state(self) -> Optional[Dict]:
        """Persistent planner state of this client's session."""
        try:
            response = self.session.get(
                f"{self.base_url}/api/sessions/{self.session_id}/state", timeout=0.5
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException:
            return None

    def reset_session(self) -> bool:
        """Drop this client's session on the server."""
        try:
            response = self.session.delete(
                f"{self.base_url}/api/sessions/{self.session_id}", timeout=0.5
            )
            return response.status_code == 200
        except requests.RequestException:
            return False

    def health_check(self) -> bool:
        """Check if the bridge server is running."""
        try:
            response = self.session.get(f"{self.base_url}/api/health", timeout=1.0)
            return response.status_code == 200
        except requests.RequestException:
            return False
