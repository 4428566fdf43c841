"""
Simulator message codec.

The simulator speaks socket.io framing over a websocket: a frame starting
with "42" carries a JSON array ``[event, payload]``. Telemetry arrives as
``42["telemetry", {...}]`` and the planner answers with
``42["control", {"next_x": [...], "next_y": [...]}]``, or ``42["manual",{}]``
when the frame carried no data.
"""

from __future__ import annotations

import json
from typing import Any, List, Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from behavior.traffic import TrackedObject
from data.formats.data_format import Telemetry
from trajectory.utils import deg2rad, mph_to_mps

EVENT_PREFIX = "42"
MANUAL_MESSAGE = '42["manual",{}]'


class TelemetryError(ValueError):
    """Raised when a telemetry payload is malformed or incomplete."""


class TelemetryMessage(BaseModel):
    """Telemetry payload as sent by the simulator (degrees, mph)."""
    model_config = ConfigDict(allow_inf_nan=False)

    x: float
    y: float
    s: float
    d: float
    yaw: float  # degrees
    speed: float  # mph
    previous_path_x: List[float]
    previous_path_y: List[float]
    end_path_s: float
    end_path_d: float
    sensor_fusion: List[List[float]]

    @field_validator("sensor_fusion")
    @classmethod
    def _check_sensor_fusion(cls, records: List[List[float]]) -> List[List[float]]:
        for i, record in enumerate(records):
            if len(record) < 7:
                raise ValueError(
                    f"sensor_fusion[{i}] has {len(record)} fields, expected [id, x, y, vx, vy, s, d]"
                )
        return records

    @model_validator(mode="after")
    def _check_previous_path(self) -> "TelemetryMessage":
        if len(self.previous_path_x) != len(self.previous_path_y):
            raise ValueError(
                f"previous_path_x has {len(self.previous_path_x)} points "
                f"but previous_path_y has {len(self.previous_path_y)}"
            )
        return self


def decode_frame(raw: str) -> Optional[Tuple[str, Any]]:
    """
    Decode a socket.io event frame.

    Returns:
        (event, payload) or None when the frame is not an event or carries
        no data (``null`` payload)

    Raises:
        TelemetryError: if the frame is an event but is not valid JSON
    """
    if not raw or len(raw) <= 2 or not raw.startswith(EVENT_PREFIX):
        return None
    try:
        message = json.loads(raw[len(EVENT_PREFIX):])
    except json.JSONDecodeError as e:
        raise TelemetryError(f"Event frame is not valid JSON: {e}") from e
    if not isinstance(message, list) or not message or not isinstance(message[0], str):
        raise TelemetryError("Event frame must be a JSON array starting with the event name")
    payload = message[1] if len(message) > 1 else None
    if payload is None:
        return None
    return message[0], payload


def parse_telemetry(payload: Any, timestamp: Optional[float] = None) -> Telemetry:
    """Validate a telemetry payload and convert it to SI units."""
    try:
        message = TelemetryMessage.model_validate(payload)
    except ValidationError as e:
        raise TelemetryError(f"Invalid telemetry: {e}") from e

    leftover = np.column_stack([
        np.asarray(message.previous_path_x, dtype=float),
        np.asarray(message.previous_path_y, dtype=float),
    ]).reshape(-1, 2)

    return Telemetry(
        x=message.x,
        y=message.y,
        yaw=deg2rad(message.yaw),
        speed=mph_to_mps(message.speed),
        s=message.s,
        d=message.d,
        leftover=leftover,
        end_path_s=message.end_path_s,
        end_path_d=message.end_path_d,
        sensor_fusion=[TrackedObject.from_sensor_fusion(r) for r in message.sensor_fusion],
        timestamp=timestamp,
    )


def encode_control(points: np.ndarray) -> str:
    """Encode trajectory points as a control event frame."""
    points = np.asarray(points, dtype=float).reshape(-1, 2)
    body = {
        "next_x": points[:, 0].tolist(),
        "next_y": points[:, 1].tolist(),
    }
    return f'{EVENT_PREFIX}["control",{json.dumps(body)}]'
