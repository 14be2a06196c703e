"""
Data model for therapy sessions, commands and operation results.

Everything the controller hands out is a plain value: enums for the protocol
vocabulary, dataclasses for sessions and presets, and Result objects instead
of exceptions for anything that can fail at runtime.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from .core import (
    COLD_TEMP_MAX,
    COLD_TEMP_MIN,
    DEFAULT_TEMPERATURE,
    HOT_TEMP_MAX,
    HOT_TEMP_MIN,
    MODE_CHAR_UUID,
    SET_POINT_CHAR_UUID,
    TIMER_CHAR_UUID,
)


class ThermoBandError(Exception):
    """Base error for ThermoBand."""


class PresetError(ThermoBandError):
    """Preset could not be created, found or deleted."""


class Mode(Enum):
    """Therapy mode."""

    OFF = "Off"
    HOT = "Hot"
    COLD = "Cold"

    @property
    def token(self) -> str:
        """Wire token sent on the mode characteristic."""
        return _MODE_TOKENS[self]

    @property
    def temperature_range(self) -> Optional[tuple[int, int]]:
        """Inclusive set-point range, or None when unconstrained."""
        return _MODE_RANGES.get(self)

    def clamp(self, temperature: int) -> int:
        """Clamp a temperature into this mode's range.

        Values already in range are returned unchanged. OFF does not
        constrain the value.
        """
        bounds = self.temperature_range
        if bounds is None:
            return temperature
        low, high = bounds
        return max(low, min(high, temperature))

    @classmethod
    def parse(cls, text: str) -> "Mode":
        """Parse a mode from user input or a wire token.

        Raises:
            ValueError: If the text names no mode
        """
        key = text.strip().lower()
        for mode in cls:
            if key in (mode.value.lower(), mode.token.lower()):
                return mode
        raise ValueError(f"Unknown mode: {text}")


_MODE_TOKENS = {Mode.OFF: "OFF", Mode.HOT: "HEAT", Mode.COLD: "COOL"}
_MODE_RANGES = {
    Mode.HOT: (HOT_TEMP_MIN, HOT_TEMP_MAX),
    Mode.COLD: (COLD_TEMP_MIN, COLD_TEMP_MAX),
}


class Endpoint(Enum):
    """Writable characteristic on the band."""

    MODE = MODE_CHAR_UUID
    SET_POINT = SET_POINT_CHAR_UUID
    TIMER = TIMER_CHAR_UUID

    @property
    def uuid(self) -> str:
        return self.value


class ConnectionState(Enum):
    """Lifecycle of the single BLE connection."""

    DISCONNECTED = "DISCONNECTED"
    SCANNING = "SCANNING"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    FAILED = "FAILED"


class PermissionStatus(Enum):
    """Radio/location authorization state."""

    UNKNOWN = "UNKNOWN"
    GRANTED = "GRANTED"
    DENIED = "DENIED"


class ResultCode(Enum):
    """Outcome of a controller, scanner or channel operation."""

    SUCCESS = "SUCCESS"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    SCAN_TIMEOUT = "SCAN_TIMEOUT"
    SCAN_ERROR = "SCAN_ERROR"
    CONNECT_ERROR = "CONNECT_ERROR"
    WRITE_ERROR = "WRITE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"


@dataclass(frozen=True)
class Result:
    """Operation outcome with an optional human-readable reason."""

    code: ResultCode = ResultCode.SUCCESS
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.code is ResultCode.SUCCESS

    @classmethod
    def success(cls) -> "Result":
        return cls(ResultCode.SUCCESS)

    @classmethod
    def failure(cls, code: ResultCode, reason: str) -> "Result":
        return cls(code, reason)


@dataclass(frozen=True)
class ConnectResult(Result):
    """Outcome of a connect attempt; carries the client on success."""

    handle: Any = None


@dataclass(frozen=True)
class Command:
    """A single characteristic write."""

    endpoint: Endpoint
    payload: str


@dataclass
class TherapySession:
    """Local record of intended mode, temperature and timer.

    Mutated only by TherapyController.
    """

    mode: Mode = Mode.OFF
    temperature: int = DEFAULT_TEMPERATURE
    timer_minutes: int = 0
    remaining_seconds: int = 0
    running: bool = False

    @property
    def active_timer_minutes(self) -> int:
        """Minutes left on the running timer, rounded up; 0 when idle."""
        if not self.running:
            return 0
        return -(-self.remaining_seconds // 60)

    def copy(self) -> "TherapySession":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "temperature": self.temperature,
            "timer_minutes": self.timer_minutes,
            "remaining_seconds": self.remaining_seconds,
            "running": self.running,
        }


@dataclass(frozen=True)
class Preset:
    """Named snapshot of a therapy session."""

    id: str
    name: str
    mode: Mode
    temperature: int
    timer_minutes: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "mode": self.mode.value,
            "temperature": self.temperature,
            "timer_minutes": self.timer_minutes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Preset":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            mode=Mode.parse(data["mode"]),
            temperature=int(data["temperature"]),
            timer_minutes=int(data.get("timer_minutes", 0)),
        )


@dataclass(frozen=True)
class TemperatureReading:
    """A decoded temperature notification."""

    celsius: float
    received_at: datetime = field(default_factory=datetime.now)
