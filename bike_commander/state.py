from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from nicegui import binding

from bike_commander.constants import DEFAULT_SPEED_PCT


class ConnectionStatus(Enum):
    """Session connection status; the value is the label shown to the user."""

    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting..."
    CONNECTED = "Connected"
    SENDING = "Sending..."
    ERROR = "Error"
    CONNECTION_FAILED = "Connection Failed"
    CONNECTION_ERROR = "Connection Error"


@dataclass(frozen=True)
class Position:
    lat: float
    lng: float

    def as_tuple(self) -> tuple[float, float]:
        return (self.lat, self.lng)


@dataclass(frozen=True)
class SessionState:
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    generation: int = 0  # bumped whenever in-flight completions must be dropped
    error: str | None = None
    timer_armed: bool = False


@dataclass
class PollState:
    consecutive_failures: int = 0
    stopped: bool = False
    error: str | None = None


# Shared state singletons for UI bindings
@binding.bindable_dataclass
class BikeState:
    status: str = ConnectionStatus.DISCONNECTED.value
    error: str = ""
    sending: bool = False
    speed: int = DEFAULT_SPEED_PCT  # percent
    time_duration: float | None = None  # seconds, optional


@binding.bindable_dataclass
class GpsState:
    lat: float = 0.0
    lng: float = 0.0
    has_fix: bool = False
    error: str = ""
    stopped: bool = False
    simulating: bool = False


# Module-level singletons
bike_state = BikeState()
gps_state = GpsState()
