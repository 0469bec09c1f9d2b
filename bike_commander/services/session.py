"""
Session lifecycle for the bike control panel.

State changes go through a pure reducer:

    reduce(state, event) -> new_state

Completions of network calls carry the generation they were issued under.
Connect, disconnect and timeout bump the generation, so a late reply for a
session that no longer exists is dropped instead of resurrecting it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Callable, Protocol, Union

from bike_commander.constants import COMMANDS, INACTIVITY_TIMEOUT_S
from bike_commander.services.bike_client import TRANSPORT_ERRORS, BikeApiError
from bike_commander.services.bike_client import client as default_client
from bike_commander.state import ConnectionStatus, SessionState

# Statuses from which a motion command may be sent
COMMAND_READY = (ConnectionStatus.CONNECTED, ConnectionStatus.ERROR)


class SessionError(Exception):
    """User-facing validation error raised before any network call."""


class NotConnectedError(SessionError):
    def __init__(self, status: ConnectionStatus) -> None:
        super().__init__(f"Bike is not connected (status: {status.value})")
        self.status = status


class BikeBackend(Protocol):
    async def test_connection(self) -> dict: ...

    async def send_command(
        self, command: str, speed: int, time_duration: float | None = None
    ) -> dict: ...


# ------------------------ Events ------------------------


@dataclass(frozen=True)
class ConnectStarted:
    pass


@dataclass(frozen=True)
class ConnectSucceeded:
    generation: int


@dataclass(frozen=True)
class ConnectRejected:
    generation: int
    reason: str


@dataclass(frozen=True)
class ConnectErrored:
    generation: int
    reason: str


@dataclass(frozen=True)
class CommandStarted:
    pass


@dataclass(frozen=True)
class CommandSucceeded:
    generation: int


@dataclass(frozen=True)
class CommandFailed:
    generation: int
    reason: str


@dataclass(frozen=True)
class TimerArmed:
    pass


@dataclass(frozen=True)
class TimerExpired:
    pass


@dataclass(frozen=True)
class DisconnectRequested:
    pass


Event = Union[
    ConnectStarted,
    ConnectSucceeded,
    ConnectRejected,
    ConnectErrored,
    CommandStarted,
    CommandSucceeded,
    CommandFailed,
    TimerArmed,
    TimerExpired,
    DisconnectRequested,
]

_COMPLETIONS = (
    ConnectSucceeded,
    ConnectRejected,
    ConnectErrored,
    CommandSucceeded,
    CommandFailed,
)


def reduce(state: SessionState, event: Event) -> SessionState:
    """Return the state after ``event``. Pure: no IO, no clocks."""
    if isinstance(event, _COMPLETIONS) and event.generation != state.generation:
        return state

    if isinstance(event, ConnectStarted):
        return SessionState(
            status=ConnectionStatus.CONNECTING,
            generation=state.generation + 1,
            error=None,
            timer_armed=False,
        )
    if isinstance(event, ConnectSucceeded):
        if state.status is not ConnectionStatus.CONNECTING:
            return state
        return replace(state, status=ConnectionStatus.CONNECTED, error=None)
    if isinstance(event, ConnectRejected):
        if state.status is not ConnectionStatus.CONNECTING:
            return state
        return replace(
            state, status=ConnectionStatus.CONNECTION_FAILED, error=event.reason
        )
    if isinstance(event, ConnectErrored):
        if state.status is not ConnectionStatus.CONNECTING:
            return state
        return replace(
            state, status=ConnectionStatus.CONNECTION_ERROR, error=event.reason
        )
    if isinstance(event, CommandStarted):
        if state.status not in COMMAND_READY:
            return state
        return replace(state, status=ConnectionStatus.SENDING, error=None)
    if isinstance(event, CommandSucceeded):
        if state.status is not ConnectionStatus.SENDING:
            return state
        return replace(state, status=ConnectionStatus.CONNECTED, error=None)
    if isinstance(event, CommandFailed):
        if state.status is not ConnectionStatus.SENDING:
            return state
        return replace(state, status=ConnectionStatus.ERROR, error=event.reason)
    if isinstance(event, TimerArmed):
        if state.status is ConnectionStatus.DISCONNECTED or state.timer_armed:
            return state
        return replace(state, timer_armed=True)
    if isinstance(event, (TimerExpired, DisconnectRequested)):
        return SessionState(
            status=ConnectionStatus.DISCONNECTED,
            generation=state.generation + 1,
            error=None,
            timer_armed=False,
        )
    raise TypeError(f"Unknown session event: {event!r}")


# ------------------------ Inactivity timer ------------------------


class InactivityTimer:
    """A single owned ``call_later`` handle; at most one is ever pending."""

    def __init__(self, delay_s: float, callback: Callable[[], None]) -> None:
        self.delay_s = delay_s
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def rearm(self) -> None:
        """Cancel any pending expiry and schedule a fresh one."""
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay_s, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._callback()


# ------------------------ Manager ------------------------


class SessionManager:
    """Tracks the connection status and drops idle sessions."""

    def __init__(
        self,
        backend: BikeBackend = default_client,
        inactivity_timeout_s: float = INACTIVITY_TIMEOUT_S,
    ) -> None:
        self.client = backend
        self._state = SessionState()
        self._timer = InactivityTimer(inactivity_timeout_s, self.on_timer_expiry)
        self._listeners: list[Callable[[SessionState], None]] = []

    # ---- State access ----

    def get_state(self) -> SessionState:
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def inactivity_timeout_s(self) -> float:
        return self._timer.delay_s

    @property
    def timer_pending(self) -> bool:
        return self._timer.pending

    def subscribe(self, callback: Callable[[SessionState], None]) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[[SessionState], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def apply(self, event: Event) -> SessionState:
        previous = self._state
        self._state = reduce(previous, event)
        if self._state == previous:
            if isinstance(event, _COMPLETIONS):
                logging.debug("Dropped stale session event %s", event)
            self._state = previous
            return previous
        if self._state.status is not previous.status:
            logging.info(
                "Session %s -> %s", previous.status.value, self._state.status.value
            )
        for callback in list(self._listeners):
            try:
                callback(self._state)
            except Exception as e:
                logging.error("Session listener failed: %s", e)
        return self._state

    # ---- Timer ----

    def on_user_action(self) -> None:
        """Restart the idle countdown; sessions that never started are left alone."""
        if self._state.status is ConnectionStatus.DISCONNECTED:
            return
        self._timer.rearm()
        self.apply(TimerArmed())

    def on_timer_expiry(self) -> None:
        logging.info(
            "No actions detected for %.0fs. Disconnecting...", self._timer.delay_s
        )
        self._timer.cancel()
        self.apply(TimerExpired())

    # ---- Operations ----

    async def connect(self) -> ConnectionStatus:
        self._timer.cancel()
        generation = self.apply(ConnectStarted()).generation
        try:
            data = await self.client.test_connection()
        except BikeApiError as e:
            logging.error("Connect rejected: %s", e.detail)
            self.apply(ConnectRejected(generation, e.detail))
            return self.status
        except TRANSPORT_ERRORS as e:
            logging.error("Error connecting to bike: %s", e)
            self.apply(ConnectErrored(generation, str(e) or type(e).__name__))
            return self.status

        logging.debug("Connect response: %s", data)
        if data.get("status") == "success":
            self.apply(ConnectSucceeded(generation))
            if self.status is ConnectionStatus.CONNECTED:
                self.on_user_action()
        else:
            self.apply(
                ConnectRejected(generation, f"Bike answered: {data.get('status')}")
            )
        return self.status

    def disconnect(self) -> None:
        """Force the session closed without asking the backend."""
        self._timer.cancel()
        self.apply(DisconnectRequested())

    async def send_command(
        self, kind: str, speed: int, time_duration: float | None = None
    ) -> dict | None:
        """
        Send one motion command.

        Raises:
            NotConnectedError: if no live session exists (nothing is sent)
            ValueError: for an unknown command or out-of-range parameters

        Returns:
            The backend's JSON answer, or None if the request failed (the
            session moves to Error and ``get_state().error`` holds the reason).
        """
        if self.status not in COMMAND_READY:
            raise NotConnectedError(self.status)
        if kind not in COMMANDS:
            raise ValueError(f"Unknown command: {kind}")
        speed = int(speed)
        if not 0 <= speed <= 100:
            raise ValueError(f"Speed must be within 0..100 %, got {speed}")
        if time_duration is not None and time_duration <= 0:
            raise ValueError(f"Duration must be positive, got {time_duration}")

        generation = self.apply(CommandStarted()).generation
        self.on_user_action()
        try:
            data = await self.client.send_command(kind, speed, time_duration)
        except BikeApiError as e:
            logging.error("Command %s failed: %s", kind, e.detail)
            self.apply(CommandFailed(generation, e.detail))
            return None
        except TRANSPORT_ERRORS as e:
            logging.error("Error sending command %s: %s", kind, e)
            self.apply(CommandFailed(generation, str(e) or type(e).__name__))
            return None

        logging.info("Command %s @ %s%% sent", kind.upper(), speed)
        self.apply(CommandSucceeded(generation))
        return data

    def close(self) -> None:
        """Teardown: no timer may outlive the app."""
        self._timer.cancel()


# Module-level singleton instance
session = SessionManager()
