from __future__ import annotations

import asyncio
from typing import Any

import httpx

from bike_commander.state import Position


class RecorderBikeClient:
    """
    Stands in for BikeClient in UI and session tests.

    Each endpoint pops its next scripted outcome: an exception instance is
    raised, anything else is returned. An empty script falls back to a
    successful answer. Calls are recorded in order.
    """

    def __init__(self, bike_id: str = "bike1") -> None:
        self.base_url = "http://fake-bike"
        self.bike_id = bike_id
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.connect_script: list[Any] = []
        self.command_script: list[Any] = []
        self.gps_script: list[Any] = []
        self.navigation_script: list[Any] = []
        # When set, the matching call waits on it before answering
        self.connect_gate: asyncio.Event | None = None
        self.command_gate: asyncio.Event | None = None

    @staticmethod
    def _next(script: list[Any], default: Any) -> Any:
        outcome = script.pop(0) if script else default
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    async def test_connection(self) -> dict:
        self.calls.append(("test_connection", ()))
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        return self._next(self.connect_script, {"status": "success"})

    async def send_command(
        self, command: str, speed: int, time_duration: float | None = None
    ) -> dict:
        self.calls.append(("send_command", (command, speed, time_duration)))
        if self.command_gate is not None:
            await self.command_gate.wait()
        return self._next(self.command_script, {"status": "ok"})

    async def latest_gps(self) -> Position:
        self.calls.append(("latest_gps", ()))
        return self._next(self.gps_script, Position(43.2556, -79.9355))

    async def send_navigation(self, start: Position, destination: Position) -> dict:
        self.calls.append(("send_navigation", (start, destination)))
        return self._next(self.navigation_script, {})

    async def aclose(self) -> None:
        return None


def transport_error(message: str = "connection refused") -> httpx.ConnectError:
    return httpx.ConnectError(message)
