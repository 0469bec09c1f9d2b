from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable, Iterator, Sequence

from bike_commander.constants import SIM_INTERVAL_S, SIM_STEP_DEG
from bike_commander.state import Position


def _approach(current: float, target: float, step: float) -> float:
    if abs(target - current) <= step:
        return target
    return current + step if target > current else current - step


def interpolate(path: Sequence[Position], step_deg: float) -> Iterator[Position]:
    """
    Yield the positions of a scripted ride along ``path``.

    Each step moves latitude and longitude toward the next waypoint by at most
    ``step_deg`` each, so every waypoint is hit exactly. The first waypoint is
    yielded as-is.
    """
    if step_deg <= 0:
        raise ValueError("step_deg must be > 0")
    if not path:
        return
    current = path[0]
    yield current
    for waypoint in path[1:]:
        while current != waypoint:
            current = Position(
                lat=_approach(current.lat, waypoint.lat, step_deg),
                lng=_approach(current.lng, waypoint.lng, step_deg),
            )
            yield current


class RideSimulator:
    """Replays a route as fake telemetry, one position per tick."""

    def __init__(
        self,
        path: Sequence[Position],
        step_deg: float = SIM_STEP_DEG,
        interval_s: float = SIM_INTERVAL_S,
    ) -> None:
        if len(path) < 2:
            raise ValueError("A ride needs at least two waypoints")
        self.path = list(path)
        self.step_deg = step_deg
        self.interval_s = interval_s
        self.position: Position = self.path[0]
        self.finished = False
        self._task: asyncio.Task | None = None
        self._listeners: list[Callable[[Position], None]] = []
        self._finish_listeners: list[Callable[[RideSimulator], None]] = []

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, callback: Callable[[Position], None]) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def on_finish(self, callback: Callable[[RideSimulator], None]) -> None:
        """Call ``callback`` once the last waypoint has been reached."""
        if callback not in self._finish_listeners:
            self._finish_listeners.append(callback)

    async def _run(self) -> None:
        try:
            for pos in interpolate(self.path, self.step_deg):
                self.position = pos
                for callback in list(self._listeners):
                    try:
                        callback(pos)
                    except Exception as e:
                        logging.error("Simulation listener failed: %s", e)
                await asyncio.sleep(self.interval_s)
            self.finished = True
            logging.info("Simulated ride reached destination")
            for callback in list(self._finish_listeners):
                try:
                    callback(self)
                except Exception as e:
                    logging.error("Simulation listener failed: %s", e)
        except asyncio.CancelledError:
            pass

    def start(self) -> None:
        if self.running:
            return
        self.finished = False
        self._task = asyncio.create_task(self._run())
        logging.info(
            "Simulated ride started: %d waypoints, step %.5f deg",
            len(self.path),
            self.step_deg,
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logging.info("Simulated ride stopped")
