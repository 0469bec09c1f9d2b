from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable, Protocol

from bike_commander.common.logging_config import TRACE
from bike_commander.constants import GPS_FAILURE_THRESHOLD, GPS_POLL_INTERVAL_S
from bike_commander.services.bike_client import TRANSPORT_ERRORS, BikeApiError
from bike_commander.services.bike_client import client as default_client
from bike_commander.state import PollState, Position

TRANSIENT_ERROR = "Error fetching GPS data"
TERMINAL_ERROR = (
    "GPS data fetch failed too many times. Please refresh the page to try again."
)


class GpsSource(Protocol):
    async def latest_gps(self) -> Position: ...


class GpsPoller:
    """
    Periodically fetch the bike's latest GPS fix.

    Consecutive failures are counted; any success resets the count. When the
    count reaches the threshold polling halts for good and a terminal error
    is reported. A new poller is needed to resume (i.e. a page reload).
    """

    def __init__(
        self,
        source: GpsSource = default_client,
        interval_s: float = GPS_POLL_INTERVAL_S,
        failure_threshold: int = GPS_FAILURE_THRESHOLD,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self.source = source
        self.interval_s = interval_s
        self.failure_threshold = failure_threshold
        self.state = PollState()
        self._position: Position | None = None
        self._task: asyncio.Task | None = None
        self._listeners: list[Callable[[GpsPoller], None]] = []

    @property
    def position(self) -> Position | None:
        """Last known good fix (None before the first success)."""
        return self._position

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, callback: Callable[[GpsPoller], None]) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[[GpsPoller], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception as e:
                logging.error("GPS listener failed: %s", e)

    # ---- Polling ----

    async def poll_once(self) -> bool:
        """Run one fetch attempt. Returns True on success."""
        if self.state.stopped:
            return False
        try:
            fix = await self.source.latest_gps()
        except (BikeApiError, *TRANSPORT_ERRORS) as e:
            self._record_failure(e)
            return False

        self._position = fix
        self.state.consecutive_failures = 0
        self.state.error = None
        logging.log(TRACE, "GPS fix %.6f, %.6f", fix.lat, fix.lng)
        self._notify()
        return True

    def _record_failure(self, err: Exception) -> None:
        self.state.consecutive_failures += 1
        logging.error(
            "Error fetching GPS data (%d/%d): %s",
            self.state.consecutive_failures,
            self.failure_threshold,
            err,
        )
        if self.state.consecutive_failures >= self.failure_threshold:
            self.state.stopped = True
            self.state.error = TERMINAL_ERROR
            logging.warning(
                "GPS polling stopped after %d failures", self.failure_threshold
            )
        else:
            self.state.error = TRANSIENT_ERROR
        self._notify()

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        try:
            while not self.state.stopped:
                try:
                    await self.poll_once()
                except Exception as e:
                    # e.g. httpx.InvalidURL from a bad --backend-url
                    logging.exception("Unexpected GPS poll error")
                    self._record_failure(e)
                if self.state.stopped:
                    break
                # sleep until next_tick (avoid drift)
                next_tick = max(next_tick + self.interval_s, loop.time())
                await asyncio.sleep(max(0.0, next_tick - loop.time()))
        except asyncio.CancelledError:
            pass

    def start(self, interval_s: float | None = None) -> None:
        """Fetch now, then every interval until stopped."""
        if interval_s is not None:
            self.interval_s = interval_s
        if self.state.stopped or self.running:
            return
        self._task = asyncio.create_task(self._run())
        logging.info("GPS polling started (every %.1fs)", self.interval_s)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logging.info("GPS polling stopped")


# Module-level singleton instance
poller = GpsPoller()
