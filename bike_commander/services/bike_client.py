from __future__ import annotations

import logging
from typing import Any

import httpx

from bike_commander.constants import BACKEND_URL, BIKE_ID, HTTP_TIMEOUT_S
from bike_commander.state import Position


class BikeApiError(Exception):
    """Backend answered with a non-2xx status; ``detail`` is shown to the user."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


class BikeDecodeError(Exception):
    """A 2xx answer whose body is not the JSON the backend promises."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


# Failures of the exchange itself rather than answers from the bike
TRANSPORT_ERRORS = (httpx.HTTPError, OSError, BikeDecodeError)


class BikeClient:
    """
    Async HTTP client for the bike backend.

    The backend drives the motors, answers connectivity checks and reports the
    latest GPS fix. Transport failures surface as ``httpx.RequestError``;
    non-2xx answers as ``BikeApiError``; an unreadable 2xx body as
    ``BikeDecodeError``.
    """

    def __init__(
        self,
        base_url: str = BACKEND_URL,
        bike_id: str = BIKE_ID,
        timeout: float = HTTP_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.bike_id = bike_id
        self.timeout = timeout
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    def _client(self) -> httpx.AsyncClient:
        # Recreated if base_url changed (CLI override after import)
        stale = (
            self._http is None
            or self._http.is_closed
            or str(self._http.base_url).rstrip("/") != self.base_url
        )
        if stale:
            self._http = httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
        self._http = None

    @staticmethod
    def _raise_for_status(response: httpx.Response, default_detail: str) -> None:
        if response.is_success:
            return
        detail = default_detail
        try:
            body = response.json()
            if isinstance(body, dict) and body.get("detail"):
                detail = str(body["detail"])
        except ValueError:
            pass
        raise BikeApiError(response.status_code, detail)

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            detail = f"Invalid JSON from backend: {e}"
            raise BikeDecodeError(response.status_code, detail) from e

    # ---- Endpoints ----

    async def send_command(
        self, command: str, speed: int, time_duration: float | None = None
    ) -> dict:
        payload: dict[str, Any] = {"command": command, "speed": speed}
        if time_duration is not None:
            payload["time_duration"] = time_duration
        logging.debug("POST /send-command %s", payload)
        response = await self._client().post("/send-command", json=payload)
        self._raise_for_status(response, "Failed to send command")
        return self._json(response)

    async def test_connection(self) -> dict:
        response = await self._client().get(f"/test-bike-connection/{self.bike_id}")
        self._raise_for_status(response, "Failed to reach bike")
        data = self._json(response)
        return data if isinstance(data, dict) else {"status": data}

    async def latest_gps(self) -> Position:
        response = await self._client().get(f"/latest-gps/{self.bike_id}")
        self._raise_for_status(response, "Failed to fetch GPS data")
        data = self._json(response)
        try:
            return Position(lat=float(data["latitude"]), lng=float(data["longitude"]))
        except (KeyError, TypeError, ValueError) as e:
            raise BikeApiError(response.status_code, f"Malformed GPS data: {e}") from e

    async def send_navigation(self, start: Position, destination: Position) -> dict:
        payload = {
            "start": {"lat": start.lat, "lon": start.lng},
            "destination": {"lat": destination.lat, "lon": destination.lng},
        }
        logging.debug("POST /send-navigation %s", payload)
        response = await self._client().post("/send-navigation", json=payload)
        self._raise_for_status(response, "Failed to send navigation data")
        if not response.content:
            return {}
        return self._json(response)


# Module-level singleton instance
client = BikeClient()
