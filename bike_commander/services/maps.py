from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from bike_commander.constants import (
    CANADA_BOUNDS,
    GOOGLE_MAPS_API_KEY,
    GOOGLE_MAPS_BASE_URL,
    HTTP_TIMEOUT_S,
    SEARCH_COUNTRY,
)
from bike_commander.state import Position


class MapsError(Exception):
    """Map service unavailable or answered with a non-OK status."""


@dataclass(frozen=True)
class Place:
    name: str
    address: str
    position: Position


@dataclass
class Route:
    distance_text: str
    duration_text: str
    path: list[Position] = field(default_factory=list)


def _location(raw: dict) -> Position:
    return Position(lat=float(raw["lat"]), lng=float(raw["lng"]))


def _latlng(p: Position) -> str:
    return f"{p.lat},{p.lng}"


class MapsClient:
    """Geocoding and bicycling directions over the Google Maps web services."""

    def __init__(
        self,
        api_key: str = GOOGLE_MAPS_API_KEY,
        base_url: str = GOOGLE_MAPS_BASE_URL,
        timeout: float = HTTP_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def aclose(self) -> None:
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
        self._http = None

    async def _get(self, endpoint: str, params: dict[str, Any]) -> dict:
        if not self.api_key:
            raise MapsError("Google Maps API key is not configured")
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            )
        response = await self._http.get(endpoint, params={**params, "key": self.api_key})
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError as e:
            raise MapsError(f"Map service returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise MapsError("Map service returned an unexpected payload")
        status = data.get("status", "UNKNOWN_ERROR")
        if status not in ("OK", "ZERO_RESULTS"):
            message = data.get("error_message") or status
            logging.error("Maps %s failed: %s", endpoint, message)
            raise MapsError(f"Map service error: {message}")
        return data

    async def search_places(self, query: str) -> list[Place]:
        """Forward geocode ``query``, restricted to Canada."""
        query = query.strip()
        if not query:
            return []
        south, west, north, east = CANADA_BOUNDS
        data = await self._get(
            "/geocode/json",
            {
                "address": query,
                "components": f"country:{SEARCH_COUNTRY}",
                "bounds": f"{south},{west}|{north},{east}",
            },
        )
        places: list[Place] = []
        for result in data.get("results", []):
            try:
                position = _location(result["geometry"]["location"])
            except (KeyError, TypeError, ValueError):
                continue
            components = result.get("address_components") or []
            name = components[0].get("long_name") if components else None
            address = result.get("formatted_address", "")
            places.append(Place(name=name or address, address=address, position=position))
        return places

    async def reverse_geocode(self, position: Position) -> str | None:
        data = await self._get("/geocode/json", {"latlng": _latlng(position)})
        results = data.get("results") or []
        if not results:
            return None
        return results[0].get("formatted_address")

    async def directions(self, origin: Position, destination: Position) -> Route:
        data = await self._get(
            "/directions/json",
            {
                "origin": _latlng(origin),
                "destination": _latlng(destination),
                "mode": "bicycling",
            },
        )
        routes = data.get("routes") or []
        if not routes or not routes[0].get("legs"):
            raise MapsError("No bicycling route found")
        leg = routes[0]["legs"][0]
        start = leg.get("start_location")
        path = [_location(start) if start else origin]
        for step in leg.get("steps", []):
            if "end_location" in step:
                path.append(_location(step["end_location"]))
        if len(path) == 1:
            path.append(destination)
        return Route(
            distance_text=(leg.get("distance") or {}).get("text", ""),
            duration_text=(leg.get("duration") or {}).get("text", ""),
            path=path,
        )


# Module-level singleton instance
maps = MapsClient()
