from __future__ import annotations

import httpx
import pytest

from bike_commander.services.maps import MapsClient, MapsError
from bike_commander.state import Position

GEOCODE_OK = {
    "status": "OK",
    "results": [
        {
            "formatted_address": "1280 Main St W, Hamilton, ON L8S 4L8, Canada",
            "address_components": [{"long_name": "McMaster University"}],
            "geometry": {"location": {"lat": 43.2609, "lng": -79.9192}},
        }
    ],
}

DIRECTIONS_OK = {
    "status": "OK",
    "routes": [
        {
            "legs": [
                {
                    "distance": {"text": "2.4 km"},
                    "duration": {"text": "9 mins"},
                    "start_location": {"lat": 43.2556, "lng": -79.9355},
                    "steps": [
                        {"end_location": {"lat": 43.2580, "lng": -79.9300}},
                        {"end_location": {"lat": 43.2609, "lng": -79.9192}},
                    ],
                }
            ]
        }
    ],
}


def make_maps(payload: dict, seen: list[httpx.Request] | None = None) -> MapsClient:
    def _handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(200, json=payload)

    return MapsClient(
        api_key="test-key",
        base_url="https://maps.test/maps/api",
        transport=httpx.MockTransport(_handler),
    )


@pytest.mark.unit
async def test_missing_key_is_reported():
    maps = MapsClient(api_key="")
    assert not maps.configured
    with pytest.raises(MapsError, match="API key"):
        await maps.search_places("Hamilton")


@pytest.mark.unit
async def test_search_is_restricted_to_canada():
    seen: list[httpx.Request] = []
    maps = make_maps(GEOCODE_OK, seen)
    places = await maps.search_places("  McMaster  ")
    await maps.aclose()

    assert len(places) == 1
    assert places[0].name == "McMaster University"
    assert places[0].position == Position(43.2609, -79.9192)
    params = seen[0].url.params
    assert seen[0].url.path == "/maps/api/geocode/json"
    assert params["address"] == "McMaster"
    assert params["components"] == "country:CA"
    assert params["key"] == "test-key"
    assert "bounds" in params


@pytest.mark.unit
async def test_blank_query_skips_request():
    seen: list[httpx.Request] = []
    maps = make_maps(GEOCODE_OK, seen)
    assert await maps.search_places("   ") == []
    assert seen == []


@pytest.mark.unit
async def test_reverse_geocode_first_address():
    maps = make_maps(GEOCODE_OK)
    address = await maps.reverse_geocode(Position(43.2609, -79.9192))
    assert address.startswith("1280 Main St W")


@pytest.mark.unit
async def test_reverse_geocode_zero_results():
    maps = make_maps({"status": "ZERO_RESULTS", "results": []})
    assert await maps.reverse_geocode(Position(0.0, 0.0)) is None


@pytest.mark.unit
async def test_directions_builds_path_from_steps():
    seen: list[httpx.Request] = []
    maps = make_maps(DIRECTIONS_OK, seen)
    route = await maps.directions(Position(43.2556, -79.9355), Position(43.2609, -79.9192))

    assert seen[0].url.params["mode"] == "bicycling"
    assert route.distance_text == "2.4 km"
    assert route.duration_text == "9 mins"
    assert route.path == [
        Position(43.2556, -79.9355),
        Position(43.2580, -79.9300),
        Position(43.2609, -79.9192),
    ]


@pytest.mark.unit
async def test_directions_without_route_raises():
    maps = make_maps({"status": "ZERO_RESULTS", "routes": []})
    with pytest.raises(MapsError, match="No bicycling route"):
        await maps.directions(Position(43.0, -79.0), Position(60.0, -100.0))


@pytest.mark.unit
async def test_service_error_status_raises():
    maps = make_maps({"status": "REQUEST_DENIED", "error_message": "Invalid key"})
    with pytest.raises(MapsError, match="Invalid key"):
        await maps.search_places("Hamilton")


@pytest.mark.unit
@pytest.mark.parametrize("body", ["<html>quota exceeded</html>", "[1, 2]"])
async def test_unreadable_payload_is_a_maps_error(body: str):
    maps = MapsClient(
        api_key="test-key",
        base_url="https://maps.test/maps/api",
        transport=httpx.MockTransport(lambda r: httpx.Response(200, text=body)),
    )
    with pytest.raises(MapsError):
        await maps.search_places("Hamilton")
    with pytest.raises(MapsError):
        await maps.directions(Position(43.0, -79.0), Position(43.5, -79.5))
