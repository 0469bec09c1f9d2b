from __future__ import annotations

import json

import httpx
import pytest

from bike_commander.services.bike_client import (
    BikeApiError,
    BikeClient,
    BikeDecodeError,
)
from bike_commander.state import Position


def make_client(handler) -> tuple[BikeClient, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    bike = BikeClient(
        base_url="http://bike.test/",
        bike_id="bike7",
        transport=httpx.MockTransport(_record),
    )
    return bike, seen


@pytest.mark.unit
async def test_send_command_payload():
    bike, seen = make_client(lambda r: httpx.Response(200, json={"status": "ok"}))
    assert await bike.send_command("forward", 60) == {"status": "ok"}
    await bike.send_command("stop", 0, 1.5)
    await bike.aclose()

    assert seen[0].method == "POST"
    assert seen[0].url.path == "/send-command"
    assert json.loads(seen[0].content) == {"command": "forward", "speed": 60}
    assert json.loads(seen[1].content) == {
        "command": "stop",
        "speed": 0,
        "time_duration": 1.5,
    }


@pytest.mark.unit
async def test_error_detail_is_surfaced():
    bike, _ = make_client(
        lambda r: httpx.Response(422, json={"detail": "Speed out of range"})
    )
    with pytest.raises(BikeApiError) as exc:
        await bike.send_command("forward", 60)
    assert exc.value.status_code == 422
    assert exc.value.detail == "Speed out of range"


@pytest.mark.unit
async def test_error_without_detail_uses_default_message():
    bike, _ = make_client(lambda r: httpx.Response(500, text="Internal Server Error"))
    with pytest.raises(BikeApiError) as exc:
        await bike.test_connection()
    assert exc.value.detail == "Failed to reach bike"


@pytest.mark.unit
async def test_connection_check_uses_bike_id():
    bike, seen = make_client(lambda r: httpx.Response(200, json={"status": "success"}))
    assert await bike.test_connection() == {"status": "success"}
    assert seen[0].method == "GET"
    assert seen[0].url.path == "/test-bike-connection/bike7"


@pytest.mark.unit
async def test_latest_gps_parses_fix():
    bike, seen = make_client(
        lambda r: httpx.Response(200, json={"latitude": 43.25, "longitude": "-79.93"})
    )
    assert await bike.latest_gps() == Position(43.25, -79.93)
    assert seen[0].url.path == "/latest-gps/bike7"


@pytest.mark.unit
@pytest.mark.parametrize("body", [{"latitude": 1.0}, {"latitude": "n/a", "longitude": 2}])
async def test_latest_gps_malformed_is_an_api_error(body):
    bike, _ = make_client(lambda r: httpx.Response(200, json=body))
    with pytest.raises(BikeApiError):
        await bike.latest_gps()


@pytest.mark.unit
async def test_send_navigation_payload_and_empty_body():
    bike, seen = make_client(lambda r: httpx.Response(200))
    result = await bike.send_navigation(Position(43.0, -79.0), Position(43.5, -79.5))
    assert result == {}
    assert seen[0].url.path == "/send-navigation"
    assert json.loads(seen[0].content) == {
        "start": {"lat": 43.0, "lon": -79.0},
        "destination": {"lat": 43.5, "lon": -79.5},
    }


@pytest.mark.unit
async def test_transport_failure_propagates():
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    bike, _ = make_client(_refuse)
    with pytest.raises(httpx.HTTPError):
        await bike.test_connection()


@pytest.mark.unit
async def test_non_json_success_body_is_a_decode_error():
    bike, _ = make_client(lambda r: httpx.Response(200, text="<html>gateway</html>"))
    with pytest.raises(BikeDecodeError) as exc:
        await bike.test_connection()
    assert exc.value.status_code == 200
    assert "Invalid JSON" in exc.value.detail
