from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import httpx
import pytest

from bike_commander.services.bike_client import BikeApiError
from bike_commander.services.gps_poller import TERMINAL_ERROR, TRANSIENT_ERROR, GpsPoller
from bike_commander.state import Position
from tests.utils.fake_backend import transport_error

if TYPE_CHECKING:
    from tests.utils.fake_backend import RecorderBikeClient


@pytest.mark.unit
def test_threshold_must_be_positive(fake_bike: RecorderBikeClient):
    with pytest.raises(ValueError):
        GpsPoller(source=fake_bike, failure_threshold=0)


@pytest.mark.unit
async def test_five_failures_then_success_resets(fake_bike: RecorderBikeClient):
    poller = GpsPoller(source=fake_bike, failure_threshold=6)
    fake_bike.gps_script.extend([transport_error()] * 5)
    fake_bike.gps_script.append(Position(43.26, -79.94))

    for _ in range(5):
        assert await poller.poll_once() is False
        assert poller.state.error == TRANSIENT_ERROR
    assert poller.state.consecutive_failures == 5
    assert not poller.state.stopped

    assert await poller.poll_once() is True
    assert poller.state.consecutive_failures == 0
    assert poller.state.error is None
    assert poller.position == Position(43.26, -79.94)


@pytest.mark.unit
async def test_sixth_failure_halts_for_good(fake_bike: RecorderBikeClient):
    poller = GpsPoller(source=fake_bike, failure_threshold=6)
    fake_bike.gps_script.extend([BikeApiError(503, "no fix")] * 6)

    for _ in range(6):
        await poller.poll_once()
    assert poller.state.stopped
    assert poller.state.error == TERMINAL_ERROR

    # No further requests once halted
    calls = fake_bike.count("latest_gps")
    assert await poller.poll_once() is False
    assert fake_bike.count("latest_gps") == calls


@pytest.mark.unit
async def test_failures_keep_last_good_position(fake_bike: RecorderBikeClient):
    poller = GpsPoller(source=fake_bike)
    fake_bike.gps_script.extend([Position(1.0, 2.0), transport_error()])
    await poller.poll_once()
    await poller.poll_once()
    assert poller.position == Position(1.0, 2.0)
    assert poller.state.consecutive_failures == 1


@pytest.mark.unit
async def test_listeners_notified_on_success_and_failure(fake_bike: RecorderBikeClient):
    poller = GpsPoller(source=fake_bike)
    seen: list[int] = []
    poller.subscribe(lambda p: seen.append(p.state.consecutive_failures))
    fake_bike.gps_script.append(transport_error())
    await poller.poll_once()
    await poller.poll_once()
    assert seen == [1, 0]


@pytest.mark.unit
async def test_loop_polls_immediately_and_stops_at_threshold(
    fake_bike: RecorderBikeClient,
):
    poller = GpsPoller(source=fake_bike, interval_s=0.01, failure_threshold=3)
    fake_bike.gps_script.extend([transport_error()] * 3)
    poller.start()
    assert poller.running
    await asyncio.sleep(0.2)
    assert not poller.running
    assert poller.state.stopped
    assert fake_bike.count("latest_gps") == 3

    # A halted poller cannot be restarted
    poller.start()
    assert not poller.running


@pytest.mark.unit
async def test_start_is_idempotent_and_stop_cancels(fake_bike: RecorderBikeClient):
    poller = GpsPoller(source=fake_bike, interval_s=10.0)
    poller.start()
    first = poller._task
    poller.start()
    assert poller._task is first
    await asyncio.sleep(0.01)
    assert fake_bike.count("latest_gps") == 1

    await poller.stop()
    assert not poller.running
    await poller.stop()


@pytest.mark.unit
async def test_unexpected_error_counts_as_failure(fake_bike: RecorderBikeClient):
    poller = GpsPoller(source=fake_bike, interval_s=0.01, failure_threshold=2)
    fake_bike.gps_script.extend([httpx.InvalidURL("bad backend url")] * 2)
    errors: list[str | None] = []
    poller.subscribe(lambda p: errors.append(p.state.error))
    poller.start()
    await asyncio.sleep(0.2)

    assert not poller.running
    assert poller.state.stopped
    assert poller.state.consecutive_failures == 2
    assert errors == [TRANSIENT_ERROR, TERMINAL_ERROR]
