from __future__ import annotations

import asyncio

import pytest

from bike_commander.services.simulation import RideSimulator, interpolate
from bike_commander.state import Position


@pytest.mark.unit
def test_interpolation_hits_every_waypoint():
    path = [Position(0.0, 0.0), Position(0.0, 0.5), Position(0.25, 0.5)]
    steps = list(interpolate(path, 0.1))
    assert steps[0] == path[0]
    assert steps[-1] == path[-1]
    for waypoint in path:
        assert waypoint in steps


@pytest.mark.unit
def test_interpolation_moves_at_most_one_step_per_axis():
    path = [Position(0.0, 0.0), Position(0.35, -0.12)]
    steps = list(interpolate(path, 0.1))
    for a, b in zip(steps, steps[1:]):
        assert abs(b.lat - a.lat) <= 0.1 + 1e-12
        assert abs(b.lng - a.lng) <= 0.1 + 1e-12
    # lat needs 4 steps (0.1, 0.2, 0.3, 0.35)
    assert len(steps) == 5


@pytest.mark.unit
def test_interpolation_rejects_non_positive_step():
    with pytest.raises(ValueError):
        list(interpolate([Position(0.0, 0.0)], 0))


@pytest.mark.unit
def test_simulator_needs_two_waypoints():
    with pytest.raises(ValueError):
        RideSimulator([Position(0.0, 0.0)])


@pytest.mark.unit
async def test_simulated_ride_reaches_destination():
    path = [Position(0.0, 0.0), Position(0.002, 0.0)]
    sim = RideSimulator(path, step_deg=0.001, interval_s=0.0)
    seen: list[Position] = []
    sim.subscribe(seen.append)
    sim.start()
    await asyncio.sleep(0.05)
    assert sim.finished
    assert not sim.running
    assert seen[-1] == path[-1]
    assert sim.position == path[-1]


@pytest.mark.unit
async def test_stop_halts_ride():
    path = [Position(0.0, 0.0), Position(1.0, 1.0)]
    sim = RideSimulator(path, step_deg=0.001, interval_s=0.05)
    sim.start()
    await asyncio.sleep(0.01)
    await sim.stop()
    assert not sim.running
    assert not sim.finished
    assert sim.position != path[-1]


@pytest.mark.unit
async def test_finish_callback_fires_once_and_not_on_stop():
    path = [Position(0.0, 0.0), Position(0.001, 0.0), Position(0.0, 0.0)]
    done = RideSimulator(path, step_deg=0.001, interval_s=0.0)
    finished: list[RideSimulator] = []
    done.on_finish(finished.append)
    done.on_finish(finished.append)
    done.start()
    await asyncio.sleep(0.05)
    assert finished == [done]

    stopped = RideSimulator(path, step_deg=0.001, interval_s=0.05)
    stopped.on_finish(finished.append)
    stopped.start()
    await asyncio.sleep(0.01)
    await stopped.stop()
    assert finished == [done]
