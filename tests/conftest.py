from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from tests.utils.fake_backend import RecorderBikeClient

pytest_plugins = ["nicegui.testing.user_plugin"]


if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture(scope="session", autouse=True)
def webapp_env_session() -> None:
    """
    Global test defaults for the NiceGUI webapp (set at session start via os.environ):
      - Disable GPS polling at startup so no request leaves the test process
    These can still be overridden per-test with monkeypatch.setenv if needed.
    """
    os.environ["BIKE_GPS_AUTOSTART"] = "0"


@pytest.fixture
def fake_bike() -> RecorderBikeClient:
    return RecorderBikeClient()


@pytest.fixture
def session_manager(fake_bike: RecorderBikeClient) -> Iterator:
    """A SessionManager wired to the fake backend with a short idle timeout."""
    from bike_commander.services.session import SessionManager

    manager = SessionManager(backend=fake_bike, inactivity_timeout_s=0.2)
    try:
        yield manager
    finally:
        manager.close()
