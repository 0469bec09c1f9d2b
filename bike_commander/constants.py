from __future__ import annotations

import logging
import os

# Bike backend target (what the UI talks to)
BACKEND_URL: str = os.getenv("BIKE_BACKEND_URL", "http://3.15.51.67").rstrip("/")
BIKE_ID: str = os.getenv("BIKE_ID", "bike1")
HTTP_TIMEOUT_S: float = float(os.getenv("BIKE_HTTP_TIMEOUT_S", "5.0"))

# Session lifecycle: idle time before an active session is dropped
INACTIVITY_TIMEOUT_S: float = float(os.getenv("BIKE_INACTIVITY_TIMEOUT_S", "30"))

# GPS polling
GPS_POLL_INTERVAL_S: float = float(os.getenv("BIKE_GPS_POLL_INTERVAL_S", "2.0"))
GPS_FAILURE_THRESHOLD: int = int(os.getenv("BIKE_GPS_FAILURE_THRESHOLD", "6"))

# Motion commands understood by the backend
COMMANDS: tuple[str, ...] = ("forward", "backward", "right", "left", "stop")
DEFAULT_SPEED_PCT: int = 50

# Google Maps web services (geocoding + directions)
GOOGLE_MAPS_API_KEY: str = os.getenv("GOOGLE_MAPS_API_KEY", "")
GOOGLE_MAPS_BASE_URL: str = "https://maps.googleapis.com/maps/api"
# south, west, north, east
CANADA_BOUNDS: tuple[float, float, float, float] = (
    41.6765,
    -141.0019,
    83.0956,
    -52.6363,
)
SEARCH_COUNTRY: str = "CA"

# Map defaults (McMaster University area)
DEFAULT_CENTER: tuple[float, float] = (43.255585, -79.935473)
MAP_ZOOM: int = 13

# Ride simulation
SIM_STEP_DEG: float = float(os.getenv("BIKE_SIM_STEP_DEG", "0.0002"))
SIM_INTERVAL_S: float = float(os.getenv("BIKE_SIM_INTERVAL_S", "0.5"))

# Webserver bind (NiceGUI host/port)
SERVER_HOST: str = os.getenv("BIKE_SERVER_IP", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("BIKE_SERVER_PORT", "8080"))


def _resolve_log_level() -> int:
    s = os.getenv("BIKE_LOG_LEVEL")
    if s:
        name = s.strip().upper()
        mapping = {
            "TRACE": 5,  # see common.logging_config.TRACE
            "DEBUG": logging.DEBUG,
            "INFO": logging.INFO,
            "WARNING": logging.WARNING,
            "ERROR": logging.ERROR,
            "CRITICAL": logging.CRITICAL,
        }
        return mapping.get(name, logging.WARNING)
    else:
        return logging.WARNING


LOG_LEVEL: int = _resolve_log_level()
