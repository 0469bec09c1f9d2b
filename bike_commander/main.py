import argparse
import asyncio
import logging
import os
import sys
from functools import partial

from nicegui import Client, ui
from nicegui import app as ng_app
from nicegui.elements.tooltip import Tooltip

from bike_commander.common.logging_config import TRACE, configure_logging
from bike_commander.common.theme import (
    apply_theme,
    get_theme,
    inject_layout_css,
    status_color,
)
from bike_commander.constants import (
    BACKEND_URL,
    BIKE_ID,
    GPS_POLL_INTERVAL_S,
    LOG_LEVEL,
    SERVER_HOST,
    SERVER_PORT,
)
from bike_commander.pages.control import ControlPage
from bike_commander.pages.map import MapPage
from bike_commander.pages.navigation import NavigationPage
from bike_commander.pages.settings import SettingsPage
from bike_commander.services import gps_poller
from bike_commander.services.bike_client import client as bike_client
from bike_commander.services.maps import maps
from bike_commander.services.session import session
from bike_commander.state import ConnectionStatus, SessionState, bike_state, gps_state

# ------------------------ Global UI/state ------------------------


class ClientView:
    """Page objects and footer widgets of one browser tab."""

    def __init__(self, client: Client) -> None:
        self.client = client
        self.control = ControlPage()
        self.map = MapPage()
        self.navigation = NavigationPage()
        self.settings = SettingsPage()
        self.session_status_label: ui.label | None = None
        self.gps_status_label: ui.label | None = None
        self.session_tooltip: Tooltip | None = None
        self.gps_tooltip: Tooltip | None = None

    @property
    def alive(self) -> bool:
        return self.client.id in Client.instances


# One entry per open browser tab; pruned lazily once its client is gone
views: list[ClientView] = []

# GPS poller in use; replaced by a fresh one when a page load finds it halted
poller: gps_poller.GpsPoller = gps_poller.poller


def _env_flag(name: str, default: str = "1") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


def live_views() -> list[ClientView]:
    for view in views:
        if not view.alive and view.navigation.simulator is not None:
            # a closed tab must not keep replaying its ride
            asyncio.create_task(view.navigation.simulator.stop())
            view.navigation.simulator = None
    views[:] = [v for v in views if v.alive]
    return list(views)


# --------------- State -> UI ---------------


def on_session_change(state: SessionState) -> None:
    """Mirror the session state into the bindable BikeState and every footer."""
    bike_state.status = state.status.value
    bike_state.error = state.error or ""
    bike_state.sending = state.status is ConnectionStatus.SENDING
    for view in live_views():
        view.control.update_status_style()
        update_footer(view)


def on_gps_update(source: gps_poller.GpsPoller) -> None:
    """Mirror the poller into GpsState and move the markers in every tab."""
    gps_state.error = source.state.error or ""
    gps_state.stopped = source.state.stopped
    pos = source.position
    fresh = pos is not None and source.state.consecutive_failures == 0
    if fresh:
        gps_state.lat = pos.lat
        gps_state.lng = pos.lng
        gps_state.has_fix = True
    for view in live_views():
        if fresh:
            view.map.on_position(pos)
            view.navigation.on_position(pos)
        update_footer(view)


def update_footer(view: ClientView) -> None:
    label = view.session_status_label
    if label and not label.is_deleted:
        label.style(f"color: {status_color(bike_state.status)}")
        if view.session_tooltip:
            view.session_tooltip.text = bike_state.status
    label = view.gps_status_label
    if label and not label.is_deleted:
        if gps_state.stopped:
            color, tip = "#DB2828", "stopped"
        elif gps_state.error:
            color, tip = "#F2C037", "retrying"
        elif gps_state.simulating:
            color, tip = "#31CCEC", "simulated ride"
        elif gps_state.has_fix:
            color, tip = "#21BA45", f"{gps_state.lat:.5f}, {gps_state.lng:.5f}"
        else:
            color, tip = "#9E9E9E", "waiting for fix"
        label.style(f"color: {color}")
        if view.gps_tooltip:
            view.gps_tooltip.text = tip


session.subscribe(on_session_change)


# --------------- GPS polling ---------------


def ensure_poller() -> None:
    """Start GPS polling; a poller halted by repeated failures is replaced."""
    global poller
    if not _env_flag("BIKE_GPS_AUTOSTART"):
        return
    if poller.state.stopped:
        logging.info("Restarting GPS polling after halt")
        poller.unsubscribe(on_gps_update)
        poller = gps_poller.GpsPoller(
            source=poller.source,
            interval_s=poller.interval_s,
            failure_threshold=poller.failure_threshold,
        )
        gps_state.error = ""
        gps_state.stopped = False
    poller.subscribe(on_gps_update)
    poller.start()


# --------------- Layout ---------------


def build_header_and_tabs(view: ClientView) -> None:
    with (
        ui.header().classes("p-0"),
        ui.row().classes("w-full items-center justify-between"),
    ):
        with ui.tabs() as main_tabs:
            control_tab = ui.tab("Control")
            map_tab = ui.tab("Map")
            navigation_tab = ui.tab("Navigation")
            settings_tab = ui.tab("Settings")
        ui.label(f"Bike: {bike_client.bike_id}").classes("text-sm text-center px-4")

    with ui.tab_panels(main_tabs, value=control_tab).classes("w-full"):
        with ui.tab_panel(control_tab):
            view.control.build()
        with ui.tab_panel(map_tab):
            view.map.build()
        with ui.tab_panel(navigation_tab):
            view.navigation.build()
        with ui.tab_panel(settings_tab):
            view.settings.build()


def build_footer(view: ClientView) -> None:
    with ui.footer().classes("justify-between items-center px-3 py-1"):
        with ui.row().classes("items-center gap-4"):
            view.session_status_label = ui.label("SESSION").classes("text-sm")
            with view.session_status_label:
                view.session_tooltip = ui.tooltip("unknown")
            ui.label("|").classes("text-sm text-[var(--bike-muted)]")
            view.gps_status_label = ui.label("GPS").classes("text-sm")
            with view.gps_status_label:
                view.gps_tooltip = ui.tooltip("unknown")
        with ui.row().classes("items-center gap-2"):
            ui.button("Stop", on_click=partial(view.control.send, "stop")).props(
                "color=negative"
            )
    update_footer(view)


@ui.page("/")
def index(client: Client) -> None:
    apply_theme(get_theme())
    ui.query(".nicegui-content").classes("p-0")
    inject_layout_css()

    view = ClientView(client)
    build_header_and_tabs(view)
    build_footer(view)
    live_views()
    views.append(view)

    # A page load is the user's way to resume GPS polling after a halt
    ensure_poller()


# --------------- Lifecycle ---------------


def _cli_log_level(args: argparse.Namespace) -> int:
    """--log-level wins over -v/-q, which win over BIKE_LOG_LEVEL."""
    if args.log_level:
        return logging.getLevelName(args.log_level)
    if args.verbose:
        return (logging.INFO, logging.DEBUG, TRACE)[min(args.verbose, 3) - 1]
    if args.quiet:
        return logging.WARNING
    return LOG_LEVEL


async def _app_startup() -> None:
    logging.info(
        "Backend target: %s (bike %s)", bike_client.base_url, bike_client.bike_id
    )
    ensure_poller()


async def _app_shutdown() -> None:
    await poller.stop()
    for view in views:
        await view.navigation.stop_simulation()
    session.close()
    await bike_client.aclose()
    await maps.aclose()
    logging.info("Shutdown complete")


ng_app.on_startup(_app_startup)
ng_app.on_shutdown(_app_shutdown)


if __name__ in {"__main__", "__mp_main__"}:
    # CLI: web bind, backend target, and log level
    parser = argparse.ArgumentParser(description="Bike Commander NiceGUI Webserver")
    parser.add_argument("--host", default=SERVER_HOST, help="Webserver bind host")
    parser.add_argument(
        "--port", type=int, default=SERVER_PORT, help="Webserver bind port"
    )
    parser.add_argument(
        "--backend-url", default=BACKEND_URL, help="Bike backend base URL"
    )
    parser.add_argument("--bike-id", default=BIKE_ID, help="Bike identifier")
    parser.add_argument(
        "--gps-interval",
        type=float,
        default=GPS_POLL_INTERVAL_S,
        help="GPS polling interval in seconds",
    )
    parser.add_argument(
        "--log-level",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set log level",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity; -v=INFO, -vv=DEBUG, -vvv=TRACE",
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Enable WARNING logging"
    )
    args, _ = parser.parse_known_args()

    bike_client.base_url = args.backend_url.rstrip("/")
    bike_client.bike_id = args.bike_id
    poller.interval_s = float(args.gps_interval)

    configure_logging(_cli_log_level(args))
    logging.info("Webserver bind: host=%s port=%s", args.host, args.port)

    ui.run(
        title="Bike Commander",
        host=args.host,
        port=int(args.port),
        reload=False,
        show=False,
        loop="uvloop" if sys.platform != "win32" else "asyncio",
        http="httptools",
        ws="wsproto",
        binding_refresh_interval=0.05,
    )
