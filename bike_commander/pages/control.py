from __future__ import annotations

import logging
from functools import partial

from nicegui import ui

from bike_commander.common.logging_config import attach_ui_log
from bike_commander.common.theme import status_color
from bike_commander.services.session import SessionError, session
from bike_commander.state import ConnectionStatus, bike_state

# (command, button label, grid cell)
PAD_BUTTONS: list[tuple[str, str, str]] = [
    ("forward", "Forward", "pad-forward"),
    ("left", "Turn Left", "pad-left"),
    ("stop", "Stop", "pad-stop"),
    ("right", "Turn Right", "pad-right"),
    ("backward", "Backward", "pad-backward"),
]


class ControlPage:
    """Control tab page: connect, set speed, send motion commands."""

    def __init__(self) -> None:
        self.status_label: ui.label | None = None
        self.pad_buttons: dict[str, ui.button] = {}
        self.response_log: ui.log | None = None

    # ---- Actions ----

    async def connect(self) -> None:
        status = await session.connect()
        if status is ConnectionStatus.CONNECTED:
            ui.notify("Bike connected", color="positive")
        elif status is ConnectionStatus.CONNECTION_FAILED:
            ui.notify("Connection failed", color="warning")
        elif status is ConnectionStatus.CONNECTION_ERROR:
            ui.notify("Connection error", color="negative")

    def disconnect(self) -> None:
        session.disconnect()
        ui.notify("Disconnected", color="warning")
        logging.warning("Session closed by operator")

    async def send(self, command: str) -> None:
        duration = bike_state.time_duration or None
        try:
            data = await session.send_command(command, bike_state.speed, duration)
        except SessionError as e:
            ui.notify(str(e), color="warning")
            return
        except ValueError as e:
            ui.notify(str(e), color="warning")
            logging.warning("Rejected %s: %s", command, e)
            return
        if data is None:
            error = session.get_state().error or "Failed to send command"
            ui.notify(f"{command.upper()} failed: {error}", color="negative")
        else:
            ui.notify(f"Sent {command.upper()}", color="primary")

    # ---- UI ----

    def update_status_style(self) -> None:
        if self.status_label and not self.status_label.is_deleted:
            self.status_label.style(f"background: {status_color(bike_state.status)}")

    def build(self) -> None:
        with ui.card().classes("w-full"):
            with ui.row().classes("w-full items-center justify-between"):
                ui.label("Bike Control Panel").classes("text-lg font-medium")
                with ui.row().classes("items-center gap-2"):
                    ui.button("Connect", on_click=self.connect).props(
                        "unelevated color=primary"
                    ).mark("connect")
                    ui.button("Disconnect", on_click=self.disconnect).props(
                        "flat"
                    ).tooltip("Drop the session locally without asking the bike")

            ui.separator()
            ui.label("System Status").classes("text-md font-medium")
            with ui.row().classes("items-center gap-2"):
                ui.label("Status:").classes("text-sm")
                self.status_label = (
                    ui.label()
                    .bind_text_from(bike_state, "status")
                    .classes("status-pill text-sm")
                )
                self.update_status_style()
            ui.label().bind_text_from(bike_state, "error").bind_visibility_from(
                bike_state, "error"
            ).classes("error-banner text-sm")

            # Speed and optional duration
            ui.label().bind_text_from(
                bike_state, "speed", backward=lambda v: f"Speed Control: {v}%"
            ).classes("text-sm mt-2")
            ui.slider(min=0, max=100, step=1).bind_value(bike_state, "speed").classes(
                "w-full"
            )
            ui.number(
                label="Duration (s, optional)", min=0.1, max=600.0, step=0.5
            ).bind_value(bike_state, "time_duration").classes("w-48")

            # Control buttons
            with ui.element("div").classes("control-pad mt-4"):
                for command, text, cell in PAD_BUTTONS:
                    btn = (
                        ui.button(text, on_click=partial(self.send, command))
                        .classes(cell)
                        .mark(cell)
                        .bind_enabled_from(
                            bike_state, "sending", backward=lambda s: not s
                        )
                    )
                    btn.props(
                        "unelevated color=negative"
                        if command == "stop"
                        else "unelevated color=primary"
                    )
                    self.pad_buttons[command] = btn

        with ui.card().classes("w-full"):
            ui.label("Response Log").classes("text-md font-medium")
            self.response_log = (
                ui.log(max_lines=500)
                .classes("w-full whitespace-pre-wrap break-words")
                .style("height: 190px")
            )
            attach_ui_log(self.response_log)
