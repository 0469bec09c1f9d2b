from __future__ import annotations

import logging

from nicegui import ui

from bike_commander.common.theme import ThemeMode, get_theme, set_theme
from bike_commander.services.bike_client import client
from bike_commander.services.session import session


class SettingsPage:
    """Settings tab page."""

    def build(self) -> None:
        with ui.card().classes("w-full"):
            ui.label("Settings").classes("text-md font-medium")
            with ui.row().classes("items-center gap-2"):
                ui.label("Theme").classes("text-sm")
                # Persisted in app.storage.general by set_theme
                saved_mode = get_theme()
                mode_toggle = ui.toggle(
                    options=["System", "Light", "Dark"], value=saved_mode.capitalize()
                ).props("dense")

                def _on_mode() -> None:
                    mode: ThemeMode = (mode_toggle.value or "System").lower()
                    set_theme(mode)
                    logging.debug("Set theme to mode: %s", mode)

                mode_toggle.on_value_change(lambda e: _on_mode())

        with ui.card().classes("w-full"):
            ui.label("Connection").classes("text-md font-medium")
            with ui.column().classes("gap-1"):
                ui.label(f"Backend: {client.base_url}").classes("text-sm")
                ui.label(f"Bike ID: {client.bike_id}").classes("text-sm")
                ui.label(
                    f"Inactivity timeout: {session.inactivity_timeout_s:.0f} s"
                ).classes("text-sm")
