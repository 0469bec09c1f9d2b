from __future__ import annotations

import asyncio
import logging

from nicegui import binding, ui

from bike_commander.constants import DEFAULT_CENTER
from bike_commander.state import Position, gps_state

RED_ICON_JS = (
    "L.icon({"
    "iconUrl: 'https://raw.githubusercontent.com/pointhi/leaflet-color-markers/master/img/marker-icon-2x-red.png',"
    "shadowUrl: 'https://unpkg.com/leaflet@1.7.1/dist/images/marker-shadow.png',"
    "iconSize: [25, 41], iconAnchor: [12, 41], popupAnchor: [1, -34], shadowSize: [41, 41]"
    "})"
)

STRAIGHT_LINE_STYLE = {"color": "red", "weight": 3, "opacity": 0.7, "dashArray": "5, 10"}


def popup_text(title: str, pos: Position) -> str:
    return f"{title}<br>Lat: {pos.lat:.5f}<br>Lng: {pos.lng:.5f}"


def parse_coordinate(value, lo: float, hi: float) -> float | None:
    """Return ``value`` as a float within [lo, hi], or None."""
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not lo <= number <= hi:
        return None
    return number


class MapPage:
    """Map tab: live bike position and a manually entered destination."""

    dest_lat = binding.BindableProperty()
    dest_lng = binding.BindableProperty()

    def __init__(self) -> None:
        self.leaflet: ui.leaflet | None = None
        self.bike_marker = None
        self.dest_marker = None
        self.line_layer = None
        self.destination: Position | None = None
        self._centered_on_fix = False
        self.dest_lat = None
        self.dest_lng = None
        self.coords_label: ui.label | None = None

    def _alive(self) -> bool:
        return self.leaflet is not None and not self.leaflet.is_deleted

    def _coords_text(self) -> str:
        if not gps_state.has_fix:
            return "Loading location data..."
        return f"Current Position: {gps_state.lat:.5f}, {gps_state.lng:.5f}"

    def _bike_position(self) -> Position:
        if gps_state.has_fix:
            return Position(gps_state.lat, gps_state.lng)
        return Position(*DEFAULT_CENTER)

    # ---- Updates ----

    def on_position(self, pos: Position) -> None:
        """Move the bike marker; the first fix recentres the map once."""
        if not self._alive() or self.bike_marker is None:
            return
        self.bike_marker.move(pos.lat, pos.lng)
        self.bike_marker.run_method("setPopupContent", popup_text("Current Location", pos))
        if not self._centered_on_fix:
            self._centered_on_fix = True
            self.leaflet.set_center(pos.as_tuple())
        if self.coords_label is not None:
            self.coords_label.text = self._coords_text()
        self._redraw_line()

    def _redraw_line(self) -> None:
        if not self._alive():
            return
        if self.line_layer is not None:
            self.leaflet.remove_layer(self.line_layer)
            self.line_layer = None
        if self.destination is None:
            return
        bike = self._bike_position()
        self.line_layer = self.leaflet.generic_layer(
            name="polyline",
            args=[[bike.as_tuple(), self.destination.as_tuple()], STRAIGHT_LINE_STYLE],
        )

    # ---- Actions ----

    def set_destination(self) -> None:
        lat = parse_coordinate(self.dest_lat, -90.0, 90.0)
        lng = parse_coordinate(self.dest_lng, -180.0, 180.0)
        if lat is None or lng is None:
            ui.notify("Enter a valid destination latitude and longitude", color="warning")
            return
        self.destination = Position(lat, lng)
        if self.dest_marker is None:
            self.dest_marker = self.leaflet.marker(latlng=self.destination.as_tuple())
            self.dest_marker.run_method(":setIcon", RED_ICON_JS)
            self.dest_marker.run_method(
                "bindPopup", popup_text("Destination", self.destination)
            )
        else:
            self.dest_marker.move(lat, lng)
            self.dest_marker.run_method(
                "setPopupContent", popup_text("Destination", self.destination)
            )
        self._redraw_line()
        logging.info("Map destination set to %.5f, %.5f", lat, lng)

    def center_on_bike(self) -> None:
        if not gps_state.has_fix:
            ui.notify("GPS location is not available", color="warning")
            return
        self.leaflet.set_center(self._bike_position().as_tuple())

    # ---- UI ----

    def build(self) -> None:
        self.bike_marker = self.dest_marker = self.line_layer = None
        self._centered_on_fix = gps_state.has_fix
        start = self._bike_position()

        with ui.card().classes("w-full"):
            ui.label("Map").classes("text-lg font-medium")
            ui.label().bind_text_from(gps_state, "error").bind_visibility_from(
                gps_state, "error"
            ).classes("error-banner text-sm")

            with ui.row().classes("items-end gap-2 search-row"):
                ui.number(
                    label="Destination Latitude", format="%.5f", step=0.00001
                ).bind_value(self, "dest_lat").classes("w-48")
                ui.number(
                    label="Destination Longitude", format="%.5f", step=0.00001
                ).bind_value(self, "dest_lng").classes("w-48")
                ui.button("Set Destination", on_click=self.set_destination).props(
                    "unelevated color=primary"
                )
                ui.button(icon="my_location", on_click=self.center_on_bike).props(
                    "round flat"
                ).tooltip("Center on current location")

            self.leaflet = ui.leaflet(center=start.as_tuple(), zoom=15).classes("map-pane")
            self.bike_marker = self.leaflet.marker(latlng=start.as_tuple())

            self.coords_label = ui.label(self._coords_text()).classes("text-sm")

        ui.timer(0.1, self._after_init, once=True)

    async def _after_init(self) -> None:
        if not self._alive():
            return
        try:
            await self.leaflet.initialized()
        except asyncio.TimeoutError:
            logging.debug("Map client never connected; popup not bound")
            return
        self.bike_marker.run_method(
            "bindPopup", popup_text("Current Location", self._bike_position())
        )
