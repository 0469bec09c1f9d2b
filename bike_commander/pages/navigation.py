from __future__ import annotations

import logging

import httpx
from nicegui import binding, ui

from bike_commander.constants import (
    DEFAULT_CENTER,
    MAP_ZOOM,
    SIM_INTERVAL_S,
    SIM_STEP_DEG,
)
from bike_commander.services.bike_client import TRANSPORT_ERRORS, BikeApiError, client
from bike_commander.services.maps import MapsError, Route, maps
from bike_commander.services.simulation import RideSimulator
from bike_commander.state import Position, gps_state

ROUTE_STYLE = {"color": "#1E88E5", "weight": 5, "opacity": 0.8}


class NavigationPage:
    """Navigation tab: plan a bicycling route, hand it to the bike, or simulate it."""

    error = binding.BindableProperty()
    navigating = binding.BindableProperty()
    simulating = binding.BindableProperty()
    route_summary = binding.BindableProperty()

    sim_step_deg: float = SIM_STEP_DEG
    sim_interval_s: float = SIM_INTERVAL_S

    def __init__(self) -> None:
        self.leaflet: ui.leaflet | None = None
        self.origin_input: ui.input | None = None
        self.destination_input: ui.input | None = None
        self.directions_button: ui.button | None = None
        self.navigate_button: ui.button | None = None
        self.simulate_button: ui.button | None = None

        self.origin: Position | None = None
        self.destination: Position | None = None
        self.route: Route | None = None
        self.simulator: RideSimulator | None = None

        self._bike_marker = None
        self._origin_marker = None
        self._dest_marker = None
        self._route_layer = None
        self._centered_on_fix = False

        self.error = ""
        self.navigating = False
        self.simulating = False
        self.route_summary = ""

    def _alive(self) -> bool:
        return self.leaflet is not None and not self.leaflet.is_deleted

    @property
    def current_location(self) -> Position | None:
        if not gps_state.has_fix:
            return None
        return Position(gps_state.lat, gps_state.lng)

    def set_error(self, message: str | None) -> None:
        self.error = message or ""

    # ---- Markers / buttons ----

    def _place_marker(self, marker, pos: Position | None, color: str):
        if not self._alive():
            return marker
        if pos is None:
            if marker is not None:
                self.leaflet.remove_layer(marker)
            return None
        if marker is None:
            marker = self.leaflet.generic_layer(
                name="circleMarker",
                args=[pos.as_tuple(), {"radius": 9, "color": color, "fillOpacity": 0.9}],
            )
        else:
            marker.run_method("setLatLng", pos.as_tuple())
        return marker

    def _refresh(self) -> None:
        if not self._alive():
            return
        self._origin_marker = self._place_marker(self._origin_marker, self.origin, "#2E7D32")
        self._dest_marker = self._place_marker(self._dest_marker, self.destination, "#C62828")
        if self.directions_button:
            self.directions_button.set_enabled(bool(self.origin and self.destination))
        if self.navigate_button:
            self.navigate_button.set_enabled(self.route is not None and not self.navigating)
            self.navigate_button.text = (
                "Navigating..." if self.navigating else "Start Navigation"
            )
        if self.simulate_button:
            self.simulate_button.set_enabled(self.route is not None)
            self.simulate_button.text = "Stop Simulation" if self.simulating else "Simulate Ride"

    def on_position(self, pos: Position) -> None:
        """GPS fix from the poller; ignored while a simulated ride drives the marker."""
        if self.simulating:
            return
        self._move_bike(pos)

    def _move_bike(self, pos: Position) -> None:
        if not self._alive() or self._bike_marker is None:
            return
        self._bike_marker.move(pos.lat, pos.lng)
        if not self._centered_on_fix:
            self._centered_on_fix = True
            self.leaflet.set_center(pos.as_tuple())

    # ---- Search ----

    async def _search(self, text: str) -> Position | None:
        try:
            places = await maps.search_places(text or "")
        except (MapsError, httpx.HTTPError) as e:
            logging.error("Place search failed: %s", e)
            self.set_error(str(e) if isinstance(e, MapsError) else "Place search failed")
            return None
        if not places:
            ui.notify(f"No places found for '{text}'", color="warning")
            return None
        self.set_error(None)
        return places[0].position

    async def search_origin(self) -> None:
        if not self.origin_input:
            return
        pos = await self._search(self.origin_input.value)
        if pos is not None:
            self.origin = pos
            self._refresh()

    async def search_destination(self) -> None:
        if not self.destination_input:
            return
        pos = await self._search(self.destination_input.value)
        if pos is not None:
            self.destination = pos
            self._refresh()

    def on_origin_cleared(self, e) -> None:
        if not e.value:
            self.origin = None
            self._refresh()

    def on_destination_cleared(self, e) -> None:
        if not e.value:
            self.destination = None
            self._refresh()

    async def use_current_location_as_start(self) -> None:
        current = self.current_location
        if current is None:
            self.set_error("GPS location is not available")
            return
        try:
            address = await maps.reverse_geocode(current)
        except (MapsError, httpx.HTTPError) as e:
            logging.error("Reverse geocode failed: %s", e)
            address = None
        if not address:
            self.set_error("Could not find address for current location")
            return
        if self.origin_input:
            self.origin_input.value = address
        self.origin = current
        self.set_error(None)
        self._refresh()

    async def on_map_click(self, e) -> None:
        try:
            latlng = e.args["latlng"]
            clicked = Position(float(latlng["lat"]), float(latlng["lng"]))
        except (KeyError, TypeError, ValueError):
            return
        try:
            address = await maps.reverse_geocode(clicked)
        except (MapsError, httpx.HTTPError) as ex:
            logging.error("Reverse geocode failed: %s", ex)
            return
        if not address:
            return
        if self.destination_input:
            self.destination_input.value = address
        self.destination = clicked
        self._refresh()

    # ---- Route ----

    async def show_route(self) -> None:
        if not self.origin or not self.destination:
            self.set_error("Please select both starting point and destination")
            return
        if not self._alive():
            self.set_error("Map services not initialized")
            return
        self.set_error(None)
        try:
            route = await maps.directions(self.origin, self.destination)
        except (MapsError, httpx.HTTPError) as e:
            logging.error("Error fetching directions: %s", e)
            self.set_error("Error calculating route")
            return
        self._draw_route(route)
        logging.info(
            "Route: %s, %s (%d points)",
            route.distance_text,
            route.duration_text,
            len(route.path),
        )

    def _draw_route(self, route: Route | None) -> None:
        self.route = route
        if self._alive() and self._route_layer is not None:
            self.leaflet.remove_layer(self._route_layer)
            self._route_layer = None
        if route is not None and self._alive():
            self._route_layer = self.leaflet.generic_layer(
                name="polyline",
                args=[[p.as_tuple() for p in route.path], ROUTE_STYLE],
            )
        self.route_summary = (
            f"Total Distance: {route.distance_text}\nEstimated Time: {route.duration_text}"
            if route
            else ""
        )
        self._refresh()

    async def clear_route(self) -> None:
        await self.stop_simulation()
        self._draw_route(None)
        self.set_error(None)
        self.navigating = False
        self._refresh()

    async def send_navigation(self) -> bool:
        if not self.origin or not self.destination:
            self.set_error("Origin and destination are required")
            return False
        try:
            await client.send_navigation(self.origin, self.destination)
        except (BikeApiError, *TRANSPORT_ERRORS) as e:
            logging.error("Error sending navigation: %s", e)
            self.set_error("Failed to start navigation")
            return False
        return True

    async def start_navigation(self) -> None:
        if await self.send_navigation():
            self.navigating = True
            ui.notify("Navigation started", color="positive")
            logging.info("Navigation sent to bike")
        self._refresh()

    # ---- Simulation ----

    async def toggle_simulation(self) -> None:
        if self.simulating:
            await self.stop_simulation()
            return
        if self.route is None or len(self.route.path) < 2:
            self.set_error("Calculate a route before simulating")
            return
        if self.simulator is not None:
            await self.simulator.stop()
        self.simulator = RideSimulator(
            self.route.path, step_deg=self.sim_step_deg, interval_s=self.sim_interval_s
        )
        self.simulator.subscribe(self._on_simulated_position)
        self.simulator.on_finish(self._on_simulation_finished)
        self.simulating = True
        gps_state.simulating = True
        self.simulator.start()
        self._refresh()

    def _on_simulated_position(self, pos: Position) -> None:
        self._move_bike(pos)

    def _on_simulation_finished(self, simulator: RideSimulator) -> None:
        if simulator is not self.simulator:
            return
        self.simulating = False
        gps_state.simulating = False
        self._refresh()

    async def stop_simulation(self) -> None:
        if self.simulator is not None:
            await self.simulator.stop()
            self.simulator = None
        self.simulating = False
        gps_state.simulating = False
        current = self.current_location
        if current is not None:
            self._move_bike(current)
        self._refresh()

    def center_on_current_location(self) -> None:
        if self.simulating and self.simulator is not None:
            target = self.simulator.position
        else:
            target = self.current_location
        if target is None:
            self.set_error("GPS location is not available")
            return
        self.leaflet.set_center(target.as_tuple())

    # ---- UI ----

    def build(self) -> None:
        self._bike_marker = self._origin_marker = self._dest_marker = None
        self._route_layer = None
        self._centered_on_fix = gps_state.has_fix
        start = self.current_location or Position(*DEFAULT_CENTER)

        with ui.card().classes("w-full"):
            ui.label("Bike Navigation").classes("text-lg font-medium")
            ui.label().bind_text_from(self, "error").bind_visibility_from(
                self, "error"
            ).classes("error-banner text-sm")
            ui.label().bind_text_from(gps_state, "error").bind_visibility_from(
                gps_state, "error"
            ).classes("error-banner text-sm")
            if not maps.configured:
                ui.label(
                    "GOOGLE_MAPS_API_KEY is not set: search and directions are unavailable"
                ).classes("text-sm text-warning")

            with ui.row().classes("w-full items-center gap-2 search-row"):
                self.origin_input = (
                    ui.input(placeholder="Enter starting point")
                    .classes("flex-grow")
                    .on("keydown.enter", self.search_origin)
                )
                self.origin_input.on_value_change(self.on_origin_cleared)
                ui.button(
                    icon="place", on_click=self.use_current_location_as_start
                ).props("flat").tooltip("Use current GPS location")
            with ui.row().classes("w-full items-center gap-2 search-row"):
                self.destination_input = (
                    ui.input(placeholder="Enter destination")
                    .classes("flex-grow")
                    .on("keydown.enter", self.search_destination)
                )
                self.destination_input.on_value_change(self.on_destination_cleared)
                self.directions_button = ui.button(
                    "Directions", icon="directions", on_click=self.show_route
                ).props("unelevated color=primary")
                self.navigate_button = ui.button(
                    "Start Navigation", icon="navigation", on_click=self.start_navigation
                ).props("unelevated color=accent")
                self.simulate_button = ui.button(
                    "Simulate Ride", icon="play_arrow", on_click=self.toggle_simulation
                ).props("outline")

            with ui.element("div").classes("w-full relative"):
                self.leaflet = ui.leaflet(center=start.as_tuple(), zoom=MAP_ZOOM).classes(
                    "map-pane"
                )
                self.leaflet.on("map-click", self.on_map_click)
                self._bike_marker = self.leaflet.marker(latlng=start.as_tuple())
                with ui.card().classes("route-info").bind_visibility_from(
                    self, "route_summary"
                ):
                    with ui.row().classes("w-full items-start justify-between"):
                        ui.label().bind_text_from(self, "route_summary").classes(
                            "text-sm whitespace-pre-line"
                        )
                        ui.button(icon="close", on_click=self.clear_route).props(
                            "flat round dense"
                        )
            ui.button(icon="my_location", on_click=self.center_on_current_location).props(
                "round flat"
            ).tooltip("Center on current location")

        self._refresh()

