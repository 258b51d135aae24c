"""
Map screen: search, selection, directions and rendering for one session.

All state changes happen on the event loop. Service calls are blocking
`requests` clients and run in worker threads; every call collapses its
failures to "no data" (empty results, no route, no preview).
"""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from PIL import Image

from domain.models import (
    HOME_COORDINATE,
    CameraPosition,
    Coordinate,
    DirectionsPending,
    Hidden,
    MapRegion,
    MapScreenState,
    Place,
    Route,
    RouteDisplayed,
    Showing,
)
from services.detail_popover import DetailPopover
from services.look_around import get_default_look_around_client
from services.map_renderer import render_map_screen, render_map_screen_png
from services.maps_app import MapsAppLauncher
from services.place_search import get_default_search_client
from services.request_slot import RequestSlot, call_in_thread
from services.routing import get_default_routing_client
from settings import settings

logger = logging.getLogger(__name__)


def home_camera(home: Coordinate = HOME_COORDINATE) -> CameraPosition:
    return CameraPosition.for_region(
        MapRegion(
            center=home,
            lat_meters=settings.HOME_REGION_METERS,
            lon_meters=settings.HOME_REGION_METERS,
        )
    )


class MapScreen:
    """
    Owns the screen state and the detail popover.

    Client arguments default to the process-wide Nominatim / OSRM /
    Mapillary clients; tests pass fakes with the same method names.
    """

    def __init__(
        self,
        search_client=None,
        routing_client=None,
        look_around_client=None,
        maps_app=None,
        home: Coordinate = HOME_COORDINATE,
    ):
        self.home = home
        self.state = MapScreenState(camera=home_camera(home))
        self._search = search_client or get_default_search_client()
        self._routing = routing_client or get_default_routing_client()
        self._search_slot: RequestSlot[List[Place]] = RequestSlot("search")
        self._route_slot: RequestSlot[List[Route]] = RequestSlot("directions")
        self.popover = DetailPopover(
            self,
            look_around_client or get_default_look_around_client(),
            maps_app or MapsAppLauncher(),
        )

    # Search

    def submit_search(self, query: Optional[str] = None) -> asyncio.Task:
        """Search near the current viewport; results replace the old ones."""
        if query is not None:
            self.state.query = query
        query = self.state.query
        region = self.state.camera.bounding_rect()
        logger.info("Search for locations with query: %s", query)
        return self._search_slot.issue(
            lambda: call_in_thread("Place search", self._search.search, query, region, default=[]),
            self._set_results,
        )

    def _set_results(self, places: Optional[List[Place]]) -> None:
        self.state.results = list(places or [])
        logger.debug("Search %r -> %d results", self.state.query, len(self.state.results))

    # Selection

    def select_place(self, place: Optional[Place]) -> None:
        if place is None:
            self.dismiss()
            return
        self.state.detail = Showing(place)
        self.popover.present(place)

    def select_result(self, index: int) -> Place:
        """Select the result at `index` (a pin tap). Raises IndexError."""
        place = self.state.results[index]
        self.select_place(place)
        return place

    def dismiss(self) -> None:
        self.state.detail = Hidden()
        self.popover.clear()

    # Directions

    def request_directions(self) -> Optional[asyncio.Task]:
        """
        Route from home to the selected place. Without a selection nothing is
        dispatched and None is returned.
        """
        place = self.state.selection
        if place is None:
            logger.debug("Directions requested with no selection; ignoring")
            return None
        origin = self.home
        self.state.detail = Hidden(place)
        self.state.directions = DirectionsPending(place, previous=self.state.displayed_route)
        return self._route_slot.issue(
            lambda: call_in_thread(
                "Route calculation", self._routing.calculate, origin, place, default=[]
            ),
            lambda routes: self._finish_directions(place, routes),
        )

    def _finish_directions(self, destination: Place, routes: Optional[List[Route]]) -> None:
        route = routes[0] if routes else None
        self.state.directions = RouteDisplayed(destination=destination, route=route)
        detail = self.state.detail
        if isinstance(detail, Showing) and detail.place != destination:
            # popover reopened for another place while routing; leave it up
            logger.debug("Keeping popover for %s over finished route", detail.place.name)
        elif isinstance(detail, Showing):
            self.state.detail = Hidden(detail.place)
            self.popover.clear()
        rect = route.bounding_rect if route else None
        if rect is not None:
            self.state.camera = CameraPosition.for_rect(rect)
        else:
            logger.info("No route found to %s", destination.name or destination.place_id)

    # Camera

    def recenter(self) -> None:
        self.state.camera = home_camera(self.home)

    # Rendering

    def markers(self) -> List[Place]:
        return self.state.visible_markers()

    def render(self, width: int = 1200, height: int = 800) -> Image.Image:
        return render_map_screen(self.state, home=self.home, width=width, height=height)

    def render_png(self, width: int = 1200, height: int = 800) -> bytes:
        return render_map_screen_png(self.state, home=self.home, width=width, height=height)

    def snapshot(self) -> dict:
        data = self.state.to_dict()
        data["home"] = self.home.to_dict()
        data["popover"] = self.popover.to_dict()
        return data

    # Lifecycle

    @property
    def busy(self) -> bool:
        return self._search_slot.in_flight or self._route_slot.in_flight or self.popover.loading

    async def wait_idle(self) -> None:
        """Wait until no search, route or preview request is in flight."""
        await self._search_slot.wait()
        await self._route_slot.wait()
        await self.popover.wait()

    def close(self) -> None:
        self._search_slot.invalidate()
        self._route_slot.invalidate()
        self.popover.clear()
