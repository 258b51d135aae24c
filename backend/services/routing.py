"""
Driving directions via an OSRM server (public demo server by default).
"""
from __future__ import annotations

import logging
from typing import List, Optional

import requests

from domain.models import Coordinate, Place, Route
from settings import settings

logger = logging.getLogger(__name__)


def _parse_route(item: dict) -> Optional[Route]:
    geometry = item.get("geometry") or {}
    coords = geometry.get("coordinates") if isinstance(geometry, dict) else None
    if not isinstance(coords, list) or len(coords) < 2:
        return None
    # GeoJSON is [lon, lat]
    polyline = tuple(
        Coordinate(lat=float(c[1]), lon=float(c[0]))
        for c in coords
        if isinstance(c, (list, tuple)) and len(c) >= 2
    )
    if len(polyline) < 2:
        return None
    legs = item.get("legs") or []
    summary = legs[0].get("summary", "") if legs and isinstance(legs[0], dict) else ""
    return Route(
        polyline=polyline,
        distance_m=float(item.get("distance", 0.0) or 0.0),
        expected_travel_time_s=float(item.get("duration", 0.0) or 0.0),
        name=summary or "",
    )


class RoutingClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        profile: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.OSRM_URL).rstrip("/")
        self.profile = profile or settings.OSRM_PROFILE
        self.timeout = timeout or settings.HTTP_TIMEOUT
        self.session = requests.Session()

    def calculate(self, origin: Coordinate, destination: Place) -> List[Route]:
        """
        Candidate routes from `origin` to `destination`, best first.
        Returns an empty list when the server finds nothing or fails.
        """
        dest = destination.coordinate
        lonlat = f"{origin.lon},{origin.lat};{dest.lon},{dest.lat}"
        url = f"{self.base_url}/route/v1/{self.profile}/{lonlat}"
        params = {
            "overview": "full",
            "geometries": "geojson",
            "alternatives": "true",
            "steps": "false",
        }
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning(
                "OSRM route error %s -> %s: %s", origin.as_tuple(), dest.as_tuple(), exc
            )
            return []

        if not isinstance(data, dict) or data.get("code") != "Ok":
            logger.warning(
                "OSRM returned no route %s -> %s: %s",
                origin.as_tuple(),
                dest.as_tuple(),
                (data or {}).get("code") if isinstance(data, dict) else data,
            )
            return []

        routes: List[Route] = []
        for item in data.get("routes") or []:
            if not isinstance(item, dict):
                continue
            route = _parse_route(item)
            if route is not None:
                routes.append(route)
        logger.debug(
            "RoutingClient.calculate: %s -> %s got %d routes",
            origin.as_tuple(),
            dest.as_tuple(),
            len(routes),
        )
        return routes


_default_routing_client: Optional[RoutingClient] = None


def get_default_routing_client() -> RoutingClient:
    global _default_routing_client
    if _default_routing_client is None:
        _default_routing_client = RoutingClient()
    return _default_routing_client
