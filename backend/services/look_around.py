"""
Street-level preview lookup using the Mapillary Graph API.

Without MAPILLARY_ACCESS_TOKEN every lookup returns None and the popover
shows its "No Preview Available" placeholder.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Optional

import requests

from domain.models import METERS_PER_DEGREE_LAT, Coordinate, Place, PreviewScene
from settings import settings

logger = logging.getLogger(__name__)

SEARCH_RADIUS_M = 50.0
_FIELDS = "id,thumb_1024_url,computed_geometry,captured_at,compass_angle"


def _parse_scene(item: dict) -> Optional[PreviewScene]:
    image_id = item.get("id")
    thumb_url = item.get("thumb_1024_url")
    if not image_id or not thumb_url:
        return None
    coordinate = None
    geometry = item.get("computed_geometry") or {}
    coords = geometry.get("coordinates") if isinstance(geometry, dict) else None
    if isinstance(coords, list) and len(coords) >= 2:
        coordinate = Coordinate(lat=float(coords[1]), lon=float(coords[0]))
    captured_at = None
    if item.get("captured_at"):
        # epoch milliseconds
        captured_at = datetime.fromtimestamp(int(item["captured_at"]) / 1000.0, tz=timezone.utc)
    angle = item.get("compass_angle")
    return PreviewScene(
        image_id=str(image_id),
        thumb_url=str(thumb_url),
        coordinate=coordinate,
        captured_at=captured_at,
        compass_angle=float(angle) if angle is not None else None,
    )


class LookAroundClient:
    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        radius_m: float = SEARCH_RADIUS_M,
    ):
        self.access_token = access_token if access_token is not None else settings.MAPILLARY_ACCESS_TOKEN
        self.base_url = (base_url or settings.MAPILLARY_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT
        self.radius_m = radius_m
        self.session = requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.access_token)

    def _bbox_around(self, coord: Coordinate) -> str:
        d_lat = self.radius_m / METERS_PER_DEGREE_LAT
        d_lon = d_lat / max(math.cos(math.radians(coord.lat)), 1e-6)
        return f"{coord.lon - d_lon},{coord.lat - d_lat},{coord.lon + d_lon},{coord.lat + d_lat}"

    def fetch_scene(self, place: Place) -> Optional[PreviewScene]:
        """Closest street-level image for `place`, or None."""
        if not self.enabled:
            return None
        params = {
            "access_token": self.access_token,
            "fields": _FIELDS,
            "bbox": self._bbox_around(place.coordinate),
            "limit": "1",
        }
        try:
            resp = self.session.get(f"{self.base_url}/images", params=params, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Mapillary lookup failed for %s: %s", place.name or place.place_id, exc)
            return None

        items = data.get("data") if isinstance(data, dict) else None
        if not items:
            logger.debug("No street-level imagery near %s", place.coordinate.as_tuple())
            return None
        return _parse_scene(items[0]) if isinstance(items[0], dict) else None

    def fetch_image(self, scene: PreviewScene) -> Optional[bytes]:
        """Download the preview thumbnail bytes."""
        try:
            resp = self.session.get(scene.thumb_url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Preview image download failed for %s: %s", scene.image_id, exc)
            return None
        return resp.content or None


_default_look_around_client: Optional[LookAroundClient] = None


def get_default_look_around_client() -> LookAroundClient:
    global _default_look_around_client
    if _default_look_around_client is None:
        _default_look_around_client = LookAroundClient()
    return _default_look_around_client
