"""
Hand a place off to an external maps application (the system web browser
pointed at openstreetmap.org).
"""
import logging
import webbrowser
from typing import Callable
from urllib.parse import urlencode

from domain.models import Place

logger = logging.getLogger(__name__)

OSM_WEB_URL = "https://www.openstreetmap.org/"
DEFAULT_ZOOM = 17


def build_maps_link(place: Place, zoom: int = DEFAULT_ZOOM) -> str:
    """Deep link that drops a marker on `place`."""
    lat = round(place.coordinate.lat, 6)
    lon = round(place.coordinate.lon, 6)
    query = urlencode({"mlat": lat, "mlon": lon})
    return f"{OSM_WEB_URL}?{query}#map={zoom}/{lat}/{lon}"


class MapsAppLauncher:
    def __init__(self, opener: Callable[[str], bool] = webbrowser.open):
        self._opener = opener

    def open(self, place: Place) -> str:
        """Fire-and-forget; returns the link that was handed off."""
        url = build_maps_link(place)
        try:
            opened = self._opener(url)
        except webbrowser.Error as exc:
            logger.warning("Could not open maps app for %s: %s", place.name, exc)
            return url
        if not opened:
            logger.info("No browser available to open %s", url)
        return url
