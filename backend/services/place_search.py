"""Free-text place search using OpenStreetMap Nominatim.

Nominatim asks clients for an identifying User-Agent and at most one request
per second, so every call goes through a shared throttled session.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from typing import Any, List, Optional

import requests

from domain.models import Coordinate, MapRect, Place
from settings import settings

logger = logging.getLogger(__name__)
_session = requests.Session()
_last_request_ts: float = 0.0
_lock = threading.Lock()
_logged_ua = False

FALLBACK_UA = "map-explorer/0.1 (contact: example@example.com)"
if settings.NOMINATIM_USER_AGENT is None:
    logger.warning(
        "NOMINATIM_USER_AGENT not set in environment; using fallback UA. "
        "This may violate Nominatim usage policy."
    )


def _redact_email(ua: str) -> str:
    if "@" not in ua:
        return ua
    return re.sub(r"\S+@\S+", "<redacted>", ua)


_ua_value = settings.NOMINATIM_USER_AGENT or FALLBACK_UA
NOMINATIM_HEADERS = {
    "User-Agent": _ua_value,
}
if settings.NOMINATIM_REFERER:
    NOMINATIM_HEADERS["Referer"] = settings.NOMINATIM_REFERER


def _throttled_get(
    url: str,
    *,
    params: dict[str, Any],
    headers: dict[str, str],
    timeout: float,
) -> requests.Response:
    """Perform a GET request with a simple global rate limit."""
    global _last_request_ts
    with _lock:
        now = time.time()
        delta = now - _last_request_ts
        if delta < settings.NOMINATIM_MIN_INTERVAL:
            time.sleep(settings.NOMINATIM_MIN_INTERVAL - delta)
        _last_request_ts = time.time()
    return _session.get(url, params=params, headers=headers, timeout=timeout)


def format_place_title(item: dict, name: str = "") -> str:
    """
    Build the one-line subtitle shown under a place name.

    Rules:
    - Prefer house number + road, then the locality and state.
    - Fall back to the Nominatim display_name without the leading name and
      without country / postal-code boilerplate.
    - Keep it under 80 chars; truncate with '…' if necessary.
    """
    address = item.get("address") or {}
    parts: List[str] = []
    if isinstance(address, dict) and address:
        street = " ".join(
            str(p) for p in (address.get("house_number"), address.get("road")) if p
        )
        if street:
            parts.append(street)
        locality = (
            address.get("city")
            or address.get("town")
            or address.get("village")
            or address.get("suburb")
        )
        if locality:
            parts.append(str(locality))
        if address.get("state"):
            parts.append(str(address["state"]))

    if not parts:
        display_name = item.get("display_name") or ""
        boilerplate = {"united states", "usa", "united states of america"}
        for part in (p.strip() for p in display_name.split(",")):
            if not part or part == name or part.lower() in boilerplate:
                continue
            if re.match(r"^\d{5}(-\d{4})?$", part):
                continue
            parts.append(part)
        parts = parts[:3]

    title = ", ".join(parts)
    if len(title) > 80:
        title = title[:77] + "…"
    return title


def _parse_place(item: dict) -> Optional[Place]:
    try:
        coordinate = Coordinate(lat=float(item["lat"]), lon=float(item["lon"]))
    except (KeyError, TypeError, ValueError):
        return None
    namedetails = item.get("namedetails") or {}
    name = item.get("name") or namedetails.get("name") or ""
    if not name:
        display_name = item.get("display_name") or ""
        name = display_name.split(",")[0].strip()
    return Place(
        provider="osm",
        place_id=str(item.get("place_id", "")),
        coordinate=coordinate,
        name=name,
        title=format_place_title(item, name),
        raw=item,
    )


class PlaceSearchClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        default_limit: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        base = base_url or settings.NOMINATIM_BASE_URL
        if base.endswith("/search"):
            base = base.rsplit("/", 1)[0]
        self.base_url = base.rstrip("/")
        self.default_limit = default_limit or settings.SEARCH_RESULT_LIMIT
        self.timeout = timeout or settings.HTTP_TIMEOUT
        self.logger = logging.getLogger(__name__)

    def search(
        self,
        query: str,
        region: Optional[MapRect] = None,
        limit: Optional[int] = None,
    ) -> List[Place]:
        """Search places matching `query`, biased towards `region`.

        Returns results in service order; an empty list on any network or
        parsing error.
        """
        query = (query or "").strip()
        if not query:
            return []

        global _logged_ua
        if not _logged_ua:
            self.logger.debug("Nominatim User-Agent: %s", _redact_email(_ua_value))
            _logged_ua = True

        params: dict[str, Any] = {
            "format": "jsonv2",
            "q": query,
            "addressdetails": "1",
            "namedetails": "1",
            "limit": str(limit or self.default_limit),
        }
        if region is not None:
            # viewbox is x1,y1,x2,y2 = left,top,right,bottom
            params["viewbox"] = (
                f"{region.min_lon},{region.max_lat},{region.max_lon},{region.min_lat}"
            )

        try:
            resp = _throttled_get(
                f"{self.base_url}/search",
                params=params,
                headers=NOMINATIM_HEADERS,
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            self.logger.warning("Nominatim search error for query=%r: %s", query, exc)
            return []

        try:
            data = resp.json()
        except ValueError as exc:
            self.logger.warning("Nominatim search JSON error for query=%r: %s", query, exc)
            return []

        if not isinstance(data, list):
            return []

        results: List[Place] = []
        for item in data:
            if not isinstance(item, dict):
                continue
            place = _parse_place(item)
            if place is not None:
                results.append(place)

        self.logger.debug(
            "PlaceSearchClient.search: query=%r region=%s got %d results",
            query,
            region,
            len(results),
        )
        return results


_default_search_client: Optional[PlaceSearchClient] = None


def get_default_search_client() -> PlaceSearchClient:
    global _default_search_client
    if _default_search_client is None:
        _default_search_client = PlaceSearchClient()
    return _default_search_client
