"""
Core domain models for the map explorer.
These are framework-agnostic and can be used across all services.

Places, routes and preview scenes are read-only handles produced by the
external services; the screen state is the only mutable object.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
import math

from settings import settings

# Mean metres per degree of latitude.
METERS_PER_DEGREE_LAT = 111_320.0


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 point in degrees."""
    lat: float
    lon: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.lat, self.lon)

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lon": self.lon}


HOME_COORDINATE = Coordinate(lat=settings.HOME_LAT, lon=settings.HOME_LON)


@dataclass(frozen=True)
class MapRect:
    """Axis-aligned lat/lon bounding box."""
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    @classmethod
    def from_points(cls, points: Sequence[Coordinate]) -> Optional["MapRect"]:
        if not points:
            return None
        lats = [p.lat for p in points]
        lons = [p.lon for p in points]
        return cls(min_lat=min(lats), max_lat=max(lats), min_lon=min(lons), max_lon=max(lons))

    @property
    def center(self) -> Coordinate:
        return Coordinate(
            lat=(self.min_lat + self.max_lat) / 2.0,
            lon=(self.min_lon + self.max_lon) / 2.0,
        )

    @property
    def span_lat(self) -> float:
        return self.max_lat - self.min_lat

    @property
    def span_lon(self) -> float:
        return self.max_lon - self.min_lon

    def contains(self, coord: Coordinate) -> bool:
        return (
            self.min_lat <= coord.lat <= self.max_lat
            and self.min_lon <= coord.lon <= self.max_lon
        )

    def padded(self, ratio: float = 0.15, min_span_deg: float = 0.002) -> "MapRect":
        """Grow the box on every side; degenerate boxes get a minimum span."""
        span_lat = max(self.span_lat, min_span_deg)
        span_lon = max(self.span_lon, min_span_deg)
        center = self.center
        half_lat = span_lat * (0.5 + ratio)
        half_lon = span_lon * (0.5 + ratio)
        return MapRect(
            min_lat=center.lat - half_lat,
            max_lat=center.lat + half_lat,
            min_lon=center.lon - half_lon,
            max_lon=center.lon + half_lon,
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "min_lat": self.min_lat,
            "max_lat": self.max_lat,
            "min_lon": self.min_lon,
            "max_lon": self.max_lon,
        }


@dataclass(frozen=True)
class MapRegion:
    """A center point plus a north-south / east-west extent in metres."""
    center: Coordinate
    lat_meters: float
    lon_meters: float

    @classmethod
    def user_region(cls) -> "MapRegion":
        """Default camera region: the home point with a 2 km square span."""
        return cls(
            center=HOME_COORDINATE,
            lat_meters=settings.HOME_REGION_METERS,
            lon_meters=settings.HOME_REGION_METERS,
        )

    def to_rect(self) -> MapRect:
        half_lat = (self.lat_meters / 2.0) / METERS_PER_DEGREE_LAT
        cos_lat = max(math.cos(math.radians(self.center.lat)), 1e-6)
        half_lon = (self.lon_meters / 2.0) / (METERS_PER_DEGREE_LAT * cos_lat)
        return MapRect(
            min_lat=self.center.lat - half_lat,
            max_lat=self.center.lat + half_lat,
            min_lon=self.center.lon - half_lon,
            max_lon=self.center.lon + half_lon,
        )


@dataclass(frozen=True)
class CameraPosition:
    """
    What the map view shows: either a region around a point or an explicit
    rectangle (used after a route is computed).
    """
    region: Optional[MapRegion] = None
    rect: Optional[MapRect] = None

    @classmethod
    def for_region(cls, region: MapRegion) -> "CameraPosition":
        return cls(region=region)

    @classmethod
    def for_rect(cls, rect: MapRect) -> "CameraPosition":
        return cls(rect=rect)

    @property
    def kind(self) -> str:
        return "rect" if self.rect is not None else "region"

    def bounding_rect(self) -> MapRect:
        if self.rect is not None:
            return self.rect
        return (self.region or MapRegion.user_region()).to_rect()

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "bbox": self.bounding_rect().to_dict()}


@dataclass(frozen=True)
class Place:
    """
    A labeled point returned by the search service.

    Two places are equal when they come from the same provider record at the
    same coordinate; the labels and raw payload do not take part.
    """
    provider: str  # e.g. "osm"
    place_id: str  # provider-specific id
    coordinate: Coordinate
    name: str = field(default="", compare=False)
    title: str = field(default="", compare=False)  # one-line address / subtitle
    raw: Optional[dict] = field(default=None, compare=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "place_id": self.place_id,
            "name": self.name,
            "title": self.title,
            "lat": self.coordinate.lat,
            "lon": self.coordinate.lon,
        }


@dataclass(frozen=True)
class Route:
    """A computed path returned by the routing service."""
    polyline: Tuple[Coordinate, ...]
    distance_m: float = 0.0
    expected_travel_time_s: float = 0.0
    name: str = ""

    @property
    def bounding_rect(self) -> Optional[MapRect]:
        return MapRect.from_points(self.polyline)

    def to_dict(self) -> Dict[str, Any]:
        rect = self.bounding_rect
        return {
            "name": self.name,
            "distance_m": self.distance_m,
            "expected_travel_time_s": self.expected_travel_time_s,
            "points": len(self.polyline),
            "bbox": rect.to_dict() if rect else None,
        }


@dataclass(frozen=True)
class PreviewScene:
    """Street-level imagery handle for a place."""
    image_id: str
    thumb_url: str
    coordinate: Optional[Coordinate] = None
    captured_at: Optional[datetime] = None
    compass_angle: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "image_id": self.image_id,
            "thumb_url": self.thumb_url,
            "coordinate": self.coordinate.to_dict() if self.coordinate else None,
            "captured_at": self.captured_at.isoformat() if self.captured_at else None,
            "compass_angle": self.compass_angle,
        }


# Detail popover state: one tagged value instead of selection + visible flag.

@dataclass(frozen=True)
class Hidden:
    """
    Popover not shown. `place` is kept when the popover was closed to ask for
    directions; a dismissed popover carries no place.
    """
    place: Optional[Place] = None


@dataclass(frozen=True)
class Showing:
    """Popover shown for `place`."""
    place: Place


DetailState = Union[Hidden, Showing]


# Directions state

@dataclass(frozen=True)
class NoDirections:
    pass


@dataclass(frozen=True)
class RouteDisplayed:
    """Result of a finished directions request; `route` is None when none was found."""
    destination: Place
    route: Optional[Route] = None


@dataclass(frozen=True)
class DirectionsPending:
    """
    Routing call in flight. `previous` is the route still on screen until
    the new result replaces it.
    """
    destination: Place
    previous: Optional[RouteDisplayed] = None


DirectionsState = Union[NoDirections, DirectionsPending, RouteDisplayed]


@dataclass
class MapScreenState:
    """Everything the map screen shows. Created at mount, dropped at teardown."""
    camera: CameraPosition = field(
        default_factory=lambda: CameraPosition.for_region(MapRegion.user_region())
    )
    query: str = ""
    results: List[Place] = field(default_factory=list)
    detail: DetailState = field(default_factory=Hidden)
    directions: DirectionsState = field(default_factory=NoDirections)

    @property
    def selection(self) -> Optional[Place]:
        return self.detail.place

    @property
    def show_details(self) -> bool:
        return isinstance(self.detail, Showing)

    @property
    def directions_requested(self) -> bool:
        return isinstance(self.directions, DirectionsPending)

    @property
    def displayed_route(self) -> Optional[RouteDisplayed]:
        """The route result on screen, kept while a newer request is pending."""
        if isinstance(self.directions, RouteDisplayed):
            return self.directions
        if isinstance(self.directions, DirectionsPending):
            return self.directions.previous
        return None

    @property
    def route_displaying(self) -> bool:
        return self.displayed_route is not None

    @property
    def route(self) -> Optional[Route]:
        shown = self.displayed_route
        return shown.route if shown else None

    @property
    def route_destination(self) -> Optional[Place]:
        shown = self.displayed_route
        return shown.destination if shown else None

    def visible_markers(self) -> List[Place]:
        """
        Places drawn as markers. While a route is displayed only its
        destination is drawn; otherwise every result is.
        """
        if self.route_displaying:
            return [p for p in self.results if p == self.route_destination]
        return list(self.results)

    def to_dict(self) -> Dict[str, Any]:
        selection = self.selection
        route = self.route
        destination = self.route_destination
        return {
            "camera": self.camera.to_dict(),
            "query": self.query,
            "results": [p.to_dict() for p in self.results],
            "selection": selection.to_dict() if selection else None,
            "show_details": self.show_details,
            "directions_requested": self.directions_requested,
            "route_displaying": self.route_displaying,
            "route": route.to_dict() if route else None,
            "route_destination": destination.to_dict() if destination else None,
            "markers": [p.to_dict() for p in self.visible_markers()],
        }
