import sys
import threading
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Ensure the backend package root is on sys.path for direct pytest runs
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from domain.models import Coordinate, Place, PreviewScene, Route  # noqa: E402


class FakeSearchClient:
    """Answers from a query -> places table; optional per-query gates block the call."""

    def __init__(self, table=None, gates: Optional[Dict[str, threading.Event]] = None, error=None):
        self.table = table or {}
        self.gates = gates or {}
        self.error = error
        self.calls = []

    def search(self, query, region=None, limit=None):
        self.calls.append((query, region))
        gate = self.gates.get(query)
        if gate is not None:
            gate.wait(5)
        if self.error is not None:
            raise self.error
        return list(self.table.get(query, []))


class FakeRoutingClient:
    """Same routes for every destination unless `table` maps its place_id; gates block per place_id."""

    def __init__(
        self,
        routes: Optional[List[Route]] = None,
        error=None,
        table: Optional[Dict[str, List[Route]]] = None,
        gates: Optional[Dict[str, threading.Event]] = None,
    ):
        self.routes = routes or []
        self.error = error
        self.table = table or {}
        self.gates = gates or {}
        self.calls = []

    def calculate(self, origin, destination):
        self.calls.append((origin, destination))
        gate = self.gates.get(destination.place_id)
        if gate is not None:
            gate.wait(5)
        if self.error is not None:
            raise self.error
        return list(self.table.get(destination.place_id, self.routes))


class FakeLookAroundClient:
    def __init__(self, scenes=None, gates: Optional[Dict[str, threading.Event]] = None, image=b"jpeg-bytes"):
        self.scenes = scenes or {}
        self.gates = gates or {}
        self.image = image
        self.calls = []

    def fetch_scene(self, place):
        self.calls.append(place)
        gate = self.gates.get(place.place_id)
        if gate is not None:
            gate.wait(5)
        return self.scenes.get(place.place_id)

    def fetch_image(self, scene):
        return self.image


class FakeMapsApp:
    def __init__(self):
        self.opened = []

    def open(self, place):
        self.opened.append(place)
        return f"https://maps.example/{place.place_id}"


def make_place(place_id: str, lat: float, lon: float, name: str = "", title: str = "") -> Place:
    return Place(
        provider="osm",
        place_id=place_id,
        coordinate=Coordinate(lat=lat, lon=lon),
        name=name or f"Place {place_id}",
        title=title,
    )


@pytest.fixture
def miami_beach_places() -> List[Place]:
    return [
        make_place("101", 25.7907, -80.1300, "Miami Beach", "Miami Beach, Florida"),
        make_place("102", 25.7814, -80.1340, "South Pointe Park", "1 Washington Ave, Miami Beach"),
        make_place("103", 25.8130, -80.1223, "Miami Beach Botanical Garden", "2000 Convention Center Dr"),
    ]


@pytest.fixture
def sample_route() -> Route:
    return Route(
        polyline=(
            Coordinate(25.7602, -80.1959),
            Coordinate(25.7700, -80.1700),
            Coordinate(25.7814, -80.1340),
        ),
        distance_m=6400.0,
        expected_travel_time_s=780.0,
        name="MacArthur Causeway",
    )


@pytest.fixture
def fakes(miami_beach_places, sample_route):
    scenes = {
        p.place_id: PreviewScene(image_id=f"img-{p.place_id}", thumb_url=f"https://img.example/{p.place_id}.jpg")
        for p in miami_beach_places
    }
    return {
        "search_client": FakeSearchClient({"Miami Beach": miami_beach_places}),
        "routing_client": FakeRoutingClient([sample_route]),
        "look_around_client": FakeLookAroundClient(scenes),
        "maps_app": FakeMapsApp(),
    }
