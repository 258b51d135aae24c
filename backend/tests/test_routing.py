from unittest.mock import MagicMock

import pytest
import requests

from conftest import make_place
from domain.models import HOME_COORDINATE, Coordinate
from services.routing import RoutingClient


def _response(payload):
    resp = MagicMock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


OSRM_OK = {
    "code": "Ok",
    "routes": [
        {
            "distance": 6400.5,
            "duration": 780.2,
            "geometry": {
                "type": "LineString",
                "coordinates": [[-80.1959, 25.7602], [-80.17, 25.77], [-80.134, 25.7814]],
            },
            "legs": [{"summary": "MacArthur Causeway"}],
        },
        {
            "distance": 7100.0,
            "duration": 900.0,
            "geometry": {"type": "LineString", "coordinates": [[-80.1959, 25.7602], [-80.134, 25.7814]]},
            "legs": [{"summary": ""}],
        },
    ],
}


def _client(payload=None, error=None):
    client = RoutingClient(base_url="https://osrm.example/", profile="driving")
    client.session = MagicMock()
    if error is not None:
        client.session.get.side_effect = error
    else:
        client.session.get.return_value = _response(payload)
    return client


def test_calculate_parses_routes_best_first():
    client = _client(OSRM_OK)
    destination = make_place("102", 25.7814, -80.1340)

    routes = client.calculate(HOME_COORDINATE, destination)

    assert len(routes) == 2
    best = routes[0]
    assert best.name == "MacArthur Causeway"
    assert best.distance_m == pytest.approx(6400.5)
    assert best.expected_travel_time_s == pytest.approx(780.2)
    # GeoJSON lon/lat is flipped into lat/lon
    assert best.polyline[0] == Coordinate(25.7602, -80.1959)
    assert best.polyline[-1] == Coordinate(25.7814, -80.134)
    assert best.bounding_rect.min_lat == pytest.approx(25.7602)
    assert best.bounding_rect.max_lon == pytest.approx(-80.134)


def test_calculate_builds_osrm_url():
    client = _client(OSRM_OK)
    client.calculate(Coordinate(25.0, -80.0), make_place("1", 26.0, -81.0))

    url = client.session.get.call_args.args[0]
    params = client.session.get.call_args.kwargs["params"]
    assert url == "https://osrm.example/route/v1/driving/-80.0,25.0;-81.0,26.0"
    assert params["geometries"] == "geojson"
    assert params["overview"] == "full"


def test_no_route_code_returns_empty():
    client = _client({"code": "NoRoute", "message": "Impossible route"})
    assert client.calculate(HOME_COORDINATE, make_place("1", 0.0, 0.0)) == []


def test_network_error_returns_empty():
    client = _client(error=requests.Timeout("slow"))
    assert client.calculate(HOME_COORDINATE, make_place("1", 0.0, 0.0)) == []


def test_routes_without_geometry_are_skipped():
    client = _client({"code": "Ok", "routes": [{"distance": 1.0, "geometry": {"coordinates": [[0, 0]]}}]})
    assert client.calculate(HOME_COORDINATE, make_place("1", 0.0, 0.0)) == []
