import io
from unittest.mock import MagicMock

from PIL import Image

from domain.models import HOME_COORDINATE, CameraPosition, MapRect, MapScreenState, RouteDisplayed
from services import map_renderer as mr


def _state_with_results(places, **kwargs) -> MapScreenState:
    rect = MapRect.from_points([p.coordinate for p in places]).padded(0.2)
    return MapScreenState(camera=CameraPosition.for_rect(rect), results=list(places), **kwargs)


def _pixel(img: Image.Image, xy):
    x, y = xy
    return img.getpixel((int(round(x)), int(round(y))))


def test_viewport_keeps_rect_inside_canvas(miami_beach_places):
    rect = MapRect.from_points([p.coordinate for p in miami_beach_places])
    vp = mr.compute_viewport(rect, 800, 600)
    for place in miami_beach_places:
        assert vp.contains(vp.project(place.coordinate))
    assert mr.MIN_ZOOM <= vp.zoom <= mr.MAX_ZOOM


def test_render_returns_requested_size(miami_beach_places):
    img = mr.render_map_screen(_state_with_results(miami_beach_places), width=320, height=200)
    assert img.size == (320, 200)
    assert img.mode == "RGB"


def test_markers_are_drawn_at_places(miami_beach_places):
    state = _state_with_results(miami_beach_places)
    img = mr.render_map_screen(state, width=600, height=400)
    vp = mr.compute_viewport(mr._camera_rect(state), 600, 400)
    for place in miami_beach_places:
        r, g, b = _pixel(img, vp.project(place.coordinate))
        assert r > 150 and r > b


def test_route_polyline_is_drawn(miami_beach_places, sample_route):
    destination = miami_beach_places[1]
    state = MapScreenState(
        camera=CameraPosition.for_rect(sample_route.bounding_rect),
        results=list(miami_beach_places),
        directions=RouteDisplayed(destination=destination, route=sample_route),
    )
    img = mr.render_map_screen(state, width=600, height=400)
    vp = mr.compute_viewport(mr._camera_rect(state), 600, 400)
    (x0, y0), (x1, y1) = (vp.project(c) for c in sample_route.polyline[:2])
    r, g, b = _pixel(img, ((x0 + x1) / 2, (y0 + y1) / 2))
    assert b > 200 and b > r


def test_hidden_results_are_not_drawn_while_route_displayed(miami_beach_places):
    destination = miami_beach_places[0]
    state = _state_with_results(
        miami_beach_places,
        directions=RouteDisplayed(destination=destination, route=None),
    )
    img = mr.render_map_screen(state, width=600, height=400)
    vp = mr.compute_viewport(mr._camera_rect(state), 600, 400)

    r, g, b = _pixel(img, vp.project(destination.coordinate))
    assert r > 150 and r > b
    hidden = miami_beach_places[2]
    r, g, b = _pixel(img, vp.project(hidden.coordinate))
    assert not (r > 150 and g < 120 and b < 120)


def test_home_annotation_always_drawn():
    state = MapScreenState()
    img = mr.render_map_screen(state, width=400, height=400)
    vp = mr.compute_viewport(mr._camera_rect(state), 400, 400)
    r, g, b = _pixel(img, vp.project(HOME_COORDINATE))
    assert b > 200 and r < 100


def test_tiles_used_as_background(monkeypatch):
    monkeypatch.setattr(mr, "MAP_TILES_ENABLED", True)
    monkeypatch.setattr(mr, "MAP_TILE_URL_TEMPLATE", "http://tiles.example/{z}/{x}/{y}.png")
    monkeypatch.setattr(mr, "_fetch_tile_cached", lambda z, x, y: Image.new("RGB", (256, 256), (0, 200, 0)))

    img = mr.render_map_screen(MapScreenState(), width=300, height=200)
    r, g, b = img.getpixel((3, 3))
    assert g > 150 and g > r and g > b


def test_grid_fallback_when_tiles_missing(monkeypatch):
    monkeypatch.setattr(mr, "MAP_TILES_ENABLED", True)
    monkeypatch.setattr(mr, "MAP_TILE_URL_TEMPLATE", "http://tiles.example/{z}/{x}/{y}.png")
    monkeypatch.setattr(mr, "_fetch_tile_cached", lambda z, x, y: None)

    img = mr.render_map_screen(MapScreenState(), width=300, height=200)
    r, g, b = img.getpixel((50, 50))
    assert min(r, g, b) > 180


def _mock_tile_response():
    img = Image.new("RGB", (8, 8), color="blue")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    resp = MagicMock()
    resp.content = buf.getvalue()
    resp.raise_for_status.return_value = None
    return resp


def test_fetch_tile_cached_uses_cache(monkeypatch):
    mr._fetch_tile_cached.cache_clear()
    monkeypatch.setattr(mr, "MAP_TILES_ENABLED", True)
    monkeypatch.setattr(mr, "MAP_TILE_URL_TEMPLATE", "http://example/{z}/{x}/{y}.png")
    monkeypatch.setattr(mr, "MAP_TILE_MIN_INTERVAL_SEC", 0.0)

    mock_resp = _mock_tile_response()
    call_counter = {"count": 0}

    def fake_get(url, headers=None, timeout=None):
        call_counter["count"] += 1
        return mock_resp

    monkeypatch.setattr(mr._TILE_SESSION, "get", fake_get)

    tile1 = mr._fetch_tile_cached(1, 2, 3)
    tile2 = mr._fetch_tile_cached(1, 2, 3)

    assert tile1 is not None
    assert tile2 is not None
    assert call_counter["count"] == 1
    mr._fetch_tile_cached.cache_clear()


def test_render_png_bytes(miami_beach_places):
    data = mr.render_map_screen_png(_state_with_results(miami_beach_places), width=120, height=90)
    img = Image.open(io.BytesIO(data))
    assert img.format == "PNG"
    assert img.size == (120, 90)
