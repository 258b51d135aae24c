"""
Map screen renderer using Pillow.

Draws the current camera viewport: raster tiles (or a plain grid when tiles
are disabled or unreachable), the route polyline, result markers with
labels, and the home annotation.
"""
import math
import sys
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from io import BytesIO
from typing import List, Optional, Sequence, Tuple

import requests
from PIL import Image, ImageDraw, ImageFont

from domain.models import HOME_COORDINATE, Coordinate, MapRect, MapScreenState, Place
from settings import settings

UPSCALE_FACTOR = 2
TILE_SIZE = 256
MIN_ZOOM = 2
MAX_ZOOM = 18

# Tile configuration
MAP_TILES_ENABLED = settings.MAP_TILES_ENABLED
MAP_TILE_URL_TEMPLATE = settings.MAP_TILE_URL_TEMPLATE
MAP_TILE_TIMEOUT = settings.MAP_TILE_TIMEOUT
MAP_TILE_MIN_INTERVAL_SEC = settings.MAP_TILE_MIN_INTERVAL_SEC
MAP_TILE_HEADERS = {
    "User-Agent": settings.NOMINATIM_USER_AGENT or "map-explorer/0.1 (tile-fetch)",
}
_TILE_SESSION = requests.Session()
_TILE_LOCK = threading.Lock()
_LAST_TILE_TS = 0.0

# Styling
BACKGROUND_COLOR = "#eef1f4"
GRID_COLOR = (200, 206, 214, 255)
GRID_SPACING = 100
ROUTE_COLOR = (0, 122, 255, 255)
ROUTE_GLOW_COLOR = (255, 255, 255, 220)
ROUTE_WIDTH = 6
MARKER_FILL = (234, 67, 53, 255)
MARKER_OUTLINE = (255, 255, 255, 255)
MARKER_RADIUS = 9
LABEL_COLOR = (30, 30, 30, 255)
LABEL_HALO = (255, 255, 255, 230)
HOME_HALO = (0, 122, 255, 64)
HOME_RING = (255, 255, 255, 255)
HOME_DOT = (0, 122, 255, 255)
# Diameters of the three home circles, outermost first.
HOME_DIAMETERS = (32, 20, 12)
ROUTE_VIEW_PADDING = 0.15


@dataclass(frozen=True)
class Viewport:
    """Web Mercator window onto the world at a fixed zoom."""
    zoom: int
    x0: float  # world pixel coords of the canvas origin
    y0: float
    scale: float  # canvas px per world px
    width: int
    height: int

    def project(self, coord: Coordinate) -> Tuple[float, float]:
        tx, ty = _latlon_to_tile_xy(coord.lat, coord.lon, self.zoom)
        return (
            (tx * TILE_SIZE - self.x0) * self.scale,
            (ty * TILE_SIZE - self.y0) * self.scale,
        )

    def contains(self, xy: Tuple[float, float]) -> bool:
        x, y = xy
        return 0 <= x <= self.width and 0 <= y <= self.height


def _latlon_to_tile_xy(lat: float, lon: float, zoom: int) -> Tuple[float, float]:
    """Convert lat/lon to fractional Web Mercator tile coords."""
    lat = max(min(lat, 85.05112878), -85.05112878)
    lat_rad = math.radians(lat)
    n = 2.0 ** zoom
    x = (lon + 180.0) / 360.0 * n
    y = (1.0 - math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad)) / math.pi) / 2.0 * n
    return x, y


def _normalize_bbox_aspect(
    min_lat: float,
    max_lat: float,
    min_lon: float,
    max_lon: float,
    target_aspect: float,
) -> Tuple[float, float, float, float]:
    """
    Expand bbox (never shrink) to match target aspect (width/height after cos(lat)).
    """
    center_lat = (min_lat + max_lat) / 2.0
    center_lon = (min_lon + max_lon) / 2.0
    lat_span = max(max_lat - min_lat, 1e-6)
    lon_span = max(max_lon - min_lon, 1e-6)
    center_lat_rad = math.radians(center_lat)
    lon_span_vis = lon_span * math.cos(center_lat_rad)
    bbox_aspect = lon_span_vis / lat_span

    if bbox_aspect < target_aspect:
        lon_span_vis_new = target_aspect * lat_span
        lon_span_new = lon_span_vis_new / max(math.cos(center_lat_rad), 1e-6)
        min_lon = center_lon - lon_span_new / 2
        max_lon = center_lon + lon_span_new / 2
    elif bbox_aspect > target_aspect:
        lat_span_new = lon_span_vis / target_aspect
        min_lat = center_lat - lat_span_new / 2
        max_lat = center_lat + lat_span_new / 2

    return min_lat, max_lat, min_lon, max_lon


def compute_viewport(rect: MapRect, width: int, height: int) -> Viewport:
    """Fit `rect` into a width x height canvas, centered, keeping aspect."""
    min_lat, max_lat, min_lon, max_lon = _normalize_bbox_aspect(
        rect.min_lat, rect.max_lat, rect.min_lon, rect.max_lon, width / max(height, 1)
    )
    lon_span = max(max_lon - min_lon, 1e-9)
    zoom = int(math.floor(math.log2(width * 360.0 / (TILE_SIZE * lon_span))))
    zoom = max(MIN_ZOOM, min(MAX_ZOOM, zoom))

    x1, y1 = _latlon_to_tile_xy(max_lat, min_lon, zoom)
    x2, y2 = _latlon_to_tile_xy(min_lat, max_lon, zoom)
    span_x = max((x2 - x1) * TILE_SIZE, 1e-6)
    span_y = max((y2 - y1) * TILE_SIZE, 1e-6)
    scale = min(width / span_x, height / span_y)
    # Center the window on the box.
    cx = (x1 + x2) / 2.0 * TILE_SIZE
    cy = (y1 + y2) / 2.0 * TILE_SIZE
    return Viewport(
        zoom=zoom,
        x0=cx - (width / 2.0) / scale,
        y0=cy - (height / 2.0) / scale,
        scale=scale,
        width=width,
        height=height,
    )


def _fetch_tile_http(z: int, x: int, y: int) -> Optional[Image.Image]:
    """
    Fetch a single tile via HTTP with rate limiting.
    Returns a PIL Image or None on error.
    """
    global _LAST_TILE_TS

    if not MAP_TILES_ENABLED or not MAP_TILE_URL_TEMPLATE:
        return None

    url = MAP_TILE_URL_TEMPLATE.format(z=z, x=x, y=y)

    with _TILE_LOCK:
        now = time.time()
        elapsed = now - _LAST_TILE_TS
        if elapsed < MAP_TILE_MIN_INTERVAL_SEC:
            time.sleep(MAP_TILE_MIN_INTERVAL_SEC - elapsed)
        _LAST_TILE_TS = time.time()
        try:
            resp = _TILE_SESSION.get(url, headers=MAP_TILE_HEADERS, timeout=MAP_TILE_TIMEOUT)
            resp.raise_for_status()
        except requests.RequestException as exc:
            print(f"[MAP] Tile fetch failed for {url}: {exc}", file=sys.stderr)
            return None

    try:
        return Image.open(BytesIO(resp.content)).convert("RGB")
    except Exception as exc:
        print(f"[MAP] Tile decode failed for {url}: {exc}", file=sys.stderr)
        return None


@lru_cache(maxsize=512)
def _fetch_tile_cached(z: int, x: int, y: int) -> Optional[Image.Image]:
    """Memoised tile fetch; wraps the throttled HTTP helper."""
    return _fetch_tile_http(z, x, y)


def _draw_tile_background(img: Image.Image, viewport: Viewport, upscale: int) -> bool:
    """
    Attempt to paint tiles behind the overlays.
    Returns True if any tile was drawn, False to fall back to the grid.
    """
    if not MAP_TILES_ENABLED or not MAP_TILE_URL_TEMPLATE:
        return False

    n = 2 ** viewport.zoom
    world_w = viewport.width / viewport.scale
    world_h = viewport.height / viewport.scale
    tx_min = int(math.floor(viewport.x0 / TILE_SIZE))
    tx_max = int(math.floor((viewport.x0 + world_w) / TILE_SIZE))
    ty_min = max(0, int(math.floor(viewport.y0 / TILE_SIZE)))
    ty_max = min(n - 1, int(math.floor((viewport.y0 + world_h) / TILE_SIZE)))

    scaled = max(1, int(round(TILE_SIZE * viewport.scale * upscale)))
    any_tile = False
    for ty in range(ty_min, ty_max + 1):
        for tx in range(tx_min, tx_max + 1):
            tile = _fetch_tile_cached(viewport.zoom, tx % n, ty)
            if tile is None:
                continue
            any_tile = True
            px = int(round((tx * TILE_SIZE - viewport.x0) * viewport.scale * upscale))
            py = int(round((ty * TILE_SIZE - viewport.y0) * viewport.scale * upscale))
            img.paste(tile.resize((scaled, scaled), Image.BICUBIC), (px, py))
    return any_tile


def _draw_grid(draw: ImageDraw.ImageDraw, size: Tuple[int, int], upscale: int) -> None:
    w, h = size
    step = GRID_SPACING * upscale
    for x in range(0, w + 1, step):
        draw.line([(x, 0), (x, h)], fill=GRID_COLOR, width=max(1, upscale // 2))
    for y in range(0, h + 1, step):
        draw.line([(0, y), (w, y)], fill=GRID_COLOR, width=max(1, upscale // 2))


def _draw_route(draw: ImageDraw.ImageDraw, points: Sequence[Tuple[float, float]], upscale: int) -> None:
    if len(points) < 2:
        return
    draw.line(points, fill=ROUTE_GLOW_COLOR, width=(ROUTE_WIDTH + 4) * upscale, joint="curve")
    draw.line(points, fill=ROUTE_COLOR, width=ROUTE_WIDTH * upscale, joint="curve")


def _draw_home(draw: ImageDraw.ImageDraw, center: Tuple[float, float], upscale: int) -> None:
    x, y = center
    for diameter, fill in zip(HOME_DIAMETERS, (HOME_HALO, HOME_RING, HOME_DOT)):
        r = diameter * upscale / 2.0
        draw.ellipse((x - r, y - r, x + r, y + r), fill=fill)


def _measure_text(font: ImageFont.ImageFont, text: str) -> Tuple[int, int]:
    left, top, right, bottom = font.getbbox(text)
    return right - left, bottom - top


def _draw_marker(
    draw: ImageDraw.ImageDraw,
    center: Tuple[float, float],
    label: str,
    font: ImageFont.ImageFont,
    upscale: int,
) -> None:
    x, y = center
    r = MARKER_RADIUS * upscale
    draw.ellipse((x - r, y - r, x + r, y + r), fill=MARKER_FILL, outline=MARKER_OUTLINE, width=2 * upscale)
    if not label:
        return
    tw, th = _measure_text(font, label)
    tx = x - tw / 2
    ty = y + r + 3 * upscale
    pad = 2 * upscale
    draw.rectangle((tx - pad, ty - pad, tx + tw + pad, ty + th + pad * 2), fill=LABEL_HALO)
    draw.text((tx, ty), label, fill=LABEL_COLOR, font=font)


def _load_font(size: int) -> ImageFont.ImageFont:
    try:
        return ImageFont.load_default(size=size)
    except TypeError:
        # Pillow < 10.1 has no sized default font
        return ImageFont.load_default()


def _camera_rect(state: MapScreenState) -> MapRect:
    rect = state.camera.bounding_rect()
    if state.camera.rect is not None:
        # route bounds sit flush against the polyline; leave room around it
        rect = rect.padded(ROUTE_VIEW_PADDING)
    return rect


def render_map_screen(
    state: MapScreenState,
    home: Coordinate = HOME_COORDINATE,
    width: int = 1200,
    height: int = 800,
) -> Image.Image:
    """
    Render what the map view shows for `state`.

    Markers follow the screen's rendering rule (only the route destination
    while a route is displayed); the route polyline is drawn whenever a
    route exists; the home annotation is always drawn.
    """
    viewport = compute_viewport(_camera_rect(state), width, height)
    up = UPSCALE_FACTOR
    size = (width * up, height * up)

    canvas = Image.new("RGBA", size, BACKGROUND_COLOR)
    tiles_ok = False
    try:
        tiles_ok = _draw_tile_background(canvas, viewport, up)
    except Exception as exc:
        print(f"[MAP] Tile background failed, falling back to grid: {exc}", file=sys.stderr)
    draw = ImageDraw.Draw(canvas, "RGBA")
    if not tiles_ok:
        _draw_grid(draw, size, up)

    def to_canvas(coord: Coordinate) -> Tuple[float, float]:
        x, y = viewport.project(coord)
        return x * up, y * up

    route = state.route
    if route is not None:
        _draw_route(draw, [to_canvas(c) for c in route.polyline], up)

    font = _load_font(12 * up)
    markers: List[Place] = state.visible_markers()
    for place in markers:
        _draw_marker(draw, to_canvas(place.coordinate), place.name, font, up)

    _draw_home(draw, to_canvas(home), up)

    print(
        f"[MAP] Rendered screen zoom={viewport.zoom} markers={len(markers)} "
        f"route={'yes' if route else 'no'} tiles={'yes' if tiles_ok else 'no'}",
        file=sys.stderr,
    )
    return canvas.resize((width, height), resample=Image.LANCZOS).convert("RGB")


def render_map_screen_png(
    state: MapScreenState,
    home: Coordinate = HOME_COORDINATE,
    width: int = 1200,
    height: int = 800,
) -> bytes:
    img = render_map_screen(state, home=home, width=width, height=height)
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
