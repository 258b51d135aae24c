"""
Map screen API routes.

Every mutating route waits for the service calls it started, so the
response already reflects their results.
"""
import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel

from api.screens import get_screen
from services.detail_popover import NO_PREVIEW_MESSAGE
from services.map_screen import MapScreen

router = APIRouter()
logger = logging.getLogger(__name__)


class SearchRequest(BaseModel):
    query: str


class SelectRequest(BaseModel):
    index: int


class PlaceResponse(BaseModel):
    provider: str
    place_id: str
    name: str
    title: str
    lat: float
    lon: float


class RouteResponse(BaseModel):
    name: str
    distance_m: float
    expected_travel_time_s: float
    points: int
    bbox: Optional[dict] = None


class PreviewResponse(BaseModel):
    image_id: str
    thumb_url: str
    coordinate: Optional[dict] = None
    captured_at: Optional[str] = None
    compass_angle: Optional[float] = None


class PopoverResponse(BaseModel):
    visible: bool
    title: str
    subtitle: str
    loading: bool
    preview: Optional[PreviewResponse] = None
    placeholder: Optional[str] = None


class ScreenResponse(BaseModel):
    home: dict
    camera: dict
    query: str
    results: List[PlaceResponse]
    selection: Optional[PlaceResponse] = None
    show_details: bool
    directions_requested: bool
    route_displaying: bool
    route: Optional[RouteResponse] = None
    route_destination: Optional[PlaceResponse] = None
    markers: List[PlaceResponse]
    popover: PopoverResponse


class OpenInMapsResponse(BaseModel):
    url: str


async def _settle(task: Optional[asyncio.Task], screen: MapScreen) -> None:
    if task is not None:
        # a newer request may cancel this one; that is not an error here
        await asyncio.wait({task})
    await screen.wait_idle()


@router.get("", response_model=ScreenResponse)
async def get_state(screen: MapScreen = Depends(get_screen)):
    return screen.snapshot()


@router.post("/search", response_model=ScreenResponse)
async def search(body: SearchRequest, screen: MapScreen = Depends(get_screen)):
    """Run a place search around the current camera viewport."""
    await _settle(screen.submit_search(body.query), screen)
    return screen.snapshot()


@router.post("/select", response_model=ScreenResponse)
async def select(body: SelectRequest, screen: MapScreen = Depends(get_screen)):
    """Select a search result by position (a pin tap) and load its preview."""
    if not 0 <= body.index < len(screen.state.results):
        raise HTTPException(status_code=404, detail="No result at that index")
    screen.select_result(body.index)
    await _settle(None, screen)
    return screen.snapshot()


@router.post("/dismiss", response_model=ScreenResponse)
async def dismiss(screen: MapScreen = Depends(get_screen)):
    screen.popover.close()
    return screen.snapshot()


@router.post("/directions", response_model=ScreenResponse)
async def directions(screen: MapScreen = Depends(get_screen)):
    """Route from home to the selection; 409 when nothing is selected."""
    task = screen.popover.request_directions()
    if task is None:
        logger.info("Directions requested without a selection")
        raise HTTPException(status_code=409, detail="Select a place first")
    await _settle(task, screen)
    return screen.snapshot()


@router.post("/recenter", response_model=ScreenResponse)
async def recenter(screen: MapScreen = Depends(get_screen)):
    screen.recenter()
    return screen.snapshot()


@router.post("/open-in-maps", response_model=OpenInMapsResponse)
async def open_in_maps(screen: MapScreen = Depends(get_screen)):
    url = screen.popover.open_in_external_maps_app()
    if url is None:
        raise HTTPException(status_code=409, detail="Select a place first")
    return OpenInMapsResponse(url=url)


@router.get("/map.png")
async def map_png(
    width: int = Query(1200, ge=64, le=4096),
    height: int = Query(800, ge=64, le=4096),
    screen: MapScreen = Depends(get_screen),
):
    data = await asyncio.to_thread(screen.render_png, width, height)
    return Response(content=data, media_type="image/png")


@router.get("/preview", response_model=PreviewResponse)
async def preview(screen: MapScreen = Depends(get_screen)):
    scene = screen.popover.preview
    if scene is None:
        raise HTTPException(status_code=404, detail=NO_PREVIEW_MESSAGE)
    return scene.to_dict()


@router.get("/preview.png")
async def preview_png(screen: MapScreen = Depends(get_screen)):
    data = await screen.popover.fetch_preview_image()
    if not data:
        raise HTTPException(status_code=404, detail=NO_PREVIEW_MESSAGE)
    return Response(content=data, media_type="image/jpeg")
