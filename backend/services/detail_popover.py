"""
Detail popover for the selected place: name, subtitle, street-level preview
and the "Open in Maps" / "Get Directions" actions.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from domain.models import Place, PreviewScene
from services.request_slot import RequestSlot, call_in_thread

if TYPE_CHECKING:
    from services.map_screen import MapScreen

logger = logging.getLogger(__name__)

NO_PREVIEW_MESSAGE = "No Preview Available"


class DetailPopover:
    def __init__(self, screen: "MapScreen", look_around_client, maps_app):
        self._screen = screen
        self._look_around = look_around_client
        self._maps_app = maps_app
        self._slot: RequestSlot[Optional[PreviewScene]] = RequestSlot("preview")
        self.preview: Optional[PreviewScene] = None

    @property
    def place(self) -> Optional[Place]:
        return self._screen.state.selection

    @property
    def visible(self) -> bool:
        return self._screen.state.show_details

    @property
    def title(self) -> str:
        return self.place.name if self.place and self.place.name else ""

    @property
    def subtitle(self) -> str:
        return self.place.title if self.place and self.place.title else ""

    @property
    def loading(self) -> bool:
        return self._slot.in_flight

    def present(self, place: Place) -> asyncio.Task:
        """Show `place`: drop the old preview and look up a new one."""
        self.preview = None
        return self._slot.issue(
            lambda: call_in_thread(
                "Street-level preview", self._look_around.fetch_scene, place, default=None
            ),
            self._set_preview,
        )

    def _set_preview(self, scene: Optional[PreviewScene]) -> None:
        self.preview = scene
        if scene is None:
            logger.debug("No preview for %s", self.title or "selection")

    def clear(self) -> None:
        self._slot.invalidate()
        self.preview = None

    async def fetch_preview_image(self) -> Optional[bytes]:
        scene = self.preview
        if scene is None:
            return None
        return await call_in_thread("Preview image", self._look_around.fetch_image, scene, default=None)

    def open_in_external_maps_app(self) -> Optional[str]:
        place = self.place
        if place is None:
            return None
        return self._maps_app.open(place)

    def request_directions(self) -> Optional[asyncio.Task]:
        # The screen hides the popover and runs the routing call.
        return self._screen.request_directions()

    def close(self) -> None:
        self._screen.dismiss()

    async def wait(self) -> None:
        await self._slot.wait()

    def to_dict(self) -> dict:
        return {
            "visible": self.visible,
            "title": self.title,
            "subtitle": self.subtitle,
            "loading": self.loading,
            "preview": self.preview.to_dict() if self.preview else None,
            "placeholder": None if self.preview else NO_PREVIEW_MESSAGE,
        }
