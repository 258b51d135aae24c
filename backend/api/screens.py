"""
In-memory screen holder for the API process.

There is one map screen per process; it is created lazily and discarded
at shutdown (nothing is persisted).
"""
from typing import Optional

from services.map_screen import MapScreen

_screen: Optional[MapScreen] = None


def get_screen() -> MapScreen:
    """FastAPI dependency returning the process-wide screen."""
    global _screen
    if _screen is None:
        _screen = MapScreen()
    return _screen


def reset_screen() -> None:
    global _screen
    if _screen is not None:
        _screen.close()
    _screen = None
