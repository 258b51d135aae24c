"""Run one map session from the command line and save the rendered screen.

Usage (from backend/):
    python -m scripts.explore_map "Miami Beach" [--select 1] [--directions] [--out map.png]

Searches around the home region, optionally taps a result, optionally asks
for directions to it, and writes the resulting map view as a PNG.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from services.map_screen import MapScreen

logger = logging.getLogger("explore_map")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Search places, pick one, route to it, render the map.")
    parser.add_argument("query", help="Free-text search, e.g. 'Miami Beach'.")
    parser.add_argument("--select", type=int, default=None, help="Zero-based index of the result to select.")
    parser.add_argument("--directions", action="store_true", help="Request directions to the selected result.")
    parser.add_argument("--open-in-maps", action="store_true", help="Open the selected result in the browser.")
    parser.add_argument("--out", default="map.png", help="Output PNG path.")
    parser.add_argument("--width", type=int, default=1200)
    parser.add_argument("--height", type=int, default=800)
    parser.add_argument("--json", action="store_true", help="Print the final screen state as JSON.")
    parser.add_argument("--verbose", action="store_true")
    return parser


async def run_session(args: argparse.Namespace, screen: Optional[MapScreen] = None) -> MapScreen:
    screen = screen or MapScreen()
    await screen.submit_search(args.query)
    logger.info("%d results for %r", len(screen.state.results), args.query)
    for idx, place in enumerate(screen.state.results):
        logger.info("  [%d] %s - %s", idx, place.name, place.title)

    if args.select is not None:
        if not 0 <= args.select < len(screen.state.results):
            logger.warning("No result at index %d; nothing selected", args.select)
        else:
            place = screen.select_result(args.select)
            await screen.wait_idle()
            logger.info(
                "Selected %s (preview: %s)",
                place.name,
                "yes" if screen.popover.preview else "none",
            )
            if args.open_in_maps:
                logger.info("Opened %s", screen.popover.open_in_external_maps_app())

    if args.directions:
        task = screen.popover.request_directions()
        if task is None:
            logger.warning("Directions need a selection (use --select)")
        else:
            await task
            route = screen.state.route
            if route is None:
                logger.warning("No route found")
            else:
                logger.info(
                    "Route %.1f km, %.0f min",
                    route.distance_m / 1000.0,
                    route.expected_travel_time_s / 60.0,
                )
    return screen


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(message)s")

    screen = asyncio.run(run_session(args))
    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(screen.render_png(args.width, args.height))
    logger.info("Wrote %s", out)
    if args.json:
        print(json.dumps(screen.snapshot(), indent=2))
    screen.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
