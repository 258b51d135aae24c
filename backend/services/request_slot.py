"""
Latest-wins bookkeeping for asynchronous service calls.

Each integration (search, directions, preview) owns one slot. Issuing a
request bumps the slot's sequence number and cancels whatever was in
flight; a result is only applied if its number is still the latest.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class RequestSlot(Generic[T]):
    def __init__(self, name: str):
        self.name = name
        self.sequence = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_current(self, sequence: int) -> bool:
        return sequence == self.sequence

    def issue(
        self,
        call: Callable[[], Awaitable[T]],
        apply: Callable[[T], None],
    ) -> asyncio.Task:
        """
        Start `call` as a task; hand its result to `apply` if no newer
        request was issued meanwhile. Must run inside an event loop.
        """
        self.cancel()
        self.sequence += 1
        sequence = self.sequence

        async def _run() -> None:
            result = await call()
            if not self.is_current(sequence):
                logger.debug(
                    "Dropping stale %s response #%d (latest #%d)", self.name, sequence, self.sequence
                )
                return
            apply(result)

        self._task = asyncio.get_running_loop().create_task(_run(), name=f"{self.name}#{sequence}")
        return self._task

    def invalidate(self) -> None:
        """Forget any in-flight request without issuing a new one."""
        self.cancel()
        self.sequence += 1

    def cancel(self) -> None:
        if self.in_flight:
            self._task.cancel()

    async def wait(self) -> None:
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise


async def call_in_thread(what: str, func: Callable[..., T], *args: Any, default: T) -> T:
    """
    Run a blocking service call off the event loop. Any failure becomes
    `default`; callers never see service errors.
    """
    try:
        return await asyncio.to_thread(func, *args)
    except Exception as exc:
        logger.warning("%s failed: %s", what, exc)
        return default
