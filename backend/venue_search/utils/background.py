"""Detached execution of best-effort side effects.

Work submitted here runs after the current turn of the event loop and never
reports back to the submitter: failures are logged and counted where they
happen. The runner keeps a strong reference to every pending task so the
event loop cannot garbage-collect it mid-flight.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Optional, Set

from backend.venue_search.utils.observability import record_background_failure

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, work: Awaitable[Any], *, name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._guard(work, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _guard(work: Awaitable[Any], name: str) -> None:
        try:
            await work
        except asyncio.CancelledError:
            logger.debug("Background task %s cancelled", name)
            raise
        except Exception as exc:
            record_background_failure(name)
            logger.warning("Background task %s failed: %s", name, exc)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for every task submitted so far (including ones they submit)."""

        while self._tasks:
            pending = list(self._tasks)
            done, not_done = await asyncio.wait(pending, timeout=timeout)
            if not_done:
                raise asyncio.TimeoutError(f"{len(not_done)} background task(s) still running")

    async def shutdown(self, timeout: float) -> None:
        try:
            await self.drain(timeout=timeout)
        except asyncio.TimeoutError:
            remaining = list(self._tasks)
            logger.warning("Cancelling %d background task(s) at shutdown", len(remaining))
            for task in remaining:
                task.cancel()
            await asyncio.gather(*remaining, return_exceptions=True)


__all__ = ["BackgroundTaskRunner"]
