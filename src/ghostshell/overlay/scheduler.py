"""Latest-wins deferred evaluation."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class LatestWins:
    """Single-slot debounce: run only the most recent request, after a quiet interval.

    ``schedule()`` cancels whatever is still waiting out its delay and
    queues the new callable in its place. Once a callable has started
    running it is never cancelled, so a half-finished terminal write can't
    be abandoned; callers serialize with it through their own locks.
    """

    def __init__(self, delay: float = 0.05) -> None:
        self.delay = delay
        self._waiting: asyncio.Task | None = None
        self._running: set[asyncio.Task] = set()

    def schedule(self, fn: Callable[[], Awaitable[None]]) -> None:
        self.cancel()
        self._waiting = asyncio.create_task(self._run(fn))

    async def _run(self, fn: Callable[[], Awaitable[None]]) -> None:
        await asyncio.sleep(self.delay)
        task = asyncio.current_task()
        if self._waiting is task:
            self._waiting = None
        if task is not None:
            self._running.add(task)
        try:
            await fn()
        except Exception:
            logger.debug("Deferred evaluation failed", exc_info=True)
        finally:
            self._running.discard(task)

    def cancel(self) -> None:
        """Drop the waiting request, if any. A running one is left alone."""
        if self._waiting is not None:
            self._waiting.cancel()
            self._waiting = None

    @property
    def pending(self) -> bool:
        return self._waiting is not None

    async def wait_idle(self) -> None:
        """Wait until nothing is waiting or running."""
        while self._waiting is not None or self._running:
            tasks = [t for t in (self._waiting, *self._running) if t is not None]
            await asyncio.gather(*tasks, return_exceptions=True)
