"""
Background task dispatcher for fire-and-forget work.

Export jobs and GDPR requests are handed to ``TaskDispatcher.dispatch``
after their synchronous validation; the caller gets its handle back
straight away and polls the job store for progress. There is no
cancellation: a dispatched task runs until it completes or fails.
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class TaskDispatcher:
    """Keeps strong references to in-flight tasks until they finish."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.debug("Dispatched background task %s (in flight: %d)", task.get_name(), len(self._tasks))
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Background task %s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed: %s", task.get_name(), exc, exc_info=exc)

    async def drain(self) -> None:
        """Wait for every in-flight task, including tasks dispatched while waiting."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def pending_count(self) -> int:
        return len(self._tasks)
