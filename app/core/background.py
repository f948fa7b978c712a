"""
Detached dispatch for best-effort side effects (cart clearing, Slack alerts).

Tasks run on the event loop without being awaited by the request that
scheduled them. Their failures are logged and never reach the caller.
"""

import asyncio
import logging
from collections.abc import Awaitable

logger = logging.getLogger(__name__)


class BackgroundDispatcher:
    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, name: str, awaitable: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(awaitable)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Background task %s cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task %s failed: %s",
                task.get_name(),
                exc,
                exc_info=exc,
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every outstanding task; used at shutdown and in tests."""
        if not self._tasks:
            return
        await asyncio.wait(set(self._tasks), timeout=timeout)


background_dispatcher = BackgroundDispatcher()
