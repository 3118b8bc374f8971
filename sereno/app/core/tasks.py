"""
Background side effects for request handlers.

Lifecycle operations return as soon as the alert record is durable. The
notification fan-out, chat binding and live events they trigger run as
tracked asyncio tasks so that:

    • failures are logged instead of vanishing with the task
    • shutdown (and tests) can wait for in-flight work with ``drain()``
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Dict, Set

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """
    Spawns and tracks fire-and-forget coroutines.

    Usage:
        runner = BackgroundTaskRunner()
        runner.spawn(dispatcher.send_to_user(uid, payload), name="notify-owner")
        ...
        await runner.drain()
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()
        self._failures = 0
        self._completed = 0

    def spawn(self, coro: Awaitable[Any], *, name: str = "side-effect") -> asyncio.Task:
        task = asyncio.ensure_future(coro)
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
            self._failures += 1
            logger.error(
                "Background task %s failed: %s", task.get_name(), exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )
        else:
            self._completed += 1

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def stats(self) -> Dict[str, int]:
        return {
            "pending": self.pending,
            "completed": self._completed,
            "failed": self._failures,
        }

    async def drain(self, timeout: float | None = None) -> None:
        """Wait until every spawned task (including ones spawned meanwhile) settles."""
        while self._tasks:
            await asyncio.wait(set(self._tasks), timeout=timeout)
            if timeout is not None:
                break

    async def shutdown(self, timeout: float = 10.0) -> None:
        if self._tasks:
            logger.info("Waiting for %d background tasks", len(self._tasks))
            await self.drain(timeout=timeout)
        for task in list(self._tasks):
            task.cancel()
