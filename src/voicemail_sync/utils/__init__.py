"""Utility functions for voicemail-sync."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

import structlog

logger = structlog.get_logger()


class BackgroundTasks:
    """Tracks fire-and-forget tasks (timers, reader loops) owned by a component.

    Every task is logged if it dies with an exception, and ``cancel_all`` lets
    the owner stop its pending timers on teardown.
    """

    def __init__(self, owner: str) -> None:
        self._owner = owner
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=f"{self._owner}:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def spawn_later(
        self,
        delay: float,
        func: Callable[[], Awaitable[Any]],
        name: str,
    ) -> asyncio.Task[Any]:
        """Run ``func`` after ``delay`` seconds, like a one-shot timer."""

        async def _delayed() -> None:
            await asyncio.sleep(delay)
            await func()

        return self.spawn(_delayed(), name)

    def cancel_all(self) -> None:
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

    def __len__(self) -> int:
        return len(self._tasks)

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "background_task_failed",
                task=task.get_name(),
                error=str(exc),
                exc_info=exc,
            )
