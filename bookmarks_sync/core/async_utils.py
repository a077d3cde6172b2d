"""Async helper utilities."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Coroutine

logger = logging.getLogger(__name__)


def raise_if_cancelled(exc: BaseException) -> None:
    """Re-raise ``asyncio.CancelledError`` instances to preserve cancellation semantics."""

    if isinstance(exc, asyncio.CancelledError):  # pragma: no cover - simple guard
        raise exc


class BackgroundTasks:
    """Registry of detached tasks whose failures are logged, never propagated.

    Tasks are kept referenced until they finish so the event loop cannot drop
    them, and ``drain()`` lets shutdown and tests wait for outstanding work.
    """

    def __init__(self, name: str = "background") -> None:
        self._name = name
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=f"{self._name}:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.debug("background_task_started", extra={"task": task.get_name()})
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info("background_task_cancelled", extra={"task": task.get_name()})
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "background_task_failed",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"task": task.get_name(), "error": str(exc)},
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every outstanding task, including ones spawned while draining."""
        while self._tasks:
            tasks = list(self._tasks)
            done, _ = await asyncio.wait(tasks, timeout=timeout)
            if timeout is not None and len(done) < len(tasks):
                logger.warning(
                    "background_drain_timeout",
                    extra={"pending": len(tasks) - len(done), "timeout": timeout},
                )
                return

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
