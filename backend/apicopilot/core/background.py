"""
Fire-and-forget task runner.

Usage events, API call logs and conversation titling run detached from the
request that produced them. The runner keeps a strong reference to every task
so the event loop cannot garbage-collect it mid-flight, logs failures, and
lets shutdown wait for whatever is still pending.
"""

import asyncio
import logging
from typing import Awaitable, Optional, Set

logger = logging.getLogger("apicopilot.background")


class BackgroundTaskRunner:
    """Tracks detached asyncio tasks for logging and graceful shutdown."""

    def __init__(self, drain_timeout: float = 10.0):
        self._tasks: Set[asyncio.Task] = set()
        self._drain_timeout = drain_timeout

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable, name: Optional[str] = None) -> asyncio.Task:
        """Schedule a coroutine without awaiting it."""
        task = asyncio.ensure_future(coro)
        if name:
            task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Background task {task.get_name()} failed: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for pending tasks; cancel whatever outlives the timeout."""
        if not self._tasks:
            return

        pending = set(self._tasks)
        logger.info(f"Waiting for {len(pending)} background tasks...")
        done, still_pending = await asyncio.wait(
            pending, timeout=timeout if timeout is not None else self._drain_timeout
        )

        if still_pending:
            logger.warning(f"Cancelling {len(still_pending)} background tasks after timeout")
            for task in still_pending:
                task.cancel()
            await asyncio.gather(*still_pending, return_exceptions=True)


_background_runner: Optional[BackgroundTaskRunner] = None


def get_background_runner() -> BackgroundTaskRunner:
    """Get the process-wide background runner."""
    global _background_runner
    if _background_runner is None:
        _background_runner = BackgroundTaskRunner()
    return _background_runner
