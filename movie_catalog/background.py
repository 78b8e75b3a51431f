"""Fire-and-forget work that must not outlive a graceful shutdown."""

import asyncio
from typing import Awaitable, Callable

from .logger import logger


class BackgroundTaskTracker:
    """Runs coroutines detached from the request that submitted them.

    Any exception a task raises is logged here and goes no further. ``drain``
    lets shutdown wait for whatever is still running.
    """

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        return len(self._tasks)

    def submit(self, func: Callable[..., Awaitable], *args, name: str | None = None) -> asyncio.Task:
        task = asyncio.create_task(self._run(func, *args), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, func: Callable[..., Awaitable], *args) -> None:
        try:
            await func(*args)
        except Exception:
            logger.error(
                "background task failed",
                exc_info=True,
                extra={"properties": {"task": getattr(func, "__qualname__", repr(func))}},
            )

    async def drain(self, timeout: float) -> bool:
        """Wait up to timeout seconds for outstanding tasks. True if all of them finished."""
        if not self._tasks:
            return True

        logger.info(f"Waiting for {len(self._tasks)} background task(s) to complete...")
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        return not pending
