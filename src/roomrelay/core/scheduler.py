"""Deferred actions run as ``asyncio.Task`` instances."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

logger = logging.getLogger("roomrelay.scheduler")

DeferredFn = Callable[[], Coroutine[Any, Any, None]]


class Scheduler:
    """Fire-later helper for grace windows and delayed cleanup.

    A deferred action is not trusted to be cancelled in time: the callable
    itself must re-check whatever condition made it relevant when it fires.
    ``cancel`` is still offered so that superseded timers do not linger.
    Once an action starts running it can no longer be cancelled by name.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._live: set[asyncio.Task[None]] = set()

    def call_later(self, name: str, delay: float, fn: DeferredFn) -> asyncio.Task[None]:
        """Run *fn* after *delay* seconds, replacing any pending action named *name*."""
        self.cancel(name)
        task = asyncio.create_task(self._fire(name, delay, fn), name=name)
        task.add_done_callback(self._task_done)
        self._tasks[name] = task
        self._live.add(task)
        return task

    async def _fire(self, name: str, delay: float, fn: DeferredFn) -> None:
        await asyncio.sleep(delay)
        if self._tasks.get(name) is asyncio.current_task():
            del self._tasks[name]
        await fn()

    def _task_done(self, task: asyncio.Task[None]) -> None:
        """Log exceptions from deferred actions."""
        self._live.discard(task)
        name = task.get_name()
        if self._tasks.get(name) is task:
            del self._tasks[name]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Deferred action %s failed: %s", name, exc)

    def cancel(self, name: str) -> bool:
        task = self._tasks.pop(name, None)
        if task is None:
            return False
        task.cancel()
        return True

    def scheduled(self, name: str) -> bool:
        """True while an action named *name* is still waiting to fire."""
        return name in self._tasks

    async def join(self) -> None:
        """Wait for every pending and running action to finish."""
        while self._live:
            await asyncio.wait(list(self._live))

    async def close(self) -> None:
        tasks = list(self._live)
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._live.clear()
