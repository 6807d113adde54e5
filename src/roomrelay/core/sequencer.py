"""Per-session FIFO operation chains."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from typing import Any

logger = logging.getLogger("roomrelay.sequencer")

OperationFn = Callable[[], Coroutine[Any, Any, Any]]


class SessionSequencer(ABC):
    """Abstract base for per-session operation ordering.

    Every operation submitted under the same key runs strictly after the
    previously submitted one has finished, in submission order.
    Operations under different keys never wait for each other.
    """

    @abstractmethod
    def submit(self, key: str, fn: OperationFn, *, name: str | None = None) -> asyncio.Task[Any]:
        """Schedule *fn* behind everything already queued for *key*."""
        ...

    @abstractmethod
    async def drain(self, key: str | None = None) -> None:
        """Wait until the chain for *key* (or every chain) is idle."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Cancel all queued operations."""
        ...


class InMemorySequencer(SessionSequencer):
    """In-process chains built from ``asyncio.Task`` links.

    Each submitted operation becomes a task that first waits for the
    previous tail of its chain, then runs. The tail is tracked per key
    and dropped once the chain goes idle, so the table only holds keys
    with work in flight.

    **Concurrency note:** ``submit`` reads and replaces the tail without
    awaiting, so two submissions in the same event-loop tick are ordered
    exactly as they were made.
    """

    def __init__(self) -> None:
        self._tails: dict[str, asyncio.Task[Any]] = {}
        self._live: set[asyncio.Task[Any]] = set()

    def submit(self, key: str, fn: OperationFn, *, name: str | None = None) -> asyncio.Task[Any]:
        previous = self._tails.get(key)
        task = asyncio.create_task(self._run_after(previous, fn), name=name or f"chain:{key}")
        self._tails[key] = task
        self._live.add(task)
        task.add_done_callback(lambda t: self._task_done(key, t))
        return task

    @staticmethod
    async def _run_after(previous: asyncio.Task[Any] | None, fn: OperationFn) -> Any:
        if previous is not None and not previous.done():
            # Outcome of the previous link is reported by its own callback.
            await asyncio.wait([previous])
        return await fn()

    def _task_done(self, key: str, task: asyncio.Task[Any]) -> None:
        self._live.discard(task)
        if self._tails.get(key) is task:
            del self._tails[key]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Chained operation %s failed: %s",
                task.get_name(),
                exc,
                extra={"chain": key},
            )

    def pending(self, key: str) -> bool:
        """True while *key* still has queued or running work."""
        return key in self._tails

    async def drain(self, key: str | None = None) -> None:
        if key is not None:
            tail = self._tails.get(key)
            if tail is not None:
                await asyncio.wait([tail])
            return
        while self._tails:
            await asyncio.wait(list(self._tails.values()))

    async def close(self) -> None:
        live = list(self._live)
        for task in live:
            task.cancel()
        if live:
            await asyncio.gather(*live, return_exceptions=True)
        self._tails.clear()
        self._live.clear()

    @property
    def size(self) -> int:
        """Return the number of chains with work in flight."""
        return len(self._tails)
