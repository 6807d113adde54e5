"""RoomLifecycleController - central orchestrator for relayed chat rooms."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any
from zoneinfo import ZoneInfo

from roomrelay.channels.visitor import VisitorHub
from roomrelay.config import LifecycleConfig, RelayConfig
from roomrelay.core._helpers import FrameworkEventHandler, HelpersMixin
from roomrelay.core._inbound import InboundMixin
from roomrelay.core._room_lifecycle import RoomLifecycleMixin
from roomrelay.core.errors import NotFoundError
from roomrelay.core.lease_pool import CredentialLeasePool
from roomrelay.core.rate_limiter import SecurityGate
from roomrelay.core.registry import RoomRegistry
from roomrelay.core.relay_queue import RelayQueue
from roomrelay.core.reply_router import ReplyContextRouter
from roomrelay.core.scheduler import Scheduler
from roomrelay.models.session import Session
from roomrelay.providers.telegram.base import TelegramProvider
from roomrelay.store.base import SnapshotStore
from roomrelay.store.memory import InMemorySnapshotStore

__all__ = ["FrameworkEventHandler", "RoomLifecycleController"]

logger = logging.getLogger("roomrelay.framework")


class RoomLifecycleController(InboundMixin, RoomLifecycleMixin, HelpersMixin):
    """Central orchestrator tying rooms, the operator relay and storage."""

    def __init__(
        self,
        default_provider: TelegramProvider,
        relay_config: RelayConfig,
        *,
        config: LifecycleConfig | None = None,
        pool: CredentialLeasePool | None = None,
        store: SnapshotStore | None = None,
        hub: VisitorHub | None = None,
        gate: SecurityGate | None = None,
        registry: RoomRegistry | None = None,
        router: ReplyContextRouter | None = None,
        relay: RelayQueue | None = None,
    ) -> None:
        """Initialise the controller.

        Args:
            default_provider: Shared bot used for service-wide answers and
                for sessions that could not lease a dedicated credential.
            relay_config: Operator chat id and relay pacing.
            config: Capacity and timing. Defaults to ``LifecycleConfig()``.
            pool: Optional pool of dedicated per-session bot credentials.
            store: Snapshot storage. Defaults to ``InMemorySnapshotStore``.
            hub: Visitor connection hub. Defaults to an empty ``VisitorHub``.
            gate: Rate limit and validation gate.
            registry: Room table. Defaults to one sized by ``config.max_rooms``.
            router: Reply correlation tables.
            relay: Notification pipeline. Defaults to one built from
                *relay_config*.
        """
        self._config = config or LifecycleConfig()
        self._relay_config = relay_config
        self._default_provider = default_provider
        self._pool = pool
        self._store = store or InMemorySnapshotStore()
        self._hub = hub or VisitorHub()
        self._gate = gate or SecurityGate()
        self._registry = registry or RoomRegistry(max_rooms=self._config.max_rooms)
        self._router = router or ReplyContextRouter()
        self._relay = relay or RelayQueue(
            settle_delay=relay_config.settle_delay,
            delete_pacing=relay_config.delete_pacing,
            retry_policy=relay_config.retry,
        )
        self._scheduler = Scheduler()
        self._tz = ZoneInfo(self._config.timezone)
        self._auto_approve = self._config.auto_approve
        self._sleep_until = None
        self._event_handlers: list[tuple[str, FrameworkEventHandler]] = []
        self._background: set[asyncio.Task[Any]] = set()
        self._sweep_task: asyncio.Task[None] | None = None

    # -- Accessors --

    @property
    def registry(self) -> RoomRegistry:
        return self._registry

    @property
    def router(self) -> ReplyContextRouter:
        return self._router

    @property
    def relay(self) -> RelayQueue:
        return self._relay

    @property
    def pool(self) -> CredentialLeasePool | None:
        return self._pool

    @property
    def hub(self) -> VisitorHub:
        return self._hub

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def service_enabled(self) -> bool:
        return self._auto_approve

    # -- Lifecycle --

    async def start(self) -> None:
        """Restore saved rooms and start the inactivity sweep."""
        await self.restore()
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop(), name="inactivity_sweep")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.sweep_interval)
            try:
                await self.sweep_inactive()
            except Exception:
                logger.exception("Inactivity sweep failed")

    async def drain(self) -> None:
        """Wait until background notification work has settled."""
        while self._background:
            await asyncio.wait(list(self._background))
        await self._relay.drain()

    async def close(self) -> None:
        """Stop the sweep, cancel deferred actions and close every provider."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None
        await self._scheduler.close()
        await self.drain()
        await self._relay.close()
        if self._pool is not None:
            await self._pool.close()
        await self._default_provider.close()

    async def __aenter__(self) -> RoomLifecycleController:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # -- Queries --

    def get_session(self, session_id: int | str) -> Session:
        """Get a session by id. Raises NotFoundError if missing."""
        session = self._registry.get(self._coerce_id(session_id))
        if session is None:
            raise NotFoundError(f"Room {session_id} not found")
        return session

    def status_report(self) -> dict[str, int]:
        """Room counts per status against capacity."""
        counts = self._registry.counts()
        report = {status.value: count for status, count in counts.items()}
        report["total"] = sum(counts.values())
        report["max_rooms"] = self._registry.max_rooms
        return report

    # -- Event handlers --

    def on(self, event_type: str) -> Callable[..., Any]:
        """Decorator to register a framework event handler filtered by type."""

        def decorator(fn: FrameworkEventHandler) -> FrameworkEventHandler:
            self._event_handlers.append((event_type, fn))
            return fn

        return decorator
