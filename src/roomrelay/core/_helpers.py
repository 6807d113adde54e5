"""HelpersMixin — internal helpers shared across controller mixins."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable, Coroutine
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from roomrelay.core.errors import InvalidTransitionError
from roomrelay.core.relay_queue import RelayTarget
from roomrelay.models.context import ReplyContext, correlation_key
from roomrelay.models.delivery import ProviderResult
from roomrelay.models.enums import ContextKind, MessageKind, SessionStatus
from roomrelay.models.framework_event import FrameworkEvent
from roomrelay.models.session import ChatMessage, Session
from roomrelay.store.base import Snapshot

if TYPE_CHECKING:
    from roomrelay.channels.visitor import VisitorHub
    from roomrelay.config import LifecycleConfig, RelayConfig
    from roomrelay.core.lease_pool import CredentialLeasePool
    from roomrelay.core.registry import RoomRegistry
    from roomrelay.core.relay_queue import RelayQueue
    from roomrelay.core.reply_router import ReplyContextRouter
    from roomrelay.core.scheduler import Scheduler
    from roomrelay.providers.telegram.base import TelegramProvider
    from roomrelay.store.base import SnapshotStore

logger = logging.getLogger("roomrelay.framework")

FrameworkEventHandler = Callable[[FrameworkEvent], Coroutine[Any, Any, None]]

SYSTEM_SENDER = "System"

_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.PENDING: frozenset({SessionStatus.ACTIVE}),
    SessionStatus.ACTIVE: frozenset({SessionStatus.LEFT}),
    SessionStatus.LEFT: frozenset({SessionStatus.CLEANED}),
    SessionStatus.CLEANED: frozenset(),
}


class HelpersMixin:
    """Internal helpers used by other controller mixins."""

    _config: LifecycleConfig
    _relay_config: RelayConfig
    _registry: RoomRegistry
    _router: ReplyContextRouter
    _relay: RelayQueue
    _pool: CredentialLeasePool | None
    _hub: VisitorHub
    _store: SnapshotStore
    _scheduler: Scheduler
    _default_provider: TelegramProvider
    _event_handlers: list[tuple[str, FrameworkEventHandler]]
    _background: set[asyncio.Task[Any]]
    _tz: ZoneInfo
    _sleep_until: datetime | None

    # -- Lookup and state checks --

    def _live_session(
        self, session_id: int | str, *expected: SessionStatus, token: str | None = None
    ) -> Session | None:
        """Return the session if it exists, matches *token* and is in *expected*.

        Misses are logged and reported as ``None``; callers treat them as no-ops.
        """
        session = self._registry.get(session_id)
        if session is None:
            logger.info("Room %s not found", session_id)
            return None
        if token is not None and session.token != token:
            logger.info("Room %s has a new occupant; ignoring stale action", session_id)
            return None
        if expected and session.status not in expected:
            logger.info(
                "Room %s is %s, expected %s",
                session_id,
                session.status,
                "/".join(s.value for s in expected),
            )
            return None
        return session

    def _is_current(self, session: Session) -> bool:
        return self._registry.get(session.id) is session

    @staticmethod
    def _transition(session: Session, status: SessionStatus) -> None:
        if status not in _TRANSITIONS[session.status]:
            raise InvalidTransitionError(
                f"Room {session.id} cannot go from {session.status} to {status}"
            )
        session.status = status

    @staticmethod
    def _coerce_id(session_id: int | str) -> int | str:
        if isinstance(session_id, str) and session_id.isdigit():
            return int(session_id)
        return session_id

    # -- Relay targets --

    @property
    def _default_target(self) -> RelayTarget:
        return RelayTarget(
            provider=self._default_provider,
            chat_id=self._relay_config.operator_chat_id,
            credential_id=self._relay_config.default_credential_id,
        )

    def _target_for(self, session: Session) -> RelayTarget:
        """The bot leased to *session*, or the shared default bot."""
        lease = self._pool.lease_for(session.id) if self._pool is not None else None
        if lease is None:
            return self._default_target
        return RelayTarget(
            provider=self._pool.provider(lease.credential_id),  # type: ignore[union-attr]
            chat_id=self._relay_config.operator_chat_id,
            credential_id=lease.credential_id,
        )

    async def _track_notification(
        self,
        session: Session,
        kind: ContextKind,
        target: RelayTarget,
        task: asyncio.Task[ProviderResult],
    ) -> None:
        """Register a reply context once the notification has an id."""
        result = await task
        if not result.success or result.provider_message_id is None:
            return
        current = self._is_current(session)
        if kind is ContextKind.KNOCK:
            if not current or session.status is not SessionStatus.PENDING:
                # Decided before the notification landed.
                self._relay.retire(session, result.provider_message_id, target)
                return
            session.knock_message_id = result.provider_message_id
        elif not current or session.is_terminal:
            return
        self._router.set_context(
            ReplyContext(
                kind=kind,
                session_id=session.id,
                session_token=session.token,
                participant_name=session.participant_name,
                correlation_id=correlation_key(target.credential_id, result.provider_message_id),
                connection_id=session.connection_id,
            )
        )
        await self._persist()

    async def _answer_operator(self, text: str) -> ProviderResult:
        """Send a service-wide answer to the operator's default chat."""
        result = await self._default_provider.send_message(
            self._relay_config.operator_chat_id, text
        )
        if not result.success:
            logger.warning("Operator answer failed: %s", result.error)
        return result

    # -- Messages --

    @staticmethod
    def _system_message(session: Session, text: str) -> ChatMessage:
        return session.append(
            ChatMessage(text=text, sender=SYSTEM_SENDER, kind=MessageKind.SYSTEM)
        )

    @staticmethod
    def _message_payload(session: Session, message: ChatMessage) -> dict[str, Any]:
        return {"roomId": session.id, "message": message.model_dump(mode="json")}

    async def _emit_to_visitor(
        self, session: Session, event: str, payload: dict[str, Any]
    ) -> None:
        if self._hub.connections_for(session.id):
            await self._hub.emit_to_session(session.id, event, payload)
        else:
            await self._hub.emit(session.connection_id, event, payload)

    # -- Sleep window --

    def sleep_remaining_minutes(self) -> int | None:
        """Whole minutes left in the operator's sleep window, or ``None``."""
        if self._sleep_until is None:
            return None
        remaining = (self._sleep_until - datetime.now(UTC)).total_seconds()
        if remaining <= 0:
            self._sleep_until = None
            return None
        return math.ceil(remaining / 60)

    # -- Persistence --

    async def _persist(self) -> None:
        snapshot = Snapshot(
            sessions=[s for s in self._registry if not s.is_terminal],
            participants=self._registry.participants,
        )
        try:
            await self._store.save(snapshot)
        except Exception:
            logger.exception("Snapshot save failed", extra={"rooms": len(snapshot.sessions)})

    # -- Background work --

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        """Log exceptions from background tasks."""
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed: %s", task.get_name(), exc)

    async def _emit_framework_event(
        self,
        event_type: str,
        room_id: int | str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Emit a framework event to handlers registered for *event_type*."""
        fw_event = FrameworkEvent(type=event_type, room_id=room_id, data=data or {})
        for filter_type, handler in self._event_handlers:
            if filter_type == fw_event.type:
                try:
                    await handler(fw_event)
                except Exception:
                    logger.exception(
                        "Framework event handler failed",
                        extra={"event_type": fw_event.type, "room_id": fw_event.room_id},
                    )
