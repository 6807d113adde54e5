"""RoomLifecycleMixin — knocks, decisions, termination and cleanup."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from roomrelay.channels import visitor as events
from roomrelay.core import render
from roomrelay.core._helpers import HelpersMixin
from roomrelay.core.errors import (
    InvalidTransitionError,
    PoolExhaustedError,
    RateLimitError,
    ValidationError,
)
from roomrelay.core.relay_queue import RelayTarget
from roomrelay.models.context import ReplyContext, correlation_key
from roomrelay.models.delivery import KnockResult
from roomrelay.models.enums import (
    ContextKind,
    KnockStatus,
    LeaveReason,
    SessionStatus,
)
from roomrelay.models.session import Session

if TYPE_CHECKING:
    from roomrelay.core.rate_limiter import SecurityGate

logger = logging.getLogger("roomrelay.framework")

WELCOME = "Welcome {name}! You can now chat with {operator}."
REJECTED = "Your request has been rejected."
AWAY = "The admin is currently away. Please try again later."
SHUTDOWN = "The Cat Has Left The House. Sorry. No More Play!"
RESTORED = "The Cat is back! You can continue chatting now."
RETRY_LATER = "Something went wrong. Please try again."

FAREWELLS: dict[LeaveReason, str] = {
    LeaveReason.LEFT: "{name} has left the chat room.",
    LeaveReason.KICKED: (
        "The admin is not able to continue this conversation any longer. "
        "Thank you for chatting!"
    ),
    LeaveReason.INACTIVE: (
        "You have been inactive for 5 minutes. The conversation has been closed."
    ),
    LeaveReason.DISCONNECTED: "{name} has left the chat room.",
}


class RoomLifecycleMixin(HelpersMixin):
    """Room lifecycle operations: knock, approve/reject, kick, cleanup, timers."""

    _gate: SecurityGate
    _auto_approve: bool

    # -- Id allocation --

    def generate_room_id(self) -> int | str:
        """Reclaim finished rooms, then hand out the lowest free id.

        Runs without awaiting so that the caller can register the session
        under the returned id in the same step.
        """
        for session in self._registry:
            if session.is_terminal:
                self._discard(session)
                self._spawn(
                    self._emit_framework_event("room_cleaned", room_id=session.id),
                    name=f"room_cleaned:{session.key}",
                )
        free = self._registry.first_free_id()
        return free if free is not None else self._registry.fallback_id()

    def _discard(self, session: Session) -> None:
        """Drop every trace of *session* from the in-memory tables."""
        if session.status is SessionStatus.LEFT:
            self._transition(session, SessionStatus.CLEANED)
        self._registry.remove(session.id)
        self._router.clear_context(session.id)
        self._hub.unbind(session.id)
        self._relay.forget(session)
        self._scheduler.cancel(f"cleanup:{session.key}")
        self._scheduler.cancel(f"grace:{session.key}")
        if self._pool is not None:
            self._pool.release_nowait(session.id)
        logger.info(
            "Room %s discarded", session.id, extra={"participant": session.participant_name}
        )

    # -- Knock --

    async def knock(
        self,
        participant_name: str,
        connection_id: str | None = None,
        source_key: str | None = None,
    ) -> KnockResult:
        """Ask the operator to let *participant_name* in."""
        rate_key = source_key or connection_id or participant_name
        try:
            self._gate.enforce(rate_key, "knock")
            name = self._gate.require_valid(participant_name)
        except RateLimitError as exc:
            return KnockResult(
                status=KnockStatus.REFUSED,
                message="Too many knock attempts. Please try again later.",
                retry_after=exc.retry_after,
            )
        except ValidationError as exc:
            return KnockResult(status=KnockStatus.REFUSED, message=str(exc))

        remaining = self.sleep_remaining_minutes()
        if remaining is not None:
            return KnockResult(
                status=KnockStatus.REFUSED,
                message=render.busy(self._config.operator_name, remaining),
                retry_after=remaining * 60.0,
            )

        existing = self._registry.find_pending_by_name(name)
        if existing is not None:
            if connection_id is not None:
                existing.connection_id = connection_id
            return KnockResult(
                session_id=existing.id,
                status=KnockStatus.PENDING,
                message="You already have a pending request.",
            )

        session = Session(
            id=self.generate_room_id(), participant_name=name, connection_id=connection_id
        )
        self._registry.add(session)
        logger.info("Room %s created for %s", session.id, name)
        await self._persist()
        await self._emit_framework_event(
            "room_created", room_id=session.id, data={"participant_name": name}
        )

        target = await self._lease_target(session)
        if target is None:
            return KnockResult(
                session_id=session.id, status=KnockStatus.REFUSED, message=RETRY_LATER
            )

        if self._auto_approve:
            await self._activate(session)
            return KnockResult(
                session_id=session.id,
                status=KnockStatus.ACTIVE,
                message=WELCOME.format(name=name, operator=self._config.operator_name),
            )

        notification = render.knock_notification(session, tz=self._tz)
        task = self._relay.announce(session, notification, target)
        self._spawn(
            self._track_notification(session, ContextKind.KNOCK, target, task),
            name=f"knock_context:{session.key}",
        )
        await self._hub.emit(
            connection_id, events.KNOCK_PENDING, {"roomId": session.id, "participantName": name}
        )
        return KnockResult(
            session_id=session.id,
            status=KnockStatus.PENDING,
            message="Your knock has been sent. Please wait for approval.",
        )

    async def _lease_target(self, session: Session) -> RelayTarget | None:
        """Lease a dedicated bot for *session*, falling back to the shared one.

        Returns ``None`` when the session was torn down while leasing.
        """
        if self._pool is not None:
            try:
                lease = await self._pool.lease(session.id)
            except PoolExhaustedError:
                logger.warning(
                    "Credential pool exhausted; room %s uses the default bot", session.id
                )
            else:
                if not self._is_current(session):
                    if self._pool.lease_for(session.id) is lease:
                        self._pool.release_nowait(session.id)
                    return None
                session.metadata["credential_id"] = lease.credential_id
        if not self._is_current(session):
            return None
        return self._target_for(session)

    # -- Decisions --

    async def approve(self, session_id: int | str) -> Session | None:
        session = self._live_session(session_id, SessionStatus.PENDING)
        if session is None:
            return None
        await self._activate(session)
        return session

    async def _activate(self, session: Session) -> None:
        try:
            self._transition(session, SessionStatus.ACTIVE)
        except InvalidTransitionError:
            logger.exception("Cannot activate room %s", session.id)
            return
        session.touch()
        self._registry.map_participant(session.participant_name, session.id)
        if session.connection_id is not None:
            self._hub.bind(session.connection_id, session.id)
        welcome = self._system_message(
            session,
            WELCOME.format(name=session.participant_name, operator=self._config.operator_name),
        )
        self._retire_knock(session)
        await self._emit_to_visitor(
            session,
            events.KNOCK_APPROVED,
            {
                "roomId": session.id,
                "participantName": session.participant_name,
                "message": welcome.model_dump(mode="json"),
            },
        )
        await self._persist()
        await self._emit_framework_event(
            "room_activated",
            room_id=session.id,
            data={"participant_name": session.participant_name},
        )

    def _retire_knock(self, session: Session) -> None:
        self._router.clear_context(session.id)
        if session.knock_message_id is not None:
            self._relay.retire(session, session.knock_message_id, self._target_for(session))
            session.knock_message_id = None

    async def reject(self, session_id: int | str, reason: str = REJECTED) -> bool:
        """Turn down a pending knock. The session never enters ``left``."""
        session = self._live_session(session_id, SessionStatus.PENDING)
        if session is None:
            return False
        await self._hub.emit(
            session.connection_id, events.KNOCK_REJECTED, {"roomId": session.id, "reason": reason}
        )
        await self._teardown_pending(session, reason)
        return True

    async def _teardown_pending(self, session: Session, reason: str) -> None:
        self._retire_knock(session)
        self._discard(session)
        await self._persist()
        await self._emit_framework_event(
            "room_rejected", room_id=session.id, data={"reason": reason}
        )

    async def set_service_enabled(self, enabled: bool) -> None:
        """Operator console toggle for automatic admission.

        Turning it off turns away everyone still waiting.
        """
        self._auto_approve = enabled
        if enabled:
            await self._hub.broadcast(events.SERVICE_RESTORED, {"message": RESTORED})
        else:
            for session in self._registry.find(SessionStatus.PENDING):
                await self.reject(session.id, SHUTDOWN)
            await self._hub.broadcast(events.SERVICE_SHUTDOWN, {"message": SHUTDOWN})
        logger.info("Service %s", "enabled" if enabled else "disabled")
        await self._emit_framework_event("service_toggled", data={"enabled": enabled})

    # -- Termination --

    async def kick(self, session_id: int | str, reason: LeaveReason = LeaveReason.KICKED) -> bool:
        """End an active conversation and hand the operator its summary."""
        session = self._live_session(session_id, SessionStatus.ACTIVE)
        if session is None:
            return False
        self._transition(session, SessionStatus.LEFT)
        session.left_at = datetime.now(UTC)
        farewell = self._system_message(
            session, FAREWELLS[reason].format(name=session.participant_name)
        )
        await self._emit_to_visitor(
            session, events.NEW_MESSAGE, self._message_payload(session, farewell)
        )

        summary = render.final_summary(
            session, farewell.text, operator_name=self._config.operator_name, tz=self._tz
        )
        self._relay.finalize(session, summary, self._target_for(session))
        self._router.clear_context(session.id)
        self._scheduler.call_later(
            f"cleanup:{session.key}",
            self._config.cleanup_delay,
            lambda: self._deferred_cleanup(session.id, session.token),
        )
        logger.info("Room %s closed (%s)", session.id, reason.value)
        await self._persist()
        await self._emit_framework_event(
            "room_left",
            room_id=session.id,
            data={"participant_name": session.participant_name, "reason": reason.value},
        )
        return True

    async def leave(self, session_id: int | str) -> bool:
        return await self.kick(session_id, LeaveReason.LEFT)

    async def close_room(self, session_id: int | str) -> bool:
        return await self.kick(session_id, LeaveReason.KICKED)

    async def _deferred_cleanup(self, session_id: int | str, token: str) -> None:
        await self.cleanup(session_id, token=token)

    async def cleanup(self, session_id: int | str, *, token: str | None = None) -> bool:
        """Reclaim a finished room. Safe to call more than once."""
        session = self._live_session(
            session_id, SessionStatus.LEFT, SessionStatus.CLEANED, token=token
        )
        if session is None:
            return False
        self._discard(session)
        await self._persist()
        await self._emit_framework_event("room_cleaned", room_id=session_id)
        return True

    # -- Disconnects and timeouts --

    async def on_visitor_disconnect(
        self, session_id: int | str, connection_id: str | None = None
    ) -> None:
        session = self._live_session(session_id, SessionStatus.PENDING, SessionStatus.ACTIVE)
        if session is None:
            return
        if connection_id is not None and connection_id != session.connection_id:
            logger.debug("Ignoring disconnect of stale connection %s", connection_id)
            return
        if session.status is SessionStatus.PENDING:
            await self._teardown_pending(session, "disconnected")
            return
        marker = datetime.now(UTC)
        session.disconnected_at = marker
        self._scheduler.call_later(
            f"grace:{session.key}",
            self._config.disconnect_grace,
            lambda: self._grace_expired(session.id, session.token, marker),
        )

    async def _grace_expired(self, session_id: int | str, token: str, marker: datetime) -> None:
        session = self._live_session(session_id, SessionStatus.ACTIVE, token=token)
        if session is None or session.disconnected_at != marker:
            return
        await self.kick(session_id, LeaveReason.DISCONNECTED)

    async def sweep_inactive(self) -> list[int | str]:
        """Close every active room idle for longer than the inactivity timeout."""
        cutoff = datetime.now(UTC) - timedelta(seconds=self._config.inactivity_timeout)
        kicked: list[int | str] = []
        for session in self._registry.find(SessionStatus.ACTIVE):
            if session.last_activity_at < cutoff and await self.kick(
                session.id, LeaveReason.INACTIVE
            ):
                kicked.append(session.id)
        if kicked:
            logger.info("Closed %d inactive room(s)", len(kicked), extra={"rooms": kicked})
        return kicked

    # -- Restart --

    async def restore(self) -> int:
        """Reload pending and active rooms from the snapshot store."""
        snapshot = await self._store.load()
        restored = 0
        for session in snapshot.sessions:
            if session.is_terminal or session.id in self._registry:
                continue
            session.connection_id = None
            session.disconnected_at = None
            self._registry.add(session)
            self._reclaim_credential(session)
            self._restore_context(session)
            restored += 1
        for name, session_id in snapshot.participants.items():
            held = self._registry.get(session_id)
            if held is not None and held.status is SessionStatus.ACTIVE:
                self._registry.map_participant(name, session_id)
        logger.info("Restored %d room(s) from snapshot", restored)
        return restored

    def _reclaim_credential(self, session: Session) -> None:
        credential_id = session.metadata.get("credential_id")
        if credential_id is None or self._pool is None:
            return
        try:
            self._pool.reclaim(session.id, credential_id)
        except PoolExhaustedError:
            logger.warning(
                "Credential %s unavailable for restored room %s; using the default bot",
                credential_id,
                session.id,
            )
            session.metadata.pop("credential_id", None)

    def _restore_context(self, session: Session) -> None:
        credential_id = session.metadata.get(
            "credential_id", self._relay_config.default_credential_id
        )
        if session.status is SessionStatus.PENDING and session.knock_message_id is not None:
            kind, message_id = ContextKind.KNOCK, session.knock_message_id
        elif session.status is SessionStatus.ACTIVE and session.last_relay_message_id is not None:
            kind, message_id = ContextKind.MESSAGE, session.last_relay_message_id
        else:
            return
        self._router.set_context(
            ReplyContext(
                kind=kind,
                session_id=session.id,
                session_token=session.token,
                participant_name=session.participant_name,
                correlation_id=correlation_key(credential_id, message_id),
            )
        )
