"""InboundMixin — visitor traffic, operator updates and action dispatch."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from roomrelay.channels import visitor as events
from roomrelay.core import render
from roomrelay.core._room_lifecycle import AWAY, REJECTED, RoomLifecycleMixin
from roomrelay.core.errors import RateLimitError, ValidationError
from roomrelay.models.actions import (
    Approve,
    Away,
    Close,
    NeedsExplicitReply,
    Nudge,
    Reject,
    Reply,
    Resolution,
    SleepClear,
    SleepSet,
    SleepStatus,
    Status,
)
from roomrelay.models.context import ReplyContext
from roomrelay.models.delivery import WebhookAck
from roomrelay.models.enums import ContextKind, LeaveReason, MessageKind, SessionStatus
from roomrelay.models.session import ChatMessage, Session
from roomrelay.providers.telegram.webhook import parse_telegram_webhook

logger = logging.getLogger("roomrelay.framework")

NUDGE = "Hello! I'm here and ready to help. What would you like to discuss?"


class InboundMixin(RoomLifecycleMixin):
    """Inbound processing for both sides of a conversation."""

    # -- Visitor side --

    async def on_visitor_message(
        self, session_id: int | str, text: str, connection_id: str | None = None
    ) -> ChatMessage | None:
        """Record a visitor message and refresh the operator's notification.

        Refusals are reported to the visitor as ``message-error`` events.
        """
        session = self._registry.get(session_id)
        reply_to = connection_id or (session.connection_id if session else None)
        if session is None or session.status is not SessionStatus.ACTIVE:
            await self._hub.emit(
                reply_to,
                events.MESSAGE_ERROR,
                {"error": "Room is not active. Please wait for approval."},
            )
            return None

        try:
            self._gate.require_valid(text)
            self._gate.enforce(connection_id or session.key, "message")
        except ValidationError as exc:
            await self._hub.emit(reply_to, events.MESSAGE_ERROR, {"error": str(exc)})
            return None
        except RateLimitError as exc:
            await self._hub.emit(
                reply_to,
                events.MESSAGE_ERROR,
                {"error": "Too many messages. Please slow down.", "retryAfter": exc.retry_after},
            )
            return None

        message = session.append(ChatMessage(text=text, sender=session.participant_name))
        session.touch()
        await self._emit_to_visitor(
            session, events.NEW_MESSAGE, self._message_payload(session, message)
        )

        target = self._target_for(session)
        notification = render.message_notification(
            session,
            operator_name=self._config.operator_name,
            tz=self._tz,
            history_limit=self._relay_config.history_limit,
        )
        task = self._relay.send(session, notification, target)
        self._spawn(
            self._track_notification(session, ContextKind.MESSAGE, target, task),
            name=f"message_context:{session.key}",
        )
        await self._persist()
        await self._emit_framework_event(
            "visitor_message",
            room_id=session.id,
            data={"message": message.model_dump(mode="json")},
        )
        return message

    async def on_visitor_join(
        self, session_id: int | str, participant_name: str, connection_id: str
    ) -> list[ChatMessage] | None:
        """Reattach a returning visitor and hand back the transcript."""
        session = self._live_session(session_id, SessionStatus.PENDING, SessionStatus.ACTIVE)
        if session is None:
            return None
        if session.participant_name != participant_name.strip():
            logger.warning(
                "Join for room %s with mismatched name",
                session_id,
                extra={"name": participant_name},
            )
            return None
        session.connection_id = connection_id
        session.disconnected_at = None
        self._scheduler.cancel(f"grace:{session.key}")
        if session.status is SessionStatus.ACTIVE:
            self._hub.unbind(session.id)
            self._hub.bind(connection_id, session.id)
            session.touch()
            await self._hub.emit(
                connection_id,
                events.ROOM_ASSIGNED,
                {
                    "roomId": session.id,
                    "participantName": session.participant_name,
                    "messages": [m.model_dump(mode="json") for m in session.messages],
                },
            )
        await self._persist()
        return list(session.messages)

    # -- Operator side --

    async def on_operator_message(self, session_id: int | str, text: str) -> ChatMessage | None:
        session = self._live_session(session_id, SessionStatus.ACTIVE)
        if session is None:
            return None
        message = session.append(
            ChatMessage(text=text, sender=self._config.operator_name, kind=MessageKind.OPERATOR)
        )
        session.touch()
        await self._emit_to_visitor(
            session, events.NEW_MESSAGE, self._message_payload(session, message)
        )
        await self._persist()
        await self._emit_framework_event(
            "operator_message",
            room_id=session.id,
            data={"message": message.model_dump(mode="json")},
        )
        return message

    async def handle_operator_webhook(
        self, payload: dict[str, Any], session_id: int | str | None = None
    ) -> WebhookAck:
        """Process one Telegram webhook call.

        *session_id* is set when the update arrived on a leased bot's
        per-session endpoint. The acknowledgement is always positive so
        Telegram never redelivers an update.
        """
        try:
            hint = self._coerce_id(session_id) if session_id is not None else None
            credential_id = self._endpoint_credential(hint)
            action: str | None = None
            for update in parse_telegram_webhook(payload, credential_id):
                await self._operator_seen()
                resolution = self._router.resolve(update, session_hint=hint)
                await self.apply(resolution)
                action = resolution.action.kind
            return WebhookAck(action=action)
        except Exception:
            logger.exception("Operator webhook failed", extra={"session_id": session_id})
            return WebhookAck(message="error")

    def _endpoint_credential(self, session_id: int | str | None) -> str:
        if session_id is not None and self._pool is not None:
            lease = self._pool.lease_for(session_id)
            if lease is not None:
                return lease.credential_id
        return self._relay_config.default_credential_id

    async def _operator_seen(self) -> None:
        if self.sleep_remaining_minutes() is None:
            await self._hub.broadcast(events.ADMIN_PRESENCE, {"status": "online"})
            await self._emit_framework_event("operator_presence", data={"status": "online"})

    # -- Action dispatch --

    async def apply(self, resolution: Resolution) -> None:
        """Carry out an operator action against the session it refers to."""
        action = resolution.action

        if isinstance(action, NeedsExplicitReply):
            await self._answer_operator(render.NEEDS_EXPLICIT_REPLY)
            return
        if isinstance(action, SleepSet):
            await self.set_sleep(action.minutes)
            return
        if isinstance(action, SleepClear):
            await self.clear_sleep()
            return
        if isinstance(action, SleepStatus):
            await self._answer_operator(render.sleep_status(self.sleep_remaining_minutes()))
            return
        if isinstance(action, Status):
            await self._answer_operator(
                render.status_report(self._registry.counts(), self._registry.max_rooms)
            )
            return

        session = self._context_session(resolution.context)
        if session is None:
            return

        if isinstance(action, Approve):
            if self._expect(session, SessionStatus.PENDING, action.kind):
                await self.approve(session.id)
        elif isinstance(action, Reject):
            if self._expect(session, SessionStatus.PENDING, action.kind):
                await self.reject(session.id, REJECTED)
        elif isinstance(action, Away):
            if self._expect(session, SessionStatus.PENDING, action.kind):
                await self.reject(session.id, AWAY)
        elif isinstance(action, Nudge):
            if self._expect(session, SessionStatus.ACTIVE, action.kind):
                await self.nudge(session.id)
        elif isinstance(action, Close):
            if self._expect(session, SessionStatus.ACTIVE, action.kind):
                await self.kick(session.id, LeaveReason.KICKED)
        elif isinstance(action, Reply):
            if session.status is SessionStatus.PENDING:
                await self.reject(session.id, action.text)
            elif self._expect(session, SessionStatus.ACTIVE, action.kind):
                await self.on_operator_message(session.id, action.text)
        else:
            logger.warning("Unhandled operator action %s", action.kind)

    def _context_session(self, context: ReplyContext | None) -> Session | None:
        if context is None:
            logger.warning("Operator action without a reply context")
            return None
        return self._live_session(context.session_id, token=context.session_token)

    @staticmethod
    def _expect(session: Session, status: SessionStatus, action: str) -> bool:
        if session.status is status:
            return True
        logger.info("Ignoring %s for room %s in state %s", action, session.id, session.status)
        return False

    async def nudge(self, session_id: int | str) -> ChatMessage | None:
        """Send the visitor a friendly prompt on the operator's behalf."""
        session = self._live_session(session_id, SessionStatus.ACTIVE)
        if session is None:
            return None
        message = session.append(
            ChatMessage(text=NUDGE, sender=self._config.operator_name, kind=MessageKind.OPERATOR)
        )
        session.touch()
        await self._emit_to_visitor(
            session, events.NUDGE_MESSAGE, self._message_payload(session, message)
        )
        await self._persist()
        return message

    # -- Sleep window --

    async def set_sleep(self, minutes: int) -> datetime:
        until = datetime.now(UTC) + timedelta(minutes=minutes)
        self._sleep_until = until
        await self._hub.broadcast(
            events.ADMIN_PRESENCE, {"status": "away", "until": until.isoformat()}
        )
        await self._emit_framework_event(
            "sleep_changed", data={"until": until.isoformat(), "minutes": minutes}
        )
        await self._answer_operator(render.sleep_set(minutes, until, self._tz))
        return until

    async def clear_sleep(self) -> None:
        self._sleep_until = None
        await self._hub.broadcast(events.ADMIN_PRESENCE, {"status": "online"})
        await self._emit_framework_event("sleep_changed", data={"until": None})
        await self._answer_operator(render.sleep_cleared())
