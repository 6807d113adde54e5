"""Operator-facing texts sent to Telegram (HTML parse mode)."""

from __future__ import annotations

import html
from collections.abc import Mapping
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from roomrelay.models.enums import MessageKind, SessionStatus
from roomrelay.models.session import ChatMessage, Session

HISTORY_LIMIT = 10

NEEDS_EXPLICIT_REPLY = (
    "⚠️ Please reply to the specific notification you want to respond to.\n\n"
    'Use the "Reply" button in Telegram on the notification message.'
)


def format_time(moment: datetime, tz: ZoneInfo | None = None) -> str:
    """``HH:MM AM/PM`` in the operator's timezone."""
    return moment.astimezone(tz or UTC).strftime("%I:%M %p")


def _sender(message: ChatMessage, operator_name: str) -> str:
    name = operator_name if message.kind is MessageKind.OPERATOR else message.sender
    return html.escape(name)


def _lines(messages: list[ChatMessage], operator_name: str, tz: ZoneInfo | None) -> str:
    return "".join(
        f"{_sender(m, operator_name)} ({format_time(m.timestamp, tz)}): {html.escape(m.text)}\n"
        for m in messages
    )


def knock_notification(session: Session, *, tz: ZoneInfo | None = None) -> str:
    now = datetime.now(tz or UTC).strftime("%Y-%m-%d %I:%M %p")
    return (
        "🔔 <b>Someone Knocked!</b>\n\n"
        f"👤 <b>Name:</b> {html.escape(session.participant_name)}\n"
        f"🏠 <b>Room:</b> {session.id}\n"
        f"⏰ <b>Time:</b> {now}\n\n"
        '⚠️ <b>IMPORTANT:</b> Use "Reply" to respond to THIS specific knock!\n\n'
        "Reply with:\n"
        "• <code>approve</code> - Let them in\n"
        "• <code>reject</code> - Reject them\n"
        "• <code>away</code> - Send \"away\" message\n"
        "• <code>nudge</code> - Send gentle prompt (after approval)\n"
        "• <code>sleep 60</code> - Set sleep for 60 minutes\n"
        "• <code>sleep clear</code> - Clear sleep time\n"
        "• <code>sleep status</code> - Check sleep status\n"
        "• Any other text - Custom message"
    )


def message_notification(
    session: Session,
    *,
    operator_name: str,
    tz: ZoneInfo | None = None,
    history_limit: int = HISTORY_LIMIT,
) -> str:
    """The single live notification for a session, with recent history."""
    history = session.conversation()[-history_limit:]
    return (
        "💬 <b>New Message</b>\n\n"
        f"👤 <b>From:</b> {html.escape(session.participant_name)}\n"
        f"🏠 <b>Room:</b> {session.id}\n\n"
        "📜 <b>Conversation:</b>\n"
        f"{_lines(history, operator_name, tz)}\n"
        "Reply to respond directly to this user."
    )


def final_summary(
    session: Session, farewell: str, *, operator_name: str, tz: ZoneInfo | None = None
) -> str:
    """Closing notice for a session, listing only the exchanged messages."""
    text = (
        f"👋 <b>{html.escape(session.participant_name)}</b> left Room {session.id}\n"
        f"{html.escape(farewell)}"
    )
    conversation = session.conversation()
    if conversation:
        text += "\n\n📜 <b>Final Conversation Summary:</b>\n"
        text += _lines(conversation, operator_name, tz)
    return text


def status_report(counts: Mapping[SessionStatus, int], max_rooms: int) -> str:
    total = sum(counts.values())
    active = counts.get(SessionStatus.ACTIVE, 0)
    return (
        "📊 <b>Room Status Report</b>\n\n"
        f"🏠 <b>Total Rooms:</b> {total}/{max_rooms}\n"
        f"🟢 <b>Active:</b> {active}\n"
        f"⏳ <b>Pending:</b> {counts.get(SessionStatus.PENDING, 0)}\n"
        f"🚪 <b>Left:</b> {counts.get(SessionStatus.LEFT, 0)}\n"
        f"🧹 <b>Cleaned:</b> {counts.get(SessionStatus.CLEANED, 0)}\n\n"
        f"💬 <b>Actively Engaged:</b> {active} room{'s' if active != 1 else ''}"
    )


def minutes_label(minutes: int) -> str:
    return f"{minutes} minute{'s' if minutes != 1 else ''}"


def sleep_set(minutes: int, until: datetime, tz: ZoneInfo | None = None) -> str:
    return (
        f"😴 Sleep set for {minutes_label(minutes)} "
        f"(until {format_time(until, tz)}). New knocks will be turned away."
    )


def sleep_cleared() -> str:
    return "☀️ Sleep cleared. Visitors can knock again."


def sleep_status(remaining_minutes: int | None) -> str:
    if remaining_minutes is None:
        return "☀️ No sleep window is set."
    return f"😴 Sleeping for another {minutes_label(remaining_minutes)}."


def busy(operator_name: str, remaining_minutes: int) -> str:
    """Knock refusal shown to the visitor while a sleep window runs."""
    return (
        f"{operator_name} is busy elsewhere. "
        f"Please try again after {minutes_label(remaining_minutes)}."
    )
