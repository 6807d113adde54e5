"""Telegram webhook parsing helpers."""

from __future__ import annotations

from typing import Any

from roomrelay.models.delivery import OperatorUpdate


def parse_telegram_webhook(
    payload: dict[str, Any],
    credential_id: str,
) -> list[OperatorUpdate]:
    """Convert a Telegram Update payload into OperatorUpdates.

    Telegram sends one update at a time (unless using ``getUpdates``).
    Only ``message`` updates carrying text are processed; edits, channel
    posts, media and callback queries are silently skipped.

    ``credential_id`` names the bot whose endpoint received the update, so
    the reply reference can be matched against the right bot's message ids.
    """
    updates: list[OperatorUpdate] = []

    msg = payload.get("message")
    if not isinstance(msg, dict):
        return updates

    text = msg.get("text")
    if not isinstance(text, str):
        return updates

    reply_to = msg.get("reply_to_message")
    reply_to_id: str | None = None
    if isinstance(reply_to, dict) and reply_to.get("message_id") is not None:
        reply_to_id = str(reply_to["message_id"])

    updates.append(
        OperatorUpdate(
            text=text,
            message_id=str(msg.get("message_id", "")),
            credential_id=credential_id,
            chat_id=str(msg.get("chat", {}).get("id", "")),
            sender_id=str(msg.get("from", {}).get("id", "")),
            reply_to_message_id=reply_to_id,
            date=msg.get("date", 0),
        )
    )
    return updates
