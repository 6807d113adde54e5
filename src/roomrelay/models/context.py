"""Reply context model."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from roomrelay.models.enums import ContextKind


def correlation_key(credential_id: str, message_id: str | int) -> str:
    """Build the correlation id for a message sent through *credential_id*.

    Telegram message ids are only unique within one bot's chat, so the
    credential is part of the key.
    """
    return f"{credential_id}:{message_id}"


class ReplyContext(BaseModel):
    """What an operator reply to a given notification refers to."""

    kind: ContextKind
    session_id: int | str
    session_token: str
    participant_name: str
    correlation_id: str
    connection_id: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
