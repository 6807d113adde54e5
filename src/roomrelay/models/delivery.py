"""Delivery, inbound update and result models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from roomrelay.models.enums import KnockStatus


class ProviderResult(BaseModel):
    """Result from a provider call."""

    success: bool
    provider_message_id: str | None = None
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class OperatorUpdate(BaseModel):
    """A text message the operator sent to one of the bots."""

    text: str
    message_id: str
    credential_id: str
    chat_id: str = ""
    sender_id: str = ""
    reply_to_message_id: str | None = None
    date: int = 0


class KnockResult(BaseModel):
    """Outcome of a visitor knock, as reported back to the transport."""

    session_id: int | str | None = None
    status: KnockStatus
    message: str = ""
    retry_after: float | None = None


class WebhookAck(BaseModel):
    """Body returned to Telegram for every webhook call."""

    ok: bool = True
    action: str | None = None
    message: str = ""
