"""Bot credential and lease models."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field, SecretStr


class BotCredential(BaseModel):
    """A Telegram bot token the pool can hand out."""

    id: str
    token: SecretStr
    username: str | None = None


class CredentialLease(BaseModel):
    """Exclusive binding of one credential to one session."""

    credential_id: str
    session_id: int | str
    leased_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
