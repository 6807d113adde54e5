"""Session (room) model."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from roomrelay.models.enums import MessageKind, SessionStatus


def _now() -> datetime:
    return datetime.now(UTC)


class ChatMessage(BaseModel):
    """A single chat event inside a session."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    text: str
    sender: str
    kind: MessageKind = MessageKind.VISITOR
    timestamp: datetime = Field(default_factory=_now)

    @property
    def is_conversation(self) -> bool:
        """True for messages exchanged between visitor and operator."""
        return self.kind is not MessageKind.SYSTEM


class Session(BaseModel):
    """One anonymous visitor's conversation instance.

    ``id`` is a small reused integer; a string id only appears when the
    allocator ran out of slots. ``token`` identifies this particular
    occupant of the id so that deferred work aimed at an earlier occupant
    can recognise it is stale.
    """

    id: int | str
    participant_name: str
    status: SessionStatus = SessionStatus.PENDING
    messages: list[ChatMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    last_activity_at: datetime = Field(default_factory=_now)
    left_at: datetime | None = None
    last_relay_message_id: str | None = None
    knock_message_id: str | None = None
    connection_id: str | None = None
    disconnected_at: datetime | None = None
    token: str = Field(default_factory=lambda: uuid4().hex)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        return f"{self.id}:{self.token}"

    @property
    def is_terminal(self) -> bool:
        return self.status in (SessionStatus.LEFT, SessionStatus.CLEANED)

    def append(self, message: ChatMessage) -> ChatMessage:
        self.messages.append(message)
        return message

    def touch(self) -> None:
        """Refresh the inactivity clock."""
        self.last_activity_at = _now()

    def conversation(self) -> list[ChatMessage]:
        return [m for m in self.messages if m.is_conversation]
