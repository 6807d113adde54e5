"""Framework-level event model."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


class FrameworkEvent(BaseModel):
    """An event emitted by the controller for the operator console and observers."""

    type: str
    room_id: int | str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    data: dict[str, Any] = Field(default_factory=dict)
