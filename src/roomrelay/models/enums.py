"""All string enums for roomrelay."""

from __future__ import annotations

from enum import StrEnum, unique


@unique
class SessionStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    LEFT = "left"
    CLEANED = "cleaned"


@unique
class MessageKind(StrEnum):
    VISITOR = "visitor"
    OPERATOR = "operator"
    SYSTEM = "system"


@unique
class ContextKind(StrEnum):
    KNOCK = "knock"
    MESSAGE = "message"


@unique
class LeaveReason(StrEnum):
    LEFT = "left"
    KICKED = "kicked"
    INACTIVE = "inactive"
    DISCONNECTED = "disconnected"


@unique
class KnockStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    REFUSED = "refused"


@unique
class DeleteOutcome(StrEnum):
    DELETED = "deleted"
    ALREADY_GONE = "already_gone"
    TOO_OLD = "too_old"
    TRANSIENT = "transient"
    FAILED = "failed"
