"""Error taxonomy for roomrelay."""

from __future__ import annotations


class RoomRelayError(Exception):
    """Base exception for all roomrelay errors."""


class ValidationError(RoomRelayError):
    """Visitor input was malformed or suspicious."""


class RateLimitError(RoomRelayError):
    """A source performed too many actions."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class RelayTransientError(RoomRelayError):
    """Network failure or timeout talking to Telegram; worth retrying."""


class RelayPermanentError(RoomRelayError):
    """Telegram refused the operation for good (e.g. message too old)."""


class PoolExhaustedError(RoomRelayError):
    """No bot credential is free."""


class NotFoundError(RoomRelayError):
    """A session or id no longer exists."""


class InvalidTransitionError(RoomRelayError):
    """A lifecycle transition does not apply to the session's status."""
