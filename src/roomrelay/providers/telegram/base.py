"""Abstract base class for Telegram providers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from roomrelay.models.delivery import ProviderResult
from roomrelay.models.enums import DeleteOutcome

_TRANSIENT_STATUS = {429, 500, 502, 503, 504}


class TelegramProvider(ABC):
    """Telegram Bot API operations used by the relay."""

    @property
    def name(self) -> str:
        """Provider name."""
        return self.__class__.__name__

    @abstractmethod
    async def send_message(self, chat_id: str, text: str) -> ProviderResult:
        """Send an HTML-formatted text message.

        Args:
            chat_id: Recipient Telegram chat ID.
            text: Message body (HTML parse mode).

        Returns:
            Result whose ``provider_message_id`` is the new message id.
        """
        ...

    @abstractmethod
    async def delete_message(self, chat_id: str, message_id: str) -> ProviderResult:
        """Delete a message previously sent by this bot."""
        ...

    @abstractmethod
    async def set_webhook(self, url: str) -> ProviderResult:
        """Point this bot's updates at *url*."""
        ...

    @abstractmethod
    async def delete_webhook(self) -> ProviderResult:
        """Stop delivering this bot's updates."""
        ...

    def verify_signature(self, signature: str) -> bool:
        """Verify that a webhook request was sent by Telegram.

        Args:
            signature: Value of the ``X-Telegram-Bot-Api-Secret-Token`` header.

        Returns:
            True if the signature matches the configured webhook secret.

        Raises:
            NotImplementedError: If the provider does not support signature
                verification.
        """
        raise NotImplementedError(f"{self.name} does not support webhook signature verification")

    async def close(self) -> None:  # noqa: B027
        """Release resources. Override in subclasses that hold connections."""


def classify_failure(result: ProviderResult) -> DeleteOutcome:
    """Map a Bot API result onto the relay's failure classes."""
    if result.success:
        return DeleteOutcome.DELETED
    error = result.error or ""
    description = str(result.metadata.get("description", "")).lower()
    if "not found" in description:
        return DeleteOutcome.ALREADY_GONE
    if "can't be deleted" in description or "too old" in description:
        return DeleteOutcome.TOO_OLD
    if error in ("timeout", "network"):
        return DeleteOutcome.TRANSIENT
    status = result.metadata.get("status_code")
    if isinstance(status, int) and status in _TRANSIENT_STATUS:
        return DeleteOutcome.TRANSIENT
    return DeleteOutcome.FAILED
