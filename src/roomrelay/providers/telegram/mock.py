"""Mock Telegram provider for testing."""

from __future__ import annotations

from itertools import count

from roomrelay.models.delivery import ProviderResult
from roomrelay.providers.telegram.base import TelegramProvider


class MockTelegramProvider(TelegramProvider):
    """Records every Bot API call for verification in tests.

    Sent message ids are sequential integers (as strings). Queue canned
    failures in ``send_failures`` / ``delete_failures``; each call pops
    one entry before falling back to success.
    """

    def __init__(self, first_message_id: int = 1) -> None:
        self._ids = count(first_message_id)
        self.sent: list[dict[str, str]] = []
        self.deleted: list[dict[str, str]] = []
        self.calls: list[tuple[str, str]] = []
        self.webhooks: list[str | None] = []
        self.send_failures: list[ProviderResult] = []
        self.delete_failures: list[ProviderResult] = []
        self.closed = False

    async def send_message(self, chat_id: str, text: str) -> ProviderResult:
        if self.send_failures:
            self.calls.append(("send_failed", ""))
            return self.send_failures.pop(0)
        message_id = str(next(self._ids))
        self.sent.append({"chat_id": chat_id, "text": text, "message_id": message_id})
        self.calls.append(("send", message_id))
        return ProviderResult(success=True, provider_message_id=message_id)

    async def delete_message(self, chat_id: str, message_id: str) -> ProviderResult:
        self.calls.append(("delete", message_id))
        if self.delete_failures:
            return self.delete_failures.pop(0)
        self.deleted.append({"chat_id": chat_id, "message_id": message_id})
        return ProviderResult(success=True)

    async def set_webhook(self, url: str) -> ProviderResult:
        self.webhooks.append(url)
        return ProviderResult(success=True)

    async def delete_webhook(self) -> ProviderResult:
        self.webhooks.append(None)
        return ProviderResult(success=True)

    def verify_signature(self, signature: str) -> bool:
        return True

    @property
    def deleted_ids(self) -> list[str]:
        return [d["message_id"] for d in self.deleted]

    @property
    def sent_texts(self) -> list[str]:
        return [s["text"] for s in self.sent]

    async def close(self) -> None:
        self.closed = True
