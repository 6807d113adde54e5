"""Telegram Bot provider — talks to the Telegram Bot API over httpx."""

from __future__ import annotations

import hmac
import logging
from typing import Any

import httpx

from roomrelay.models.delivery import ProviderResult
from roomrelay.providers.telegram.base import TelegramProvider
from roomrelay.providers.telegram.config import TelegramConfig

logger = logging.getLogger("roomrelay.providers.telegram")


class TelegramBotProvider(TelegramProvider):
    """Send, delete and route messages via the Telegram Bot API."""

    def __init__(self, config: TelegramConfig) -> None:
        self._config = config
        self._client = httpx.AsyncClient(timeout=config.timeout)

    async def send_message(self, chat_id: str, text: str) -> ProviderResult:
        if not text:
            return ProviderResult(success=False, error="empty_message")
        return await self._api_call(
            "sendMessage",
            {"chat_id": chat_id, "text": text, "parse_mode": "HTML"},
        )

    async def delete_message(self, chat_id: str, message_id: str) -> ProviderResult:
        return await self._api_call(
            "deleteMessage",
            {"chat_id": chat_id, "message_id": int(message_id)},
        )

    async def set_webhook(self, url: str) -> ProviderResult:
        payload: dict[str, Any] = {"url": url}
        if self._config.webhook_secret is not None:
            payload["secret_token"] = self._config.webhook_secret.get_secret_value()
        return await self._api_call("setWebhook", payload)

    async def delete_webhook(self) -> ProviderResult:
        return await self._api_call("deleteWebhook", {})

    def verify_signature(self, signature: str) -> bool:
        secret = self._config.webhook_secret
        if secret is None:
            return True
        return hmac.compare_digest(secret.get_secret_value(), signature)

    async def _api_call(self, method: str, payload: dict[str, Any]) -> ProviderResult:
        url = f"{self._config.base_url}/{method}"
        try:
            resp = await self._client.post(url, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException:
            return ProviderResult(success=False, error="timeout")
        except httpx.HTTPStatusError as exc:
            return self._parse_error(exc)
        except httpx.HTTPError as exc:
            logger.debug("Bot API %s transport error: %s", method, exc)
            return ProviderResult(success=False, error="network", metadata={"detail": str(exc)})

        if not data.get("ok", False):
            return ProviderResult(
                success=False,
                error=f"telegram_{data.get('error_code', 'unknown')}",
                metadata={"description": data.get("description", "")},
            )
        result = data.get("result")
        message_id = result.get("message_id") if isinstance(result, dict) else None
        return ProviderResult(
            success=True,
            provider_message_id=str(message_id) if message_id is not None else None,
        )

    @staticmethod
    def _parse_error(exc: httpx.HTTPStatusError) -> ProviderResult:
        """Extract a Telegram Bot API error when available."""
        status = exc.response.status_code
        try:
            body = exc.response.json()
            error_code = body.get("error_code", status)
            description = body.get("description", "")
            metadata: dict[str, Any] = {"description": description, "status_code": status}
            retry_after = body.get("parameters", {}).get("retry_after")
            if retry_after is not None:
                metadata["retry_after"] = retry_after
            return ProviderResult(
                success=False,
                error=f"telegram_{error_code}",
                metadata=metadata,
            )
        except Exception:
            return ProviderResult(
                success=False,
                error=f"http_{status}",
                metadata={"status_code": status},
            )

    async def close(self) -> None:
        await self._client.aclose()
