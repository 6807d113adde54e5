"""Telegram Bot API provider configuration."""

from __future__ import annotations

from pydantic import BaseModel, SecretStr


class TelegramConfig(BaseModel):
    """Telegram Bot API provider configuration."""

    bot_token: SecretStr
    timeout: float = 10.0
    api_url: str = "https://api.telegram.org"
    webhook_secret: SecretStr | None = None

    @property
    def base_url(self) -> str:
        return f"{self.api_url}/bot{self.bot_token.get_secret_value()}"
