"""Telegram Bot API provider."""

from roomrelay.providers.telegram.base import TelegramProvider, classify_failure
from roomrelay.providers.telegram.bot import TelegramBotProvider
from roomrelay.providers.telegram.config import TelegramConfig
from roomrelay.providers.telegram.mock import MockTelegramProvider
from roomrelay.providers.telegram.webhook import parse_telegram_webhook

__all__ = [
    "MockTelegramProvider",
    "TelegramBotProvider",
    "TelegramConfig",
    "TelegramProvider",
    "classify_failure",
    "parse_telegram_webhook",
]
