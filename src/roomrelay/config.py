"""Configuration for the lifecycle controller and the Telegram relay.

Component configs are plain pydantic models. ``RelaySettings`` reads the
deployment's environment (``ROOMRELAY_`` prefix, ``.env`` supported) and
``create_relay_service`` wires a ready controller from it.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from roomrelay.models.policy import RateLimit, RetryPolicy

if TYPE_CHECKING:
    from roomrelay.core.framework import RoomLifecycleController


class LifecycleConfig(BaseModel):
    """Capacity and timing of the room state machine (seconds)."""

    max_rooms: int = Field(default=100, gt=0)
    disconnect_grace: float = Field(default=5.0, ge=0)
    cleanup_delay: float = Field(default=30.0, ge=0)
    inactivity_timeout: float = Field(default=300.0, gt=0)
    sweep_interval: float = Field(default=60.0, gt=0)
    auto_approve: bool = False
    operator_name: str = "Admin"
    timezone: str = "UTC"


class RelayConfig(BaseModel):
    """Where operator notifications go and how the relay paces itself."""

    operator_chat_id: str
    default_credential_id: str = "default"
    settle_delay: float = Field(default=0.3, ge=0)
    delete_pacing: float = Field(default=0.1, ge=0)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    history_limit: int = Field(default=10, gt=0)


class RelaySettings(BaseSettings):
    """Deployment settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ROOMRELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    # Telegram
    bot_token: SecretStr
    operator_chat_id: str
    pool_tokens: list[SecretStr] = Field(default_factory=list)
    webhook_base_url: str | None = None
    webhook_secret: SecretStr | None = None
    telegram_api_url: str = "https://api.telegram.org"
    telegram_timeout: float = 10.0

    # Persistence
    snapshot_path: str | None = None

    # Behaviour
    lifecycle: LifecycleConfig = Field(default_factory=LifecycleConfig)
    settle_delay: float = 0.3
    delete_pacing: float = 0.1
    rate_limits: dict[str, RateLimit] = Field(default_factory=dict)

    def relay_config(self) -> RelayConfig:
        return RelayConfig(
            operator_chat_id=self.operator_chat_id,
            settle_delay=self.settle_delay,
            delete_pacing=self.delete_pacing,
        )


@lru_cache
def get_settings() -> RelaySettings:
    """Get cached settings instance."""
    return RelaySettings()  # type: ignore[call-arg]


def create_relay_service(settings: RelaySettings | None = None) -> RoomLifecycleController:
    """Build a controller with real Telegram providers from *settings*."""
    from roomrelay.channels.visitor import VisitorHub
    from roomrelay.core.framework import RoomLifecycleController
    from roomrelay.core.lease_pool import CredentialLeasePool
    from roomrelay.core.rate_limiter import SecurityGate
    from roomrelay.models.lease import BotCredential
    from roomrelay.providers.telegram.bot import TelegramBotProvider
    from roomrelay.providers.telegram.config import TelegramConfig
    from roomrelay.store.base import SnapshotStore
    from roomrelay.store.json_file import JsonFileSnapshotStore
    from roomrelay.store.memory import InMemorySnapshotStore

    settings = settings or get_settings()

    def provider_for(credential: BotCredential) -> TelegramBotProvider:
        return TelegramBotProvider(
            TelegramConfig(
                bot_token=credential.token,
                timeout=settings.telegram_timeout,
                api_url=settings.telegram_api_url,
                webhook_secret=settings.webhook_secret,
            )
        )

    relay_config = settings.relay_config()
    default = BotCredential(id=relay_config.default_credential_id, token=settings.bot_token)
    credentials = [
        BotCredential(id=f"pool-{i}", token=token) for i, token in enumerate(settings.pool_tokens)
    ]
    pool = CredentialLeasePool(
        credentials,
        provider_for,
        webhook_base_url=settings.webhook_base_url,
    )
    store: SnapshotStore = (
        JsonFileSnapshotStore(settings.snapshot_path)
        if settings.snapshot_path
        else InMemorySnapshotStore()
    )
    return RoomLifecycleController(
        provider_for(default),
        relay_config,
        config=settings.lifecycle,
        pool=pool,
        store=store,
        hub=VisitorHub(),
        gate=SecurityGate(settings.rate_limits),
    )
