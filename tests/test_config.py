"""Tests for configuration models, settings and service wiring."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from roomrelay.config import (
    LifecycleConfig,
    RelayConfig,
    RelaySettings,
    create_relay_service,
)
from roomrelay.providers.telegram.bot import TelegramBotProvider
from roomrelay.store.json_file import JsonFileSnapshotStore
from roomrelay.store.memory import InMemorySnapshotStore


class TestLifecycleConfig:
    def test_defaults(self) -> None:
        cfg = LifecycleConfig()
        assert cfg.max_rooms == 100
        assert cfg.disconnect_grace == 5.0
        assert cfg.cleanup_delay == 30.0
        assert cfg.inactivity_timeout == 300.0
        assert cfg.sweep_interval == 60.0
        assert cfg.auto_approve is False

    def test_rejects_zero_capacity(self) -> None:
        with pytest.raises(ValidationError):
            LifecycleConfig(max_rooms=0)


class TestRelayConfig:
    def test_defaults(self) -> None:
        cfg = RelayConfig(operator_chat_id="1")
        assert cfg.default_credential_id == "default"
        assert cfg.settle_delay == 0.3
        assert cfg.delete_pacing == 0.1
        assert cfg.history_limit == 10

    def test_chat_id_required(self) -> None:
        with pytest.raises(ValidationError):
            RelayConfig()  # type: ignore[call-arg]


class TestRelaySettings:
    def test_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ROOMRELAY_BOT_TOKEN", "1:MAIN")
        monkeypatch.setenv("ROOMRELAY_OPERATOR_CHAT_ID", "9000")
        monkeypatch.setenv("ROOMRELAY_POOL_TOKENS", '["2:A", "3:B"]')
        monkeypatch.setenv("ROOMRELAY_LIFECYCLE__MAX_ROOMS", "5")
        monkeypatch.setenv("ROOMRELAY_LIFECYCLE__OPERATOR_NAME", "Rajendran")
        monkeypatch.setenv("ROOMRELAY_SETTLE_DELAY", "0")

        settings = RelaySettings(_env_file=None)  # type: ignore[call-arg]

        assert settings.bot_token.get_secret_value() == "1:MAIN"
        assert [t.get_secret_value() for t in settings.pool_tokens] == ["2:A", "3:B"]
        assert settings.lifecycle.max_rooms == 5
        assert settings.lifecycle.operator_name == "Rajendran"
        relay = settings.relay_config()
        assert relay.operator_chat_id == "9000"
        assert relay.settle_delay == 0.0

    def test_token_required(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ROOMRELAY_BOT_TOKEN", raising=False)
        monkeypatch.setenv("ROOMRELAY_OPERATOR_CHAT_ID", "9000")
        with pytest.raises(ValidationError):
            RelaySettings(_env_file=None)  # type: ignore[call-arg]


class TestCreateRelayService:
    async def test_wires_pool_and_memory_store(self) -> None:
        settings = RelaySettings(
            _env_file=None,  # type: ignore[call-arg]
            bot_token="1:MAIN",
            operator_chat_id="9000",
            pool_tokens=["2:A", "3:B"],
            webhook_base_url="https://relay.example/",
        )

        controller = create_relay_service(settings)
        try:
            assert controller.pool is not None
            assert controller.pool.size == 2
            assert controller.pool.webhook_url(4) == "https://relay.example/telegram-webhook/4"
            assert isinstance(controller._store, InMemorySnapshotStore)
            assert isinstance(controller._default_provider, TelegramBotProvider)
            assert controller.registry.max_rooms == 100
        finally:
            await controller.close()

    async def test_snapshot_path_selects_file_store(self, tmp_path: Path) -> None:
        settings = RelaySettings(
            _env_file=None,  # type: ignore[call-arg]
            bot_token="1:MAIN",
            operator_chat_id="9000",
            snapshot_path=str(tmp_path / "rooms.json"),
        )

        controller = create_relay_service(settings)
        try:
            assert isinstance(controller._store, JsonFileSnapshotStore)
        finally:
            await controller.close()
