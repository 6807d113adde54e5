"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Coroutine
from typing import Any

import pytest

from roomrelay.channels.visitor import VisitorHub
from roomrelay.config import LifecycleConfig, RelayConfig
from roomrelay.core.framework import RoomLifecycleController
from roomrelay.core.lease_pool import CredentialLeasePool
from roomrelay.models.lease import BotCredential
from roomrelay.models.policy import RetryPolicy
from roomrelay.providers.telegram.mock import MockTelegramProvider
from roomrelay.store.memory import InMemorySnapshotStore

OPERATOR_CHAT = "9000"


@pytest.fixture
def advance() -> Callable[[int], Coroutine[Any, Any, None]]:
    """Yield control to let pending tasks run without real delay.

    Replaces ``await asyncio.sleep(0.05)`` patterns with zero-delay
    event loop yields::

        await advance()       # 5 yields (default)
        await advance(10)     # 10 yields for heavier workloads
    """

    async def _advance(n: int = 5) -> None:
        for _ in range(n):
            await asyncio.sleep(0)

    return _advance


class RecordingConnection:
    """Stands in for a visitor's socket: records every emitted event."""

    def __init__(self, connection_id: str) -> None:
        self.connection_id = connection_id
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def last(self, event: str) -> dict[str, Any]:
        for name, payload in reversed(self.events):
            if name == event:
                return payload
        raise AssertionError(f"no {event} event recorded")


def make_relay_config(**overrides: Any) -> RelayConfig:
    defaults: dict[str, Any] = {
        "operator_chat_id": OPERATOR_CHAT,
        "settle_delay": 0.0,
        "delete_pacing": 0.0,
        "retry": RetryPolicy(max_retries=2, base_delay_seconds=0.0, max_delay_seconds=0.0),
    }
    defaults.update(overrides)
    return RelayConfig(**defaults)


def make_lifecycle_config(**overrides: Any) -> LifecycleConfig:
    defaults: dict[str, Any] = {
        "disconnect_grace": 0.0,
        "cleanup_delay": 0.0,
        "operator_name": "Rajendran",
    }
    defaults.update(overrides)
    return LifecycleConfig(**defaults)


@pytest.fixture
def default_bot() -> MockTelegramProvider:
    return MockTelegramProvider(first_message_id=1000)


@pytest.fixture
def hub() -> VisitorHub:
    return VisitorHub()


@pytest.fixture
def store() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()


@pytest.fixture
async def controller(
    default_bot: MockTelegramProvider, hub: VisitorHub, store: InMemorySnapshotStore
) -> AsyncIterator[RoomLifecycleController]:
    """Controller on the shared bot only, with zero-delay timers."""
    ctrl = RoomLifecycleController(
        default_bot,
        make_relay_config(),
        config=make_lifecycle_config(cleanup_delay=60.0),
        store=store,
        hub=hub,
    )
    yield ctrl
    await ctrl.close()


class PooledBots:
    """Factory handing out one ``MockTelegramProvider`` per credential."""

    def __init__(self) -> None:
        self.providers: dict[str, MockTelegramProvider] = {}

    def __call__(self, credential: BotCredential) -> MockTelegramProvider:
        provider = MockTelegramProvider(first_message_id=1)
        self.providers[credential.id] = provider
        return provider


def make_pool(size: int, factory: PooledBots, **kwargs: Any) -> CredentialLeasePool:
    credentials = [BotCredential(id=f"bot-{i}", token=f"{i}:TOKEN") for i in range(size)]
    return CredentialLeasePool(credentials, factory, **kwargs)


async def connect(hub: VisitorHub, connection_id: str) -> RecordingConnection:
    connection = RecordingConnection(connection_id)
    hub.register_connection(connection_id, connection.send)
    return connection


def operator_reply(text: str, reply_to: str | None = None, message_id: int = 1) -> dict[str, Any]:
    """A Telegram Update as the operator's reply would arrive."""
    message: dict[str, Any] = {
        "message_id": message_id,
        "date": 1700000000,
        "chat": {"id": int(OPERATOR_CHAT), "type": "private"},
        "from": {"id": 42, "first_name": "Op"},
        "text": text,
    }
    if reply_to is not None:
        message["reply_to_message"] = {"message_id": int(reply_to)}
    return {"update_id": 1, "message": message}
