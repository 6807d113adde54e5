"""Tests for snapshot stores."""

from __future__ import annotations

from pathlib import Path

from roomrelay.models.enums import SessionStatus
from roomrelay.models.session import ChatMessage, Session
from roomrelay.store.base import Snapshot
from roomrelay.store.json_file import JsonFileSnapshotStore
from roomrelay.store.memory import InMemorySnapshotStore


def _snapshot() -> Snapshot:
    active = Session(id=1, participant_name="Ann", status=SessionStatus.ACTIVE)
    active.append(ChatMessage(text="hi", sender="Ann"))
    pending = Session(id=2, participant_name="Bob")
    left = Session(id=3, participant_name="Cy", status=SessionStatus.LEFT)
    return Snapshot(
        sessions=[active, pending, left],
        participants={"Ann": 1, "Cy": 3, "Ghost": 9},
    )


class TestSnapshot:
    def test_live_drops_terminal_sessions_and_orphans(self) -> None:
        live = _snapshot().live()

        assert [s.id for s in live.sessions] == [1, 2]
        assert live.participants == {"Ann": 1}


class TestInMemorySnapshotStore:
    async def test_empty_load(self) -> None:
        snapshot = await InMemorySnapshotStore().load()
        assert snapshot.sessions == []

    async def test_save_then_load(self) -> None:
        store = InMemorySnapshotStore()
        await store.save(_snapshot())

        loaded = await store.load()

        assert [s.id for s in loaded.sessions] == [1, 2]
        assert store.save_count == 1

    async def test_loaded_copy_is_detached(self) -> None:
        store = InMemorySnapshotStore()
        await store.save(_snapshot())

        loaded = await store.load()
        loaded.sessions[0].participant_name = "changed"

        again = await store.load()
        assert again.sessions[0].participant_name == "Ann"


class TestJsonFileSnapshotStore:
    async def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        store = JsonFileSnapshotStore(tmp_path / "rooms.json")
        snapshot = await store.load()
        assert snapshot.sessions == []

    async def test_round_trip_preserves_transcript(self, tmp_path: Path) -> None:
        store = JsonFileSnapshotStore(tmp_path / "state" / "rooms.json")
        await store.save(_snapshot())

        loaded = await store.load()

        assert [s.id for s in loaded.sessions] == [1, 2]
        assert loaded.sessions[0].messages[0].text == "hi"
        assert loaded.sessions[0].status is SessionStatus.ACTIVE
        assert loaded.participants == {"Ann": 1}

    async def test_no_temp_files_left_behind(self, tmp_path: Path) -> None:
        store = JsonFileSnapshotStore(tmp_path / "rooms.json")
        await store.save(_snapshot())
        await store.save(_snapshot())

        assert [p.name for p in tmp_path.iterdir()] == ["rooms.json"]

    async def test_corrupt_file_loads_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "rooms.json"
        path.write_text("{not json", encoding="utf-8")

        snapshot = await JsonFileSnapshotStore(path).load()

        assert snapshot.sessions == []
