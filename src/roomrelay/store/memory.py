"""In-memory snapshot store for development and testing."""

from __future__ import annotations

from roomrelay.store.base import Snapshot, SnapshotStore


class InMemorySnapshotStore(SnapshotStore):
    """Keeps a deep copy of the last snapshot."""

    def __init__(self, snapshot: Snapshot | None = None) -> None:
        self._snapshot = snapshot.live() if snapshot is not None else Snapshot()
        self.save_count = 0

    async def load(self) -> Snapshot:
        return self._snapshot.model_copy(deep=True)

    async def save(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot.live().model_copy(deep=True)
        self.save_count += 1
