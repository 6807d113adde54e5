"""Abstract base class for session snapshot storage."""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from roomrelay.models.session import Session


class Snapshot(BaseModel):
    """Everything needed to bring live rooms back after a restart."""

    sessions: list[Session] = Field(default_factory=list)
    participants: dict[str, int | str] = Field(default_factory=dict)

    def live(self) -> Snapshot:
        """Copy without terminal sessions or mappings that point nowhere."""
        sessions = [s for s in self.sessions if not s.is_terminal]
        ids = {s.id for s in sessions}
        participants = {name: sid for name, sid in self.participants.items() if sid in ids}
        return Snapshot(sessions=sessions, participants=participants)


class SnapshotStore(ABC):
    """Persistent storage for the room table.

    Implement this ABC to plug in any storage backend. The library ships
    with ``InMemorySnapshotStore`` for tests and ``JsonFileSnapshotStore``
    for single-process deployments. Only pending and active sessions are
    ever stored or returned.
    """

    @abstractmethod
    async def load(self) -> Snapshot:
        """Return the last saved snapshot, or an empty one."""
        ...

    @abstractmethod
    async def save(self, snapshot: Snapshot) -> None:
        """Replace the stored snapshot."""
        ...
