"""In-memory table of sessions keyed by id."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator

from roomrelay.models.enums import SessionStatus
from roomrelay.models.session import Session

logger = logging.getLogger("roomrelay.registry")


class RoomRegistry:
    """Owns every live ``Session`` and the participant-name index.

    All methods are synchronous: callers can check and claim an id in
    the same event-loop step, which is what keeps two knocks arriving
    together from receiving the same id.
    """

    def __init__(self, max_rooms: int = 100) -> None:
        self._sessions: dict[int | str, Session] = {}
        self._participants: dict[str, int | str] = {}
        self._max_rooms = max_rooms

    @property
    def max_rooms(self) -> int:
        return self._max_rooms

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    def get(self, session_id: int | str) -> Session | None:
        return self._sessions.get(session_id)

    def add(self, session: Session) -> Session:
        existing = self._sessions.get(session.id)
        if existing is not None and not existing.is_terminal:
            raise ValueError(f"Session id {session.id} is already held")
        self._sessions[session.id] = session
        return session

    def remove(self, session_id: int | str) -> Session | None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            self.unmap_participant(session_id)
        return session

    def find(self, status: SessionStatus | None = None) -> list[Session]:
        return [s for s in self._sessions.values() if status is None or s.status is status]

    def find_pending_by_name(self, participant_name: str) -> Session | None:
        for session in self._sessions.values():
            if (
                session.status is SessionStatus.PENDING
                and session.participant_name == participant_name
            ):
                return session
        return None

    # -- Participant-name mapping --

    def map_participant(self, participant_name: str, session_id: int | str) -> None:
        self._participants[participant_name] = session_id

    def unmap_participant(self, session_id: int | str) -> None:
        for name, mapped in list(self._participants.items()):
            if mapped == session_id:
                del self._participants[name]

    def session_for_participant(self, participant_name: str) -> Session | None:
        session_id = self._participants.get(participant_name)
        return self._sessions.get(session_id) if session_id is not None else None

    @property
    def participants(self) -> dict[str, int | str]:
        return dict(self._participants)

    # -- Id allocation --

    def first_free_id(self) -> int | None:
        """Lowest id in ``1..max_rooms`` not held by a non-terminal session."""
        for candidate in range(1, self._max_rooms + 1):
            held = self._sessions.get(candidate)
            if held is None or held.is_terminal:
                return candidate
        return None

    def fallback_id(self) -> str:
        """Globally unique, never reused id for when every slot is taken."""
        candidate = f"r{time.time_ns()}"
        while candidate in self._sessions:
            candidate = f"r{time.time_ns()}"
        logger.error(
            "All %d room ids are held; allocated fallback id %s",
            self._max_rooms,
            candidate,
        )
        return candidate

    def counts(self) -> dict[SessionStatus, int]:
        totals = dict.fromkeys(SessionStatus, 0)
        for session in self._sessions.values():
            totals[session.status] += 1
        return totals
