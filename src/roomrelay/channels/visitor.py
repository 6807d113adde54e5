"""Visitor connection hub: the controller's outbound path to browsers."""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from typing import Any

logger = logging.getLogger("roomrelay.channels.visitor")

SendFn = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]

KNOCK_APPROVED = "knock-approved"
KNOCK_REJECTED = "knock-rejected"
KNOCK_PENDING = "knock-pending"
ROOM_ASSIGNED = "room-assigned"
NEW_MESSAGE = "new-message"
NUDGE_MESSAGE = "nudge-message"
SERVICE_SHUTDOWN = "service-shutdown"
SERVICE_RESTORED = "service-restored"
ADMIN_PRESENCE = "admin-presence"
MESSAGE_ERROR = "message-error"


class VisitorHub:
    """Registry of live visitor connections and their session bindings.

    The transport registers one ``SendFn(event_name, payload)`` per
    connection. A connection bound to a session receives everything
    emitted to that session; unbound connections only see broadcasts
    and direct emits (knock replies go out before any binding exists).
    """

    _MAX_CONSECUTIVE_ERRORS = 3

    def __init__(self) -> None:
        self._connections: dict[str, SendFn] = {}
        self._bindings: dict[str, int | str] = {}
        self._error_counts: dict[str, int] = {}

    def register_connection(self, connection_id: str, send_fn: SendFn) -> None:
        self._connections[connection_id] = send_fn
        self._error_counts.pop(connection_id, None)

    def unregister_connection(self, connection_id: str) -> None:
        self._connections.pop(connection_id, None)
        self._bindings.pop(connection_id, None)
        self._error_counts.pop(connection_id, None)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def is_connected(self, connection_id: str | None) -> bool:
        return connection_id is not None and connection_id in self._connections

    # -- Session bindings --

    def bind(self, connection_id: str, session_id: int | str) -> None:
        """Attach *connection_id* to the session's channel."""
        self._bindings[connection_id] = session_id
        logger.debug("Connection %s bound to room %s", connection_id, session_id)

    def unbind(self, session_id: int | str) -> None:
        for connection_id, bound in list(self._bindings.items()):
            if bound == session_id:
                del self._bindings[connection_id]

    def connections_for(self, session_id: int | str) -> list[str]:
        return [c for c, bound in self._bindings.items() if bound == session_id]

    # -- Delivery --

    async def emit(self, connection_id: str | None, event: str, payload: dict[str, Any]) -> bool:
        """Send one event to one connection. False if it is not connected."""
        if connection_id is None:
            return False
        send_fn = self._connections.get(connection_id)
        if send_fn is None:
            logger.debug("Dropping %s for unknown connection %s", event, connection_id)
            return False
        try:
            await send_fn(event, payload)
        except Exception:
            self._handle_send_error(connection_id)
            return False
        self._error_counts.pop(connection_id, None)
        return True

    async def emit_to_session(
        self, session_id: int | str, event: str, payload: dict[str, Any]
    ) -> int:
        """Send *event* to every connection bound to the session."""
        delivered = 0
        for connection_id in self.connections_for(session_id):
            if await self.emit(connection_id, event, payload):
                delivered += 1
        return delivered

    async def broadcast(self, event: str, payload: dict[str, Any]) -> int:
        delivered = 0
        for connection_id in list(self._connections):
            if await self.emit(connection_id, event, payload):
                delivered += 1
        return delivered

    def _handle_send_error(self, connection_id: str) -> None:
        """Increment error count and remove connection after threshold."""
        consecutive = self._error_counts.get(connection_id, 0) + 1
        self._error_counts[connection_id] = consecutive
        if consecutive >= self._MAX_CONSECUTIVE_ERRORS:
            logger.warning(
                "Visitor connection %s removed after %d consecutive failures",
                connection_id,
                consecutive,
            )
            self.unregister_connection(connection_id)
        else:
            logger.warning(
                "Visitor send failed for connection %s (attempt %d/%d)",
                connection_id,
                consecutive,
                self._MAX_CONSECUTIVE_ERRORS,
            )
