"""Snapshot store backed by a single JSON file."""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from roomrelay.store.base import Snapshot, SnapshotStore

logger = logging.getLogger("roomrelay.store.json_file")


class JsonFileSnapshotStore(SnapshotStore):
    """Writes the snapshot to *path* with an atomic replace.

    A reader never sees a half-written file: the snapshot goes to a
    temporary file in the same directory which then replaces the target.
    File I/O runs in a worker thread.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> Snapshot:
        async with self._lock:
            raw = await asyncio.to_thread(self._read)
        if raw is None:
            return Snapshot()
        try:
            return Snapshot.model_validate_json(raw).live()
        except ValidationError:
            logger.exception("Ignoring unreadable snapshot at %s", self._path)
            return Snapshot()

    async def save(self, snapshot: Snapshot) -> None:
        payload = snapshot.live().model_dump_json(indent=2)
        async with self._lock:
            await asyncio.to_thread(self._write, payload)

    def _read(self) -> str | None:
        try:
            return self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def _write(self, payload: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
