from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path

from loguru import logger

from stream_tag_bot.errors import PersistenceFailed
from stream_tag_bot.sessions.models import Session


class SessionStore:
    """One pretty-printed JSON file per session, rewritten whole on every flush."""

    def __init__(self, directory: str | Path = "."):
        self._directory = Path(directory)
        self._locks: dict[str, asyncio.Lock] = {}

    def path_for(self, session_id: str) -> Path:
        return self._directory / f"tags.{session_id}.json"

    def exists(self, session_id: str) -> bool:
        return self.path_for(session_id).exists()

    async def load(self, session_id: str) -> Session | None:
        path = self.path_for(session_id)
        if not path.exists():
            return None
        try:
            data = await asyncio.to_thread(_read_json, path)
            return Session.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as ex:
            logger.warning(f"Could not read session record {path}: {ex}")
            return None

    async def save(self, session: Session) -> None:
        async with self._lock_for(session.id):
            # Snapshot under the lock so a queued flush always writes the latest tags.
            payload = json.dumps(session.to_dict(), indent=4, ensure_ascii=False)
            path = self.path_for(session.id)
            try:
                await asyncio.to_thread(_replace_file, path, payload)
            except OSError as ex:
                raise PersistenceFailed(f"Failed to write {path}: {ex}") from ex

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock


def _read_json(path: Path) -> dict:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _replace_file(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        f.write(payload)
    os.replace(tmp_path, path)
