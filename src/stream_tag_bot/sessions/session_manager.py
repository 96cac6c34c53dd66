from __future__ import annotations

from datetime import datetime

from loguru import logger

from stream_tag_bot.errors import NoActiveSession, PersistenceFailed
from stream_tag_bot.sessions.models import Session, Tag
from stream_tag_bot.sessions.store import SessionStore


class SessionManager:
    """Owns the single active stream session and every write to its record."""

    def __init__(self, store: SessionStore, default_delay_seconds: float = 0):
        self._store = store
        self._default_delay_seconds = default_delay_seconds
        self._session: Session | None = None

    @property
    def is_active(self) -> bool:
        return self._session is not None

    def get_session(self) -> Session | None:
        return self._session

    def get_tags(self) -> list[Tag]:
        if self._session is None:
            return []
        return list(self._session.tags)

    def get_start_time(self) -> datetime | None:
        if self._session is None:
            return None
        return self._session.start_time

    async def on_live(self, session_id: str, start_time: datetime) -> Session:
        if self._session is not None and self._session.id == session_id:
            return self._session

        stored = await self._store.load(session_id)
        if stored is not None:
            logger.info(f"Loaded stream {stored.id} from cache with {len(stored.tags)} tags")
            self._session = stored
            return stored

        session = Session(id=session_id, start_time=start_time, delay_seconds=self._default_delay_seconds)
        self._session = session
        logger.info(f"Started a new stream with id {session_id} at {start_time.isoformat()}")
        await self._flush(session)
        return session

    async def on_offline(self) -> None:
        if self._session is None:
            return
        logger.info(f"Stream {self._session.id} ended with {len(self._session.tags)} tags")
        self._session = None

    async def record_tag(self, moderator: str, text: str, *, at: datetime | None = None) -> Tag:
        session = self._session
        if session is None:
            logger.warning("New tag attempted but there is no stream")
            raise NoActiveSession()

        tag = session.new_tag(moderator, text, at=at)
        session.add_tag(tag)
        logger.info(f"Tag #{len(session.tags)} by {moderator} at {tag.relative_time}: {text}")
        await self._flush(session)
        return tag

    async def _flush(self, session: Session) -> None:
        try:
            await self._store.save(session)
        except PersistenceFailed as ex:
            logger.error(f"Session {session.id} kept in memory only: {ex}")
