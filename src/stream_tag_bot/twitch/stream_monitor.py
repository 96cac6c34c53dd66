from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from typing import Protocol

import httpx
from loguru import logger

from stream_tag_bot.events import StreamEvent, StreamOffline, StreamOnline
from stream_tag_bot.twitch.helix_client import HelixError, LiveStream


class LiveStreamLookup(Protocol):
    async def get_live_stream(self, user_login: str) -> LiveStream | None: ...


class StreamMonitor:
    """Polls the broadcaster's live status and publishes online/offline transitions.

    The first poll also picks up a stream that was already live when the
    process started, so an interrupted session is resumed.
    """

    def __init__(
        self,
        lookup: LiveStreamLookup,
        broadcaster_login: str,
        publish: Callable[[StreamEvent], None],
        *,
        poll_seconds: float = 30,
    ) -> None:
        self._lookup = lookup
        self._broadcaster_login = broadcaster_login
        self._publish = publish
        self._poll_seconds = max(1.0, float(poll_seconds))
        self._live_id: str | None = None
        self._task: asyncio.Task | None = None

    @property
    def live_stream_id(self) -> str | None:
        return self._live_id

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def close(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def poll_once(self) -> None:
        try:
            stream = await self._lookup.get_live_stream(self._broadcaster_login)
        except (httpx.HTTPError, HelixError) as ex:
            logger.warning(f"Could not check whether {self._broadcaster_login} is live: {ex}")
            return

        if stream is not None and stream.id != self._live_id:
            logger.info(f"Stream {stream.id} in progress, started on {stream.started_at.isoformat()}")
            self._live_id = stream.id
            self._publish(StreamOnline(session_id=stream.id, started_at=stream.started_at))
        elif stream is None and self._live_id is not None:
            logger.info(f"Stream {self._live_id} went offline")
            self._live_id = None
            self._publish(StreamOffline())

    async def _run(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self._poll_seconds)
