from __future__ import annotations

import asyncio
import contextlib

from loguru import logger

from stream_tag_bot.commands.router import CommandRouter
from stream_tag_bot.events import ChatCommand, StreamEvent, StreamOffline, StreamOnline
from stream_tag_bot.sessions import SessionManager


class EventDispatcher:
    """Single consumer for transport events, so session state is only mutated in order."""

    def __init__(self, sessions: SessionManager, router: CommandRouter) -> None:
        self._sessions = sessions
        self._router = router
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._closed = False
        self.processed_count = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    def publish(self, event: StreamEvent) -> None:
        if self._closed:
            return
        self._queue.put_nowait(event)

    async def drain(self) -> None:
        await self._queue.join()

    async def close(self) -> None:
        self._closed = True
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.dispatch(event)
            except asyncio.CancelledError:
                raise
            except Exception as ex:
                logger.error(f"Failed to handle {type(event).__name__}: {ex}")
            finally:
                self.processed_count += 1
                self._queue.task_done()

    async def dispatch(self, event: StreamEvent) -> None:
        if isinstance(event, StreamOnline):
            await self._sessions.on_live(event.session_id, event.started_at)
        elif isinstance(event, StreamOffline):
            await self._sessions.on_offline()
        elif isinstance(event, ChatCommand):
            reply = await self._router.try_handle(event)
            if reply is not None:
                await event.reply(reply)
        else:
            logger.warning(f"Ignoring unknown event {event!r}")
