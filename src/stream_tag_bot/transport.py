from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, stop_never, wait_fixed

from stream_tag_bot.errors import ChatAuthFailed, TransportDisconnected


@runtime_checkable
class ChatTransport(Protocol):
    async def serve(self, token: str) -> None:
        """Connect with ``token`` and pump inbound messages.

        Returns when closed on purpose; raises TransportDisconnected when the
        connection drops.
        """
        ...

    async def close(self) -> None: ...


class TransportSupervisor:
    """Keeps a chat transport connected, reconnecting after a fixed delay.

    A rejected login asks ``on_unauthorized`` for a fresh token before the
    next attempt.
    """

    def __init__(
        self,
        transport: ChatTransport,
        token: str,
        *,
        on_unauthorized: Callable[[], Awaitable[bool]] | None = None,
        reconnect_delay_seconds: float = 5,
        max_attempts: int | None = None,
    ) -> None:
        self._transport = transport
        self._token = token
        self._on_unauthorized = on_unauthorized
        self._reconnect_delay_seconds = max(0.0, float(reconnect_delay_seconds))
        self._max_attempts = max_attempts
        self._task: asyncio.Task | None = None
        self.connect_count = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if not self.is_running:
            self._task = asyncio.create_task(self._run())

    async def reconnect(self, token: str) -> None:
        self._token = token
        if self._task is not None and asyncio.current_task() is self._task:
            # Called from our own retry loop; the next attempt picks up the token.
            return
        logger.info("Reconnecting chat with a new access token")
        await self._stop()
        await self.start()

    async def close(self) -> None:
        await self._stop()

    async def wait_closed(self) -> None:
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def _stop(self) -> None:
        task = self._task
        self._task = None
        await self._transport.close()
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self) -> None:
        stop = stop_never if self._max_attempts is None else stop_after_attempt(self._max_attempts)
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(TransportDisconnected),
                wait=wait_fixed(self._reconnect_delay_seconds),
                stop=stop,
                before_sleep=self._on_retry,
                reraise=True,
            ):
                with attempt:
                    self.connect_count += 1
                    try:
                        await self._transport.serve(self._token)
                    except ChatAuthFailed:
                        await self._refresh_token()
                        raise
        except TransportDisconnected as ex:
            logger.error(f"Chat transport gave up after {self.connect_count} attempts: {ex}")

    async def _refresh_token(self) -> None:
        if self._on_unauthorized is None:
            return
        logger.warning("Chat rejected the access token; requesting a refresh")
        if not await self._on_unauthorized():
            logger.error("Token refresh failed; retrying chat login with the current token")

    def _on_retry(self, retry_state) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Chat disconnected ({exc}). Reconnecting in {self._reconnect_delay_seconds:.0f}s "
            f"(attempt {retry_state.attempt_number + 1})..."
        )
