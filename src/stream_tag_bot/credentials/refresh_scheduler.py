from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Protocol

from loguru import logger

from stream_tag_bot.credentials.cipher import TokenCipher
from stream_tag_bot.credentials.models import CredentialPair, TokenResponse
from stream_tag_bot.credentials.store import CredentialStore, seal, unseal
from stream_tag_bot.errors import DecryptionFailed, PersistenceFailed, TokenExchangeFailed
from stream_tag_bot.timing import utc_now

TokenListener = Callable[[str], Awaitable[None]]


class IdentityClient(Protocol):
    async def refresh(self, refresh_token: str) -> TokenResponse: ...


class CredentialRefreshScheduler:
    """Keeps the process's single access token fresh.

    Refreshes ahead of expiry on a timer or on demand. Concurrent triggers
    join the refresh already in flight instead of starting a second one.
    """

    def __init__(
        self,
        *,
        identity_client: IdentityClient,
        store: CredentialStore,
        cipher: TokenCipher,
        initial: CredentialPair,
        reconnect: TokenListener | None = None,
        refresh_margin_seconds: float = 300,
        retry_seconds: float = 60,
        max_retries: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._identity = identity_client
        self._store = store
        self._cipher = cipher
        self._pair = initial
        self._reconnect = reconnect
        self._refresh_margin_seconds = max(0.0, float(refresh_margin_seconds))
        self._retry_seconds = max(1.0, float(retry_seconds))
        self._max_retries = max_retries
        self._clock = clock
        self._listeners: list[TokenListener] = []
        self._timer: asyncio.Task | None = None
        self._inflight: asyncio.Task | None = None
        self._consecutive_failures = 0
        self._closed = False
        self.next_refresh_in: float | None = None
        self.next_refresh_at: datetime | None = None

    @property
    def token(self) -> str:
        return self._pair.access_token

    @property
    def credentials(self) -> CredentialPair:
        return self._pair

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def add_listener(self, listener: TokenListener) -> None:
        self._listeners.append(listener)

    def load_stored(self) -> bool:
        """Adopt the persisted pair if it can be read. Returns False to keep the initial pair."""
        try:
            record = self._store.load()
            if record is None:
                logger.info("No stored credentials found; using the configured token")
                return False
            self._pair = unseal(record, self._cipher)
        except DecryptionFailed as ex:
            logger.warning(f"Ignoring stored credentials, falling back to the configured token: {ex}")
            return False
        logger.info(f"Loaded stored credentials (expires {self._pair.expires_at})")
        return True

    async def start(self) -> None:
        if self.load_stored() and self._pair.is_expired(self._clock()):
            logger.info("Stored access token has expired; refreshing now")
            await self.refresh()
            return

        remaining = self._pair.seconds_until_expiry(self._clock())
        if remaining is None:
            return
        delay = remaining - self._refresh_margin_seconds
        if delay <= 0:
            logger.info(f"Access token expires in {remaining:.0f}s; refreshing now")
            await self.refresh()
            return
        self._schedule(delay, clamp=False)

    async def refresh(self) -> bool:
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.create_task(self._refresh_once())
        return await asyncio.shield(self._inflight)

    async def rotate_key(self, new_cipher: TokenCipher) -> None:
        """Re-encrypt the current pair under a new key. The token itself is unchanged."""
        if self._inflight is not None and not self._inflight.done():
            await asyncio.shield(self._inflight)
        self._store.save(seal(self._pair, new_cipher))
        self._cipher = new_cipher
        logger.info(f"Credentials re-encrypted under a new key at {self._store.path}")

    async def close(self) -> None:
        self._closed = True
        self._cancel_timer()
        if self._inflight is not None and not self._inflight.done():
            with contextlib.suppress(Exception):
                await self._inflight

    async def _refresh_once(self) -> bool:
        self._cancel_timer()
        try:
            response = await self._identity.refresh(self._pair.refresh_token)
        except TokenExchangeFailed as ex:
            self._on_refresh_failed(str(ex))
            return False
        except Exception as ex:
            self._on_refresh_failed(f"{type(ex).__name__}: {ex}")
            return False

        self._consecutive_failures = 0
        self._pair = response.to_pair(self._clock())
        logger.info(f"Access token refreshed; expires in {response.expires_in}s")

        try:
            self._store.save(seal(self._pair, self._cipher))
        except PersistenceFailed as ex:
            logger.error(f"Refreshed token kept in memory only: {ex}")

        if self._closed:
            return True

        token = self._pair.access_token
        for listener in list(self._listeners):
            try:
                await listener(token)
            except Exception as ex:
                logger.error(f"Token listener failed: {ex}")

        if self._reconnect is not None:
            try:
                await self._reconnect(token)
            except Exception as ex:
                logger.error(f"Reconnect with refreshed token failed: {ex}")

        self._schedule(response.expires_in - self._refresh_margin_seconds)
        return True

    def _on_refresh_failed(self, reason: str) -> None:
        self._consecutive_failures += 1
        if self._max_retries is not None and self._consecutive_failures > self._max_retries:
            logger.error(
                f"Token refresh failed ({reason}); giving up after {self._consecutive_failures} attempts"
            )
            return
        logger.warning(
            f"Token refresh failed ({reason}); retrying in {self._retry_seconds:.0f}s "
            f"(attempt {self._consecutive_failures})"
        )
        self._schedule(self._retry_seconds, clamp=False)

    def _schedule(self, delay_seconds: float, *, clamp: bool = True) -> None:
        self._cancel_timer()
        if self._closed:
            return
        delay = max(self._retry_seconds, delay_seconds) if clamp else delay_seconds
        self.next_refresh_in = delay
        self.next_refresh_at = self._clock() + timedelta(seconds=delay)
        self._timer = asyncio.create_task(self._fire_after(delay))
        logger.debug(f"Next token refresh at {self.next_refresh_at.isoformat()}")

    def _cancel_timer(self) -> None:
        timer = self._timer
        self._timer = None
        self.next_refresh_in = None
        self.next_refresh_at = None
        if timer is not None and not timer.done():
            timer.cancel()

    async def _fire_after(self, delay_seconds: float) -> None:
        await asyncio.sleep(delay_seconds)
        # Detach before refreshing so the refresh can schedule the next timer.
        self._timer = None
        await self.refresh()
