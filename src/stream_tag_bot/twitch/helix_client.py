from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx
from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from stream_tag_bot.timing import parse_iso

_HELIX_BASE_URL = "https://api.twitch.tv/helix"
_TIMEOUT_SECONDS = 30
_MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class HelixVideo:
    id: str
    url: str
    stream_id: str | None


@dataclass(frozen=True)
class LiveStream:
    id: str
    user_login: str
    started_at: datetime


@dataclass(frozen=True)
class HelixUser:
    id: str
    login: str


class HelixError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message


def _on_retry(retry_state) -> None:
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    logger.warning(f"Helix {reason}. Retrying in {wait:.0f}s (attempt {attempt}/{_MAX_ATTEMPTS})...")


class HelixClient:
    """Thin Helix API client authenticated with the current user access token."""

    def __init__(
        self,
        client_id: str,
        token_provider: Callable[[], str],
        *,
        on_unauthorized: Callable[[], Awaitable[bool]] | None = None,
        base_url: str = _HELIX_BASE_URL,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client_id = client_id
        self._token_provider = token_provider
        self._on_unauthorized = on_unauthorized
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=_TIMEOUT_SECONDS)

    async def close(self) -> None:
        await self._client.aclose()

    async def get_video(self, video_id: str) -> HelixVideo | None:
        data = await self._get_data("/videos", {"id": video_id}, not_found_ok=True)
        if not data:
            return None
        video = data[0]
        return HelixVideo(
            id=str(video["id"]),
            url=str(video.get("url", "")),
            stream_id=str(video.get("stream_id") or "") or None,
        )

    async def get_live_stream(self, user_login: str) -> LiveStream | None:
        data = await self._get_data("/streams", {"user_login": user_login})
        if not data:
            return None
        stream = data[0]
        if stream.get("type", "live") != "live":
            return None
        return LiveStream(
            id=str(stream["id"]),
            user_login=str(stream.get("user_login", user_login)),
            started_at=parse_iso(str(stream["started_at"])),
        )

    async def get_user(self, login: str) -> HelixUser | None:
        data = await self._get_data("/users", {"login": login})
        if not data:
            return None
        return HelixUser(id=str(data[0]["id"]), login=str(data[0].get("login", login)))

    async def add_vip(self, broadcaster_id: str, user_id: str) -> None:
        await self._send("POST", "/channels/vips", {"broadcaster_id": broadcaster_id, "user_id": user_id})

    async def remove_vip(self, broadcaster_id: str, user_id: str) -> None:
        await self._send("DELETE", "/channels/vips", {"broadcaster_id": broadcaster_id, "user_id": user_id})

    async def _get_data(self, path: str, params: dict[str, Any], *, not_found_ok: bool = False) -> list[dict]:
        response = await self._authorized_request("GET", path, params)
        if not_found_ok and response.status_code == 404:
            return []
        _raise_for_status(response)
        payload = response.json()
        data = payload.get("data", []) if isinstance(payload, dict) else []
        return [item for item in data if isinstance(item, dict)]

    async def _send(self, method: str, path: str, params: dict[str, Any]) -> None:
        response = await self._authorized_request(method, path, params)
        _raise_for_status(response)

    async def _authorized_request(self, method: str, path: str, params: dict[str, Any]) -> httpx.Response:
        response = await self._request(method, path, params)
        if response.status_code == 401 and self._on_unauthorized is not None:
            logger.warning(f"Helix rejected the access token on {method} {path}; refreshing")
            if await self._on_unauthorized():
                response = await self._request(method, path, params)
        return response

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(_MAX_ATTEMPTS),
        before_sleep=_on_retry,
        reraise=True,
    )
    async def _request(self, method: str, path: str, params: dict[str, Any]) -> httpx.Response:
        headers = {
            "Client-Id": self._client_id,
            "Authorization": f"Bearer {self._token_provider()}",
        }
        logger.debug(f"Helix request: {method} {path} {params}")
        return await self._client.request(method, path, params=params, headers=headers)


def _raise_for_status(response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    try:
        payload = response.json()
        message = str(payload.get("message", "")) if isinstance(payload, dict) else ""
    except ValueError:
        message = response.text[:200]
    raise HelixError(response.status_code, message)
