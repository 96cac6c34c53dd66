from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import httpx
from loguru import logger

from stream_tag_bot.errors import NoStreamForVod, NoTagsFound, StreamTagError, VodNotFound
from stream_tag_bot.sessions import Session, SessionStore, Tag
from stream_tag_bot.timing import render_link_format, render_subtitle_format
from stream_tag_bot.twitch.helix_client import HelixError, HelixVideo

SUBTITLE_CUE_MS = 15_000


class VodLookup(Protocol):
    async def get_video(self, video_id: str) -> HelixVideo | None: ...


@dataclass(frozen=True)
class SubtitleExport:
    filename: str
    content: bytes


def format_deep_links(tags: list[Tag], video_url: str) -> str:
    lines = [f"Stream tags ({len(tags)}):"]
    for n, tag in enumerate(tags, start=1):
        stamp = render_link_format(tag.relative_offset_ms)
        lines.append(f"{n} - [{stamp}](<{video_url}?t={stamp}>) : {tag.message}")
    return "\n".join(lines)


def format_subtitles(tags: list[Tag], cue_ms: int = SUBTITLE_CUE_MS) -> str:
    """One fixed-length cue per tag. Cues for tags closer than ``cue_ms`` overlap."""
    cues: list[str] = []
    for n, tag in enumerate(tags, start=1):
        start = render_subtitle_format(tag.relative_offset_ms)
        end = render_subtitle_format(tag.relative_offset_ms + cue_ms)
        cues.append(f"{n}\n{start},000 --> {end},000\n{tag.message}\n\n")
    return "".join(cues)


class ExportService:
    """Resolves a VOD to its stream session and renders that session's tags."""

    def __init__(self, vod_lookup: VodLookup, store: SessionStore, *, cue_ms: int = SUBTITLE_CUE_MS) -> None:
        self._vod_lookup = vod_lookup
        self._store = store
        self._cue_ms = cue_ms

    async def deep_links(self, vod_id: str) -> str:
        video, session = await self._resolve(vod_id)
        return format_deep_links(session.tags, video.url)

    async def subtitles(self, vod_id: str) -> SubtitleExport:
        _, session = await self._resolve(vod_id)
        srt = format_subtitles(session.tags, self._cue_ms)
        return SubtitleExport(filename="tags.srt", content=srt.encode("utf-8"))

    async def _resolve(self, vod_id: str) -> tuple[HelixVideo, Session]:
        try:
            video = await self._vod_lookup.get_video(vod_id)
        except (httpx.HTTPError, HelixError) as ex:
            logger.error(f"Failed to retrieve vod {vod_id}: {ex}")
            video = None
        if video is None:
            raise VodNotFound(f"VOD {vod_id} not found")

        logger.info(f"Found vod {vod_id}, looking for tags")
        if not video.stream_id:
            logger.warning(f"Vod {video.id} has no stream")
            raise NoStreamForVod(f"VOD {video.id} has no stream id")

        session = await self._store.load(video.stream_id)
        if session is None or not session.tags:
            raise NoTagsFound(f"No tags stored for stream {video.stream_id}")
        logger.info(f"Transforming {len(session.tags)} tags from stream {session.id}")
        return video, session


class ExportCommands:
    """Turns export results and lookup errors into replies."""

    def __init__(self, service: ExportService) -> None:
        self._service = service

    async def tags_links(self, vod_id: str) -> str:
        vod_id = vod_id.strip()
        if not vod_id:
            return "You need to include the vod id!"
        try:
            return await self._service.deep_links(vod_id)
        except StreamTagError as ex:
            return ex.user_message

    async def tags_srt(self, vod_id: str) -> SubtitleExport | str:
        vod_id = vod_id.strip()
        if not vod_id:
            return "You need to include the vod id!"
        try:
            return await self._service.subtitles(vod_id)
        except StreamTagError as ex:
            return ex.user_message
