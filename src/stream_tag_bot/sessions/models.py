from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from stream_tag_bot.timing import elapsed_ms, parse_iso, render_link_format, to_iso, utc_now


@dataclass(frozen=True)
class Tag:
    timestamp: datetime
    relative_offset_ms: int
    moderator: str
    message: str

    @property
    def relative_time(self) -> str:
        return render_link_format(self.relative_offset_ms)

    def to_dict(self) -> dict:
        return {
            "timestamp": to_iso(self.timestamp),
            "relativeTime": self.relative_time,
            "relativeTimestamp": self.relative_offset_ms,
            "moderator": self.moderator,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict, *, session_start: datetime) -> Tag:
        timestamp = parse_iso(str(data["timestamp"]))
        offset = data.get("relativeTimestamp")
        if offset is None:
            # Records without a cached offset are backfilled with zero delay.
            offset = elapsed_ms(timestamp, session_start, 0)
        return cls(
            timestamp=timestamp,
            relative_offset_ms=int(offset),
            moderator=str(data.get("moderator", "")),
            message=str(data.get("message", "")),
        )


@dataclass
class Session:
    id: str
    start_time: datetime
    delay_seconds: float = 0
    tags: list[Tag] = field(default_factory=list)

    def new_tag(self, moderator: str, message: str, *, at: datetime | None = None) -> Tag:
        """Build a tag whose offset is fixed now, from this session's start and delay."""
        timestamp = at or utc_now()
        return Tag(
            timestamp=timestamp,
            relative_offset_ms=elapsed_ms(timestamp, self.start_time, self.delay_seconds),
            moderator=moderator,
            message=message,
        )

    def add_tag(self, tag: Tag) -> None:
        self.tags.append(tag)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "startTime": to_iso(self.start_time),
            "delay": self.delay_seconds,
            "tags": [tag.to_dict() for tag in self.tags],
        }

    @classmethod
    def from_dict(cls, data: dict) -> Session:
        start_time = parse_iso(str(data["startTime"]))
        return cls(
            id=str(data["id"]),
            start_time=start_time,
            delay_seconds=data.get("delay", 0) or 0,
            tags=[Tag.from_dict(t, session_start=start_time) for t in data.get("tags", [])],
        )
