from __future__ import annotations

from datetime import UTC, datetime, timedelta

_ONE_MS = timedelta(milliseconds=1)


def elapsed_ms(event_time: datetime, session_start: datetime, delay_seconds: float) -> int:
    """Milliseconds between session start and an event, minus the delay compensation.

    Not clamped: an event before the compensated start yields a negative value.
    """
    delta_ms = (event_time - session_start) // _ONE_MS
    return delta_ms - int(round(delay_seconds * 1000))


def _split(duration_ms: int) -> tuple[int, int, int]:
    total_seconds = int(duration_ms) // 1000
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return hours, minutes, seconds


def render_link_format(duration_ms: int) -> str:
    """Render as ``1h2m3s`` for video deep-link ``?t=`` parameters."""
    hours, minutes, seconds = _split(duration_ms)
    return f"{hours}h{minutes}m{seconds}s"


def render_subtitle_format(duration_ms: int) -> str:
    """Render as ``01:02:03`` for subtitle cues. Hours are never truncated."""
    hours, minutes, seconds = _split(duration_ms)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
