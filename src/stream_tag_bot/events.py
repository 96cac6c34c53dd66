from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

Reply = Callable[[str], Awaitable[None]]


async def _discard_reply(text: str) -> None:
    return


@dataclass(frozen=True)
class StreamOnline:
    session_id: str
    started_at: datetime


@dataclass(frozen=True)
class StreamOffline:
    pass


@dataclass(frozen=True)
class ChatCommand:
    name: str
    args: list[str]
    user_name: str
    is_moderator: bool = False
    is_broadcaster: bool = False
    reply: Reply = field(default=_discard_reply, compare=False, repr=False)

    @property
    def can_moderate(self) -> bool:
        return self.is_moderator or self.is_broadcaster


StreamEvent = StreamOnline | StreamOffline | ChatCommand


def parse_chat_command(
    text: str,
    *,
    user_name: str,
    is_moderator: bool = False,
    is_broadcaster: bool = False,
    reply: Reply = _discard_reply,
    prefix: str = "!",
) -> ChatCommand | None:
    trimmed = text.strip()
    if not trimmed.startswith(prefix) or len(trimmed) == len(prefix):
        return None
    name, *args = trimmed[len(prefix):].split()
    return ChatCommand(
        name=name.lower(),
        args=args,
        user_name=user_name,
        is_moderator=is_moderator,
        is_broadcaster=is_broadcaster,
        reply=reply,
    )
