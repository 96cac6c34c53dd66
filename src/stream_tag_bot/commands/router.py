from __future__ import annotations

from collections.abc import Awaitable, Callable

from stream_tag_bot.events import ChatCommand

Handler = Callable[[ChatCommand], Awaitable[str]]


class CommandRouter:
    def __init__(
        self,
        *,
        on_tag: Handler,
        on_vip: Handler,
        on_unvip: Handler,
        on_unknown: Callable[[ChatCommand], None],
    ) -> None:
        self._on_tag = on_tag
        self._on_vip = on_vip
        self._on_unvip = on_unvip
        self._on_unknown = on_unknown

    async def try_handle(self, command: ChatCommand) -> str | None:
        """Run the matching handler and return its reply, or None for unknown commands."""
        if command.name == "tag":
            return await self._on_tag(command)
        if command.name == "vip":
            return await self._on_vip(command)
        if command.name == "unvip":
            return await self._on_unvip(command)

        self._on_unknown(command)
        return None
