from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

import websockets
from loguru import logger

from stream_tag_bot.errors import ChatAuthFailed, TransportDisconnected
from stream_tag_bot.events import ChatCommand, parse_chat_command

_IRC_URL = "wss://irc-ws.chat.twitch.tv:443"


@dataclass(frozen=True)
class IrcMessage:
    command: str
    params: list[str] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)
    prefix: str = ""

    @property
    def nick(self) -> str:
        return self.prefix.split("!", 1)[0]

    @property
    def trailing(self) -> str:
        return self.params[-1] if self.params else ""


def _unescape_tag(value: str) -> str:
    replacements = {":": ";", "s": " ", "\\": "\\", "r": "\r", "n": "\n"}
    out: list[str] = []
    i = 0
    while i < len(value):
        ch = value[i]
        if ch == "\\" and i + 1 < len(value):
            out.append(replacements.get(value[i + 1], value[i + 1]))
            i += 2
            continue
        if ch != "\\":
            out.append(ch)
        i += 1
    return "".join(out)


def parse_irc_line(line: str) -> IrcMessage | None:
    rest = line.rstrip("\r\n")
    if not rest:
        return None

    tags: dict[str, str] = {}
    if rest.startswith("@"):
        raw_tags, _, rest = rest[1:].partition(" ")
        for item in raw_tags.split(";"):
            key, _, value = item.partition("=")
            tags[key] = _unescape_tag(value)

    prefix = ""
    if rest.startswith(":"):
        prefix, _, rest = rest[1:].partition(" ")

    trailing: str | None = None
    if " :" in rest:
        rest, _, trailing = rest.partition(" :")
    elif rest.startswith(":"):
        rest, trailing = "", rest[1:]

    parts = rest.split()
    if not parts:
        return None
    params = parts[1:]
    if trailing is not None:
        params.append(trailing)
    return IrcMessage(command=parts[0].upper(), params=params, tags=tags, prefix=prefix)


def _badges(tags: dict[str, str]) -> set[str]:
    return {badge.split("/", 1)[0] for badge in tags.get("badges", "").split(",") if badge}


class TwitchChatTransport:
    """Twitch chat over the IRC WebSocket gateway."""

    def __init__(
        self,
        *,
        bot_login: str,
        channel: str,
        on_command: Callable[[ChatCommand], None],
        url: str = _IRC_URL,
        connect: Callable = websockets.connect,
    ) -> None:
        self._bot_login = bot_login.lower()
        self._channel = channel.lower().lstrip("#")
        self._on_command = on_command
        self._url = url
        self._connect = connect
        self._ws = None
        self._closing = False

    async def serve(self, token: str) -> None:
        self._closing = False
        try:
            async with self._connect(self._url) as ws:
                self._ws = ws
                await ws.send("CAP REQ :twitch.tv/tags twitch.tv/commands")
                await ws.send(f"PASS oauth:{token}")
                await ws.send(f"NICK {self._bot_login}")
                await ws.send(f"JOIN #{self._channel}")
                logger.info(f"Joined #{self._channel} as {self._bot_login}")
                async for frame in ws:
                    text = frame.decode("utf-8") if isinstance(frame, bytes) else frame
                    for line in text.split("\r\n"):
                        message = parse_irc_line(line)
                        if message is not None:
                            await self._handle(message)
        except (websockets.ConnectionClosed, OSError) as ex:
            if self._closing:
                return
            raise TransportDisconnected(f"Chat socket error: {ex}") from ex
        finally:
            self._ws = None
        if not self._closing:
            raise TransportDisconnected("Chat socket closed by server")

    async def close(self) -> None:
        self._closing = True
        ws = self._ws
        if ws is not None:
            await ws.close()

    async def send_message(self, text: str, *, reply_to: str | None = None) -> None:
        ws = self._ws
        if ws is None:
            logger.warning(f"Dropping chat reply while disconnected: {text}")
            return
        prefix = f"@reply-parent-msg-id={reply_to} " if reply_to else ""
        await ws.send(f"{prefix}PRIVMSG #{self._channel} :{text}")

    async def _handle(self, message: IrcMessage) -> None:
        if message.command == "PING":
            await self._ws.send(f"PONG :{message.trailing or 'tmi.twitch.tv'}")
        elif message.command == "RECONNECT":
            raise TransportDisconnected("Server requested reconnect")
        elif message.command == "NOTICE" and "authentication failed" in message.trailing.lower():
            raise ChatAuthFailed(f"Chat login rejected: {message.trailing}")
        elif message.command == "PRIVMSG":
            self._handle_privmsg(message)

    def _handle_privmsg(self, message: IrcMessage) -> None:
        badges = _badges(message.tags)
        message_id = message.tags.get("id") or None

        async def reply(text: str) -> None:
            await self.send_message(text, reply_to=message_id)

        command = parse_chat_command(
            message.trailing,
            user_name=message.tags.get("display-name") or message.nick,
            is_moderator=message.tags.get("mod") == "1" or "moderator" in badges,
            is_broadcaster="broadcaster" in badges,
            reply=reply,
        )
        if command is not None:
            self._on_command(command)
