from __future__ import annotations

from typing import Protocol

import httpx
from loguru import logger

from stream_tag_bot.commands.router import CommandRouter
from stream_tag_bot.errors import NoActiveSession
from stream_tag_bot.events import ChatCommand
from stream_tag_bot.sessions import SessionManager
from stream_tag_bot.twitch.helix_client import HelixError, HelixUser

MOD_ONLY_MESSAGE = "Only moderators can use this command."


class VipApi(Protocol):
    async def get_user(self, login: str) -> HelixUser | None: ...

    async def add_vip(self, broadcaster_id: str, user_id: str) -> None: ...

    async def remove_vip(self, broadcaster_id: str, user_id: str) -> None: ...


class ChatCommands:
    """Handlers for the commands moderators type in stream chat."""

    def __init__(self, sessions: SessionManager, vip_api: VipApi, broadcaster_login: str) -> None:
        self._sessions = sessions
        self._vip_api = vip_api
        self._broadcaster_login = broadcaster_login
        self._broadcaster_id: str | None = None

    def build_router(self) -> CommandRouter:
        return CommandRouter(
            on_tag=self.tag,
            on_vip=self.vip,
            on_unvip=self.unvip,
            on_unknown=self._on_unknown,
        )

    async def tag(self, command: ChatCommand) -> str:
        try:
            tag = await self._sessions.record_tag(command.user_name, " ".join(command.args))
        except NoActiveSession as ex:
            return ex.user_message
        return f"Tag created at minute {tag.relative_time}"

    async def vip(self, command: ChatCommand) -> str:
        if not command.can_moderate:
            return MOD_ONLY_MESSAGE
        if not command.args:
            return "Specify who should get VIP. Usage: !vip name"

        username = command.args[0].replace("@", "")
        try:
            broadcaster_id, user = await self._resolve(username)
            if user is None:
                return f"User @{username} does not exist."
            await self._vip_api.add_vip(broadcaster_id, user.id)
        except HelixError as ex:
            if ex.status_code == 422:
                return f"@{username} is already a VIP!"
            if ex.status_code == 404 or "not found" in ex.message.lower():
                return f"User @{username} does not exist."
            logger.error(f"Error adding VIP to {username}: {ex}")
            return f"Could not add VIP to @{username}. Check the username and try again."
        except httpx.HTTPError as ex:
            logger.error(f"Error adding VIP to {username}: {ex}")
            return f"Could not add VIP to @{username}. Check the username and try again."
        logger.info(f"{command.user_name} added VIP to {username}")
        return f"Added VIP to @{username}!"

    async def unvip(self, command: ChatCommand) -> str:
        if not command.can_moderate:
            return MOD_ONLY_MESSAGE
        if not command.args:
            return "Specify who should lose VIP. Usage: !unvip name"

        username = command.args[0].replace("@", "")
        try:
            broadcaster_id, user = await self._resolve(username)
            if user is None:
                return f"User @{username} does not exist."
            await self._vip_api.remove_vip(broadcaster_id, user.id)
        except HelixError as ex:
            if ex.status_code == 422:
                return f"@{username} is not a VIP!"
            if ex.status_code == 404 or "not found" in ex.message.lower():
                return f"User @{username} does not exist."
            logger.error(f"Error removing VIP from {username}: {ex}")
            return f"Could not remove VIP from @{username}. Check the username and try again."
        except httpx.HTTPError as ex:
            logger.error(f"Error removing VIP from {username}: {ex}")
            return f"Could not remove VIP from @{username}. Check the username and try again."
        logger.info(f"{command.user_name} removed VIP from {username}")
        return f"Removed VIP from @{username}!"

    async def _resolve(self, username: str) -> tuple[str, HelixUser | None]:
        if self._broadcaster_id is None:
            broadcaster = await self._vip_api.get_user(self._broadcaster_login)
            if broadcaster is None:
                raise HelixError(0, f"Broadcaster {self._broadcaster_login} is unknown")
            self._broadcaster_id = broadcaster.id
        return self._broadcaster_id, await self._vip_api.get_user(username)

    def _on_unknown(self, command: ChatCommand) -> None:
        logger.debug(f"Unknown command !{command.name} from {command.user_name}")
