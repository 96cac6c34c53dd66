from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from stream_tag_bot.app_config import AppConfig, RuntimeEnv, effective_delay_seconds
from stream_tag_bot.commands.chat_commands import ChatCommands
from stream_tag_bot.credentials import (
    CredentialPair,
    CredentialRefreshScheduler,
    CredentialStore,
    TokenCipher,
    TwitchIdentityClient,
)
from stream_tag_bot.credentials.refresh_scheduler import TokenListener
from stream_tag_bot.dispatcher import EventDispatcher
from stream_tag_bot.logging_config import redactor, setup_logging
from stream_tag_bot.services.export_service import ExportCommands, ExportService
from stream_tag_bot.sessions import SessionManager, SessionStore
from stream_tag_bot.transport import TransportSupervisor
from stream_tag_bot.twitch.chat_transport import TwitchChatTransport
from stream_tag_bot.twitch.helix_client import HelixClient
from stream_tag_bot.twitch.stream_monitor import StreamMonitor


@dataclass
class AppRuntime:
    sessions: SessionManager
    scheduler: CredentialRefreshScheduler
    helix: HelixClient
    dispatcher: EventDispatcher
    supervisor: TransportSupervisor
    monitor: StreamMonitor
    exports: ExportCommands
    log_descriptions: list[str]

    async def close(self) -> None:
        await self.monitor.close()
        await self.scheduler.close()
        await self.supervisor.close()
        await self.dispatcher.close()
        await self.helix.close()


def build_scheduler(
    app: AppConfig,
    env: RuntimeEnv,
    *,
    reconnect: TokenListener | None = None,
) -> CredentialRefreshScheduler:
    redactor.add(env.twitch_access_token, env.twitch_refresh_token, env.twitch_client_secret)
    scheduler = CredentialRefreshScheduler(
        identity_client=TwitchIdentityClient(env.twitch_client_id, env.twitch_client_secret),
        store=CredentialStore(app.token_path),
        cipher=TokenCipher.from_secret(env.token_encryption_secret),
        initial=CredentialPair(
            access_token=env.twitch_access_token,
            refresh_token=env.twitch_refresh_token,
        ),
        reconnect=reconnect,
        refresh_margin_seconds=app.refresh_margin_seconds,
        retry_seconds=app.refresh_retry_seconds,
        max_retries=app.max_refresh_retries,
    )

    async def redact_new_tokens(token: str) -> None:
        redactor.add(token, scheduler.credentials.refresh_token)

    scheduler.add_listener(redact_new_tokens)
    return scheduler


def build_exports(app: AppConfig, helix: HelixClient) -> ExportCommands:
    service = ExportService(
        helix,
        SessionStore(app.sessions_directory),
        cue_ms=app.subtitle_cue_seconds * 1000,
    )
    return ExportCommands(service)


async def bootstrap_runtime(app: AppConfig, env: RuntimeEnv) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    supervisor: TransportSupervisor | None = None

    async def reconnect_chat(token: str) -> None:
        if supervisor is not None:
            await supervisor.reconnect(token)

    scheduler = build_scheduler(app, env, reconnect=reconnect_chat)
    await scheduler.start()
    redactor.add(scheduler.credentials.access_token, scheduler.credentials.refresh_token)

    helix = HelixClient(
        env.twitch_client_id,
        lambda: scheduler.token,
        on_unauthorized=scheduler.refresh,
    )

    session_store = SessionStore(app.sessions_directory)
    sessions = SessionManager(session_store, default_delay_seconds=effective_delay_seconds(app, env))
    chat_commands = ChatCommands(sessions, helix, app.broadcaster_login)
    dispatcher = EventDispatcher(sessions, chat_commands.build_router())
    await dispatcher.start()

    transport = TwitchChatTransport(
        bot_login=app.bot_login or app.broadcaster_login,
        channel=app.broadcaster_login,
        on_command=dispatcher.publish,
    )
    supervisor = TransportSupervisor(
        transport,
        scheduler.token,
        on_unauthorized=scheduler.refresh,
        reconnect_delay_seconds=app.reconnect_delay_seconds,
        max_attempts=app.max_reconnect_attempts,
    )
    await supervisor.start()

    monitor = StreamMonitor(
        helix,
        app.broadcaster_login,
        dispatcher.publish,
        poll_seconds=app.stream_poll_seconds,
    )
    await monitor.start()
    logger.info(f"Watching {app.broadcaster_login} (tag delay {effective_delay_seconds(app, env):g}s)")

    return AppRuntime(
        sessions=sessions,
        scheduler=scheduler,
        helix=helix,
        dispatcher=dispatcher,
        supervisor=supervisor,
        monitor=monitor,
        exports=build_exports(app, helix),
        log_descriptions=log_descriptions,
    )
