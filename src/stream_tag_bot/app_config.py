from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path


@dataclass
class RuntimeEnv:
    twitch_client_id: str
    twitch_client_secret: str
    twitch_access_token: str
    twitch_refresh_token: str
    token_encryption_secret: str
    global_delay_seconds: float | None


@dataclass
class AppConfig:
    broadcaster_login: str
    bot_login: str
    tag_delay_seconds: float
    sessions_directory: str
    token_path: str
    refresh_margin_seconds: float
    refresh_retry_seconds: float
    max_refresh_retries: int | None
    reconnect_delay_seconds: float
    max_reconnect_attempts: int | None
    stream_poll_seconds: float
    subtitle_cue_seconds: int
    log_level: str
    log_consumers: list | None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _optional_int(value: object) -> int | None:
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return int(value)


def _optional_float(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    return float(value)


def parse_app_config(config: dict) -> AppConfig:
    return AppConfig(
        broadcaster_login=str(config.get("BroadcasterLogin", "")).strip().lower(),
        bot_login=str(config.get("BotLogin", "")).strip().lower(),
        tag_delay_seconds=float(config.get("TagDelaySeconds", 0)),
        sessions_directory=str(config.get("SessionsDirectory", ".")),
        token_path=str(config.get("TokenPath", ".stream-tag-bot/tokens.json")),
        refresh_margin_seconds=float(config.get("RefreshMarginSeconds", 300)),
        refresh_retry_seconds=float(config.get("RefreshRetrySeconds", 60)),
        max_refresh_retries=_optional_int(config.get("MaxRefreshRetries")),
        reconnect_delay_seconds=float(config.get("ReconnectDelaySeconds", 5)),
        max_reconnect_attempts=_optional_int(config.get("MaxReconnectAttempts")),
        stream_poll_seconds=float(config.get("StreamPollSeconds", 30)),
        subtitle_cue_seconds=int(config.get("SubtitleCueSeconds", 15)),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(
        twitch_client_id=os.environ.get("TWITCH_CLIENT_ID", ""),
        twitch_client_secret=os.environ.get("TWITCH_CLIENT_SECRET", ""),
        twitch_access_token=os.environ.get("TWITCH_ACCESS_TOKEN", ""),
        twitch_refresh_token=os.environ.get("TWITCH_REFRESH_TOKEN", ""),
        token_encryption_secret=os.environ.get("TOKEN_ENCRYPTION_SECRET", ""),
        global_delay_seconds=_optional_float(os.environ.get("TWITCH_GLOBAL_DELAY")),
    )


def effective_delay_seconds(app: AppConfig, env: RuntimeEnv) -> float:
    if env.global_delay_seconds is not None:
        return env.global_delay_seconds
    return app.tag_delay_seconds
