import argparse
import asyncio
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

from stream_tag_bot.app_config import AppConfig, RuntimeEnv, load_json_config, parse_app_config, resolve_runtime_env
from stream_tag_bot.bootstrap import bootstrap_runtime, build_exports, build_scheduler
from stream_tag_bot.credentials import TokenCipher
from stream_tag_bot.errors import PersistenceFailed
from stream_tag_bot.logging_config import setup_logging
from stream_tag_bot.services.export_service import SubtitleExport
from stream_tag_bot.twitch.helix_client import HelixClient


def _require_env(env: RuntimeEnv) -> None:
    missing = [
        name
        for name, value in (
            ("TWITCH_CLIENT_ID", env.twitch_client_id),
            ("TWITCH_CLIENT_SECRET", env.twitch_client_secret),
            ("TOKEN_ENCRYPTION_SECRET", env.token_encryption_secret),
        )
        if not value
    ]
    if missing:
        logger.error(f"Missing required environment variables: {', '.join(missing)}")
        sys.exit(1)


async def run_bot(app: AppConfig, env: RuntimeEnv) -> None:
    if not app.broadcaster_login:
        logger.error("BroadcasterLogin must be set in config.json.")
        sys.exit(1)

    runtime = await bootstrap_runtime(app, env)
    print(f"stream-tag-bot watching #{app.broadcaster_login} (Ctrl+C to quit)")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")

    try:
        await asyncio.Event().wait()
    finally:
        await runtime.close()


async def run_export(app: AppConfig, env: RuntimeEnv, vod_id: str, fmt: str, out: str | None) -> int:
    setup_logging(level=app.log_level, consumers=[{"type": "console", "level": "WARNING"}])
    scheduler = build_scheduler(app, env)
    scheduler.load_stored()
    helix = HelixClient(env.twitch_client_id, lambda: scheduler.token, on_unauthorized=scheduler.refresh)
    try:
        exports = build_exports(app, helix)
        if fmt == "links":
            print(await exports.tags_links(vod_id))
            return 0

        result = await exports.tags_srt(vod_id)
        if isinstance(result, str):
            print(result)
            return 1
        target = Path(out or result.filename)
        _write_attachment(target, result)
        print(f"Wrote {target}")
        return 0
    finally:
        await scheduler.close()
        await helix.close()


def _write_attachment(target: Path, export: SubtitleExport) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(export.content)


async def run_rotate_key(app: AppConfig, env: RuntimeEnv) -> int:
    setup_logging(level=app.log_level, consumers=[{"type": "console"}])
    new_secret = os.environ.get("NEW_TOKEN_ENCRYPTION_SECRET", "")
    if not new_secret:
        logger.error("NEW_TOKEN_ENCRYPTION_SECRET environment variable is required.")
        return 1

    scheduler = build_scheduler(app, env)
    if not scheduler.load_stored():
        logger.error(f"No readable credentials at {app.token_path}; nothing to rotate.")
        return 1
    try:
        await scheduler.rotate_key(TokenCipher.from_secret(new_secret))
    except PersistenceFailed as ex:
        logger.error(str(ex))
        return 1
    print("Credentials re-encrypted. Update TOKEN_ENCRYPTION_SECRET to the new secret.")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stream-tag-bot", description="Live stream tagging bot")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="Connect to chat and record tags (default)")

    export = sub.add_parser("export", help="Export the tags of a VOD")
    export.add_argument("--vod", required=True, help="VOD id")
    export.add_argument("--format", choices=("links", "srt"), default="links")
    export.add_argument("--out", default=None, help="Output path for the .srt file")

    sub.add_parser("rotate-key", help="Re-encrypt stored tokens with NEW_TOKEN_ENCRYPTION_SECRET")
    return parser


def cli(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env()
    _require_env(env)

    if args.command == "export":
        sys.exit(asyncio.run(run_export(app, env, args.vod, args.format, args.out)))
    if args.command == "rotate-key":
        sys.exit(asyncio.run(run_rotate_key(app, env)))

    try:
        asyncio.run(run_bot(app, env))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli()
