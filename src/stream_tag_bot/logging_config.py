import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

_CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> <level>{level: <7}</level> {message}"
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} {level: <7} [{name}] {message}"


class SecretRedactor:
    """Masks registered secrets (access/refresh tokens) in every log message."""

    def __init__(self) -> None:
        self._secrets: set[str] = set()

    def add(self, *secrets: str | None) -> None:
        for secret in secrets:
            if secret and len(secret) >= 6:
                self._secrets.add(secret)

    def redact(self, text: str) -> str:
        for secret in self._secrets:
            if secret in text:
                text = text.replace(secret, f"{secret[:3]}***")
        return text

    def __call__(self, record: dict) -> None:
        record["message"] = self.redact(record["message"])


redactor = SecretRedactor()


@runtime_checkable
class LogConsumer(Protocol):
    def register(self, level: str) -> None: ...
    def describe(self, level: str) -> str: ...


@dataclass
class ConsoleLogConsumer:
    colorize: bool = True

    def register(self, level: str) -> None:
        logger.add(sys.stderr, level=level, format=_CONSOLE_FORMAT, colorize=self.colorize)

    def describe(self, level: str) -> str:
        return f"console (stderr, {level})"


@dataclass
class FileLogConsumer:
    path: str = "stream-tag-bot.log"
    rotation: str = "10 MB"
    retention: int = 5

    def register(self, level: str) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            self.path,
            level=level,
            format=_FILE_FORMAT,
            rotation=self.rotation,
            retention=self.retention,
            encoding="utf-8",
        )

    def describe(self, level: str) -> str:
        return f"file ({self.path}, {level})"


_CONSUMER_TYPES: dict[str, type] = {
    "console": ConsoleLogConsumer,
    "file": FileLogConsumer,
}


def _build_consumer(config: dict[str, Any]) -> LogConsumer | None:
    cls = _CONSUMER_TYPES.get(config.get("type", ""))
    if cls is None:
        return None
    return cls(**{k: v for k, v in config.items() if k not in ("type", "level")})


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
) -> list[str]:
    """Install the redacting patcher and the configured sinks.

    Defaults to console plus ``stream-tag-bot.log``. Returns one description per sink.
    """
    logger.remove()
    logger.configure(patcher=redactor)

    descriptions: list[str] = []
    for config in consumers if consumers is not None else [{"type": "console"}, {"type": "file"}]:
        consumer = _build_consumer(config)
        if consumer is None:
            logger.warning(f"Unknown log consumer type: {config.get('type')!r}")
            continue
        sink_level = config.get("level", level)
        consumer.register(sink_level)
        descriptions.append(consumer.describe(sink_level))
    return descriptions
