"""
loguru sinks for the negotiator.

Every record carries `extra["session"]`: the session id for records logged
through `logger.bind(session=...)`, "-" otherwise. Consumers are picked by
the `LogConsumers` config list, e.g.

    [{"type": "console"},
     {"type": "file", "path": "logs/negotiator.log"},
     {"type": "sessions", "path": "logs/sessions.jsonl", "level": "DEBUG"}]
"""

import inspect
import logging
import sys
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

NO_SESSION = "-"

# Server libraries that log through the standard library.
_BRIDGED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "socketio", "engineio")


@runtime_checkable
class LogConsumer(Protocol):
    def register(self, level: str) -> None: ...
    def describe(self, level: str) -> str: ...


def _has_session(record: dict) -> bool:
    return record["extra"].get("session", NO_SESSION) != NO_SESSION


class ConsoleLogConsumer:
    def register(self, level: str) -> None:
        logger.add(
            sys.stderr,
            level=level,
            format=(
                "<green>{time:HH:mm:ss}</green> <level>{level:<8}</level> "
                "<magenta>{extra[session]:.8}</magenta> | <cyan>{name}</cyan> - <level>{message}</level>"
            ),
        )

    def describe(self, level: str) -> str:
        return f"console (stderr, {level})"


class FileLogConsumer:
    def __init__(
        self,
        path: str = "negotiator.log",
        rotation: str = "10 MB",
        retention: int = 3,
    ):
        self._path = path
        self._rotation = rotation
        self._retention = retention

    def register(self, level: str) -> None:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            self._path,
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {extra[session]} | {name}:{function}:{line} - {message}",
            rotation=self._rotation,
            retention=self._retention,
            enqueue=True,
        )

    def describe(self, level: str) -> str:
        return f"file ({self._path}, {level})"


class SessionTranscriptConsumer:
    """JSON-lines audit trail of session-bound records only.

    Seeding, turn start and end, upstream failures, rejections and surfaced
    payment links are all logged against a session, so this file can be
    grouped by `record.extra.session` to replay one negotiation.
    """

    def __init__(self, path: str = "sessions.jsonl", rotation: str = "50 MB", retention: int = 10):
        self._path = path
        self._rotation = rotation
        self._retention = retention

    def register(self, level: str) -> None:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            self._path,
            level=level,
            filter=_has_session,
            serialize=True,
            rotation=self._rotation,
            retention=self._retention,
            enqueue=True,
        )

    def describe(self, level: str) -> str:
        return f"sessions ({self._path}, {level})"


class InterceptHandler(logging.Handler):
    """Forwards standard-library log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def bridge_stdlib_logging(level: str) -> None:
    std_level = level if level in logging.getLevelNamesMapping() else "INFO"
    handler = InterceptHandler()
    for name in _BRIDGED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [handler]
        std_logger.propagate = False
        std_logger.setLevel(std_level)


_CONSUMER_TYPES: dict[str, type] = {
    "console": ConsoleLogConsumer,
    "file": FileLogConsumer,
    "sessions": SessionTranscriptConsumer,
}

_DEFAULT_CONSUMERS = [
    {"type": "console"},
]


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
) -> list[str]:
    """Configure logging sinks. Returns a description of each registered consumer."""
    logger.remove()
    logger.configure(extra={"session": NO_SESSION})

    if consumers is None:
        consumers = _DEFAULT_CONSUMERS

    descriptions: list[str] = []

    for config in consumers:
        sink_type = config.get("type", "")
        cls = _CONSUMER_TYPES.get(sink_type)
        if cls is None:
            logger.warning(f"Unknown log consumer type: {sink_type!r}")
            continue

        kwargs = {k: v for k, v in config.items() if k not in ("type", "level")}
        sink_level = config.get("level", level)

        consumer = cls(**kwargs)
        consumer.register(sink_level)
        descriptions.append(consumer.describe(sink_level))

    bridge_stdlib_logging(level)
    return descriptions
