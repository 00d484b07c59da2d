"""Logging setup for the fragments client.

Three sinks hang off the ``fragments`` logger: a console handler on stderr,
a rotating plain-text file and a rotating JSONL file that keeps the
structured payloads attached by :mod:`fragments.telemetry`.
"""

from __future__ import annotations

import asyncio
import contextvars
import json
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from .util.time import utc_now_iso

LOG_DIR_ENV = "FRAGMENTS_LOG_DIR"
TEXT_LOG_NAME = "fragments.log"
JSON_LOG_NAME = "fragments.jsonl"
_BACKUP_COUNT = 5
_MAX_BYTES = 5 * 1024 * 1024
_CONSOLE_PAYLOAD_LIMIT = 400

logger = logging.getLogger("fragments")

_log_dir: Path | None = None
_cycle_id: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "fragments_cycle_id", default=None
)


# ----------------------------------------------------------------------
# cycle context
def current_cycle_id() -> int | None:
    """Return the submission cycle the running code belongs to, if any."""
    return _cycle_id.get()


@contextmanager
def cycle_scope(cycle_id: int) -> Iterator[None]:
    """Attribute records logged inside the block to *cycle_id*.

    Tasks created inside the block copy the context, so a stream or
    reconciliation task keeps the id for its whole lifetime.
    """
    token = _cycle_id.set(cycle_id)
    try:
        yield
    finally:
        _cycle_id.reset(token)


# ----------------------------------------------------------------------
# formatters
def _structured(record: logging.LogRecord) -> dict[str, Any] | None:
    data = getattr(record, "json", None)
    return data if isinstance(data, dict) else None


class ConsoleFormatter(logging.Formatter):
    """Short console lines; telemetry events show a clipped payload."""

    def __init__(self) -> None:
        super().__init__("%(levelname)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        data = _structured(record)
        if data is None or record.msg != data.get("event"):
            return line
        payload = data.get("payload")
        if not payload:
            return line
        text = json.dumps(payload, ensure_ascii=False, default=str)
        if len(text) > _CONSOLE_PAYLOAD_LIMIT:
            text = text[:_CONSOLE_PAYLOAD_LIMIT] + "..."
        return f"{line} {text}"


class JsonFormatter(logging.Formatter):
    """Render one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        data = dict(_structured(record) or {})
        data.setdefault("message", message)
        data.setdefault("level", record.levelname)
        data.setdefault("logger", record.name)
        data.setdefault("timestamp", utc_now_iso())
        cycle_id = current_cycle_id()
        if cycle_id is not None:
            data.setdefault("cycle_id", cycle_id)
        if record.exc_info and "exc_info" not in data:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, ensure_ascii=False, default=str)


class JsonlHandler(RotatingFileHandler):
    """Rotating handler writing :class:`JsonFormatter` lines."""

    def __init__(
        self,
        filename: Path | str,
        *,
        max_bytes: int = _MAX_BYTES,
        backup_count: int = _BACKUP_COUNT,
    ) -> None:
        path = Path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(
            path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        self.setFormatter(JsonFormatter())


# ----------------------------------------------------------------------
# configuration
def _resolve_log_dir(log_dir: str | Path | None) -> Path:
    if log_dir is None:
        log_dir = os.environ.get(LOG_DIR_ENV) or Path.home() / ".fragments" / "logs"
    path = Path(log_dir).expanduser().resolve()
    path.mkdir(parents=True, exist_ok=True)
    return path


def configure_logging(
    level: int = logging.INFO,
    *,
    log_dir: str | Path | None = None,
    console: bool = True,
) -> Path:
    """Attach the console and file handlers once and return the log directory.

    Later calls only adjust the console level.
    """
    global _log_dir

    console_handlers = [
        handler
        for handler in logger.handlers
        if isinstance(handler.formatter, ConsoleFormatter)
    ]
    if _log_dir is not None:
        for handler in console_handlers:
            handler.setLevel(level)
        return _log_dir

    directory = _resolve_log_dir(log_dir)
    if console and not console_handlers:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(ConsoleFormatter())
        logger.addHandler(console_handler)

    text_handler = RotatingFileHandler(
        directory / TEXT_LOG_NAME,
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUP_COUNT,
        encoding="utf-8",
    )
    text_handler.setLevel(logging.DEBUG)
    text_handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    logger.addHandler(text_handler)

    json_handler = JsonlHandler(directory / JSON_LOG_NAME)
    json_handler.setLevel(logging.DEBUG)
    logger.addHandler(json_handler)

    logger.setLevel(logging.DEBUG)
    _log_dir = directory
    return directory


def install_exception_hooks(loop: asyncio.AbstractEventLoop | None = None) -> None:
    """Route uncaught errors, including those of orphaned tasks, to the log."""

    def _excepthook(exc_type, exc_value, exc_traceback):
        logger.critical(
            "Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback)
        )

    sys.excepthook = _excepthook
    if loop is None:
        return

    def _loop_handler(
        event_loop: asyncio.AbstractEventLoop, context: dict[str, Any]
    ) -> None:
        exc = context.get("exception")
        logger.error(
            "Unhandled error in event loop: %s",
            context.get("message", "no message"),
            exc_info=(type(exc), exc, exc.__traceback__) if exc is not None else None,
        )

    loop.set_exception_handler(_loop_handler)


def get_log_file_paths() -> tuple[Path, Path]:
    """Return the text and JSONL log paths, configuring logging if needed."""
    directory = _log_dir if _log_dir is not None else configure_logging()
    return directory / TEXT_LOG_NAME, directory / JSON_LOG_NAME


__all__ = [
    "ConsoleFormatter",
    "JsonFormatter",
    "JsonlHandler",
    "configure_logging",
    "current_cycle_id",
    "cycle_scope",
    "get_log_file_paths",
    "install_exception_hooks",
    "logger",
]
