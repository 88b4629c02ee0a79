"""
Structured logging for the avatar sync layer.

Log calls take keyword fields (``logger.info("Avatar cached", avatar_id=...)``).
The fields, together with the active screen and player handle, travel on the
record as ``record.fields``. The console shows them through rich; the
optional log file gets one orjson line per record.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

import orjson
from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

ROOT_LOGGER = "avatarsync"
NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite", "asyncio")

_screen_var: ContextVar[str | None] = ContextVar("screen", default=None)
_handle_var: ContextVar[str | None] = ContextVar("handle", default=None)


def current_context() -> dict[str, str]:
    """Screen and handle active in the calling task, omitting unset ones."""
    context: dict[str, str] = {}
    screen = _screen_var.get()
    handle = _handle_var.get()
    if screen:
        context["screen"] = screen
    if handle:
        context["handle"] = handle
    return context


@contextmanager
def log_context(
    screen: str | None = None,
    handle: str | None = None,
) -> Generator[None, None, None]:
    """Scope the screen and/or player handle attached to log records.

    Tasks created inside the block inherit the values.
    """
    tokens = []
    if screen is not None:
        tokens.append((_screen_var, _screen_var.set(screen)))
    if handle is not None:
        tokens.append((_handle_var, _handle_var.set(handle)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "fields", None) or {}


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log files."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_record_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(entry, default=str).decode()


class ContextRichHandler(RichHandler):
    """Rich handler prefixing the level with screen and handle."""

    def get_level_text(self, record: logging.LogRecord) -> Text:
        level_text = super().get_level_text(record)
        fields = _record_fields(record)
        prefix = " ".join(
            f"[{style}]{fields[key]}[/{style}]"
            for key, style in (("screen", "cyan"), ("handle", "magenta"))
            if fields.get(key)
        )
        if not prefix:
            return level_text
        return Text.from_markup(f"{level_text} {prefix}")


class ContextLogger:
    """Logger taking structured keyword fields."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(self, level: int, msg: str, *args: Any, exc_info: bool = False, **fields: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        merged = current_context()
        merged.update(fields)
        self._logger.log(level, msg, *args, exc_info=exc_info, extra={"fields": merged})

    def debug(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, *args, **fields)

    def info(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.INFO, msg, *args, **fields)

    def warning(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.WARNING, msg, *args, **fields)

    def error(self, msg: str, *args: Any, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **fields)

    def exception(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.ERROR, msg, *args, exc_info=True, **fields)


_configured = False


def setup_logging(
    log_level: str = "INFO",
    log_file: Path | None = None,
    console_output: bool = True,
) -> None:
    """Configure the ``avatarsync`` logger.

    Args:
        log_level: Level name for the logger and console handler.
        log_file: Optional JSON Lines file; receives DEBUG and above.
        console_output: Whether to log to stderr through rich.
    """
    global _configured

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    root_logger = logging.getLogger(ROOT_LOGGER)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(logging.DEBUG if log_file else level)
    root_logger.propagate = False

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        file_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(file_handler)

    if console_output:
        rich_handler = ContextRichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            markup=True,
        )
        rich_handler.setLevel(level)
        root_logger.addHandler(rich_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> ContextLogger:
    """Get a ContextLogger under the ``avatarsync`` namespace."""
    if not _configured:
        setup_logging()
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    return ContextLogger(logging.getLogger(name))
