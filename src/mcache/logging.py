"""
Structured logging for the media cache.

Every record emitted while a load is running carries the load's id, its
cache key and the state the load is in. The fields live in context
variables, so concurrent loads on one event loop never see each other's
values.

Console output goes through rich; an optional log file receives one JSON
object per line.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

ROOT_LOGGER = "mcache"

_load_id_var: ContextVar[str | None] = ContextVar("load_id", default=None)
_cache_key_var: ContextVar[str | None] = ContextVar("cache_key", default=None)
_state_var: ContextVar[str | None] = ContextVar("state", default=None)

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    "load_id": _load_id_var,
    "cache_key": _cache_key_var,
    "state": _state_var,
}

# Console prefix style per context field
_CONSOLE_STYLES = {"load_id": "dim", "cache_key": "magenta", "state": "cyan"}

_NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite", "asyncio")

_configured = False


def set_state(state: str | None) -> None:
    """Record the state the current load has entered."""
    _state_var.set(state)


@contextmanager
def log_context(**fields: str | None) -> Generator[None, None, None]:
    """Bind load_id, cache_key and/or state for the duration of the block.

    Fields passed as None keep their current value. Everything, including
    a state changed inside the block by set_state(), is restored on exit.
    """
    unknown = set(fields) - set(_CONTEXT_VARS)
    if unknown:
        raise TypeError(f"Unknown log context fields: {sorted(unknown)}")

    tokens: list[tuple[ContextVar[str | None], Token[str | None]]] = []
    for name, var in _CONTEXT_VARS.items():
        value = fields.get(name)
        tokens.append((var, var.set(value if value is not None else var.get())))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def _current_context() -> dict[str, str]:
    return {name: value for name, var in _CONTEXT_VARS.items() if (value := var.get())}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with the load context at top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_current_context(),
        }
        fields = getattr(record, "fields", None)
        if fields:
            entry["fields"] = fields
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ContextRichHandler(RichHandler):
    """RichHandler that prefixes the level with the current load context."""

    def get_level_text(self, record: logging.LogRecord) -> Text:
        level_text = super().get_level_text(record)
        context = _current_context()
        if not context:
            return level_text

        if "load_id" in context:
            # uuid7 ids share their time prefix, the tail tells loads apart
            context["load_id"] = context["load_id"][-8:]
        prefix = Text(" ").join(
            Text(value, style=_CONSOLE_STYLES[name]) for name, value in context.items()
        )
        return Text.assemble(level_text, " ", prefix)


class ContextLogger:
    """Logger whose keyword arguments become structured fields.

    ``logger.info("Cache hit", size=1024)`` logs the message with
    ``{"size": 1024}`` attached as ``record.fields``.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def _log(self, level: int, msg: str, exc_info: bool = False, **fields: Any) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, msg, exc_info=exc_info, extra={"fields": fields})

    def debug(self, msg: str, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, **fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._log(logging.INFO, msg, **fields)

    def warning(self, msg: str, **fields: Any) -> None:
        self._log(logging.WARNING, msg, **fields)

    def error(self, msg: str, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.ERROR, msg, exc_info=exc_info, **fields)

    def exception(self, msg: str, **fields: Any) -> None:
        """Log at ERROR with the active exception's traceback."""
        self._log(logging.ERROR, msg, exc_info=True, **fields)


def setup_logging(log_level: str = "INFO", log_file: Path | None = None) -> None:
    """Configure the ``mcache`` logger hierarchy.

    Args:
        log_level: Console level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional JSON Lines file that receives every record.
    """
    global _configured

    level = getattr(logging, log_level.upper())
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(logging.DEBUG if log_file else level)
    root.handlers.clear()
    root.propagate = False

    console_handler = ContextRichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(level)
    root.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> ContextLogger:
    """Get a ContextLogger under the ``mcache`` hierarchy."""
    if not _configured:
        setup_logging()
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return ContextLogger(logging.getLogger(name))
