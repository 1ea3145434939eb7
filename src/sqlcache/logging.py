"""
Structured logging for the SQL-backed cache.

Cache code logs through ``get_logger(__name__)``. Keyword arguments on a log
call (``key=...``, ``count=...``) travel on the record as structured fields,
and ``log_context()`` tags every record emitted inside it with the cache table
and operation.

The library only installs a NullHandler. ``setup_logging()`` is for
applications and the CLI: a rich console handler and an optional JSON-lines
file.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator, MutableMapping

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

ROOT_LOGGER = "sqlcache"

_table_var: ContextVar[str | None] = ContextVar("cache_table", default=None)
_operation_var: ContextVar[str | None] = ContextVar("cache_operation", default=None)

# Keyword arguments the stdlib logger understands itself
_LOGGING_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})

logging.getLogger(ROOT_LOGGER).addHandler(logging.NullHandler())


@contextmanager
def log_context(
    table: str | None = None,
    operation: str | None = None,
) -> Generator[None, None, None]:
    """Tag records emitted inside the block with a table and operation.

    Args:
        table: Qualified cache table name.
        operation: Cache operation (get, set, remove, delete_expired, ...).
    """
    table_token = _table_var.set(table) if table is not None else None
    operation_token = _operation_var.set(operation) if operation is not None else None
    try:
        yield
    finally:
        if operation_token is not None:
            _operation_var.reset(operation_token)
        if table_token is not None:
            _table_var.reset(table_token)


def current_context() -> dict[str, str]:
    """The table and operation set by the innermost ``log_context``."""
    context = {}
    table = _table_var.get()
    operation = _operation_var.get()
    if table is not None:
        context["table"] = table
    if operation is not None:
        context["operation"] = operation
    return context


class CacheLoggerAdapter(logging.LoggerAdapter):
    """Moves keyword fields and the current context onto ``record.cache``."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        fields = {key: kwargs.pop(key) for key in list(kwargs) if key not in _LOGGING_KWARGS}
        extra = dict(kwargs.get("extra") or {})
        extra["cache"] = {**current_context(), **fields}
        kwargs["extra"] = extra
        return msg, kwargs


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    return dict(getattr(record, "cache", None) or {})


class JSONFormatter(logging.Formatter):
    """One JSON object per line: time, level, logger, message, cache fields."""

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
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Message followed by ``key=value`` fields, with the table dimmed."""

    def format(self, record: logging.LogRecord) -> str:
        fields = _record_fields(record)
        table = fields.pop("table", None)
        operation = fields.pop("operation", None)

        parts = []
        if table:
            parts.append(f"[dim]{escape(table)}[/dim]")
        if operation:
            parts.append(f"[cyan]{escape(operation)}[/cyan]")
        parts.append(escape(record.getMessage()))
        parts.extend(f"[dim]{escape(k)}=[/dim]{escape(repr(v))}" for k, v in fields.items())
        return " ".join(parts)


def setup_logging(
    log_level: str = "INFO",
    log_file: Path | None = None,
    console: Console | None = None,
) -> logging.Logger:
    """Attach console and file handlers to the ``sqlcache`` logger.

    Replaces handlers from earlier calls, so it can run once per CLI command.

    Args:
        log_level: Level for the logger and console handler.
        log_file: Optional JSON-lines file; receives everything from DEBUG up.
        console: Console for output; stderr by default.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(log_level.upper())
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    rich_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=True,
        rich_tracebacks=True,
    )
    rich_handler.setFormatter(ConsoleFormatter())
    rich_handler.setLevel(log_level.upper())
    logger.addHandler(rich_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        file_handler.setLevel(logging.DEBUG)
        logger.addHandler(file_handler)
        logger.setLevel(logging.DEBUG)

    logger.propagate = False

    # aiosqlite logs every statement at debug
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    return logger


def get_logger(name: str) -> CacheLoggerAdapter:
    """Logger under the ``sqlcache`` namespace that accepts keyword fields."""
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return CacheLoggerAdapter(logging.getLogger(name), {})
