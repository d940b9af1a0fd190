"""Process logging for the API server and CLI.

``configure_logging`` installs one stdout handler on the root logger. Modules
log through ``logging.getLogger(__name__)`` as usual; any fields bound with
``log_context`` (run source, date key, actor) ride along on every record
emitted inside the block, as JSON keys or as ``key=value`` suffixes.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator, Mapping

SERVICE_NAME = "fleetops"

# Third-party loggers that echo every request at INFO.
_CHATTY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")

_fields: ContextVar[tuple[tuple[str, str], ...]] = ContextVar("fleetops_log_fields", default=())


def current_fields() -> dict[str, str]:
    return dict(_fields.get())


def bind_context(**values: object) -> None:
    """Add fields to the active context; ``None`` values are skipped."""
    merged = current_fields()
    merged.update({key: str(value) for key, value in values.items() if value is not None})
    _fields.set(tuple(merged.items()))


@contextmanager
def log_context(values: Mapping[str, object]) -> Iterator[None]:
    """Bind fields for the duration of a block, restoring the outer context after."""
    token = _fields.set(_fields.get())
    try:
        bind_context(**dict(values))
        yield
    finally:
        _fields.reset(token)


class _FieldsFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.fields = current_fields()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(getattr(record, "fields", None) or {})
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, separators=(",", ":"))


class PlainFormatter(logging.Formatter):
    """Terminal-friendly lines for local runs."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-7s %(name)s: %(message)s", "%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = getattr(record, "fields", None)
        if fields:
            line += " [" + " ".join(f"{key}={fields[key]}" for key in sorted(fields)) + "]"
        return line


def configure_logging(*, level: str = "INFO", json_output: bool = True) -> None:
    """Replace root handlers with a single stdout handler; safe to call twice."""
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.addFilter(_FieldsFilter())
    handler.setFormatter(JsonFormatter() if json_output else PlainFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = [
    "JsonFormatter",
    "PlainFormatter",
    "bind_context",
    "configure_logging",
    "current_fields",
    "log_context",
]
