"""
Structured JSON logging for the count kernel.

Each record under the ``count_kernel`` logger is written as one JSON line.
The count being worked on (session, area, actor) travels in ``LogContext``
context variables, so every line an operation writes carries them without
the call sites passing them along.  Values given through ``extra=`` become
top-level keys; exceptions add ``exc_type``, ``exc_code`` and the public
attributes of count errors (``exc_session_id``, ``exc_area_id``, ...).
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

_LOGGER_PREFIX = "count_kernel"

_CONTEXT_FIELDS = ("correlation_id", "session_id", "area_id", "actor_id", "trace_id")


class LogContext:
    """Per-thread / per-task fields stamped on every count log line."""

    _vars: dict[str, ContextVar[str | None]] = {
        name: ContextVar(f"count_log_{name}", default=None) for name in _CONTEXT_FIELDS
    }

    @classmethod
    def _var(cls, name: str) -> ContextVar[str | None]:
        try:
            return cls._vars[name]
        except KeyError:
            raise TypeError(f"Unknown log context field '{name}'") from None

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set the given fields; ``None`` leaves a field unchanged."""
        for name, value in fields.items():
            if value is not None:
                cls._var(name).set(str(value))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {
            name: value
            for name, var in cls._vars.items()
            if (value := var.get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in cls._vars.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a block, then restore them."""
        tokens = [
            (cls._var(name), cls._var(name).set(str(value)))
            for name, value in fields.items()
            if value is not None
        ]
        try:
            yield cls
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord has; anything else on a record came from extra=.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    # UUID, Decimal, enums
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        exc = record.exc_info[1] if record.exc_info else None
        if exc is not None:
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            if hasattr(exc, "code"):
                payload["exc_code"] = exc.code
            for key, value in vars(exc).items():
                if not key.startswith("_") and key not in ("args", "code"):
                    payload[f"exc_{key}"] = value
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger named ``count_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_configure_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to ``count_kernel``.  Later calls do nothing."""
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level)
    root.propagate = False
    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    root.addHandler(target)


def reset_logging() -> None:
    """Undo ``configure_logging``; used by the test fixtures."""
    global _configured
    with _configure_lock:
        _configured = False
    root = logging.getLogger(_LOGGER_PREFIX)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
