"""Structured JSON logging for the dairy ledger kernel."""

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
from datetime import UTC, date, datetime
from typing import Any

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------


class LogContext:
    """Per-task fields copied onto every log line while bound."""

    _fields: dict[str, ContextVar[str | None]] = {
        name: ContextVar(f"log_{name}", default=None)
        for name in ("actor_id", "voucher_id", "farmer_id")
    }

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {
            name: value
            for name, var in cls._fields.items()
            if (value := var.get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in cls._fields.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[type["LogContext"]]:
        """Set the given fields for the duration of the block; None and
        unknown names are ignored."""
        tokens = [
            cls._fields[name].set(value)
            for name, value in fields.items()
            if value is not None and name in cls._fields
        ]
        try:
            yield cls
        finally:
            for token in reversed(tokens):
                token.var.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _encode(obj: Any) -> Any:
    """Money as exact strings, dates as ISO, IDs as text."""
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # Kernel errors keep their context as public attributes
    fields.update(
        (f"exc_{name}", value)
        for name, value in vars(exc).items()
        if not name.startswith("_")
    )
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, message, context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _STDLIB_KEYS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_encode)


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "dairy_kernel"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the dairy_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    handler: logging.Handler | None = None,
) -> None:
    """Configure the dairy_kernel logger hierarchy (idempotent)."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level)
    root_logger.propagate = False

    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(handler)


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
