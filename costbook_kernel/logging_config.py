"""
Module: costbook_kernel.logging_config
Responsibility: JSON-lines logging for the costbook.  Every record carries
    the operation context bound by the facade (correlation id, acting user,
    operation name, target entity) plus the ``extra`` fields of the call.
Architecture position: Kernel root.  Imported by db/, domain/, services/
    and selectors/; imports only the exception base from the kernel.

Invariants enforced:
    - One JSON object per line; Decimal amounts are written as strings so
      no precision is lost in the log.
    - Context is held in a ContextVar, so concurrent operations on
      different threads never see each other's fields.
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
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from costbook_kernel.exceptions import CostbookError

LOGGER_NAMESPACE = "costbook"


class LogContext:
    """Operation-scoped fields added to every record."""

    FIELDS = ("correlation_id", "actor_id", "operation", "entity_id")

    _fields: ContextVar[dict[str, str]] = ContextVar("costbook_log_context", default={})

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[None]:
        """
        Add ``fields`` for the duration of the block; None values are skipped.

        Raises:
            TypeError: a field outside FIELDS was given.
        """
        unknown = set(fields) - set(cls.FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
        merged = dict(cls._fields.get())
        merged.update({k: v for k, v in fields.items() if v is not None})
        token = cls._fields.set(merged)
        try:
            yield
        finally:
            cls._fields.reset(token)

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(cls._fields.get())

    @classmethod
    def clear(cls) -> None:
        cls._fields.set({})


# Attributes every LogRecord has; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal | UUID):
        return str(value)
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


def _error_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if isinstance(exc, CostbookError):
        fields["exc_code"] = exc.code
        # Typed constructor attributes (entity ids, requested/available, ...)
        for name, value in vars(exc).items():
            if not name.startswith("_"):
                fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a record as one JSON object: envelope, context, extras, error."""

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

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_error_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_jsonable)


def get_logger(name: str) -> logging.Logger:
    """Logger ``costbook.<name>``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(*, level: int | str = logging.INFO) -> None:
    """
    Send the costbook namespace to stderr as JSON lines.

    Only the first call has an effect; the engine and the facade both call
    it and whichever runs first decides the level.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(LOGGER_NAMESPACE)
    root.setLevel(level)
    root.propagate = False
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter())
    root.addHandler(handler)


def reset_logging() -> None:
    """Undo configure_logging.  For tests."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(LOGGER_NAMESPACE)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
