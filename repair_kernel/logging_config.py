"""
Structured JSON logging for the repair quote kernel.

Every record under the ``repair_kernel`` logger is written as one JSON
object per line.  Request-scoped fields held by LogContext (correlation
id, quote id, acting user, token phase) are merged into each record, and
bearer secrets are masked before anything is serialized.

Usage:
    configure_logging(level="INFO")
    logger = get_logger("services.quote_workflow")
    with LogContext.bind(correlation_id=cid, quote_id=str(quote_id)):
        logger.info("send_to_client_started")
"""

__all__ = [
    "CONTEXT_FIELDS",
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, Mapping
from uuid import UUID

LOGGER_NAMESPACE = "repair_kernel"

CONTEXT_FIELDS = ("correlation_id", "quote_id", "actor_id", "token_phase", "trace_id")

# Capability tokens are bearer credentials.
SECRET_FIELDS = frozenset({"token", "raw_token", "secret"})
REDACTED = "[REDACTED]"

_context: ContextVar[Mapping[str, str]] = ContextVar("repair_log_context", default={})


class LogContext:
    """
    Request-scoped fields merged into every log record.

    All fields live in one ContextVar holding an immutable snapshot, so a
    ``bind()`` block restores exactly what was there before it, including
    anything ``set()`` inside the block.
    """

    @staticmethod
    def _checked(fields: Mapping[str, Any]) -> dict[str, str]:
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown log context fields: {sorted(unknown)}")
        return {name: str(value) for name, value in fields.items() if value is not None}

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Update fields for the rest of the current context.  None values are ignored."""
        _context.set({**_context.get(), **cls._checked(fields)})

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """Set fields for the duration of a ``with`` block."""
        token = _context.set({**_context.get(), **cls._checked(fields)})
        try:
            yield
        finally:
            _context.reset(token)


# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


def _mask(key: str, value: Any) -> Any:
    return REDACTED if key in SECRET_FIELDS else value


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """Type, message and the public attributes of a typed kernel error."""
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for key, value in vars(exc).items():
        if not key.startswith("_"):
            fields[f"exc_{key}"] = _mask(key, value)
    return fields


class StructuredFormatter(logging.Formatter):
    """Envelope, then context, then extras, then exception details."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and key not in entry:
                entry[key] = _mask(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            entry.update(_exception_fields(record.exc_info[1]))
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``repair_kernel`` namespace."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_configured = False
_handler: logging.Handler | None = None
_lock = threading.Lock()


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``repair_kernel`` logger.

    Later calls are no-ops until reset_logging().  Records do not
    propagate to the root logger.
    """
    global _configured, _handler
    with _lock:
        if _configured:
            return
        namespace = logging.getLogger(LOGGER_NAMESPACE)
        namespace.setLevel(_resolve_level(level))
        namespace.propagate = False
        target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        namespace.addHandler(target)
        _handler = target
        _configured = True


def reset_logging() -> None:
    """Remove the handler configure_logging() added and forget configuration.  For tests."""
    global _configured, _handler
    with _lock:
        namespace = logging.getLogger(LOGGER_NAMESPACE)
        if _handler is not None:
            namespace.removeHandler(_handler)
            _handler = None
        namespace.setLevel(logging.WARNING)
        _configured = False
