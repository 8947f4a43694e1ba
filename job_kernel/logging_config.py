"""
Structured JSON logging for the job kernel.

Every record under the ``job_kernel`` logger becomes one JSON object per
line.  Request-scoped identifiers (correlation id, job, change order,
actor, trace) live in context variables, so a record emitted deep inside
an allocator still carries the job and call that caused it.

Record layout:
    ts, level, logger, message         always
    correlation_id, job_id, ...        when bound in LogContext
    <extra keys>                       from ``logger.info(..., extra={...})``
    exc_type, exc_message, exc_code,   when logged with exc_info; kernel
    exc_<attribute>, traceback         exceptions contribute their fields

A context field wins over an ``extra`` key of the same name.
"""

__all__ = [
    "LOG_CONTEXT_FIELDS",
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
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

LOG_CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "job_id",
    "change_order_id",
    "actor_id",
    "trace_id",
)

_LOGGER_PREFIX = "job_kernel"


# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"job_kernel_log_{name}", default=None)
    for name in LOG_CONTEXT_FIELDS
}


class LogContext:
    """
    Request-scoped log fields, safe across threads and asyncio tasks.

    ``set`` and ``clear`` change the current context; ``bind`` changes it
    for the length of a ``with`` block and puts the old values back on
    exit.
    """

    @staticmethod
    def set(**fields: str | None) -> None:
        """Set the given fields.  None leaves a field untouched."""
        unknown = sorted(set(fields) - set(LOG_CONTEXT_FIELDS))
        if unknown:
            raise TypeError(f"unknown log context field(s): {', '.join(unknown)}")
        for name, value in fields.items():
            if value is not None:
                _context[name].set(value)

    @staticmethod
    def get_all() -> dict[str, str]:
        """Fields that currently have a value."""
        return {
            name: value
            for name, var in _context.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[type["LogContext"]]:
        """Bind fields for a block.  Unknown names and None values are skipped."""
        tokens = [
            (_context[name], _context[name].set(value))
            for name, value in fields.items()
            if value is not None and name in _context
        ]
        try:
            yield LogContext
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# JSON formatting
# ---------------------------------------------------------------------------

_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    return value


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


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

        for name, value in vars(record).items():
            if name not in _RECORD_ATTRIBUTES:
                payload.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(_jsonable(payload), default=str)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger ``job_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a StructuredFormatter handler to the ``job_kernel`` logger.

    Only the first call has any effect until reset_logging() runs.  The
    kernel logger stops propagating to the root logger, so records are
    written once.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False

    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    kernel_logger.addHandler(target)


def reset_logging() -> None:
    """Undo configure_logging().  Tests only."""
    global _configured
    with _lock:
        _configured = False
    kernel_logger = logging.getLogger(_LOGGER_PREFIX)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
