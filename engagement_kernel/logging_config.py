"""
Structured JSON logging for the engagement kernel.

Every record is one JSON object per line.  Request-scoped identifiers
(correlation id, acting member, project, contract, payment token) travel in
a ContextVar so nested service calls log them without threading them
through every signature.
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
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "project_id",
    "contract_id",
    "idempotency_token",
)

_context: ContextVar[dict[str, str]] = ContextVar("engagement_log_context", default={})


def _accepted(fields: dict[str, Any]) -> dict[str, str]:
    return {
        name: str(value)
        for name, value in fields.items()
        if name in CONTEXT_FIELDS and value is not None
    }


class LogContext:
    """Request-scoped log fields, safe across threads and tasks."""

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Merge fields into the current context.  None values are skipped."""
        _context.set({**_context.get(), **_accepted(fields)})

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a block, then restore the previous context."""
        token = _context.set({**_context.get(), **_accepted(fields)})
        try:
            yield cls
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _jsonable(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    for attr in ("code", "kind"):
        value = getattr(exc, attr, None)
        if value is not None:
            fields[f"exc_{attr}"] = value
    # EngagementKernelError subclasses keep their details as instance attributes
    for name, value in vars(exc).items():
        if not name.startswith("_") and name not in ("args", "code", "kind"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line.

    Field precedence, lowest first: ``extra`` values, then context fields,
    then the fixed ``ts``/``level``/``logger``/``message`` keys.
    """

    def format(self, record: logging.LogRecord) -> str:
        extras = {k: v for k, v in vars(record).items() if k not in _RESERVED_ATTRS}
        payload: dict[str, Any] = {
            **extras,
            **LogContext.get_all(),
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_jsonable)


# ---------------------------------------------------------------------------
# Logger factory and setup
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "engagement_kernel"

_configured = False
_setup_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the engagement_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the engagement_kernel logger.

    Later calls are no-ops until ``reset_logging()``.
    """
    global _configured
    with _setup_lock:
        if _configured:
            return
        _configured = True

    target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())

    base = logging.getLogger(_LOGGER_PREFIX)
    base.setLevel(level)
    base.propagate = False
    base.addHandler(target)


def reset_logging() -> None:
    """Drop handlers and forget configuration.  Test helper."""
    global _configured
    with _setup_lock:
        _configured = False
    base = logging.getLogger(_LOGGER_PREFIX)
    base.handlers.clear()
    base.setLevel(logging.WARNING)
    base.propagate = True
