"""Structured JSON logging for the fleet kernel.

Every record is emitted as one JSON line carrying the request-scoped fields
held in LogContext (correlation id, actor, operation, trip, invoice) plus the
``extra={...}`` payload of the call site.
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
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_FIELD_NAMES = (
    "correlation_id",
    "actor_id",
    "operation",
    "trip_id",
    "invoice_id",
)

_CONTEXT_VARS: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"fleet_log_{name}", default=None) for name in _FIELD_NAMES
}


class LogContext:
    """Thread-safe / async-safe holder for request-scoped log fields."""

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set context fields. Only non-None values are updated."""
        for name, val in fields.items():
            if name not in _CONTEXT_VARS:
                raise KeyError(f"Unknown log context field: {name}")
            if val is not None:
                _CONTEXT_VARS[name].set(str(val))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        """Return all non-None context fields as a dict."""
        return {
            name: var.get()
            for name, var in _CONTEXT_VARS.items()
            if var.get() is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in _CONTEXT_VARS.values():
            var.set(None)

    @classmethod
    def bind(cls, **fields: Any) -> "_BoundContext":
        """Context manager that sets fields on entry and restores them on exit."""
        return _BoundContext(fields)


class _BoundContext:
    # Every field is restored on exit, including ones set inside the block
    def __init__(self, fields: dict[str, Any]):
        self._fields = fields
        self._tokens: list[tuple[ContextVar, Any]] = []

    def __enter__(self) -> type[LogContext]:
        for name in self._fields:
            if name not in _CONTEXT_VARS:
                raise KeyError(f"Unknown log context field: {name}")
        for name, var in _CONTEXT_VARS.items():
            val = self._fields.get(name)
            new = str(val) if val is not None else var.get()
            self._tokens.append((var, var.set(new)))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class _JSONEncoder(json.JSONEncoder):
    """Handle UUID, datetime, date, Decimal and Enum values in log payloads."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (UUID, Decimal)):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return str(obj)


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        payload.update(LogContext.get_all())

        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            if hasattr(exc, "code"):
                payload["exc_code"] = exc.code
            # Structured attributes of FleetKernelError subclasses
            for k, v in vars(exc).items():
                if not k.startswith("_") and k not in ("args", "code"):
                    payload[f"exc_{k}"] = v
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_JSONEncoder)


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "fleet_kernel"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the fleet_kernel namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Configure the fleet_kernel logger hierarchy (idempotent)."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level)
    root_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    root_logger.addHandler(h)


def reset_logging() -> None:
    """Reset logging configuration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
    logger.propagate = True
