"""
Structured logging for the carbon kernel.

Every kernel module logs through ``get_logger("<area>.<module>")`` under the
``carbon_kernel`` namespace.  Records are rendered as one JSON object per
line; request-scoped identifiers (who is acting, on which project, wallet
or certificate) are carried in context variables and merged into every
record emitted while they are bound, so service code only passes the
event-specific fields in ``extra``.

    with LogContext.bind(actor_id=str(user_id), project_id=str(project_id)):
        logger.info("credits_purchased", extra={"credits": "6"})

emits::

    {"ts": "...", "level": "INFO", "logger": "carbon_kernel.services...",
     "message": "credits_purchased", "actor_id": "...", "project_id": "...",
     "credits": "6"}
"""

__all__ = [
    "CONTEXT_FIELDS",
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
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

_NAMESPACE = "carbon_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "actor_id",
    "project_id",
    "wallet_id",
    "serial_number",
    "trace_id",
)

_context: dict[str, ContextVar[str | None]] = {
    field: ContextVar(f"carbon_log_{field}", default=None) for field in CONTEXT_FIELDS
}


def _context_var(field: str) -> ContextVar[str | None]:
    try:
        return _context[field]
    except KeyError:
        raise TypeError(f"Unknown log context field: {field!r}") from None


class LogContext:
    """Request-scoped log fields, isolated per thread and per task."""

    @staticmethod
    def set(**fields: str | None) -> None:
        """Set the given fields; None leaves a field as it is."""
        for field, value in fields.items():
            var = _context_var(field)
            if value is not None:
                var.set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        values = {field: var.get() for field, var in _context.items()}
        return {field: value for field, value in values.items() if value is not None}

    @staticmethod
    def clear() -> None:
        for var in _context.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[None]:
        """Bind fields for the duration of a block, restoring prior values after."""
        tokens = [
            (_context_var(field), _context_var(field).set(str(value)))
            for field, value in fields.items()
            if value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# Attributes every LogRecord has; anything else on a record came from ``extra``
_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """Type, message, and the typed error's code and public attributes."""
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
    """Renders a record as a single JSON line."""

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

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger for ``carbon_kernel.<name>``."""
    return logging.getLogger(f"{_NAMESPACE}.{name}")


_configure_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Install the JSON handler on the ``carbon_kernel`` logger.

    Only the first call takes effect until reset_logging(); later calls
    (for example a second create_application()) are no-ops.
    """
    global _installed_handler
    with _configure_lock:
        if _installed_handler is not None:
            return
        _installed_handler = (
            handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        )
        _installed_handler.setFormatter(StructuredFormatter())

        namespace_logger = logging.getLogger(_NAMESPACE)
        namespace_logger.setLevel(level.upper() if isinstance(level, str) else level)
        namespace_logger.propagate = False
        namespace_logger.addHandler(_installed_handler)


def reset_logging() -> None:
    """Remove the installed handler and return to WARNING.  Tests only."""
    global _installed_handler
    with _configure_lock:
        namespace_logger = logging.getLogger(_NAMESPACE)
        if _installed_handler is not None:
            namespace_logger.removeHandler(_installed_handler)
            _installed_handler = None
        namespace_logger.setLevel(logging.WARNING)
