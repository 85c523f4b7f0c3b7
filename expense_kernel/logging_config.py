"""
expense_kernel.logging_config -- JSON log lines for the approval system.

Responsibility:
    Every logger under the ``expense_kernel`` namespace writes one JSON
    object per record.  The object always carries ts, level, logger and
    message; it then picks up the request-scoped ids held in
    ``LogContext`` and any ``extra={...}`` fields of the call.

Architecture position:
    Kernel -- imported by every layer; imports nothing from the project.

Invariants enforced:
    - Context ids are per thread / per task (contextvars); ``bind()``
      restores whatever was set before, also on exceptions.
    - Call-site fields never overwrite the envelope or context ids.
    - ``configure_logging`` attaches its handler once per process until
      ``reset_logging`` is called.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import dataclasses
import json
import logging
import sys
import threading
from contextvars import ContextVar, Token
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

CONTEXT_FIELDS = (
    "correlation_id",
    "expense_id",
    "actor_id",
    "workflow_id",
    "trace_id",
)

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"expense_log_{name}", default=None) for name in CONTEXT_FIELDS
}


class LogContext:
    """Request-scoped ids merged into every record (expense, actor, ...)."""

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Set the given ids; ``None`` values and unknown names are ignored."""
        for name, value in fields.items():
            var = _context_vars.get(name)
            if var is not None and value is not None:
                var.set(value)

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {
            name: var.get()
            for name, var in _context_vars.items()
            if var.get() is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in _context_vars.values():
            var.set(None)

    @classmethod
    def bind(cls, **fields: str | None) -> "_BoundContext":
        """Set ids for the duration of a ``with`` block."""
        return _BoundContext(fields)


class _BoundContext:
    def __init__(self, fields: dict[str, str | None]):
        self._fields = fields
        self._tokens: list[tuple[ContextVar[str | None], Token]] = []

    def __enter__(self) -> type[LogContext]:
        for name, value in self._fields.items():
            var = _context_vars.get(name)
            if var is not None and value is not None:
                self._tokens.append((var, var.set(value)))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_RESERVED = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    """``default`` hook for json.dumps covering the domain's value types."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (tuple, set, frozenset)):
        return list(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # Structured attributes of ExpenseKernelError subclasses
    for key, value in vars(exc).items():
        if not key.startswith("_") and key != "code":
            fields[f"exc_{key}"] = value
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

        for key, value in vars(record).items():
            if key not in _RESERVED:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_NAMESPACE = "expense_kernel"
_setup_lock = threading.Lock()
_configured = False


def get_logger(name: str) -> logging.Logger:
    """Logger ``expense_kernel.<name>``."""
    return logging.getLogger(f"{_NAMESPACE}.{name}")


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the ``expense_kernel`` logger (idempotent).

    ``level`` accepts a name such as ``EngineSettings.log_level``.
    """
    global _configured
    with _setup_lock:
        if _configured:
            return
        _configured = True

    target = handler or logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())

    namespace_logger = logging.getLogger(_NAMESPACE)
    namespace_logger.setLevel(level.upper() if isinstance(level, str) else level)
    namespace_logger.propagate = False
    namespace_logger.addHandler(target)


def reset_logging() -> None:
    """Undo ``configure_logging``. For tests."""
    global _configured
    with _setup_lock:
        _configured = False
    namespace_logger = logging.getLogger(_NAMESPACE)
    namespace_logger.handlers.clear()
    namespace_logger.setLevel(logging.WARNING)
    namespace_logger.propagate = True
