"""
Structured logging for the procurement kernel.

Every record is rendered as one JSON object per line:

    {"ts": "...", "level": "INFO", "logger": "procurement_kernel.services.stage_machine",
     "message": "stage_transitioned", "request_id": "...", "actor_id": "...",
     "from_stage": "submitted", "to_stage": "approved", "sequence": 2}

Three sources feed a line, in order of precedence:

1. the fixed envelope (ts, level, logger, message);
2. the ambient ``LogContext`` (correlation, request, actor, facility, trace);
3. the ``extra`` dict passed at the call site.

Kernel exceptions attached with ``exc_info`` contribute their ``code`` and
their public attributes as ``exc_*`` fields.
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
from typing import Any
from uuid import UUID

_NAMESPACE = "procurement_kernel"

_CONTEXT_FIELDS = ("correlation_id", "request_id", "actor_id", "facility_id", "trace_id")

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"procurement_log_{name}", default=None) for name in _CONTEXT_FIELDS
}


class LogContext:
    """
    Request-scoped log fields carried in contextvars.

    Safe across threads and asyncio tasks: each inherits a copy of the
    context at creation time.
    """

    @staticmethod
    def set(**fields: Any) -> None:
        """Set the given fields; None values and unknown names are ignored."""
        for name, value in fields.items():
            var = _context_vars.get(name)
            if var is not None and value is not None:
                var.set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: value
            for name, var in _context_vars.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Set fields for the duration of a ``with`` block, then restore them."""
        tokens = [
            (var, var.set(str(value)))
            for name, value in fields.items()
            if value is not None and (var := _context_vars.get(name)) is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# LogRecord attributes that are never user-supplied ``extra`` fields.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(str(v) for v in value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if name.startswith("_") or name in ("args", "code"):
            continue
        fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a LogRecord as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        line.update(LogContext.get_all())
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS:
                line.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            line.update(_exception_fields(record.exc_info[1]))
            line["traceback"] = self.formatException(record.exc_info)

        return json.dumps(line, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger named ``procurement_kernel.<name>``."""
    return logging.getLogger(f"{_NAMESPACE}.{name}")


def _parse_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


_state_lock = threading.Lock()
_configured = False


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``procurement_kernel`` logger.

    Only the first call has any effect until ``reset_logging`` is called.
    Records do not propagate to the root logger.
    """
    global _configured
    with _state_lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    kernel_logger = logging.getLogger(_NAMESPACE)
    kernel_logger.setLevel(_parse_level(level))
    kernel_logger.propagate = False
    kernel_logger.addHandler(handler)


def reset_logging() -> None:
    """Detach handlers and allow ``configure_logging`` to run again. Tests only."""
    global _configured
    with _state_lock:
        _configured = False
    kernel_logger = logging.getLogger(_NAMESPACE)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
