"""Structured JSON logging for the execution engine."""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

__all__ = [
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

_LOGGER_PREFIX = "budget_execution"


class LogContext:
    """Async-safe holder for request-scoped log fields."""

    _FIELD_NAMES = (
        "execution_id",
        "project_id",
        "facility_id",
        "reporting_period_id",
        "quarter",
    )

    _vars: dict[str, ContextVar[str | None]] = {
        name: ContextVar(f"log_{name}", default=None) for name in _FIELD_NAMES
    }

    @classmethod
    def get_all(cls) -> dict[str, str]:
        """Return all non-None context fields as a dict."""
        ctx: dict[str, str] = {}
        for name, var in cls._vars.items():
            value = var.get()
            if value is not None:
                ctx[name] = value
        return ctx

    @classmethod
    def clear(cls) -> None:
        for var in cls._vars.values():
            var.set(None)

    @classmethod
    def bind(cls, **kwargs: object) -> _LogContextManager:
        """Context manager that sets fields on entry and restores them on exit."""
        return _LogContextManager(kwargs)


class _LogContextManager:
    def __init__(self, fields: dict[str, object]) -> None:
        self._fields = fields
        self._tokens: dict[str, Token[str | None]] = {}

    def __enter__(self) -> type[LogContext]:
        for key, value in self._fields.items():
            var = LogContext._vars.get(key)
            if var is not None and value is not None:
                self._tokens[key] = var.set(_stringify(value))
        return LogContext

    def __exit__(self, *exc: object) -> None:
        for key, token in self._tokens.items():
            LogContext._vars[key].reset(token)


def _stringify(value: object) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class _JSONEncoder(json.JSONEncoder):
    """Handle UUID, datetime, Decimal and enums in log payloads."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (UUID, Decimal)):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (set, frozenset, tuple)):
            return list(obj)
        return super().default(obj)


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

        for key, value in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_JSONEncoder, default=str)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the budget_execution namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured_handler: logging.Handler | None = None


def configure_logging(level: str = "INFO", *, json_output: bool = True) -> None:
    """Install a single stream handler on the package logger. Safe to call repeatedly."""
    global _configured_handler

    root = logging.getLogger(_LOGGER_PREFIX)
    if _configured_handler is not None:
        root.removeHandler(_configured_handler)

    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root.addHandler(handler)
    root.setLevel(level)
    _configured_handler = handler


def reset_logging() -> None:
    global _configured_handler

    root = logging.getLogger(_LOGGER_PREFIX)
    if _configured_handler is not None:
        root.removeHandler(_configured_handler)
        _configured_handler = None
    root.setLevel(logging.NOTSET)
    LogContext.clear()
