"""
Structured JSON logging for the vehicle tax engine.

Every record is written as one JSON line::

    {"ts": ..., "level": ..., "logger": ..., "message": "estimation_created",
     "case_id": ..., "actor_id": ...,          <- bound request context
     "calculation_version": 3, ...,            <- extra={...} of the call
     "error": {"type", "code", "message", "traceback"}}   <- only with exc_info

Messages are snake_case event names; details go in ``extra``.  Amounts are
Decimals and are rendered as strings so no digit is lost.

The request context names the calculation being processed.  The service
layer binds it around each use case::

    with LogContext.bind(case_id=request.case_id, actor_id=request.calculated_by):
        ...
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
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

CONTEXT_FIELDS = ("correlation_id", "tenant_id", "case_id", "estimation_id", "actor_id")

_EMPTY: Mapping[str, str] = MappingProxyType({})

_context: ContextVar[Mapping[str, str]] = ContextVar("vehicle_tax_log_context", default=_EMPTY)


def _merged(fields: dict[str, UUID | str | None]) -> Mapping[str, str]:
    unknown = sorted(set(fields) - set(CONTEXT_FIELDS))
    if unknown:
        raise ValueError(f"Unknown log context field(s): {', '.join(unknown)}")
    current = dict(_context.get())
    current.update({key: str(value) for key, value in fields.items() if value is not None})
    return MappingProxyType(current)


class LogContext:
    """
    Identifiers of the request being processed, attached to every record.

    Values may be UUIDs or strings.  A None value leaves the field as it
    was, so optional ids can be passed straight through.
    """

    @staticmethod
    def set(**fields: UUID | str | None) -> None:
        _context.set(_merged(fields))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)

    @staticmethod
    @contextmanager
    def bind(**fields: UUID | str | None) -> Iterator[None]:
        """Set fields for the duration of the block, then restore."""
        token = _context.set(_merged(fields))
        try:
            yield
        finally:
            _context.reset(token)


# Attributes every LogRecord carries; anything else came from extra={...}
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_context.get())
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload["error"] = self._error(record)

        return json.dumps(payload, default=_to_json)

    def _error(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        error: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
        # VehicleTaxError subclasses carry a stable error code
        code = getattr(exc, "code", None)
        if code is not None:
            error["code"] = code
        error["traceback"] = self.formatException(record.exc_info)
        return error


_ROOT_LOGGER = "vehicle_tax"

_handler: logging.Handler | None = None
_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """Logger under the vehicle_tax namespace, e.g. ``vehicle_tax.services.calculation``."""
    return logging.getLogger(f"{_ROOT_LOGGER}.{name}")


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a single JSON handler to the ``vehicle_tax`` logger.

    Only the first call has an effect; scripts and the test suite may both
    call it.  Records do not propagate to the root logger.
    """
    global _handler
    with _lock:
        if _handler is not None:
            return
        _handler = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        _handler.setFormatter(StructuredFormatter())

        root = logging.getLogger(_ROOT_LOGGER)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(_handler)


def reset_logging() -> None:
    """Detach the handler installed by configure_logging().  Tests only."""
    global _handler
    with _lock:
        root = logging.getLogger(_ROOT_LOGGER)
        if _handler is not None:
            root.removeHandler(_handler)
            _handler = None
        root.setLevel(logging.WARNING)
