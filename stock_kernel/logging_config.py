"""
Structured logging for the stock kernel.

Every logger lives under the ``stock_kernel`` namespace and writes one JSON
object per line.  A record carries, in order of precedence:

    1. the bound LogContext fields (correlation_id, actor, stock_id,
       target_ledger_id, batch_id),
    2. the base fields ``ts``, ``level``, ``logger`` and ``message``,
    3. whatever the call site passed through ``extra=``.

Quantities are Decimals and are written as strings so that ``"1.50"`` is
never rounded through a float on its way to the log.
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
from typing import Any, TextIO

NAMESPACE = "stock_kernel"

CONTEXT_FIELDS = ("correlation_id", "actor", "stock_id", "target_ledger_id", "batch_id")


class LogContext:
    """
    Per-call log fields, carried in context variables.

    StockLedgerService binds a correlation id and actor for each public
    call, then narrows it with the stock id, reversal target or import
    batch the call is working on.  A reversal target is bound as
    target_ledger_id so that it never masks the ledger_id a service logs
    for the entry it just appended.
    """

    _vars: dict[str, ContextVar[str | None]] = {
        field: ContextVar(f"stock_log_{field}", default=None)
        for field in CONTEXT_FIELDS
    }

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Assign fields for the rest of the current context.  None is skipped."""
        for field, value in cls._known(fields):
            cls._vars[field].set(value)

    @classmethod
    def get_all(cls) -> dict[str, str]:
        values = {field: var.get() for field, var in cls._vars.items()}
        return {field: value for field, value in values.items() if value is not None}

    @classmethod
    def clear(cls) -> None:
        for var in cls._vars.values():
            var.set(None)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a ``with`` block, then restore them."""
        tokens = [
            (cls._vars[field], cls._vars[field].set(value))
            for field, value in cls._known(fields)
        ]
        try:
            yield cls
        finally:
            for var, token in reversed(tokens):
                var.reset(token)

    @classmethod
    def _known(cls, fields: dict[str, Any]) -> list[tuple[str, str]]:
        return [
            (field, str(value))
            for field, value in fields.items()
            if value is not None and field in cls._vars
        ]


# Attributes every LogRecord has; anything else arrived through ``extra=``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "taskName",
}


def _to_json(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    # Decimal, UUID, enums and anything else unknown to json.
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON line per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, value)
            for key, value in list(vars(record).items())
            if key not in _RECORD_ATTRS and key not in payload
        )
        payload.update(LogContext.get_all())
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record))
        return json.dumps(payload, default=_to_json)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # StockKernelError subclasses keep their details as public attributes.
        for name, value in vars(exc).items():
            if name not in ("args", "code") and not name.startswith("_"):
                fields[f"exc_{name}"] = value
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


def get_logger(name: str) -> logging.Logger:
    """``get_logger("services.movement")`` -> ``stock_kernel.services.movement``."""
    return logging.getLogger(f"{NAMESPACE}.{name}")


_state_lock = threading.Lock()
_configured = False


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``stock_kernel`` logger.

    Only the first call has any effect; later calls return without touching
    the handler or level.  The CLI passes ``stream=sys.stderr`` so that
    stdout stays clean for exports.
    """
    global _configured
    with _state_lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(StructuredFormatter())

    kernel_logger = logging.getLogger(NAMESPACE)
    kernel_logger.setLevel(level)
    kernel_logger.propagate = False
    kernel_logger.addHandler(handler)


def reset_logging() -> None:
    """Undo configure_logging.  Used by the test suite."""
    global _configured
    with _state_lock:
        _configured = False
    kernel_logger = logging.getLogger(NAMESPACE)
    kernel_logger.handlers.clear()
    kernel_logger.setLevel(logging.WARNING)
