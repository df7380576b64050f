"""
Structured JSON logging for the stock kernel.

Responsibility:
    One JSON line per record.  The record's message is the event name the
    services emit (``stock_transaction_appended``, ``insufficient_stock``,
    ``receipt_recorded`` ...) and is written under ``event``; ``extra=``
    fields are copied alongside it.

Stock context:
    Ledger writes run inside ``stock_context(product_id=..., receipt_id=...,
    transaction_id=...)``.  Every record emitted beneath it, including the
    sequence and immutability records, carries those ids, so everything a
    rejected sale logged can be found by its product_id.

Kernel errors:
    A StockKernelError logged with ``exc_info`` is rendered as its
    ``error_code`` plus its structured attributes under ``error``; these are
    expected outcomes and get no traceback.  Any other exception keeps its
    traceback.
"""

from __future__ import annotations

__all__ = [
    "STOCK_CONTEXT_FIELDS",
    "StockLogFormatter",
    "configure_logging",
    "current_stock_context",
    "get_logger",
    "reset_logging",
    "stock_context",
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
from typing import Any, TextIO
from uuid import UUID

from stock_kernel.exceptions import StockKernelError

STOCK_CONTEXT_FIELDS = ("product_id", "receipt_id", "transaction_id")

_stock_context: ContextVar[dict[str, str] | None] = ContextVar(
    "stock_log_context", default=None
)


@contextmanager
def stock_context(**fields: Any) -> Iterator[None]:
    """Stamp the given ids onto every record logged inside the block.

    Nested blocks add to the enclosing ids; None values are skipped.
    """
    unknown = set(fields) - set(STOCK_CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown stock context fields: {sorted(unknown)}")
    merged = dict(current_stock_context())
    merged.update({k: str(v) for k, v in fields.items() if v is not None})
    token = _stock_context.set(merged)
    try:
        yield
    finally:
        _stock_context.reset(token)


def current_stock_context() -> dict[str, str]:
    return dict(_stock_context.get() or {})


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_RECORD_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_value(obj: Any) -> Any:
    # Quantities stay ints; money and ids are written as strings
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


class StockLogFormatter(logging.Formatter):
    """Formats each record as a single JSON line keyed by event name."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        payload.update(current_stock_context())

        for key, val in vars(record).items():
            if key not in _RECORD_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["error_message"] = str(exc)
            if isinstance(exc, StockKernelError):
                payload["error_code"] = exc.code
                payload["error"] = {
                    k: v for k, v in vars(exc).items() if not k.startswith("_")
                }
            else:
                payload["error_type"] = type(exc).__name__
                payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_value)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "stock_kernel"

_configured = False
_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """Logger under the stock_kernel namespace (``services.ledger`` etc)."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: TextIO | None = None,
) -> None:
    """Attach the JSON handler to the stock_kernel logger (first call wins)."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    root_logger = logging.getLogger(_LOGGER_PREFIX)
    root_logger.setLevel(level)
    root_logger.propagate = False
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StockLogFormatter())
    root_logger.addHandler(handler)


def reset_logging() -> None:
    """Detach handlers so the next configure_logging() applies. Tests only."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_LOGGER_PREFIX)
    logger.handlers.clear()
    logger.setLevel(logging.WARNING)
