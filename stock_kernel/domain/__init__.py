"""Pure domain layer: clock, DTOs, validation, stock projection."""

from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.dtos import (
    ProductDefaults,
    ProductInfo,
    ProductSpec,
    ReceiptLine,
    ReceiptResult,
    TransactionInfo,
)
from stock_kernel.domain.projection import (
    ProjectedStock,
    StockClassification,
    StockProjector,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "ProductDefaults",
    "ProductSpec",
    "ProductInfo",
    "TransactionInfo",
    "ReceiptLine",
    "ReceiptResult",
    "StockProjector",
    "StockClassification",
    "ProjectedStock",
]
