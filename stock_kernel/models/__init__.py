"""
ORM models for the stock kernel.

Importing this package registers every table on Base.metadata.
"""

from stock_kernel.models.product import Product
from stock_kernel.models.stock_transaction import (
    COMPENSATING_TYPES,
    StockTransaction,
    TransactionType,
)

__all__ = [
    "Product",
    "StockTransaction",
    "TransactionType",
    "COMPENSATING_TYPES",
]
