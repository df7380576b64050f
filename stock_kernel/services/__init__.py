"""Services for the stock kernel (write side)."""

from stock_kernel.services.catalog_service import ProductCatalog
from stock_kernel.services.ledger_service import TransactionLedger
from stock_kernel.services.locks import ProductLockRegistry, default_lock_registry
from stock_kernel.services.sequence_service import SequenceService

__all__ = [
    "ProductCatalog",
    "ProductLockRegistry",
    "SequenceService",
    "TransactionLedger",
    "default_lock_registry",
]
