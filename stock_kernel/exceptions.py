"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the HTTP layer, the CLI, tests) must be able to tell a malformed
request from a business-rule conflict without parsing message strings:

  - Every error has a TYPED exception class (catch by type, not message)
  - Every exception has a CODE attribute (machine-readable, API-safe)
  - Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        ledger.append(product_id, "sale", 5)
    except Exception as e:
        if "insufficient" in str(e):  # FRAGILE - message might change
            ...

Example - RIGHT way:
    try:
        ledger.append(product_id, "sale", 5)
    except InsufficientStockError as e:
        api_response(409, code=e.code, available=e.available)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- ProductNotFoundError
    |   +-- TransactionNotFoundError
    |
    +-- InsufficientStockError
    |
    +-- ConflictError
    |   +-- ProductReferencedError
    |   +-- ProductArchivedError
    |   +-- TransactionAlreadyReversedError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                          | When Raised                           | HTTP
------------------------------|---------------------------------------|-----
VALIDATION_ERROR              | Malformed or constraint-violating     | 400
PRODUCT_NOT_FOUND             | Product id doesn't exist              | 404
TRANSACTION_NOT_FOUND         | Ledger entry id doesn't exist         | 404
INSUFFICIENT_STOCK            | Sale exceeds remaining quantity       | 409
PRODUCT_REFERENCED            | Delete of a product with history      | 409
PRODUCT_ARCHIVED              | Stock movement on a tombstoned item   | 409
TRANSACTION_ALREADY_REVERSED  | Second compensating entry             | 409
IMMUTABILITY_VIOLATION        | UPDATE/DELETE of a ledger entry       | 500

InsufficientStockError is deliberately NOT a ValidationError: the request is
well-formed, it conflicts with current stock.
"""


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a `code` class attribute
    for machine-readable error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


class ValidationError(StockKernelError):
    """Input is malformed or violates a product/ledger constraint."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


# Lookup failures


class NotFoundError(StockKernelError):
    """Base exception for missing products or ledger entries."""

    code: str = "NOT_FOUND"


class ProductNotFoundError(NotFoundError):
    """Product with given ID was not found."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class TransactionNotFoundError(NotFoundError):
    """Ledger entry with given ID was not found."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


# Stock


class InsufficientStockError(StockKernelError):
    """
    Requested quantity exceeds the product's remaining stock.

    No partial fulfillment: the whole request is rejected and the product's
    quantities are left untouched.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


# Conflicts


class ConflictError(StockKernelError):
    """Base exception for operations that conflict with existing state."""

    code: str = "CONFLICT"


class ProductReferencedError(ConflictError):
    """Product cannot be deleted because ledger entries reference it."""

    code: str = "PRODUCT_REFERENCED"

    def __init__(self, product_id: str, transaction_count: int):
        self.product_id = product_id
        self.transaction_count = transaction_count
        super().__init__(
            f"Product {product_id} is referenced by {transaction_count} "
            "ledger entries; archive it instead"
        )


class ProductArchivedError(ConflictError):
    """Stock movement attempted against an archived product."""

    code: str = "PRODUCT_ARCHIVED"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} is archived")


class TransactionAlreadyReversedError(ConflictError):
    """Ledger entry already has a compensating entry."""

    code: str = "TRANSACTION_ALREADY_REVERSED"

    def __init__(self, transaction_id: str, reversal_id: str):
        self.transaction_id = transaction_id
        self.reversal_id = reversal_id
        super().__init__(
            f"Transaction {transaction_id} already reversed by {reversal_id}"
        )


# Immutability


class ImmutabilityViolationError(StockKernelError):
    """
    Attempted to modify or delete an immutable record.

    Ledger entries are append-only; corrections are compensating entries.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
