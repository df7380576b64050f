"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The stock ledger is append-only.  Displayed quantities and valuation reports
must always reconcile with the transaction history, which only holds if no
ledger entry is ever edited or removed.  Corrections are made by appending a
compensating entry (a ``return`` for a sale, a ``restock_reversal`` for a
restock) -- never by mutation or deletion.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_flush]  --> _check_product_deletion_before_flush() --> ProductReferencedError
         |
         v
    [before_update] --> _check_*_immutability() ----------------> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_stock_transaction_delete() ------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | What is frozen                          | Why
------------------|-----------------------------------------|-------------------------------
StockTransaction  | Every column, from creation             | The ledger is the audit trail
Product           | opening_quantity, position              | Replay baseline, catalog order
Product (delete)  | Rows referenced by ledger entries       | Ledger referential integrity

Bulk ``delete()`` / ``update()`` statements bypass mapper events.  The test
suite relies on that to wipe tables between tests; application code never
issues them.

===============================================================================
USAGE
===============================================================================

Registered automatically by ``init_engine_from_url()``:

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent
"""

from sqlalchemy import event, func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from stock_kernel.exceptions import ImmutabilityViolationError, ProductReferencedError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Product columns that may never change once the row exists
PRODUCT_FROZEN_FIELDS = frozenset({"opening_quantity", "position"})


def _check_product_deletion_before_flush(session, flush_context, instances):
    """
    Refuse to delete products that ledger entries still reference.

    Runs in SessionEvents.before_flush, before the flush plan is finalized;
    mapper-level before_delete fires too late to keep the row.
    """
    from stock_kernel.models.product import Product
    from stock_kernel.models.stock_transaction import StockTransaction

    for obj in list(session.deleted):
        if not isinstance(obj, Product):
            continue

        with session.no_autoflush:
            count = session.execute(
                select(func.count(StockTransaction.id)).where(
                    StockTransaction.product_id == obj.id
                )
            ).scalar_one()

        if count:
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "Product",
                    "entity_id": str(obj.id),
                    "operation": "DELETE",
                    "reason": "product_has_ledger_entries",
                },
            )
            raise ProductReferencedError(str(obj.id), count)


def _check_stock_transaction_immutability(mapper, connection, target):
    """Prevent any updates to ledger entries."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "StockTransaction",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="StockTransaction",
        entity_id=str(target.id),
        reason="Ledger entries are immutable; append a compensating entry instead",
    )


def _check_stock_transaction_delete(mapper, connection, target):
    """Prevent deletion of ledger entries."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "StockTransaction",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="StockTransaction",
        entity_id=str(target.id),
        reason="Ledger entries cannot be deleted",
    )


def _check_product_immutability(mapper, connection, target):
    """Prevent changes to the frozen product columns.

    history.deleted holds the value loaded from the database; a non-empty
    deleted list on a frozen field means an UPDATE is trying to change it.
    """
    for field in PRODUCT_FROZEN_FIELDS:
        history = get_history(target, field)
        if history.deleted:
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "Product",
                    "entity_id": str(target.id),
                    "operation": "UPDATE",
                    "field": field,
                },
            )
            raise ImmutabilityViolationError(
                entity_type="Product",
                entity_id=str(target.id),
                reason=f"{field} cannot be changed after creation",
            )


def _listeners():
    from stock_kernel.models.product import Product
    from stock_kernel.models.stock_transaction import StockTransaction

    return (
        (Session, "before_flush", _check_product_deletion_before_flush),
        (StockTransaction, "before_update", _check_stock_transaction_immutability),
        (StockTransaction, "before_delete", _check_stock_transaction_delete),
        (Product, "before_update", _check_product_immutability),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
