"""
Module: stock_kernel.models.stock_transaction
Responsibility: ORM persistence for ledger entries -- the append-only record
    of every stock-affecting event (sales, restocks and their compensating
    entries).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    L1 -- quantity > 0 (CHECK constraint).
    L2 -- seq is unique and strictly increasing (SequenceService + UNIQUE).
    L3 -- Immutable from creation (db/immutability.py).
    L4 -- A given entry is compensated at most once (UNIQUE reversal_of_id).

Audit relevance:
    The product's stored quantities must always equal its opening quantity
    folded with these entries; ReportAggregator.reconcile() checks exactly
    that.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString


class TransactionType(str, Enum):
    """Kind of stock movement.

    SALE and RESTOCK are recorded directly; RETURN and RESTOCK_REVERSAL only
    ever appear as compensating entries.
    """

    SALE = "sale"
    RESTOCK = "restock"
    RETURN = "return"
    RESTOCK_REVERSAL = "restock_reversal"

    @property
    def is_compensating(self) -> bool:
        return self in (TransactionType.RETURN, TransactionType.RESTOCK_REVERSAL)


# Entry type -> type of the entry that compensates it
COMPENSATING_TYPES: dict[TransactionType, TransactionType] = {
    TransactionType.SALE: TransactionType.RETURN,
    TransactionType.RESTOCK: TransactionType.RESTOCK_REVERSAL,
}


class StockTransaction(Base):
    """
    One immutable ledger entry.

    Contract:
        Written once by TransactionLedger, never updated or deleted.
        product_id is a non-owning reference; the catalog owns the product.

    Guarantees:
        - seq orders the ledger globally (newest = highest).
        - unit_price captures the price in effect at append time (selling
          price for sales/returns, cost price for restocks) so receipts can
          be totalled without consulting the current catalog.
    """

    __tablename__ = "stock_transactions"

    __table_args__ = (
        UniqueConstraint("seq", name="uq_stock_transaction_seq"),
        UniqueConstraint("reversal_of_id", name="uq_stock_transaction_reversal"),
        CheckConstraint("quantity > 0", name="ck_stock_transaction_qty_positive"),
        Index("idx_stock_transaction_product", "product_id", "seq"),
        Index("idx_stock_transaction_receipt", "receipt_id"),
    )

    # INVARIANT L2: global ledger order
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    transaction_type: Mapped[TransactionType] = mapped_column(
        SAEnum(
            TransactionType,
            native_enum=False,
            length=20,
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
    )

    # INVARIANT L1
    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    # Lines of one multi-line receipt share a receipt_id
    receipt_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    # INVARIANT L4: the entry this one compensates
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("stock_transactions.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<StockTransaction #{self.seq}: {self.transaction_type} "
            f"{self.quantity} of {self.product_id}>"
        )
