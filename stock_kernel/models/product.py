"""
Module: stock_kernel.models.product
Responsibility: ORM persistence for catalog products and their current stock
    state (initial / remaining quantities, thresholds, prices).
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    P1 -- 0 <= remaining_quantity <= initial_quantity (CHECK constraints).
    P2 -- 0 <= min_threshold <= max_threshold (CHECK constraints).
    P3 -- cost_price >= 0 and selling_price >= 0 (service layer; prices are
          stored as text on SQLite, so a CHECK would compare strings).
    P4 -- opening_quantity and position never change after creation
          (db/immutability.py).

Failure modes:
    - IntegrityError if a write bypasses the catalog and violates P1/P2.

Audit relevance:
    remaining_quantity is maintained incrementally by TransactionLedger in the
    same database transaction as the ledger entry that moved it, so it can be
    replayed from opening_quantity plus the ledger at any time.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase


class Product(TrackedBase):
    """
    A stocked item.

    Contract:
        Quantity columns are only written by ProductCatalog.create() and by
        TransactionLedger while it holds the product's lock.  sold_quantity is
        never stored.

    Guarantees:
        - position orders the catalog by insertion.
        - archived_at is the tombstone; archived rows stay for the ledger.
    """

    __tablename__ = "products"

    __table_args__ = (
        CheckConstraint("initial_quantity >= 0", name="ck_product_initial_nonneg"),
        CheckConstraint("remaining_quantity >= 0", name="ck_product_remaining_nonneg"),
        CheckConstraint(
            "remaining_quantity <= initial_quantity",
            name="ck_product_remaining_le_initial",
        ),
        CheckConstraint("min_threshold >= 0", name="ck_product_min_nonneg"),
        CheckConstraint(
            "min_threshold <= max_threshold", name="ck_product_threshold_order"
        ),
        Index("idx_product_position", "position", unique=True),
        Index("idx_product_name", "name"),
    )

    # Catalog insertion order (allocated from the "product" sequence)
    position: Mapped[int] = mapped_column(BigInteger, nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    category: Mapped[str] = mapped_column(String(100), nullable=False)

    # INVARIANT P4: replay baseline, frozen at creation
    opening_quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    initial_quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # INVARIANT P1
    remaining_quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    cost_price: Mapped[Decimal] = mapped_column(nullable=False)

    selling_price: Mapped[Decimal] = mapped_column(nullable=False)

    # INVARIANT P2
    min_threshold: Mapped[int] = mapped_column(BigInteger, nullable=False)

    max_threshold: Mapped[int] = mapped_column(BigInteger, nullable=False)

    archived_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def sold_quantity(self) -> int:
        """Units sold since the counting baseline."""
        return self.initial_quantity - self.remaining_quantity

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    def __repr__(self) -> str:
        return (
            f"<Product {self.id}: {self.name!r} "
            f"remaining={self.remaining_quantity}/{self.initial_quantity}>"
        )
