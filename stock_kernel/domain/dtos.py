"""
Data Transfer Objects for the stock kernel.

Services and selectors return these frozen dataclasses, never ORM instances,
so callers cannot mutate persistent state by accident.  ``to_payload()``
renders the camelCase shapes the REST layer sends to the dashboard, with
money quantized to two decimal places.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from stock_kernel.db.types import round_money
from stock_kernel.models.stock_transaction import TransactionType


@dataclass(frozen=True)
class ProductDefaults:
    """Values substituted for fields a create payload leaves out."""

    category: str = "General"
    cost_price: Decimal = Decimal("0")
    selling_price: Decimal = Decimal("0")
    min_threshold: int = 5
    max_threshold: int = 100


@dataclass(frozen=True)
class ProductSpec:
    """Validated input for ProductCatalog.create().

    Build one with ``parse_product_payload()`` from a request body, or
    directly; the catalog re-validates either way.
    """

    name: str
    initial_quantity: int
    cost_price: Decimal = Decimal("0")
    selling_price: Decimal = Decimal("0")
    min_threshold: int = 5
    max_threshold: int = 100
    category: str = "General"

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        defaults: ProductDefaults | None = None,
    ) -> ProductSpec:
        from stock_kernel.domain.validation import parse_product_payload

        return parse_product_payload(payload, defaults)


@dataclass(frozen=True)
class ProductInfo:
    """Immutable snapshot of a catalog product."""

    id: UUID
    position: int
    name: str
    category: str
    initial_quantity: int
    remaining_quantity: int
    cost_price: Decimal
    selling_price: Decimal
    min_threshold: int
    max_threshold: int
    archived_at: datetime | None = None

    @classmethod
    def from_product(cls, product: Any) -> ProductInfo:
        """Snapshot an ORM Product (or anything with the same attributes)."""
        return cls(
            id=product.id,
            position=product.position,
            name=product.name,
            category=product.category,
            initial_quantity=product.initial_quantity,
            remaining_quantity=product.remaining_quantity,
            cost_price=product.cost_price,
            selling_price=product.selling_price,
            min_threshold=product.min_threshold,
            max_threshold=product.max_threshold,
            archived_at=product.archived_at,
        )

    @property
    def sold_quantity(self) -> int:
        return self.initial_quantity - self.remaining_quantity

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "category": self.category,
            "initialQuantity": self.initial_quantity,
            "remainingQuantity": self.remaining_quantity,
            "soldQuantity": self.sold_quantity,
            "costPrice": round_money(self.cost_price),
            "sellingPrice": round_money(self.selling_price),
            "minThreshold": self.min_threshold,
            "maxThreshold": self.max_threshold,
        }


@dataclass(frozen=True)
class TransactionInfo:
    """Immutable view of a ledger entry.

    product_name is resolved from the catalog when the entry is read, so a
    renamed product shows its current name.
    """

    id: UUID
    seq: int
    product_id: UUID
    product_name: str
    transaction_type: TransactionType
    quantity: int
    unit_price: Decimal
    created_at: datetime
    receipt_id: UUID | None = None
    reversal_of_id: UUID | None = None

    @property
    def amount(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "seq": self.seq,
            "productId": str(self.product_id),
            "productName": self.product_name,
            "type": self.transaction_type.value,
            "quantity": self.quantity,
            "unitPrice": round_money(self.unit_price),
            "amount": round_money(self.amount),
            "createdAt": self.created_at.isoformat(),
            "receiptId": str(self.receipt_id) if self.receipt_id else None,
            "reversalOfId": str(self.reversal_of_id) if self.reversal_of_id else None,
        }


@dataclass(frozen=True)
class ReceiptLine:
    """One line of a sale receipt."""

    product_id: UUID
    quantity: int


@dataclass(frozen=True)
class ReceiptResult:
    """Outcome of TransactionLedger.record_receipt()."""

    receipt_id: UUID
    transactions: tuple[TransactionInfo, ...] = field(default_factory=tuple)

    @property
    def total(self) -> Decimal:
        """Receipt total: sum of quantity x selling price over the lines."""
        return sum((t.amount for t in self.transactions), Decimal("0"))

    def to_payload(self) -> dict[str, Any]:
        return {
            "receiptId": str(self.receipt_id),
            "items": [t.to_payload() for t in self.transactions],
            "total": round_money(self.total),
        }
