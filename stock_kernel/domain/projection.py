"""
StockProjector -- the single source of stock-derived figures.

Responsibility:
    Centralizes the low-stock predicate and the unit-economics derivation so
    that the dashboard stats, the low-stock page and the stock report all
    apply an identical rule.  Also folds ledger history into the quantities a
    product should hold, which is how reconciliation checks the catalog.

Architecture position:
    Kernel > Domain -- pure functional core.  No session, no clock, no I/O.
    Accepts anything shaped like a product (ORM ``Product`` or ``ProductInfo``).

Profit formula:
    profit = sold x selling_price - remaining x cost_price

    This mixes revenue on units already sold with the cost of units still
    held; it is NOT cost-of-goods-sold profit (which would use sold x cost).
    The dashboard has always reported this figure, so it is kept as is.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from stock_kernel.models.stock_transaction import TransactionType


class StockedProduct(Protocol):
    initial_quantity: int
    remaining_quantity: int
    cost_price: Decimal
    selling_price: Decimal
    min_threshold: int


class LedgerMovement(Protocol):
    transaction_type: TransactionType
    quantity: int


@dataclass(frozen=True)
class StockClassification:
    """Stock state and unit economics of one product."""

    remaining_quantity: int
    sold_quantity: int
    is_low_stock: bool
    unit_profit: Decimal
    total_cost_value: Decimal
    total_sales_value: Decimal
    profit: Decimal


@dataclass(frozen=True)
class ProjectedStock:
    """Quantities implied by a product's opening quantity plus its ledger."""

    initial_quantity: int
    remaining_quantity: int

    @property
    def sold_quantity(self) -> int:
        return self.initial_quantity - self.remaining_quantity


class StockProjector:
    """Pure derivations over product stock state."""

    @staticmethod
    def is_low_stock(product: StockedProduct, threshold: int | None = None) -> bool:
        """remaining < threshold, where threshold defaults to the product's own minimum."""
        limit = product.min_threshold if threshold is None else threshold
        return product.remaining_quantity < limit

    @classmethod
    def classify(cls, product: StockedProduct) -> StockClassification:
        remaining = product.remaining_quantity
        sold = product.initial_quantity - remaining
        total_cost_value = product.cost_price * remaining
        total_sales_value = product.selling_price * sold
        return StockClassification(
            remaining_quantity=remaining,
            sold_quantity=sold,
            is_low_stock=cls.is_low_stock(product),
            unit_profit=product.selling_price - product.cost_price,
            total_cost_value=total_cost_value,
            total_sales_value=total_sales_value,
            profit=total_sales_value - total_cost_value,
        )

    @staticmethod
    def deltas(transaction_type: TransactionType, quantity: int) -> tuple[int, int]:
        """(initial, remaining) change caused by one ledger movement.

        ProductCatalog.apply_movement writes these to the product row and
        replay() folds them over the opening quantity, so live stock and
        reconciliation follow the same rule.
        """
        if transaction_type is TransactionType.SALE:
            return 0, -quantity
        if transaction_type is TransactionType.RETURN:
            return 0, quantity
        if transaction_type is TransactionType.RESTOCK:
            return quantity, quantity
        if transaction_type is TransactionType.RESTOCK_REVERSAL:
            return -quantity, -quantity
        raise ValueError(f"Unhandled transaction type: {transaction_type!r}")

    @classmethod
    def apply(
        cls,
        initial_quantity: int,
        remaining_quantity: int,
        transaction_type: TransactionType,
        quantity: int,
    ) -> ProjectedStock:
        """Effect of one ledger movement on (initial, remaining); no bounds check."""
        d_initial, d_remaining = cls.deltas(transaction_type, quantity)
        return ProjectedStock(
            initial_quantity + d_initial, remaining_quantity + d_remaining
        )

    @classmethod
    def replay(
        cls,
        opening_quantity: int,
        entries: Iterable[LedgerMovement],
    ) -> ProjectedStock:
        """Fold ledger entries (oldest first) over the opening quantity."""
        state = ProjectedStock(opening_quantity, opening_quantity)
        for entry in entries:
            state = cls.apply(
                state.initial_quantity,
                state.remaining_quantity,
                TransactionType(entry.transaction_type),
                entry.quantity,
            )
        return state
