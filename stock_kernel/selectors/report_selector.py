"""
Module: stock_kernel.selectors.report_selector
Responsibility: Read-only dashboard, low-stock, stock-summary and
    reconciliation reports over the catalog and the ledger.
Architecture position: Kernel > Selectors.  Uses StockProjector for every
    derived figure so all reports apply one low-stock rule and one profit
    formula.

Invariants enforced:
    - Read-only: never mutates catalog or ledger state.
    - Each report reads the catalog in a single statement.  A product's
      quantities and its ledger entry commit together, so a report never
      observes one without the other.
    - Deterministic: rows follow catalog insertion order (position); sums are
      exact Decimals, quantized only in to_payload().
    - Archived products are excluded from dashboard, low-stock and summary
      reports but are still reconciled.

Failure modes:
    - ValidationError for a negative or non-integer low-stock threshold.
    - An empty catalog yields zero counts and empty lists, never an error.

Audit relevance:
    reconcile() replays every product's ledger from its opening quantity and
    reports any product whose stored quantities disagree.  An empty result
    means displayed quantities reconcile with the transaction history.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, NamedTuple
from uuid import UUID

from sqlalchemy import case, func, select

from stock_kernel.db.types import round_money
from stock_kernel.domain.dtos import ProductInfo
from stock_kernel.domain.projection import StockProjector
from stock_kernel.domain.validation import validate_threshold_param
from stock_kernel.logging_config import get_logger
from stock_kernel.models.product import Product
from stock_kernel.models.stock_transaction import StockTransaction, TransactionType
from stock_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.report")

ZERO = Decimal("0")


@dataclass(frozen=True)
class DashboardStats:
    """Headline counters for the dashboard."""

    total_products: int
    total_quantity: int
    low_stock: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "totalProducts": self.total_products,
            "totalQuantity": self.total_quantity,
            "lowStock": self.low_stock,
        }


@dataclass(frozen=True)
class StockSummaryRow:
    """One product's line in the stock summary report."""

    product_id: UUID
    name: str
    category: str
    initial_quantity: int
    remaining_quantity: int
    sold_quantity: int
    cost_price: Decimal
    selling_price: Decimal
    min_threshold: int
    max_threshold: int
    unit_profit: Decimal
    total_cost_value: Decimal
    total_sales_value: Decimal
    profit: Decimal
    is_low_stock: bool

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": str(self.product_id),
            "name": self.name,
            "category": self.category,
            "initialQuantity": self.initial_quantity,
            "remainingQuantity": self.remaining_quantity,
            "soldQuantity": self.sold_quantity,
            "costPrice": round_money(self.cost_price),
            "sellingPrice": round_money(self.selling_price),
            "minThreshold": self.min_threshold,
            "maxThreshold": self.max_threshold,
            "unitProfit": round_money(self.unit_profit),
            "totalCostValue": round_money(self.total_cost_value),
            "totalSalesValue": round_money(self.total_sales_value),
            "profit": round_money(self.profit),
            "isLowStock": self.is_low_stock,
        }


@dataclass(frozen=True)
class StockSummary:
    """Aggregate totals of the stock summary report."""

    total_items: int
    total_stock_value: Decimal
    total_sales_value: Decimal
    total_profit: Decimal
    low_stock_items: tuple[StockSummaryRow, ...]

    def to_payload(self) -> dict[str, Any]:
        return {
            "totalItems": self.total_items,
            "totalStockValue": round_money(self.total_stock_value),
            "totalSalesValue": round_money(self.total_sales_value),
            "totalProfit": round_money(self.total_profit),
            "lowStockItems": [row.to_payload() for row in self.low_stock_items],
        }


@dataclass(frozen=True)
class StockSummaryReport:
    rows: tuple[StockSummaryRow, ...]
    summary: StockSummary

    def to_payload(self) -> dict[str, Any]:
        return {
            "data": [row.to_payload() for row in self.rows],
            "summary": self.summary.to_payload(),
        }


@dataclass(frozen=True)
class ReconciliationDiscrepancy:
    """A product whose stored quantities disagree with its ledger replay."""

    product_id: UUID
    name: str
    stored_initial_quantity: int
    stored_remaining_quantity: int
    expected_initial_quantity: int
    expected_remaining_quantity: int
    entry_count: int


class _Movement(NamedTuple):
    transaction_type: TransactionType
    quantity: int


class ReportAggregator(BaseSelector[Product]):
    """
    Read-only reports over the catalog and ledger.

    Usage:
        reports = ReportAggregator(session)
        reports.dashboard_stats().to_payload()
        reports.low_stock_list(threshold=3)
        reports.stock_summary_report().to_payload()
        reports.reconcile()
    """

    def _active_products(self) -> list[Product]:
        return list(
            self.session.execute(
                select(Product)
                .where(Product.archived_at.is_(None))
                .order_by(Product.position)
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def dashboard_stats(self) -> DashboardStats:
        """Product count, total remaining quantity and low-stock count."""
        products = self._active_products()
        return DashboardStats(
            total_products=len(products),
            total_quantity=sum(p.remaining_quantity for p in products),
            low_stock=sum(1 for p in products if StockProjector.is_low_stock(p)),
        )

    def low_stock_list(self, threshold: int | str | None = None) -> list[ProductInfo]:
        """
        Products with remaining below their minimum threshold.

        Args:
            threshold: When given, replaces every product's own minimum.

        Raises:
            ValidationError: threshold is negative or not an integer.
        """
        limit = validate_threshold_param(threshold)
        return [
            ProductInfo.from_product(p)
            for p in self._active_products()
            if StockProjector.is_low_stock(p, limit)
        ]

    def stock_summary_report(self) -> StockSummaryReport:
        """Per-product valuation rows plus aggregate totals."""
        rows = []
        for product in self._active_products():
            c = StockProjector.classify(product)
            rows.append(
                StockSummaryRow(
                    product_id=product.id,
                    name=product.name,
                    category=product.category,
                    initial_quantity=product.initial_quantity,
                    remaining_quantity=c.remaining_quantity,
                    sold_quantity=c.sold_quantity,
                    cost_price=product.cost_price,
                    selling_price=product.selling_price,
                    min_threshold=product.min_threshold,
                    max_threshold=product.max_threshold,
                    unit_profit=c.unit_profit,
                    total_cost_value=c.total_cost_value,
                    total_sales_value=c.total_sales_value,
                    profit=c.profit,
                    is_low_stock=c.is_low_stock,
                )
            )

        summary = StockSummary(
            total_items=len(rows),
            total_stock_value=sum((r.total_cost_value for r in rows), ZERO),
            total_sales_value=sum((r.total_sales_value for r in rows), ZERO),
            total_profit=sum((r.profit for r in rows), ZERO),
            low_stock_items=tuple(r for r in rows if r.is_low_stock),
        )
        return StockSummaryReport(rows=tuple(rows), summary=summary)

    def reconcile(self) -> list[ReconciliationDiscrepancy]:
        """
        Compare every product's stored quantities with a replay of its ledger.

        One statement: products LEFT JOIN per-product movement totals.
        """
        tx = StockTransaction

        def total(ttype: TransactionType):
            return func.coalesce(
                func.sum(case((tx.transaction_type == ttype, tx.quantity), else_=0)),
                0,
            ).label(f"qty_{ttype.value}")

        movements = (
            select(
                tx.product_id.label("product_id"),
                func.count(tx.id).label("entry_count"),
                *(total(t) for t in TransactionType),
            )
            .group_by(tx.product_id)
            .subquery()
        )

        rows = self.session.execute(
            select(
                Product,
                movements.c.entry_count,
                *(movements.c[f"qty_{t.value}"] for t in TransactionType),
            )
            .outerjoin(movements, movements.c.product_id == Product.id)
            .order_by(Product.position)
            .execution_options(populate_existing=True)
        ).all()

        discrepancies = []
        for product, entry_count, *quantities in rows:
            expected = StockProjector.replay(
                product.opening_quantity,
                [
                    _Movement(t, int(q or 0))
                    for t, q in zip(TransactionType, quantities)
                ],
            )
            if (
                expected.initial_quantity != product.initial_quantity
                or expected.remaining_quantity != product.remaining_quantity
            ):
                discrepancies.append(
                    ReconciliationDiscrepancy(
                        product_id=product.id,
                        name=product.name,
                        stored_initial_quantity=product.initial_quantity,
                        stored_remaining_quantity=product.remaining_quantity,
                        expected_initial_quantity=expected.initial_quantity,
                        expected_remaining_quantity=expected.remaining_quantity,
                        entry_count=entry_count or 0,
                    )
                )

        if discrepancies:
            logger.warning(
                "ledger_reconciliation_failed",
                extra={
                    "discrepancies": len(discrepancies),
                    "product_ids": [str(d.product_id) for d in discrepancies],
                },
            )
        else:
            logger.info("ledger_reconciled", extra={"products": len(rows)})
        return discrepancies
