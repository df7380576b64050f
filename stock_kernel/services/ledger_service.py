"""
TransactionLedger -- append-only record of stock-affecting events.

Responsibility:
    Records sales and restocks, multi-line sale receipts, and compensating
    entries.  Every append validates against the catalog, moves the product's
    quantities and writes the ledger entry in ONE database transaction, so a
    product's stored quantities always equal its opening quantity folded with
    its entries.

Architecture position:
    Kernel > Services.  Extends BaseService.  Mutates products only through
    ProductCatalog's ledger-facing helpers (load_for_update, apply_movement).

Invariants enforced:
    - quantity is a positive int; no partial fulfillment.
    - A sale never drives remaining_quantity below zero, even against
      another process: the decrement is a conditional UPDATE.
    - seq strictly increases in commit order of each product's entries
      (the product row stays write-locked from its UPDATE until commit).
    - Entries are immutable; corrections are compensating entries, at most
      one per original entry.

Failure modes:
    - ValidationError: bad quantity, unknown type, compensating type passed
      to append(), reversing a compensating entry, bad limit.
    - ProductNotFoundError / TransactionNotFoundError.
    - InsufficientStockError: remaining < requested (state unchanged).
    - ProductArchivedError: movement on a tombstoned product.
    - TransactionAlreadyReversedError: second compensating entry.

Audit relevance:
    Structured log events: stock_transaction_appended, receipt_recorded,
    stock_transaction_reversed, insufficient_stock.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import ReceiptLine, ReceiptResult, TransactionInfo
from stock_kernel.domain.validation import (
    parse_receipt_payload,
    validate_quantity,
    validate_transaction_type,
)
from stock_kernel.exceptions import (
    InsufficientStockError,
    ProductArchivedError,
    TransactionAlreadyReversedError,
    TransactionNotFoundError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger, stock_context
from stock_kernel.models.product import Product
from stock_kernel.models.stock_transaction import (
    COMPENSATING_TYPES,
    StockTransaction,
    TransactionType,
)
from stock_kernel.services.base import BaseService
from stock_kernel.services.catalog_service import ProductCatalog, coerce_product_id
from stock_kernel.services.locks import ProductLockRegistry
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger")

DEFAULT_RECENT_LIMIT = 10
MAX_RECENT_LIMIT = 100


def transaction_to_dto(entry: StockTransaction, product_name: str) -> TransactionInfo:
    return TransactionInfo(
        id=entry.id,
        seq=entry.seq,
        product_id=entry.product_id,
        product_name=product_name,
        transaction_type=entry.transaction_type,
        quantity=entry.quantity,
        unit_price=entry.unit_price,
        created_at=entry.created_at,
        receipt_id=entry.receipt_id,
        reversal_of_id=entry.reversal_of_id,
    )


def _coerce_transaction_id(transaction_id: UUID | str) -> UUID:
    if isinstance(transaction_id, UUID):
        return transaction_id
    try:
        return UUID(str(transaction_id))
    except ValueError:
        raise TransactionNotFoundError(str(transaction_id)) from None


class TransactionLedger(BaseService[StockTransaction]):
    """
    Service for recording stock movements.

    Contract:
        Each write method holds the affected products' locks from before the
        product rows are read until after commit, and returns DTOs built
        inside the transaction.

    Usage:
        ledger = TransactionLedger(session, clock=clock)
        entry = ledger.append(product_id, "sale", 3)
        receipt = ledger.record_receipt({"items": [...]})
        ledger.reverse(entry.id)
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        locks: ProductLockRegistry | None = None,
        catalog: ProductCatalog | None = None,
        recent_limit: int = DEFAULT_RECENT_LIMIT,
        max_recent_limit: int = MAX_RECENT_LIMIT,
    ):
        super().__init__(session, clock)
        if catalog is None:
            catalog = ProductCatalog(session, clock=self.clock, locks=locks)
        self.catalog = catalog
        self.locks = locks or catalog.locks
        self.recent_limit = recent_limit
        self.max_recent_limit = max_recent_limit
        self._sequence = SequenceService(session)

    # =========================================================================
    # Writes
    # =========================================================================

    def append(
        self,
        product_id: UUID | str,
        transaction_type: TransactionType | str,
        quantity: int,
    ) -> TransactionInfo:
        """
        Record a sale or restock.

        Args:
            product_id: Product to move.
            transaction_type: ``sale`` or ``restock``.  Compensating types
                are only produced by reverse().
            quantity: Positive number of units.

        Returns:
            The appended entry.

        Raises:
            ValidationError: Bad quantity or type.
            ProductNotFoundError: Unknown product.
            ProductArchivedError: Product is archived.
            InsufficientStockError: Sale exceeds remaining stock.
        """
        ttype = validate_transaction_type(transaction_type)
        qty = validate_quantity(quantity, "quantity", positive=True)
        if ttype.is_compensating:
            raise ValidationError(
                f"{ttype.value} entries are recorded by reverse(), not append()",
                field="type",
            )
        pid = coerce_product_id(product_id)

        with stock_context(product_id=str(pid)):
            with self.locks.hold(pid), self._transaction():
                product = self._load_movable(pid)
                if ttype is TransactionType.SALE:
                    self._check_available(product, qty)
                entry = self._record(product, ttype, qty)
                info = transaction_to_dto(entry, product.name)
                remaining = product.remaining_quantity

            logger.info(
                "stock_transaction_appended",
                extra={
                    "transaction_id": str(info.id),
                    "seq": info.seq,
                    "transaction_type": ttype.value,
                    "quantity": qty,
                    "remaining_quantity": remaining,
                },
            )
        return info

    def record_receipt(
        self,
        lines: Mapping[str, Any] | Iterable[ReceiptLine],
    ) -> ReceiptResult:
        """
        Record a sale receipt of one or more lines, all or nothing.

        Lines naming the same product are summed for the stock check.  Locks
        are taken in sorted product-id order.

        Args:
            lines: A receipt payload (``{productId, quantity}`` or
                ``{items: [...]}``) or ReceiptLine objects.

        Raises:
            ValidationError: Empty receipt or bad line.
            ProductNotFoundError / ProductArchivedError /
            InsufficientStockError: for any line; nothing is recorded.
        """
        if isinstance(lines, Mapping):
            lines = parse_receipt_payload(lines)
        else:
            lines = [
                ReceiptLine(
                    product_id=coerce_product_id(line.product_id),
                    quantity=validate_quantity(line.quantity, "quantity", positive=True),
                )
                for line in lines
            ]
        if not lines:
            raise ValidationError("A receipt needs at least one line", field="items")

        totals: dict[UUID, int] = defaultdict(int)
        for line in lines:
            totals[line.product_id] += line.quantity

        receipt_id = uuid4()
        with stock_context(receipt_id=str(receipt_id)):
            with self.locks.hold(*totals), self._transaction():
                products = {
                    pid: self._load_movable(pid) for pid in sorted(totals, key=str)
                }
                for pid, total in totals.items():
                    self._check_available(products[pid], total)

                infos = []
                for line in lines:
                    product = products[line.product_id]
                    entry = self._record(
                        product,
                        TransactionType.SALE,
                        line.quantity,
                        receipt_id=receipt_id,
                    )
                    infos.append(transaction_to_dto(entry, product.name))

            result = ReceiptResult(receipt_id=receipt_id, transactions=tuple(infos))
            logger.info(
                "receipt_recorded",
                extra={"lines": len(infos), "total": str(result.total)},
            )
        return result

    def reverse(self, transaction_id: UUID | str) -> TransactionInfo:
        """
        Append the compensating entry for a sale or restock.

        A sale is compensated by a ``return`` at the sale's unit price; a
        restock by a ``restock_reversal``, which needs the units still on hand.

        Raises:
            TransactionNotFoundError: Unknown entry.
            ValidationError: The entry is itself compensating.
            TransactionAlreadyReversedError: Already compensated.
            InsufficientStockError: Restock reversal exceeds remaining stock.
            ProductArchivedError: Product is archived.
        """
        tid = _coerce_transaction_id(transaction_id)
        original = self.session.get(StockTransaction, tid)
        if original is None:
            raise TransactionNotFoundError(str(tid))
        if original.transaction_type.is_compensating:
            raise ValidationError(
                f"{original.transaction_type.value} entries cannot be reversed",
                field="transaction_id",
            )
        compensating_type = COMPENSATING_TYPES[original.transaction_type]

        with stock_context(
            product_id=str(original.product_id), transaction_id=str(tid)
        ):
            try:
                with self.locks.hold(original.product_id), self._transaction():
                    existing = self._reversal_id(tid)
                    if existing is not None:
                        raise TransactionAlreadyReversedError(str(tid), str(existing))

                    product = self._load_movable(original.product_id)
                    entry = self._record(
                        product,
                        compensating_type,
                        original.quantity,
                        unit_price=original.unit_price,
                        reversal_of_id=tid,
                    )
                    info = transaction_to_dto(entry, product.name)
            except IntegrityError:
                # Another process committed its reversal first
                existing = self._reversal_id(tid)
                if existing is None:
                    raise
                raise TransactionAlreadyReversedError(str(tid), str(existing)) from None

            logger.info(
                "stock_transaction_reversed",
                extra={
                    "reversal_id": str(info.id),
                    "transaction_type": compensating_type.value,
                    "quantity": info.quantity,
                },
            )
        return info

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, transaction_id: UUID | str) -> TransactionInfo:
        tid = _coerce_transaction_id(transaction_id)
        row = self.session.execute(
            select(StockTransaction, Product.name)
            .join(Product, Product.id == StockTransaction.product_id)
            .where(StockTransaction.id == tid)
        ).one_or_none()
        if row is None:
            raise TransactionNotFoundError(str(tid))
        return transaction_to_dto(*row)

    def list_recent(self, limit: int | None = None) -> list[TransactionInfo]:
        """
        Most recent entries, newest first.

        ``limit`` defaults to the configured recent limit and is capped at
        the configured maximum.
        """
        if limit is None:
            limit = self.recent_limit
        limit = min(validate_quantity(limit, "limit", positive=True), self.max_recent_limit)
        rows = self.session.execute(
            select(StockTransaction, Product.name)
            .join(Product, Product.id == StockTransaction.product_id)
            .order_by(StockTransaction.seq.desc())
            .limit(limit)
        ).all()
        return [transaction_to_dto(entry, name) for entry, name in rows]

    def history(self, product_id: UUID | str) -> list[TransactionInfo]:
        """A product's entries, oldest first (archived products included)."""
        product = self.catalog.get(product_id)
        entries = self.session.execute(
            select(StockTransaction)
            .where(StockTransaction.product_id == product.id)
            .order_by(StockTransaction.seq)
        ).scalars()
        return [transaction_to_dto(entry, product.name) for entry in entries]

    # =========================================================================
    # Internals (caller holds the lock and the transaction)
    # =========================================================================

    def _reversal_id(self, transaction_id: UUID) -> UUID | None:
        return self.session.execute(
            select(StockTransaction.id).where(
                StockTransaction.reversal_of_id == transaction_id
            )
        ).scalar_one_or_none()

    def _load_movable(self, product_id: UUID) -> Product:
        product = self.catalog.load_for_update(product_id)
        if product.archived_at is not None:
            logger.warning(
                "movement_on_archived_product",
                extra={"product_id": str(product_id)},
            )
            raise ProductArchivedError(str(product_id))
        return product

    def _check_available(self, product: Product, requested: int) -> None:
        if product.remaining_quantity < requested:
            logger.warning(
                "insufficient_stock",
                extra={
                    "product_id": str(product.id),
                    "requested": requested,
                    "available": product.remaining_quantity,
                },
            )
            raise InsufficientStockError(
                str(product.id), requested, product.remaining_quantity
            )

    def _record(
        self,
        product: Product,
        transaction_type: TransactionType,
        quantity: int,
        *,
        unit_price: Decimal | None = None,
        receipt_id: UUID | None = None,
        reversal_of_id: UUID | None = None,
    ) -> StockTransaction:
        now = self.clock.now()
        self.catalog.apply_movement(product, transaction_type, quantity, at=now)
        if unit_price is None:
            unit_price = (
                product.selling_price
                if transaction_type in (TransactionType.SALE, TransactionType.RETURN)
                else product.cost_price
            )

        entry = StockTransaction(
            seq=self._sequence.next_value(SequenceService.STOCK_TRANSACTION),
            product_id=product.id,
            transaction_type=transaction_type,
            quantity=quantity,
            unit_price=unit_price,
            created_at=now,
            receipt_id=receipt_id,
            reversal_of_id=reversal_of_id,
        )
        self.session.add(entry)
        self.session.flush()
        return entry
