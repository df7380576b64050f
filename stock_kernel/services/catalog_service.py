"""
ProductCatalog -- owns product definitions and current stock state.

Responsibility:
    Create, edit, restock, list, delete and archive products.  Metadata
    (name, category, prices, thresholds) is edited here; quantities only move
    through the ledger, so ``restock()`` is routed through TransactionLedger
    and a ``restock`` entry is always recorded.

Architecture position:
    Kernel > Services.  Extends BaseService; each public write method owns
    its transaction.  TransactionLedger calls the ``load_for_update`` /
    ``apply_movement`` helpers inside its own transaction while it holds the
    product's lock.

Invariants enforced:
    - 0 <= remaining_quantity <= initial_quantity, sold = initial - remaining.
      Quantity moves are single conditional UPDATEs, so they hold across
      processes sharing the database, not only across threads.
    - min_threshold <= max_threshold; prices and quantities non-negative.
    - New products start full: remaining = initial, sold = 0.
    - Products with ledger history are never hard-deleted (tombstone instead).

Failure modes:
    - ValidationError on constraint violations, unknown fields, or an attempt
      to set a quantity field through update().
    - ProductNotFoundError for unknown (or malformed) ids.
    - ProductReferencedError when deleting a product that has ledger entries.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import ProductDefaults, ProductInfo, ProductSpec
from stock_kernel.domain.projection import StockProjector
from stock_kernel.domain.validation import (
    MUTABLE_FIELDS,
    QUANTITY_FIELDS,
    parse_product_patch,
    parse_product_payload,
    validate_product_spec,
    validate_quantity,
)
from stock_kernel.exceptions import (
    InsufficientStockError,
    ProductNotFoundError,
    ProductReferencedError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger, stock_context
from stock_kernel.models.product import Product
from stock_kernel.models.stock_transaction import StockTransaction, TransactionType
from stock_kernel.services.base import BaseService
from stock_kernel.services.locks import ProductLockRegistry, default_lock_registry
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.catalog")


def coerce_product_id(product_id: UUID | str) -> UUID:
    """Parse a product id; a malformed id names no product."""
    if isinstance(product_id, UUID):
        return product_id
    try:
        return UUID(str(product_id))
    except ValueError:
        raise ProductNotFoundError(str(product_id)) from None


class ProductCatalog(BaseService[Product]):
    """
    Service for managing catalog products.

    All public methods return ProductInfo DTOs, not ORM Product entities.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        defaults: ProductDefaults | None = None,
        locks: ProductLockRegistry | None = None,
    ):
        super().__init__(session, clock)
        self.defaults = defaults or ProductDefaults()
        self.locks = locks or default_lock_registry
        self._sequence = SequenceService(session)

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, product_id: UUID | str) -> ProductInfo:
        """
        Get a product by id.

        Raises:
            ProductNotFoundError: If the product doesn't exist.
        """
        pid = coerce_product_id(product_id)
        product = self.session.execute(
            select(Product)
            .where(Product.id == pid)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError(str(pid))
        return ProductInfo.from_product(product)

    def list(
        self,
        search: str | None = None,
        include_archived: bool = False,
    ) -> list[ProductInfo]:
        """
        Snapshot of the catalog in insertion order.

        Args:
            search: Case-insensitive substring filter on the product name.
            include_archived: Include tombstoned products.
        """
        query = select(Product).order_by(Product.position)
        if not include_archived:
            query = query.where(Product.archived_at.is_(None))
        if search:
            query = query.where(
                func.lower(Product.name).contains(search.strip().lower(), autoescape=True)
            )
        rows = self.session.execute(
            query.execution_options(populate_existing=True)
        ).scalars()
        return [ProductInfo.from_product(p) for p in rows]

    def transaction_count(self, product_id: UUID | str) -> int:
        """Number of ledger entries referencing the product."""
        pid = coerce_product_id(product_id)
        return self.session.execute(
            select(func.count(StockTransaction.id)).where(
                StockTransaction.product_id == pid
            )
        ).scalar_one()

    # =========================================================================
    # Writes
    # =========================================================================

    def create(self, spec: ProductSpec | Mapping[str, Any]) -> ProductInfo:
        """
        Create a product.

        Args:
            spec: A ProductSpec, or a create payload (camelCase keys accepted,
                missing optional fields take the catalog defaults).

        Returns:
            The new product; remaining = initial, sold = 0.

        Raises:
            ValidationError: If any field violates a product invariant.
        """
        if isinstance(spec, Mapping):
            spec = parse_product_payload(spec, self.defaults)
        else:
            spec = validate_product_spec(spec)

        now = self.clock.now()
        with self._transaction():
            product = Product(
                position=self._sequence.next_value(SequenceService.PRODUCT),
                name=spec.name,
                category=spec.category,
                opening_quantity=spec.initial_quantity,
                initial_quantity=spec.initial_quantity,
                remaining_quantity=spec.initial_quantity,
                cost_price=spec.cost_price,
                selling_price=spec.selling_price,
                min_threshold=spec.min_threshold,
                max_threshold=spec.max_threshold,
                created_at=now,
                updated_at=now,
            )
            self.session.add(product)
            self.session.flush()

        logger.info(
            "product_created",
            extra={
                "product_id": str(product.id),
                "initial_quantity": product.initial_quantity,
                "position": product.position,
            },
        )
        return ProductInfo.from_product(product)

    def update(self, product_id: UUID | str, patch: Mapping[str, Any]) -> ProductInfo:
        """
        Partially update a product's metadata.

        Quantity fields may be echoed back unchanged (the edit form resends
        the whole record) but never changed here.

        Raises:
            ProductNotFoundError: If the product doesn't exist.
            ValidationError: If the merged record violates an invariant.
        """
        pid = coerce_product_id(product_id)
        fields = parse_product_patch(patch)

        with self.locks.hold(pid), self._transaction():
            product = self.load_for_update(pid)

            for field in QUANTITY_FIELDS & fields.keys():
                if fields[field] != getattr(product, field):
                    raise ValidationError(
                        f"{field} is ledger-derived and cannot be set directly; "
                        "use restock() or record a sale",
                        field=field,
                    )

            merged = validate_product_spec(
                ProductSpec(
                    name=fields.get("name", product.name),
                    initial_quantity=product.initial_quantity,
                    cost_price=fields.get("cost_price", product.cost_price),
                    selling_price=fields.get("selling_price", product.selling_price),
                    min_threshold=fields.get("min_threshold", product.min_threshold),
                    max_threshold=fields.get("max_threshold", product.max_threshold),
                    category=fields.get("category", product.category),
                )
            )
            changed = []
            for field in sorted(MUTABLE_FIELDS):
                value = getattr(merged, field)
                if getattr(product, field) != value:
                    setattr(product, field, value)
                    changed.append(field)
            if changed:
                product.updated_at = self.clock.now()
            self.session.flush()

        logger.info(
            "product_updated",
            extra={"product_id": str(pid), "fields": changed},
        )
        return ProductInfo.from_product(product)

    def restock(self, product_id: UUID | str, amount: int) -> ProductInfo:
        """
        Increase both initial and remaining quantity by ``amount``.

        Recorded as a ``restock`` ledger entry.

        Raises:
            ValidationError: If amount <= 0.
            ProductNotFoundError: If the product doesn't exist.
        """
        validate_quantity(amount, "amount", positive=True)
        from stock_kernel.services.ledger_service import TransactionLedger

        ledger = TransactionLedger(
            self.session, clock=self.clock, locks=self.locks, catalog=self
        )
        ledger.append(product_id, TransactionType.RESTOCK, amount)
        return self.get(product_id)

    def delete(self, product_id: UUID | str) -> None:
        """
        Hard-delete a product with no ledger history.

        Raises:
            ProductNotFoundError: If the product doesn't exist.
            ProductReferencedError: If any ledger entry references it;
                use archive() instead.
        """
        pid = coerce_product_id(product_id)
        with self.locks.hold(pid), self._transaction():
            product = self.load_for_update(pid)
            count = self.transaction_count(pid)
            if count:
                logger.warning(
                    "product_delete_refused",
                    extra={"product_id": str(pid), "transaction_count": count},
                )
                raise ProductReferencedError(str(pid), count)
            self.session.delete(product)
            self.session.flush()

        logger.info("product_deleted", extra={"product_id": str(pid)})

    def archive(self, product_id: UUID | str) -> ProductInfo:
        """
        Tombstone a product.

        The row stays (ledger entries keep referencing it) but it drops out
        of list() and reports and accepts no further stock movements.
        Archiving an archived product is a no-op.
        """
        pid = coerce_product_id(product_id)
        with self.locks.hold(pid), self._transaction():
            product = self.load_for_update(pid)
            if product.archived_at is None:
                product.archived_at = self.clock.now()
                product.updated_at = product.archived_at
                self.session.flush()
                logger.info("product_archived", extra={"product_id": str(pid)})
        return ProductInfo.from_product(product)

    # =========================================================================
    # Ledger-facing helpers (caller holds the product lock and the transaction)
    # =========================================================================

    def load_for_update(self, product_id: UUID) -> Product:
        """Fresh read of the product row with a row lock where supported."""
        product = self.session.execute(
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return product

    def apply_movement(
        self,
        product: Product,
        transaction_type: TransactionType,
        quantity: int,
        at: datetime | None = None,
    ) -> None:
        """
        Move the product's stored quantities by one ledger movement.

        The new quantities are computed by the database from the stored row,
        and a movement that draws stock down only matches the row while
        enough remains.  ``product`` is refreshed afterwards.

        Raises:
            InsufficientStockError: The draw-down exceeds the stock on hand.
        """
        validate_quantity(quantity, "quantity", positive=True)
        d_initial, d_remaining = StockProjector.deltas(transaction_type, quantity)

        stmt = (
            update(Product)
            .where(Product.id == product.id)
            .values(
                initial_quantity=Product.initial_quantity + d_initial,
                remaining_quantity=Product.remaining_quantity + d_remaining,
                updated_at=at or self.clock.now(),
            )
            .execution_options(synchronize_session=False)
        )
        if d_remaining < 0:
            stmt = stmt.where(Product.remaining_quantity >= -d_remaining)

        matched = self.session.execute(stmt).rowcount
        self.session.refresh(product)
        if not matched:
            with stock_context(product_id=product.id):
                logger.warning(
                    "insufficient_stock",
                    extra={
                        "transaction_type": transaction_type.value,
                        "requested": quantity,
                        "available": product.remaining_quantity,
                    },
                )
            raise InsufficientStockError(
                str(product.id), quantity, product.remaining_quantity
            )
