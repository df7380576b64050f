"""
Tests for the ORM immutability listeners.

Ledger entries can be neither updated nor deleted through the ORM, a
product's opening quantity and position are frozen, and a product with
ledger entries cannot be deleted.
"""

import pytest

from stock_kernel.exceptions import ImmutabilityViolationError, ProductReferencedError
from stock_kernel.models.product import Product
from stock_kernel.models.stock_transaction import StockTransaction


@pytest.fixture
def sold_product(ledger, make_product):
    product = make_product(initial_quantity=10)
    entry = ledger.append(product.id, "sale", 2)
    return product, entry


class TestStockTransactionImmutability:

    def test_update_blocked(self, session, sold_product):
        _, entry = sold_product
        row = session.get(StockTransaction, entry.id)
        assert row.quantity == 2

        row.quantity = 1
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        session.rollback()

        assert exc_info.value.entity_type == "StockTransaction"
        assert session.get(StockTransaction, entry.id).quantity == 2

    def test_delete_blocked(self, session, sold_product):
        _, entry = sold_product
        row = session.get(StockTransaction, entry.id)

        session.delete(row)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

        assert session.get(StockTransaction, entry.id) is not None

    def test_violation_logged(self, session, sold_product, captured_logs):
        _, entry = sold_product
        row = session.get(StockTransaction, entry.id)
        assert row.unit_price is not None

        row.quantity = 5
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

        blocked = [r for r in captured_logs() if r["event"] == "immutability_violation_blocked"]
        assert blocked[0]["entity_id"] == str(entry.id)
        assert blocked[0]["operation"] == "UPDATE"


class TestProductImmutability:

    @pytest.mark.parametrize(("field", "value"), [("opening_quantity", 99), ("position", 42)])
    def test_frozen_fields(self, session, make_product, field, value):
        product = make_product(initial_quantity=10)
        row = session.get(Product, product.id)
        assert getattr(row, field) != value

        setattr(row, field, value)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_metadata_editable_through_orm(self, session, catalog, make_product):
        product = make_product(name="Before")
        row = session.get(Product, product.id)
        assert row.name == "Before"

        row.name = "After"
        session.commit()

        assert catalog.get(product.id).name == "After"

    def test_referenced_product_delete_blocked(self, session, sold_product):
        product, _ = sold_product
        row = session.get(Product, product.id)

        session.delete(row)
        with pytest.raises(ProductReferencedError) as exc_info:
            session.flush()
        session.rollback()

        assert exc_info.value.transaction_count == 1
        assert session.get(Product, product.id) is not None

    def test_unreferenced_product_delete_allowed(self, session, make_product):
        product = make_product()
        session.delete(session.get(Product, product.id))
        session.commit()

        assert session.get(Product, product.id) is None
