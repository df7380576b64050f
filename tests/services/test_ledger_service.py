"""
Tests for TransactionLedger.

Covers:
- The reference scenario: 10 units, sell 7, remaining 3, low stock
- All-or-nothing sales (insufficient stock leaves state unchanged)
- Quantity and type validation
- Multi-line receipts and receipt totals
- Compensating entries via reverse()
- list_recent() ordering, limits and read-time product names
- history()
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.dtos import ReceiptLine
from stock_kernel.exceptions import (
    InsufficientStockError,
    ProductNotFoundError,
    TransactionAlreadyReversedError,
    TransactionNotFoundError,
    ValidationError,
)
from stock_kernel.models.stock_transaction import TransactionType
from stock_kernel.services.ledger_service import TransactionLedger


class TestAppend:
    """Tests for TransactionLedger.append()."""

    def test_reference_sale_scenario(self, ledger, catalog, reports, make_product):
        product = make_product(
            initial_quantity=10, cost_price="100", selling_price="150", min_threshold=5
        )

        entry = ledger.append(product.id, TransactionType.SALE, 7)

        after = catalog.get(product.id)
        assert after.remaining_quantity == 3
        assert after.sold_quantity == 7
        assert entry.quantity == 7
        assert entry.unit_price == Decimal("150")
        assert entry.product_name == "Widget"

        row = reports.stock_summary_report().rows[0]
        assert row.is_low_stock is True
        assert row.total_cost_value == Decimal("300")
        assert row.total_sales_value == Decimal("1050")
        assert row.profit == Decimal("750")

    def test_string_type_accepted(self, ledger, make_product):
        product = make_product()
        entry = ledger.append(product.id, "sale", 1)
        assert entry.transaction_type is TransactionType.SALE

    def test_insufficient_stock_is_all_or_nothing(self, ledger, catalog, make_product):
        product = make_product(initial_quantity=10)
        ledger.append(product.id, "sale", 7)

        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.append(product.id, "sale", 5)

        assert exc_info.value.requested == 5
        assert exc_info.value.available == 3
        after = catalog.get(product.id)
        assert after.remaining_quantity == 3
        assert after.sold_quantity == 7
        assert len(ledger.history(product.id)) == 1

    def test_sell_exactly_remaining(self, ledger, catalog, make_product):
        product = make_product(initial_quantity=4)

        ledger.append(product.id, "sale", 4)

        assert catalog.get(product.id).remaining_quantity == 0

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "3", True, None])
    def test_invalid_quantity(self, ledger, catalog, make_product, quantity):
        product = make_product()

        with pytest.raises(ValidationError):
            ledger.append(product.id, "sale", quantity)

        assert catalog.get(product.id).remaining_quantity == 10

    def test_unknown_type(self, ledger, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            ledger.append(product.id, "theft", 1)

    @pytest.mark.parametrize("ttype", ["return", "restock_reversal"])
    def test_compensating_type_refused(self, ledger, make_product, ttype):
        product = make_product()
        with pytest.raises(ValidationError):
            ledger.append(product.id, ttype, 1)

    def test_unknown_product(self, ledger):
        with pytest.raises(ProductNotFoundError):
            ledger.append(uuid4(), "sale", 1)

    def test_restock_through_append(self, ledger, catalog, make_product):
        product = make_product(initial_quantity=10)

        entry = ledger.append(product.id, "restock", 5)

        after = catalog.get(product.id)
        assert (after.initial_quantity, after.remaining_quantity) == (15, 15)
        assert entry.unit_price == Decimal("100")

    def test_seq_strictly_increasing(self, ledger, make_product):
        a = make_product(name="A")
        b = make_product(name="B")

        seqs = [
            ledger.append(a.id, "sale", 1).seq,
            ledger.append(b.id, "sale", 1).seq,
            ledger.append(a.id, "restock", 2).seq,
        ]

        assert seqs == sorted(seqs)
        assert len(set(seqs)) == 3

    def test_timestamp_from_injected_clock(self, ledger, clock, make_product):
        product = make_product()
        entry = ledger.append(product.id, "sale", 1)
        assert entry.created_at == clock.now()

    def test_insufficient_stock_logged(self, ledger, make_product, captured_logs):
        product = make_product(initial_quantity=1)

        with pytest.raises(InsufficientStockError):
            ledger.append(product.id, "sale", 2)

        warnings = [r for r in captured_logs() if r["event"] == "insufficient_stock"]
        assert warnings
        assert warnings[0]["level"] == "WARNING"
        assert warnings[0]["product_id"] == str(product.id)


class TestReceipts:
    """Tests for TransactionLedger.record_receipt()."""

    def test_single_line_payload(self, ledger, catalog, make_product):
        product = make_product()

        receipt = ledger.record_receipt({"productId": str(product.id), "quantity": 2})

        assert len(receipt.transactions) == 1
        assert receipt.total == Decimal("300")
        assert catalog.get(product.id).remaining_quantity == 8

    def test_multi_line_receipt(self, ledger, catalog, make_product):
        pen = make_product(name="Pen", selling_price="2.50")
        pad = make_product(name="Pad", selling_price="4.00")

        receipt = ledger.record_receipt(
            {
                "items": [
                    {"productId": str(pen.id), "quantity": 3},
                    {"productId": str(pad.id), "quantity": 1},
                ]
            }
        )

        assert receipt.total == Decimal("11.50")
        assert {t.receipt_id for t in receipt.transactions} == {receipt.receipt_id}
        assert catalog.get(pen.id).remaining_quantity == 7
        assert catalog.get(pad.id).remaining_quantity == 9
        payload = receipt.to_payload()
        assert payload["total"] == Decimal("11.50")
        assert len(payload["items"]) == 2

    def test_receipt_is_all_or_nothing(self, ledger, catalog, make_product):
        plenty = make_product(name="Plenty", initial_quantity=50)
        scarce = make_product(name="Scarce", initial_quantity=1)

        with pytest.raises(InsufficientStockError):
            ledger.record_receipt(
                [ReceiptLine(plenty.id, 5), ReceiptLine(scarce.id, 2)]
            )

        assert catalog.get(plenty.id).remaining_quantity == 50
        assert catalog.get(scarce.id).remaining_quantity == 1
        assert ledger.list_recent() == []

    def test_same_product_lines_are_summed(self, ledger, catalog, make_product):
        product = make_product(initial_quantity=5)

        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.record_receipt([ReceiptLine(product.id, 3), ReceiptLine(product.id, 3)])

        assert exc_info.value.requested == 6
        assert catalog.get(product.id).remaining_quantity == 5

    def test_empty_receipt_rejected(self, ledger):
        with pytest.raises(ValidationError):
            ledger.record_receipt({"items": []})
        with pytest.raises(ValidationError):
            ledger.record_receipt([])

    def test_receipt_line_needs_quantity(self, ledger, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            ledger.record_receipt({"productId": str(product.id)})

    @pytest.mark.parametrize("quantity", ["²", "³", "x"])
    def test_non_numeric_quantity_string_rejected(self, ledger, catalog, make_product, quantity):
        product = make_product()
        with pytest.raises(ValidationError):
            ledger.record_receipt({"productId": str(product.id), "quantity": quantity})
        assert catalog.get(product.id).remaining_quantity == 10
        assert ledger.history(product.id) == []

    def test_unknown_product_in_receipt(self, ledger, catalog, make_product):
        product = make_product()

        with pytest.raises(ProductNotFoundError):
            ledger.record_receipt([ReceiptLine(product.id, 1), ReceiptLine(uuid4(), 1)])

        assert catalog.get(product.id).remaining_quantity == 10


class TestReverse:
    """Tests for compensating entries."""

    def test_return_restores_remaining(self, ledger, catalog, make_product):
        product = make_product()
        sale = ledger.append(product.id, "sale", 4)

        reversal = ledger.reverse(sale.id)

        assert reversal.transaction_type is TransactionType.RETURN
        assert reversal.reversal_of_id == sale.id
        assert reversal.unit_price == sale.unit_price
        after = catalog.get(product.id)
        assert (after.remaining_quantity, after.sold_quantity) == (10, 0)

    def test_restock_reversal(self, ledger, catalog, make_product):
        product = make_product(initial_quantity=10)
        restock = ledger.append(product.id, "restock", 5)

        reversal = ledger.reverse(restock.id)

        assert reversal.transaction_type is TransactionType.RESTOCK_REVERSAL
        after = catalog.get(product.id)
        assert (after.initial_quantity, after.remaining_quantity) == (10, 10)

    def test_restock_reversal_needs_stock_on_hand(self, ledger, catalog, make_product):
        product = make_product(initial_quantity=0, min_threshold=0)
        restock = ledger.append(product.id, "restock", 5)
        ledger.append(product.id, "sale", 4)

        with pytest.raises(InsufficientStockError):
            ledger.reverse(restock.id)

        after = catalog.get(product.id)
        assert (after.initial_quantity, after.remaining_quantity) == (5, 1)

    def test_double_reversal_refused(self, ledger, make_product):
        product = make_product()
        sale = ledger.append(product.id, "sale", 1)
        first = ledger.reverse(sale.id)

        with pytest.raises(TransactionAlreadyReversedError) as exc_info:
            ledger.reverse(sale.id)

        assert exc_info.value.reversal_id == str(first.id)

    def test_compensating_entry_not_reversible(self, ledger, make_product):
        product = make_product()
        sale = ledger.append(product.id, "sale", 1)
        reversal = ledger.reverse(sale.id)

        with pytest.raises(ValidationError):
            ledger.reverse(reversal.id)

    def test_unknown_transaction(self, ledger):
        with pytest.raises(TransactionNotFoundError):
            ledger.reverse(uuid4())
        with pytest.raises(TransactionNotFoundError):
            ledger.reverse("garbage")


class TestQueries:
    """Tests for list_recent(), history() and get()."""

    def test_list_recent_newest_first(self, ledger, make_product):
        product = make_product()
        entries = [ledger.append(product.id, "sale", 1) for _ in range(3)]

        recent = ledger.list_recent()

        assert [e.id for e in recent] == [e.id for e in reversed(entries)]

    def test_list_recent_limit(self, ledger, make_product):
        product = make_product(initial_quantity=20)
        for _ in range(5):
            ledger.append(product.id, "sale", 1)

        assert len(ledger.list_recent(2)) == 2

    def test_list_recent_default_and_cap(self, session, clock, catalog, make_product):
        ledger = TransactionLedger(
            session, clock=clock, catalog=catalog, recent_limit=2, max_recent_limit=3
        )
        product = make_product(initial_quantity=20)
        for _ in range(5):
            ledger.append(product.id, "sale", 1)

        assert len(ledger.list_recent()) == 2
        assert len(ledger.list_recent(50)) == 3

    @pytest.mark.parametrize("limit", [0, -1, 2.5])
    def test_list_recent_bad_limit(self, ledger, limit):
        with pytest.raises(ValidationError):
            ledger.list_recent(limit)

    def test_list_recent_empty(self, ledger):
        assert ledger.list_recent() == []

    def test_product_name_resolved_at_read_time(self, ledger, catalog, make_product):
        product = make_product(name="Old name")
        ledger.append(product.id, "sale", 1)

        catalog.update(product.id, {"name": "New name"})

        assert ledger.list_recent()[0].product_name == "New name"

    def test_history_oldest_first_per_product(self, ledger, make_product):
        a = make_product(name="A")
        b = make_product(name="B")
        first = ledger.append(a.id, "sale", 1)
        ledger.append(b.id, "sale", 1)
        second = ledger.append(a.id, "restock", 3)

        assert [e.id for e in ledger.history(a.id)] == [first.id, second.id]

    def test_history_unknown_product(self, ledger):
        with pytest.raises(ProductNotFoundError):
            ledger.history(uuid4())

    def test_get(self, ledger, make_product):
        product = make_product()
        entry = ledger.append(product.id, "sale", 2)

        fetched = ledger.get(entry.id)

        assert fetched.id == entry.id
        assert fetched.amount == Decimal("300")
        assert fetched.to_payload()["type"] == "sale"
