"""
Sale orchestration and aggregation tests.

Verifies:
- add_item commits stock, item and total together
- insufficient stock rejects only the item; the sale stays open
- remove_item and abort_sale restore stock and keep totals consistent
- a storage failure mid-unit rolls back stock, item and total together
- finalize_sale reports the stored total
- SaleSession continue-on-error bookkeeping
"""

import pytest
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from stockroom.models import Sale, SaleItem
from stockroom.services import (
    inventory_service,
    products_service,
    sales_service,
    totals_service,
)
from stockroom.validation import (
    InsufficientStockError,
    InvalidArgumentError,
    NotFoundError,
    TransactionFailedError,
)


def _summed_total(db_session, sale_id: int) -> int:
    total = (
        db_session.query(func.coalesce(func.sum(SaleItem.quantity * SaleItem.price_cents), 0))
        .filter(SaleItem.sale_id == sale_id)
        .scalar()
    )
    return int(total)


def _failing_recompute(sale_id: int) -> int:
    raise IntegrityError("UPDATE sales SET total_cents=?", {"sale_id": sale_id}, Exception("forced failure"))


@pytest.fixture
def sale(db_session):
    return sales_service.start_sale("Alice")


# =============================================================================
# AGGREGATOR
# =============================================================================


class TestSaleTotals:

    def test_new_sale_has_zero_total(self, sale):
        assert sale.customer == "Alice"
        assert totals_service.current_total(sale.id) == 0

    def test_blank_customer_stored_as_null(self, db_session):
        sale = totals_service.create_sale("   ")
        assert sale.customer is None

    def test_current_total_unknown_sale(self, db_session):
        with pytest.raises(NotFoundError):
            totals_service.current_total(12345)

    def test_current_total_returns_stored_value(self, db_session, stocked_product, sale):
        sales_service.add_item(sale_id=sale.id, product_id=stocked_product.id, quantity=2)
        # Stored aggregate is trusted, not re-summed from items
        db_session.query(Sale).filter_by(id=sale.id).update({Sale.total_cents: 1})
        db_session.commit()
        assert totals_service.current_total(sale.id) == 1


# =============================================================================
# ADD ITEM (Scenarios A-C)
# =============================================================================


class TestAddItem:

    def test_scenario_add_item_uses_product_price(self, db_session, stocked_product, sale):
        item = sales_service.add_item(sale_id=sale.id, product_id=stocked_product.id, quantity=3)

        assert item.price_cents == 1000
        assert item.line_total_cents == 3000
        assert inventory_service.get_stock(stocked_product.id) == 2
        assert totals_service.current_total(sale.id) == 3000

    def test_scenario_insufficient_stock_changes_nothing(self, db_session, stocked_product, sale):
        sales_service.add_item(sale_id=sale.id, product_id=stocked_product.id, quantity=3)

        with pytest.raises(InsufficientStockError):
            sales_service.add_item(sale_id=sale.id, product_id=stocked_product.id, quantity=10)

        assert inventory_service.get_stock(stocked_product.id) == 2
        assert totals_service.current_total(sale.id) == 3000
        assert db_session.query(SaleItem).filter_by(sale_id=sale.id).count() == 1

    def test_sale_stays_open_after_rejection(self, db_session, stocked_product, sale):
        with pytest.raises(InsufficientStockError):
            sales_service.add_item(sale_id=sale.id, product_id=stocked_product.id, quantity=10)

        sales_service.add_item(sale_id=sale.id, product_id=stocked_product.id, quantity=1)
        assert totals_service.current_total(sale.id) == 1000

    def test_price_override(self, db_session, stocked_product, sale):
        item = sales_service.add_item(
            sale_id=sale.id,
            product_id=stocked_product.id,
            quantity=2,
            unit_price_override_cents=850,
        )
        assert item.price_cents == 850
        assert totals_service.current_total(sale.id) == 1700

    @pytest.mark.parametrize("override", [0, -5])
    def test_non_positive_override_falls_back_to_product_price(self, stocked_product, sale, override):
        item = sales_service.add_item(
            sale_id=sale.id,
            product_id=stocked_product.id,
            quantity=1,
            unit_price_override_cents=override,
        )
        assert item.price_cents == 1000

    def test_item_keeps_price_after_price_change(self, stocked_product, sale):
        sales_service.add_item(sale_id=sale.id, product_id=stocked_product.id, quantity=1)
        products_service.update_price(stocked_product.id, 2500)

        sales_service.add_item(sale_id=sale.id, product_id=stocked_product.id, quantity=1)
        assert totals_service.current_total(sale.id) == 1000 + 2500

    def test_unknown_product(self, db_session, sale):
        with pytest.raises(NotFoundError) as excinfo:
            sales_service.add_item(sale_id=sale.id, product_id=777, quantity=1)
        assert excinfo.value.details == {"product_id": 777}
        assert db_session.query(SaleItem).count() == 0
        assert totals_service.current_total(sale.id) == 0

    def test_unknown_sale(self, db_session, stocked_product):
        with pytest.raises(NotFoundError):
            sales_service.add_item(sale_id=777, product_id=stocked_product.id, quantity=1)
        assert inventory_service.get_stock(stocked_product.id) == 5

    def test_invalid_quantity(self, stocked_product, sale):
        with pytest.raises(InvalidArgumentError):
            sales_service.add_item(sale_id=sale.id, product_id=stocked_product.id, quantity=0)
        assert inventory_service.get_stock(stocked_product.id) == 5

    def test_total_matches_items_after_each_add(self, db_session, stocked_product, sale):
        for qty, override in [(1, None), (2, 450), (1, 1)]:
            sales_service.add_item(
                sale_id=sale.id,
                product_id=stocked_product.id,
                quantity=qty,
                unit_price_override_cents=override,
            )
            assert totals_service.current_total(sale.id) == _summed_total(db_session, sale.id)
        assert inventory_service.get_stock(stocked_product.id) == 1

    def test_failure_after_stock_commit_rolls_back_whole_unit(
        self, db_session, monkeypatch, stocked_product, sale
    ):
        sales_service.add_item(sale_id=sale.id, product_id=stocked_product.id, quantity=1)
        monkeypatch.setattr(sales_service, "recompute_total", _failing_recompute)

        with pytest.raises(TransactionFailedError):
            sales_service.add_item(sale_id=sale.id, product_id=stocked_product.id, quantity=2)

        assert inventory_service.get_stock(stocked_product.id) == 4
        assert totals_service.current_total(sale.id) == 1000
        assert db_session.query(SaleItem).filter_by(sale_id=sale.id).count() == 1


# =============================================================================
# REMOVE ITEM / ABORT (Scenario D)
# =============================================================================


class TestRemoveItem:

    def test_scenario_remove_restores_stock_and_total(self, stocked_product, sale):
        item = sales_service.add_item(sale_id=sale.id, product_id=stocked_product.id, quantity=3)

        sales_service.remove_item(sale_id=sale.id, item_id=item.id)

        assert inventory_service.get_stock(stocked_product.id) == 5
        assert totals_service.current_total(sale.id) == 0

    def test_remove_one_of_several(self, db_session, stocked_product, sale):
        first = sales_service.add_item(sale_id=sale.id, product_id=stocked_product.id, quantity=1)
        sales_service.add_item(
            sale_id=sale.id, product_id=stocked_product.id, quantity=2, unit_price_override_cents=300
        )

        sales_service.remove_item(sale_id=sale.id, item_id=first.id)

        assert totals_service.current_total(sale.id) == 600
        assert totals_service.current_total(sale.id) == _summed_total(db_session, sale.id)
        assert inventory_service.get_stock(stocked_product.id) == 3

    def test_remove_unknown_item(self, stocked_product, sale):
        with pytest.raises(NotFoundError):
            sales_service.remove_item(sale_id=sale.id, item_id=999)

    def test_remove_item_of_other_sale(self, stocked_product, sale):
        other = sales_service.start_sale("Bob")
        item = sales_service.add_item(sale_id=other.id, product_id=stocked_product.id, quantity=1)

        with pytest.raises(NotFoundError):
            sales_service.remove_item(sale_id=sale.id, item_id=item.id)
        assert totals_service.current_total(other.id) == 1000

    def test_abort_sale_restores_all_items(self, db_session, stocked_product, sale):
        sales_service.add_item(sale_id=sale.id, product_id=stocked_product.id, quantity=2)
        sales_service.add_item(sale_id=sale.id, product_id=stocked_product.id, quantity=3)
        assert inventory_service.get_stock(stocked_product.id) == 0

        reversed_count = sales_service.abort_sale(sale.id)

        assert reversed_count == 2
        assert inventory_service.get_stock(stocked_product.id) == 5
        assert db_session.query(Sale).count() == 0
        assert db_session.query(SaleItem).count() == 0

    def test_abort_unknown_sale(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.abort_sale(31337)

    def test_product_with_items_cannot_be_deleted(self, stocked_product, sale):
        sales_service.add_item(sale_id=sale.id, product_id=stocked_product.id, quantity=1)
        with pytest.raises(TransactionFailedError):
            products_service.delete_product(stocked_product.id)
        assert inventory_service.get_stock(stocked_product.id) == 4

    def test_failure_after_restore_rolls_back_whole_unit(
        self, db_session, monkeypatch, stocked_product, sale
    ):
        item_id = sales_service.add_item(sale_id=sale.id, product_id=stocked_product.id, quantity=3).id
        monkeypatch.setattr(sales_service, "recompute_total", _failing_recompute)

        with pytest.raises(TransactionFailedError):
            sales_service.remove_item(sale_id=sale.id, item_id=item_id)

        assert inventory_service.get_stock(stocked_product.id) == 2
        assert totals_service.current_total(sale.id) == 3000
        assert db_session.query(SaleItem).filter_by(id=item_id).count() == 1


# =============================================================================
# FINALIZE
# =============================================================================


class TestFinalize:

    def test_bill_lists_lines_and_total(self, stocked_product, sale):
        first = sales_service.add_item(sale_id=sale.id, product_id=stocked_product.id, quantity=3)
        second = sales_service.add_item(
            sale_id=sale.id, product_id=stocked_product.id, quantity=1, unit_price_override_cents=250
        )

        bill = sales_service.finalize_sale(sale.id)

        assert bill.sale_id == sale.id
        assert bill.customer == "Alice"
        assert [line.item_id for line in bill.lines] == [first.id, second.id]
        assert bill.lines[0].product_name == "Widget"
        assert bill.lines[0].line_total_cents == 3000
        assert bill.lines[1].line_total_cents == 250
        assert bill.total_cents == 3250
        assert bill.to_dict()["lines"][1]["price_cents"] == 250

    def test_empty_sale_finalizes_with_zero_total(self, sale):
        bill = sales_service.finalize_sale(sale.id)
        assert bill.lines == ()
        assert bill.total_cents == 0

    def test_finalize_unknown_sale(self, db_session):
        with pytest.raises(NotFoundError):
            sales_service.finalize_sale(404)


# =============================================================================
# SALE SESSION
# =============================================================================


class TestSaleSession:

    def test_continue_on_error(self, stocked_product):
        session = sales_service.SaleSession.start("Carol")

        ok = session.add(stocked_product.id, 3)
        too_many = session.add(stocked_product.id, 10)
        missing = session.add(9999, 1)
        session.add(stocked_product.id, 2)

        assert ok.committed and ok.item_id is not None
        assert not too_many.committed
        assert too_many.details["on_hand"] == 2
        assert not missing.committed
        assert len(session.committed) == 2
        assert len(session.rejected) == 2

        bill = session.finalize()
        assert bill.total_cents == 5000
        assert session.status == sales_service.SaleSession.FINALIZED
        assert inventory_service.get_stock(stocked_product.id) == 0

    def test_no_items_after_finalize(self, stocked_product):
        session = sales_service.SaleSession.start()
        session.finalize()
        with pytest.raises(InvalidArgumentError):
            session.add(stocked_product.id, 1)

    def test_remove_drops_outcome(self, stocked_product):
        session = sales_service.SaleSession.start()
        outcome = session.add(stocked_product.id, 1)
        session.remove(outcome.item_id)
        assert session.committed == []
        assert session.finalize().total_cents == 0

    def test_invalid_quantity_propagates(self, stocked_product):
        session = sales_service.SaleSession.start()
        with pytest.raises(InvalidArgumentError):
            session.add(stocked_product.id, -1)
        assert session.outcomes == []
