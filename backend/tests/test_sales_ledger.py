"""
Sales Ledger Tests

Sales orders: pricing, completion (stock debit + income), oversell refusal,
returns and deletion rules.
"""

import pytest

from erp.errors import InvalidOperationError, InvalidTransitionError, NotFoundError, ValidationError
from erp.models import FinancialTransaction


@pytest.fixture
def customer(ledgers, db_session):
    return ledgers.sales.create_customer({"name": "Jordan Buyer", "email": "jordan@example.com"})


@pytest.fixture
def chair(make_item):
    return make_item("Chair", current_stock=10, selling_price_cents=4500)


def _tx(db_session, category):
    return db_session.query(FinancialTransaction).filter_by(category=category).all()


class TestCreateOrder:
    def test_prices_default_to_selling_price(self, ledgers, customer, chair):
        order = ledgers.sales.create_order(customer.id, [{"item_id": chair.id, "quantity": 2}])

        assert order.order_number == "SO-0001"
        assert order.status == "draft"
        assert order.payment_method == "cash"
        assert order.items[0].unit_price_cents == 4500
        assert order.items[0].name == "Chair"
        assert order.total_amount_cents == 9000

    def test_discount_reduces_line_total(self, ledgers, customer, chair):
        order = ledgers.sales.create_order(
            customer.id,
            [{"item_id": chair.id, "quantity": 2, "unit_price_cents": 4000, "discount_cents": 500}],
            payment_method="card",
        )
        assert order.items[0].total_price_cents == 7500
        assert order.total_amount_cents == 7500
        assert order.payment_method == "card"

    def test_discount_above_gross_rejected(self, ledgers, customer, chair):
        with pytest.raises(ValidationError, match="discount_cents"):
            ledgers.sales.create_order(
                customer.id, [{"item_id": chair.id, "quantity": 1, "discount_cents": 10000}]
            )

    def test_unknown_item(self, ledgers, customer):
        with pytest.raises(NotFoundError):
            ledgers.sales.create_order(customer.id, [{"item_id": 4040, "quantity": 1}])

    def test_unknown_payment_method(self, ledgers, customer, chair):
        with pytest.raises(ValidationError, match="payment_method"):
            ledgers.sales.create_order(customer.id, [{"item_id": chair.id, "quantity": 1}], payment_method="iou")

    def test_creating_does_not_touch_stock(self, ledgers, customer, chair):
        ledgers.sales.create_order(customer.id, [{"item_id": chair.id, "quantity": 3}])
        assert ledgers.inventory.get_item(chair.id).current_stock == 10


class TestCompletion:
    def test_completion_debits_stock_and_books_income(self, ledgers, customer, chair, db_session):
        order = ledgers.sales.create_order(customer.id, [{"item_id": chair.id, "quantity": 3}])
        ledgers.sales.update_status(order.id, "confirmed")

        done = ledgers.sales.update_status(order.id, "completed", changed_by="Sam")

        assert done.status == "completed"
        assert done.completed_at is not None
        assert ledgers.inventory.get_item(chair.id).current_stock == 7

        debit = ledgers.inventory.list_adjustments(item_id=chair.id)[0]
        assert debit.reason == "sale"
        assert debit.quantity_delta == -3
        assert debit.reference_number == "SO-0001"
        assert debit.created_by == "Sam"

        income = _tx(db_session, "sales")
        assert len(income) == 1
        assert income[0].type == "income"
        assert income[0].amount_cents == 13500
        assert income[0].reference_number == "SO-0001"

    def test_oversell_refused_and_nothing_changes(self, ledgers, customer, chair, make_item, db_session):
        table = make_item("Table", current_stock=1, selling_price_cents=9000)
        order = ledgers.sales.create_order(
            customer.id,
            [{"item_id": chair.id, "quantity": 4}, {"item_id": table.id, "quantity": 2}],
        )
        ledgers.sales.update_status(order.id, "confirmed")

        with pytest.raises(InvalidOperationError, match="negative stock"):
            ledgers.sales.update_status(order.id, "completed")

        assert ledgers.inventory.get_item(chair.id).current_stock == 10
        assert ledgers.inventory.get_item(table.id).current_stock == 1
        assert ledgers.sales.get_order(order.id).status == "confirmed"
        assert _tx(db_session, "sales") == []

    def test_draft_cannot_jump_to_completed(self, ledgers, customer, chair):
        order = ledgers.sales.create_order(customer.id, [{"item_id": chair.id, "quantity": 1}])
        with pytest.raises(InvalidTransitionError):
            ledgers.sales.update_status(order.id, "completed")
        assert ledgers.inventory.get_item(chair.id).current_stock == 10

    def test_shipping_path(self, ledgers, customer, chair):
        order = ledgers.sales.create_order(customer.id, [{"item_id": chair.id, "quantity": 1}])
        for status in ("pending", "processing", "shipped", "delivered", "completed"):
            order = ledgers.sales.update_status(order.id, status)
        assert order.status == "completed"
        assert ledgers.inventory.get_item(chair.id).current_stock == 9

    def test_cancelled_is_terminal(self, ledgers, customer, chair):
        order = ledgers.sales.create_order(customer.id, [{"item_id": chair.id, "quantity": 1}])
        ledgers.sales.update_status(order.id, "cancelled")
        with pytest.raises(InvalidTransitionError):
            ledgers.sales.update_status(order.id, "confirmed")


class TestReturns:
    def _completed_order(self, ledgers, customer, chair, quantity=4):
        order = ledgers.sales.create_order(customer.id, [{"item_id": chair.id, "quantity": quantity}])
        ledgers.sales.update_status(order.id, "confirmed")
        return ledgers.sales.update_status(order.id, "completed")

    def test_partial_return(self, ledgers, customer, chair, db_session):
        order = self._completed_order(ledgers, customer, chair)
        line_id = order.items[0].id

        returned = ledgers.sales.process_return(order.id, {line_id: 1}, reason="Scratched")

        assert returned.status == "returned"
        assert returned.items[0].returned_quantity == 1
        assert ledgers.inventory.get_item(chair.id).current_stock == 7

        credit = ledgers.inventory.list_adjustments(item_id=chair.id)[0]
        assert credit.reason == "return"
        assert credit.reference_number == "RET-SO-0001"

        refunds = _tx(db_session, "returns")
        assert len(refunds) == 1
        assert refunds[0].type == "expense"
        assert refunds[0].amount_cents == 4500
        assert refunds[0].reference_number == "RET-SO-0001"
        assert "Scratched" in refunds[0].description

    def test_returned_status_returns_everything(self, ledgers, customer, chair):
        order = self._completed_order(ledgers, customer, chair, quantity=2)
        ledgers.sales.update_status(order.id, "returned")
        assert ledgers.inventory.get_item(chair.id).current_stock == 10

    def test_return_more_than_sold_rejected(self, ledgers, customer, chair):
        order = self._completed_order(ledgers, customer, chair, quantity=2)
        with pytest.raises(ValidationError, match="cannot exceed"):
            ledgers.sales.process_return(order.id, {order.items[0].id: 3})

    def test_return_requires_completed_order(self, ledgers, customer, chair):
        order = ledgers.sales.create_order(customer.id, [{"item_id": chair.id, "quantity": 1}])
        with pytest.raises(InvalidTransitionError):
            ledgers.sales.process_return(order.id)


class TestDelete:
    def test_delete_open_order(self, ledgers, customer, chair):
        order = ledgers.sales.create_order(customer.id, [{"item_id": chair.id, "quantity": 1}])
        ledgers.sales.delete_order(order.id)
        with pytest.raises(NotFoundError):
            ledgers.sales.get_order(order.id)

    def test_completed_order_cannot_be_deleted(self, ledgers, customer, chair):
        order = ledgers.sales.create_order(customer.id, [{"item_id": chair.id, "quantity": 1}])
        ledgers.sales.update_status(order.id, "confirmed")
        ledgers.sales.update_status(order.id, "completed")
        with pytest.raises(InvalidOperationError):
            ledgers.sales.delete_order(order.id)
