"""
Financial Ledger and Reporting Tests
"""

from datetime import datetime

import pytest

from erp.errors import NotFoundError, ValidationError


@pytest.fixture
def march_book(ledgers):
    f = ledgers.finance
    f.add_transaction("income", 10000, "sales", "Order", date="2026-03-01T09:00:00Z")
    f.add_transaction("expense", 2500, "purchases", "Steel", date="2026-03-10T15:30:00Z", payment_method="bank")
    f.add_transaction("expense", 1500, "utilities", "Power", date="2026-03-31T18:00:00Z")
    f.add_transaction("income", 7000, "sales", "Late order", date="2026-04-02T10:00:00Z")
    return f


class TestTransactions:
    def test_add_and_list_newest_first(self, ledgers, march_book):
        rows = ledgers.finance.list_transactions()
        assert [r.description for r in rows] == ["Late order", "Power", "Steel", "Order"]

    def test_list_filters(self, ledgers, march_book):
        expenses = ledgers.finance.list_transactions(type="expense")
        assert {r.category for r in expenses} == {"purchases", "utilities"}

        april = ledgers.finance.list_transactions(start="2026-04-01")
        assert [r.description for r in april] == ["Late order"]

        sales = ledgers.finance.list_transactions(category="sales")
        assert len(sales) == 2

    def test_unknown_type_rejected(self, ledgers, db_session):
        with pytest.raises(ValidationError, match="type"):
            ledgers.finance.add_transaction("gift", 100, "misc")

    def test_any_payment_method_label_accepted(self, ledgers, db_session):
        tx = ledgers.finance.add_transaction("income", 100, "misc", payment_method=" cheque ")
        assert tx.payment_method == "cheque"

    def test_blank_payment_method_defaults_to_cash(self, ledgers, db_session):
        tx = ledgers.finance.add_transaction("income", 100, "misc", payment_method="")
        assert tx.payment_method == "cash"

    def test_overlong_payment_method_rejected(self, ledgers, db_session):
        with pytest.raises(ValidationError, match="payment_method"):
            ledgers.finance.add_transaction("income", 100, "misc", payment_method="x" * 17)

    def test_fractional_cents_rejected(self, ledgers, db_session):
        with pytest.raises(ValidationError, match="amount_cents"):
            ledgers.finance.add_transaction("income", 10.5, "misc")

    def test_blank_category_accepted(self, ledgers, db_session):
        tx = ledgers.finance.add_transaction("income", 100, "  ")
        assert tx.category == ""
        assert ledgers.finance.list_transactions()[0].id == tx.id

    def test_correction_entries_may_be_negative(self, ledgers, db_session):
        tx = ledgers.finance.add_transaction("income", -300, "sales", "Correction")
        assert tx.amount_cents == -300

    def test_bad_date_rejected(self, ledgers, db_session):
        with pytest.raises(ValidationError, match="date"):
            ledgers.finance.add_transaction("income", 100, "misc", date="yesterday")

    def test_delete(self, ledgers, db_session):
        tx = ledgers.finance.add_transaction("income", 100, "misc")
        ledgers.finance.delete_transaction(tx.id)
        assert ledgers.finance.list_transactions() == []

    def test_delete_missing(self, ledgers, db_session):
        with pytest.raises(NotFoundError):
            ledgers.finance.delete_transaction(31337)


class TestSummaries:
    def test_summary_with_date_only_end_covers_whole_day(self, ledgers, march_book):
        summary = ledgers.finance.get_financial_summary("2026-03-01", "2026-03-31")
        assert summary == {"income": 10000, "expenses": 4000, "balance": 6000}

    def test_summary_unbounded(self, ledgers, march_book):
        assert ledgers.finance.get_financial_summary()["balance"] == 13000

    def test_summary_of_empty_book(self, ledgers, db_session):
        assert ledgers.finance.get_financial_summary() == {"income": 0, "expenses": 0, "balance": 0}

    def test_bad_range_rejected(self, ledgers, db_session):
        with pytest.raises(ValidationError):
            ledgers.finance.get_financial_summary("March", None)

    def test_profit_and_loss_by_category(self, ledgers, march_book):
        report = ledgers.finance.profit_and_loss("2026-03-01", "2026-03-31")
        assert report["categories"] == [
            {"category": "purchases", "income": 0, "expenses": 2500, "profit": -2500},
            {"category": "sales", "income": 10000, "expenses": 0, "profit": 10000},
            {"category": "utilities", "income": 0, "expenses": 1500, "profit": -1500},
        ]
        assert report["totals"]["balance"] == 6000


class TestDashboard:
    def test_dashboard_summary(self, ledgers, march_book, make_item):
        make_item("Scarce", current_stock=1, reorder_level=5)
        supplier = ledgers.procurement.create_supplier({"name": "Acme"})
        item = make_item("Steel", current_stock=10, reorder_level=2)
        ledgers.procurement.create_order(supplier.id, [{"item_id": item.id, "quantity": 1}])
        bom = ledgers.boms.create_bom("Thing", None, [{"item_id": item.id, "quantity": 1}])
        ledgers.production.create_production_order(bom.id, 1)

        summary = ledgers.reports.dashboard_summary("2026-03-01", "2026-03-31")

        assert summary["total_sales"] == 10000
        assert summary["total_purchases"] == 2500
        assert summary["total_expenses"] == 4000
        assert summary["net_profit"] == 6000
        assert summary["low_stock_items"] == 1
        assert summary["pending_breakdown"] == {"sales": 0, "purchases": 1, "production": 1}
        assert summary["pending_orders"] == 2


class TestSalesReport:
    NOW = datetime(2026, 3, 15, 12, 0)

    @pytest.fixture
    def sell(self, ledgers, make_item):
        customer = ledgers.sales.create_customer({"name": "Jordan Buyer"})
        lamp = make_item("Lamp", current_stock=100, selling_price_cents=1000)

        def _sell(quantity, order_date, status="completed"):
            order = ledgers.sales.create_order(
                customer.id, [{"item_id": lamp.id, "quantity": quantity}], order_date=order_date
            )
            if status in ("confirmed", "completed"):
                ledgers.sales.update_status(order.id, "confirmed")
            if status == "completed":
                ledgers.sales.update_status(order.id, "completed")
            return order

        return _sell

    def test_empty_report_has_zero_filled_buckets(self, ledgers, db_session):
        report = ledgers.reports.sales_report("month", now=self.NOW)

        assert report["total_sales_cents"] == 0
        assert report["total_orders"] == 0
        assert report["average_order_value_cents"] == 0
        assert report["recent_orders"] == []
        assert report["buckets"] == [
            {"date": key, "sales_cents": 0}
            for key in ["2025-10", "2025-11", "2025-12", "2026-01", "2026-02", "2026-03"]
        ]

    def test_monthly_buckets_count_completed_orders_only(self, ledgers, sell):
        sell(2, "2026-03-02")
        sell(1, "2026-01-20")
        sell(5, "2026-03-05", status="confirmed")
        sell(3, "2024-06-01")

        report = ledgers.reports.sales_report("month", now=self.NOW)

        buckets = {b["date"]: b["sales_cents"] for b in report["buckets"]}
        assert buckets == {
            "2025-10": 0,
            "2025-11": 0,
            "2025-12": 0,
            "2026-01": 1000,
            "2026-02": 0,
            "2026-03": 2000,
        }
        assert report["total_sales_cents"] == 6000
        assert report["total_orders"] == 3
        assert report["average_order_value_cents"] == 2000

    def test_yearly_buckets(self, ledgers, sell):
        sell(2, "2026-03-02")
        sell(3, "2024-06-01")
        sell(1, "2019-12-31")

        report = ledgers.reports.sales_report("year", now=self.NOW)

        assert [b["date"] for b in report["buckets"]] == ["2021", "2022", "2023", "2024", "2025", "2026"]
        assert [b["sales_cents"] for b in report["buckets"]] == [0, 0, 0, 3000, 0, 2000]
        assert report["total_sales_cents"] == 6000

    def test_average_rounds_to_nearest_cent(self, ledgers, sell):
        sell(1, "2026-03-01")
        sell(1, "2026-03-02")
        sell(2, "2026-03-03")

        report = ledgers.reports.sales_report(now=self.NOW)

        assert report["average_order_value_cents"] == 1333

    def test_recent_orders_newest_first_limited_to_five(self, ledgers, sell):
        orders = [sell(1, f"2026-02-0{day}") for day in range(1, 8)]

        recent = ledgers.reports.sales_report(now=self.NOW)["recent_orders"]

        assert [o["id"] for o in recent] == [o.id for o in reversed(orders)][:5]
        assert all(o["status"] == "completed" for o in recent)

    def test_unknown_period_rejected(self, ledgers, db_session):
        with pytest.raises(ValidationError, match="period"):
            ledgers.reports.sales_report("week")
