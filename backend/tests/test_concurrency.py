# Overview: Pytest coverage for retry, locking and document numbering helpers.

"""
Concurrency Tests

SQLite cannot reproduce two live writers inside one test process, so conflicts
are staged by changing rows behind the ORM's back inside the same transaction.
"""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from erp.errors import InvalidOperationError, PersistenceError, ValidationError
from erp.models import InventoryItem
from erp.services import build_ledgers
from erp.services.concurrency import run_with_retry
from erp.services.document_service import next_document_number


class TestRunWithRetry:
    def test_conflict_is_retried_until_success(self, app, db_session):
        calls = {"n": 0}

        def flaky():
            calls["n"] += 1
            if calls["n"] < 3:
                raise StaleDataError("row changed")
            return "ok"

        assert run_with_retry(flaky, attempts=3, backoff_base=0) == "ok"
        assert calls["n"] == 3

    def test_exhausted_retries_surface_as_persistence_error(self, app, db_session):
        calls = {"n": 0}

        def always_locked():
            calls["n"] += 1
            raise OperationalError("UPDATE ...", {}, Exception("database is locked"))

        with pytest.raises(PersistenceError) as excinfo:
            run_with_retry(always_locked, attempts=2, backoff_base=0)

        assert calls["n"] == 2
        assert excinfo.value.details == {"attempts": 2}

    def test_domain_errors_are_not_retried(self, app, db_session):
        calls = {"n": 0}

        def refuse():
            calls["n"] += 1
            raise InvalidOperationError("no")

        with pytest.raises(InvalidOperationError):
            run_with_retry(refuse, attempts=5, backoff_base=0)
        assert calls["n"] == 1

    def test_other_database_errors_become_persistence_errors(self, app, db_session):
        def broken():
            raise IntegrityError("INSERT ...", {}, Exception("UNIQUE constraint failed"))

        with pytest.raises(PersistenceError, match="UNIQUE constraint failed"):
            run_with_retry(broken, attempts=3, backoff_base=0)

    def test_attempts_default_from_config(self, app, db_session):
        calls = {"n": 0}

        def always_stale():
            calls["n"] += 1
            raise StaleDataError("row changed")

        with pytest.raises(PersistenceError):
            run_with_retry(always_stale, backoff_base=0)
        assert calls["n"] == app.config["STOCK_RETRY_ATTEMPTS"]


class _RollbackRecorder:
    """Delegates to the real session and counts rollbacks."""

    def __init__(self, session):
        self._session = session
        self.rollbacks = 0

    def rollback(self):
        self.rollbacks += 1
        self._session.rollback()

    def __getattr__(self, name):
        return getattr(self._session, name)


class TestInjectedSession:
    def test_retry_rolls_back_the_given_session(self, app, db_session):
        recorder = _RollbackRecorder(db_session)
        calls = {"n": 0}

        def flaky():
            calls["n"] += 1
            if calls["n"] < 2:
                raise StaleDataError("row changed")
            return "ok"

        assert run_with_retry(flaky, attempts=3, backoff_base=0, session=recorder) == "ok"
        assert recorder.rollbacks == 1

    def test_ledger_domain_error_rolls_back_its_own_session(self, app, db_session):
        recorder = _RollbackRecorder(db_session)
        ledgers = build_ledgers(app.config, session=recorder)

        with pytest.raises(ValidationError, match="type"):
            ledgers.finance.add_transaction("gift", 100, "misc")
        assert recorder.rollbacks == 1

    def test_ledger_writes_through_injected_session(self, app, db_session):
        recorder = _RollbackRecorder(db_session)
        ledgers = build_ledgers(app.config, session=recorder)

        customer = ledgers.sales.create_customer({"name": "Pat"})
        item = ledgers.inventory.create_item({"name": "Lamp", "current_stock": 3})
        order = ledgers.sales.create_order(customer.id, [{"item_id": item.id, "quantity": 1}])

        assert order.order_number == "SO-0001"
        assert recorder.rollbacks == 0


class TestOptimisticVersioning:
    def test_stale_version_fails_on_flush(self, make_item, db_session):
        item = make_item("Widget", current_stock=5)
        loaded = db_session.get(InventoryItem, item.id)
        assert loaded.version_id is not None

        db_session.execute(
            text("UPDATE inventory_items SET version_id = version_id + 1 WHERE id = :id"),
            {"id": item.id},
        )
        loaded.name = "Renamed"

        with pytest.raises(StaleDataError):
            db_session.flush()
        db_session.rollback()

    def test_adjustment_reads_fresh_stock(self, ledgers, make_item, db_session):
        item = make_item("Widget", current_stock=5)
        assert ledgers.inventory.get_item(item.id).current_stock == 5

        # Another writer moved stock to 20 after our read
        db_session.execute(
            text(
                "UPDATE inventory_items SET current_stock = 20, version_id = version_id + 1 "
                "WHERE id = :id"
            ),
            {"id": item.id},
        )

        change = ledgers.inventory.adjust_stock(item.id, -3, "damage")

        assert change.previous_quantity == 20
        assert change.new_quantity == 17
        assert ledgers.inventory.get_item(item.id).current_stock == 17


class TestDocumentNumbers:
    def test_numbers_increment_per_type(self, app, db_session):
        assert next_document_number(document_type="PURCHASE_ORDER", prefix="PO") == "PO-0001"
        assert next_document_number(document_type="PURCHASE_ORDER", prefix="PO") == "PO-0002"
        assert next_document_number(document_type="SALES_ORDER", prefix="SO") == "SO-0001"
        db_session.commit()
        assert next_document_number(document_type="PURCHASE_ORDER", prefix="PO") == "PO-0003"
        db_session.commit()

    def test_rolled_back_number_is_reused(self, app, db_session):
        assert next_document_number(document_type="SALES_ORDER", prefix="SO") == "SO-0001"
        db_session.commit()
        assert next_document_number(document_type="SALES_ORDER", prefix="SO", pad=6) == "SO-000002"
        db_session.rollback()
        assert next_document_number(document_type="SALES_ORDER", prefix="SO") == "SO-0002"
        db_session.commit()
