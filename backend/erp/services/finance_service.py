# Overview: Financial ledger; income/expense transactions and their aggregations.

from __future__ import annotations

import logging

from sqlalchemy import case, func

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import FinancialTransaction
from ..time_utils import range_bounds, utcnow
from ..validation import (
    optional_datetime,
    optional_text,
    require_cents,
    require_choice,
)
from .concurrency import run_with_retry
from .repository import Repository

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = {"income", "expense"}


def parse_range(start, end):
    try:
        return range_bounds(start, end)
    except ValueError:
        raise ValidationError("start_date/end_date must be ISO-8601 dates")


class FinancialLedger:
    def __init__(self, session=None):
        self._session = session
        self.transactions = Repository(
            FinancialTransaction,
            FinancialTransaction.date.desc(),
            FinancialTransaction.id.desc(),
            session=session,
        )

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def invalidate(self) -> None:
        self.transactions.invalidate()

    def record_transaction(
        self,
        type: str,
        amount_cents,
        category: str,
        description: str = "",
        date=None,
        payment_method: str = "cash",
        reference_number: str | None = None,
    ) -> FinancialTransaction:
        """
        Add a transaction to the caller's open DB transaction (no commit).

        Only the type and the amount are checked; category and payment method
        are free-form labels.
        """
        tx = FinancialTransaction(
            type=require_choice(type, TRANSACTION_TYPES, "type"),
            amount_cents=require_cents(amount_cents, "amount_cents", allow_negative=True),
            category=optional_text(category, "category", max_length=64),
            description=(description or "").strip()[:255],
            date=optional_datetime(date, "date") or utcnow(),
            payment_method=optional_text(payment_method, "payment_method", max_length=16) or "cash",
            reference_number=(reference_number or None),
        )
        self.session.add(tx)
        self.session.flush()
        return tx

    def add_transaction(
        self,
        type: str,
        amount_cents,
        category: str,
        description: str = "",
        date=None,
        payment_method: str = "cash",
        reference_number: str | None = None,
    ) -> FinancialTransaction:
        def _op():
            tx = self.record_transaction(
                type,
                amount_cents,
                category,
                description=description,
                date=date,
                payment_method=payment_method,
                reference_number=reference_number,
            )
            self.session.commit()
            return tx

        tx = run_with_retry(_op, session=self.session)
        self.invalidate()
        return tx

    def list_transactions(self, type: str | None = None, category: str | None = None, start=None, end=None):
        if type is None and category is None and start is None and end is None:
            return self.transactions.all()
        start_dt, end_dt = parse_range(start, end)
        query = self.session.query(FinancialTransaction)
        if type is not None:
            query = query.filter(FinancialTransaction.type == require_choice(type, TRANSACTION_TYPES, "type"))
        if category:
            query = query.filter(FinancialTransaction.category == category)
        if start_dt is not None:
            query = query.filter(FinancialTransaction.date >= start_dt)
        if end_dt is not None:
            query = query.filter(FinancialTransaction.date <= end_dt)
        return query.order_by(FinancialTransaction.date.desc(), FinancialTransaction.id.desc()).all()

    def delete_transaction(self, transaction_id: int) -> None:
        def _op():
            tx = self.transactions.get(transaction_id)
            if tx is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            self.session.delete(tx)
            self.session.commit()

        run_with_retry(_op, session=self.session)
        self.invalidate()
        logger.info("Deleted financial transaction %s", transaction_id)

    def _totals_query(self, start, end, *group_by):
        start_dt, end_dt = parse_range(start, end)
        income = func.coalesce(
            func.sum(case((FinancialTransaction.type == "income", FinancialTransaction.amount_cents), else_=0)), 0
        )
        expenses = func.coalesce(
            func.sum(case((FinancialTransaction.type == "expense", FinancialTransaction.amount_cents), else_=0)), 0
        )
        query = self.session.query(*group_by, income, expenses)
        if start_dt is not None:
            query = query.filter(FinancialTransaction.date >= start_dt)
        if end_dt is not None:
            query = query.filter(FinancialTransaction.date <= end_dt)
        if group_by:
            query = query.group_by(*group_by).order_by(*group_by)
        return query

    def get_financial_summary(self, start_date=None, end_date=None) -> dict:
        """Inclusive-range income/expense totals in cents; balance = income - expenses."""
        income, expenses = self._totals_query(start_date, end_date).one()
        income, expenses = int(income or 0), int(expenses or 0)
        return {"income": income, "expenses": expenses, "balance": income - expenses}

    def profit_and_loss(self, start_date=None, end_date=None) -> dict:
        rows = self._totals_query(start_date, end_date, FinancialTransaction.category).all()
        categories = []
        for category, income, expenses in rows:
            income, expenses = int(income or 0), int(expenses or 0)
            categories.append(
                {
                    "category": category,
                    "income": income,
                    "expenses": expenses,
                    "profit": income - expenses,
                }
            )
        return {
            "categories": categories,
            "totals": self.get_financial_summary(start_date, end_date),
        }
