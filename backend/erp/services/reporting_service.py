# Overview: Dashboard and sales reporting across the sales, procurement, production and financial ledgers.

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import case, func

from ..errors import ValidationError
from ..extensions import db
from ..models import FinancialTransaction, ProductionOrder, PurchaseOrder, SalesOrder
from ..numbers import round_cents
from ..time_utils import utcnow
from .finance_service import FinancialLedger, parse_range
from .inventory_service import InventoryLedger
from .procurement_service import OPEN_STATUSES as OPEN_PURCHASE_STATUSES
from .production_service import LEGACY_STATUS_ALIASES, OPEN_STATUSES as OPEN_PRODUCTION_STATUSES
from .sales_service import OPEN_STATUSES as OPEN_SALES_STATUSES

SALES_REPORT_FORMATS = {"month": "%Y-%m", "year": "%Y"}
SALES_REPORT_PERIODS = 6
SALES_REPORT_RECENT = 5


def _period_keys(period: str, now, count: int) -> list[str]:
    """Bucket labels for the last `count` months or years ending at `now`, oldest first."""
    keys = []
    for back in range(count - 1, -1, -1):
        if period == "year":
            keys.append(f"{now.year - back:04d}")
        else:
            months = now.year * 12 + (now.month - 1) - back
            keys.append(f"{months // 12:04d}-{months % 12 + 1:02d}")
    return keys


class ReportingService:
    def __init__(self, inventory: InventoryLedger, finance: FinancialLedger, session=None):
        self.inventory = inventory
        self.finance = finance
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def _category_total(self, type: str, category: str | None, start, end) -> int:
        start_dt, end_dt = parse_range(start, end)
        amount = case(
            (FinancialTransaction.type == type, FinancialTransaction.amount_cents),
            else_=0,
        )
        query = self.session.query(func.coalesce(func.sum(amount), 0))
        if category is not None:
            query = query.filter(FinancialTransaction.category == category)
        if start_dt is not None:
            query = query.filter(FinancialTransaction.date >= start_dt)
        if end_dt is not None:
            query = query.filter(FinancialTransaction.date <= end_dt)
        return int(query.scalar() or 0)

    def pending_orders(self) -> dict:
        production_open = set(OPEN_PRODUCTION_STATUSES) | set(LEGACY_STATUS_ALIASES)
        sales = (
            self.session.query(func.count(SalesOrder.id))
            .filter(SalesOrder.status.in_(sorted(OPEN_SALES_STATUSES)))
            .scalar()
        ) or 0
        purchases = (
            self.session.query(func.count(PurchaseOrder.id))
            .filter(PurchaseOrder.status.in_(sorted(OPEN_PURCHASE_STATUSES)))
            .scalar()
        ) or 0
        production = (
            self.session.query(func.count(ProductionOrder.id))
            .filter(ProductionOrder.status.in_(sorted(production_open)))
            .scalar()
        ) or 0
        return {"sales": sales, "purchases": purchases, "production": production}

    def dashboard_summary(self, start=None, end=None) -> dict:
        """
        Headline numbers for the dashboard, money in cents.

        total_sales and total_purchases come from the "sales" income and
        "purchases" expense categories; net_profit is all income minus all
        expenses over the same inclusive range.
        """
        summary = self.finance.get_financial_summary(start, end)
        pending = self.pending_orders()
        return {
            "total_sales": self._category_total("income", "sales", start, end),
            "total_purchases": self._category_total("expense", "purchases", start, end),
            "total_expenses": summary["expenses"],
            "net_profit": summary["balance"],
            "low_stock_items": len(self.inventory.low_stock_items()),
            "pending_orders": sum(pending.values()),
            "pending_breakdown": pending,
        }

    def sales_report(self, period: str = "month", *, now=None, periods: int = SALES_REPORT_PERIODS) -> dict:
        """
        Completed-order sales: totals, the last `periods` month or year buckets
        (oldest first, zero-filled) and the most recent completed orders.
        """
        if period not in SALES_REPORT_FORMATS:
            raise ValidationError("period must be month or year")
        now = now or utcnow()

        completed = SalesOrder.status == "completed"
        total, count = (
            self.session.query(
                func.coalesce(func.sum(SalesOrder.total_amount_cents), 0),
                func.count(SalesOrder.id),
            )
            .filter(completed)
            .one()
        )
        total, count = int(total or 0), int(count or 0)

        keys = _period_keys(period, now, periods)
        bucket = func.strftime(SALES_REPORT_FORMATS[period], SalesOrder.order_date)
        rows = (
            self.session.query(bucket.label("period"), func.sum(SalesOrder.total_amount_cents))
            .filter(completed, bucket.in_(keys))
            .group_by("period")
            .all()
        )
        sums = {key: int(amount or 0) for key, amount in rows}

        recent = (
            self.session.query(SalesOrder)
            .filter(completed)
            .order_by(SalesOrder.order_date.desc(), SalesOrder.id.desc())
            .limit(SALES_REPORT_RECENT)
            .all()
        )
        return {
            "period": period,
            "total_sales_cents": total,
            "total_orders": count,
            "average_order_value_cents": round_cents(Decimal(total) / count) if count else 0,
            "buckets": [{"date": key, "sales_cents": sums.get(key, 0)} for key in keys],
            "recent_orders": [order.to_dict() for order in recent],
        }
