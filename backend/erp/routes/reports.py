# backend/erp/routes/reports.py
from flask import Blueprint, request

from ..decorators import require_role
from ..services import get_ledgers


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
@require_role()
def dashboard_route():
    return get_ledgers().reports.dashboard_summary(
        request.args.get("start_date"),
        request.args.get("end_date"),
    )


@reports_bp.get("/sales")
@require_role()
def sales_report_route():
    """Completed-order sales report. Query: ?period=month|year (default month)."""
    period = (request.args.get("period") or "month").strip().lower()
    return get_ledgers().reports.sales_report(period)
