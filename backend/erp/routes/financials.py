# backend/erp/routes/financials.py
"""
Financial transaction and aggregation routes.

SECURITY: Every route requires a known role (X-User-Role).
- Deleting a transaction requires manager

Date ranges (start_date / end_date query params) are inclusive; a date-only
end_date covers that whole day.
"""
from flask import Blueprint, request

from ..decorators import require_manager, require_role
from ..services import get_ledgers
from . import json_payload


financials_bp = Blueprint("financials", __name__, url_prefix="/api/financials")


@financials_bp.get("/transactions")
@require_role()
def list_transactions_route():
    transactions = get_ledgers().finance.list_transactions(
        type=request.args.get("type"),
        category=request.args.get("category"),
        start=request.args.get("start_date"),
        end=request.args.get("end_date"),
    )
    return {"transactions": [t.to_dict() for t in transactions]}


@financials_bp.post("/transactions")
@require_role()
def add_transaction_route():
    payload = json_payload()
    tx = get_ledgers().finance.add_transaction(
        payload.get("type"),
        payload.get("amount_cents"),
        payload.get("category"),
        description=payload.get("description") or "",
        date=payload.get("date"),
        payment_method=payload.get("payment_method") or "cash",
        reference_number=payload.get("reference_number"),
    )
    return {"transaction": tx.to_dict()}, 201


@financials_bp.delete("/transactions/<int:transaction_id>")
@require_manager
def delete_transaction_route(transaction_id: int):
    get_ledgers().finance.delete_transaction(transaction_id)
    return {"deleted": True}


@financials_bp.get("/summary")
@require_role()
def summary_route():
    return get_ledgers().finance.get_financial_summary(
        request.args.get("start_date"),
        request.args.get("end_date"),
    )


@financials_bp.get("/profit-loss")
@require_role()
def profit_loss_route():
    return get_ledgers().finance.profit_and_loss(
        request.args.get("start_date"),
        request.args.get("end_date"),
    )
