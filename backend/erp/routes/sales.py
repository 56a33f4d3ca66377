# backend/erp/routes/sales.py
"""
Customer and sales order routes.

SECURITY: Every route requires a known role (X-User-Role).
- Deleting a sales order requires manager
"""
from flask import Blueprint, request, current_app

from ..decorators import current_actor, require_manager, require_role
from ..errors import ErpError
from ..services import get_ledgers
from . import json_payload


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("/customers")
@require_role()
def list_customers_route():
    return {"customers": [c.to_dict() for c in get_ledgers().sales.list_customers()]}


@sales_bp.post("/customers")
@require_role()
def create_customer_route():
    customer = get_ledgers().sales.create_customer(json_payload())
    return {"customer": customer.to_dict()}, 201


@sales_bp.get("/orders")
@require_role()
def list_orders_route():
    orders = get_ledgers().sales.list_orders(status=request.args.get("status"))
    return {"orders": [o.to_dict() for o in orders]}


@sales_bp.post("/orders")
@require_role()
def create_order_route():
    payload = json_payload()
    order = get_ledgers().sales.create_order(
        payload.get("customer_id"),
        payload.get("items"),
        payment_method=payload.get("payment_method") or "cash",
        order_date=payload.get("order_date"),
        notes=payload.get("notes"),
    )
    return {"order": order.to_dict()}, 201


@sales_bp.get("/orders/<int:order_id>")
@require_role()
def get_order_route(order_id: int):
    return {"order": get_ledgers().sales.get_order(order_id).to_dict()}


@sales_bp.delete("/orders/<int:order_id>")
@require_manager
def delete_order_route(order_id: int):
    get_ledgers().sales.delete_order(order_id)
    return {"deleted": True}


@sales_bp.post("/orders/<int:order_id>/status")
@require_role()
def update_order_status_route(order_id: int):
    """
    Move a sales order along its lifecycle.

    Entering "completed" debits stock and books the sale; it fails with 409
    when any line would oversell.
    """
    payload = json_payload()
    try:
        order = get_ledgers().sales.update_status(
            order_id,
            payload.get("status"),
            changed_by=current_actor(),
        )
    except ErpError:
        raise
    except Exception:
        current_app.logger.exception("Failed to update sales order status")
        return {"error": "Failed to update sales order status"}, 500
    return {"order": order.to_dict()}


@sales_bp.post("/orders/<int:order_id>/returns")
@require_role()
def process_return_route(order_id: int):
    """
    Body: {"items": {"<line_id>": 1}, "reason": "damaged in transit"}
    Omitting items returns everything not yet returned.
    """
    payload = json_payload()
    try:
        order = get_ledgers().sales.process_return(
            order_id,
            payload.get("items"),
            payload.get("reason"),
            processed_by=current_actor(),
        )
    except ErpError:
        raise
    except Exception:
        current_app.logger.exception("Failed to process return")
        return {"error": "Failed to process return"}, 500
    return {"order": order.to_dict()}
