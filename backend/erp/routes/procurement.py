# backend/erp/routes/procurement.py
"""
Supplier and purchase order routes.

SECURITY: Every route requires a known role (X-User-Role).
- Deleting a purchase order requires manager
"""
from flask import Blueprint, request, current_app

from ..decorators import current_actor, require_manager, require_role
from ..errors import ErpError
from ..services import get_ledgers
from . import flag_arg, json_payload


procurement_bp = Blueprint("procurement", __name__, url_prefix="/api/procurement")


@procurement_bp.get("/suppliers")
@require_role()
def list_suppliers_route():
    suppliers = get_ledgers().procurement.list_suppliers(include_inactive=flag_arg("include_inactive"))
    return {"suppliers": [s.to_dict() for s in suppliers]}


@procurement_bp.post("/suppliers")
@require_role()
def create_supplier_route():
    supplier = get_ledgers().procurement.create_supplier(json_payload())
    return {"supplier": supplier.to_dict()}, 201


@procurement_bp.patch("/suppliers/<int:supplier_id>")
@require_role()
def update_supplier_route(supplier_id: int):
    supplier = get_ledgers().procurement.update_supplier(supplier_id, json_payload())
    return {"supplier": supplier.to_dict()}


@procurement_bp.get("/orders")
@require_role()
def list_orders_route():
    orders = get_ledgers().procurement.list_orders(status=request.args.get("status"))
    return {"orders": [o.to_dict() for o in orders]}


@procurement_bp.post("/orders")
@require_role()
def create_order_route():
    payload = json_payload()
    order = get_ledgers().procurement.create_order(
        payload.get("supplier_id"),
        payload.get("items"),
        notes=payload.get("notes"),
        expected_delivery_date=payload.get("expected_delivery_date"),
    )
    return {"order": order.to_dict()}, 201


@procurement_bp.get("/orders/<int:order_id>")
@require_role()
def get_order_route(order_id: int):
    return {"order": get_ledgers().procurement.get_order(order_id).to_dict()}


@procurement_bp.delete("/orders/<int:order_id>")
@require_manager
def delete_order_route(order_id: int):
    get_ledgers().procurement.delete_order(order_id)
    return {"deleted": True}


@procurement_bp.post("/orders/<int:order_id>/status")
@require_role()
def update_order_status_route(order_id: int):
    payload = json_payload()
    order = get_ledgers().procurement.update_status(
        order_id,
        payload.get("status"),
        changed_by=current_actor(),
    )
    return {"order": order.to_dict()}


@procurement_bp.post("/orders/<int:order_id>/receive")
@require_role()
def receive_goods_route(order_id: int):
    """
    Receive goods against a purchase order.

    Body: {"quantities": {"<line_id>": 5, ...}, "notes": "..."}
    Omitting quantities receives every outstanding line in full.
    """
    payload = json_payload()
    try:
        receipt = get_ledgers().procurement.receive_goods(
            order_id,
            payload.get("quantities"),
            notes=payload.get("notes"),
            received_by=current_actor(),
        )
    except ErpError:
        raise
    except Exception:
        current_app.logger.exception("Failed to receive goods")
        return {"error": "Failed to receive goods"}, 500
    return _receipt_body(receipt)


def _receipt_body(receipt: dict) -> dict:
    return {
        "order": receipt["order"].to_dict(),
        "received_value_cents": receipt["received_value_cents"],
        "skipped_line_ids": receipt["skipped_line_ids"],
    }
