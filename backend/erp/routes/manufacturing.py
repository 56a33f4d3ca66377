# backend/erp/routes/manufacturing.py
"""
Bill-of-materials and production order routes.

SECURITY: Every route requires a known role (X-User-Role).
- Deleting a BOM and correcting costs of an order require manager
"""
from flask import Blueprint, request, current_app

from ..decorators import current_actor, require_manager, require_role
from ..errors import ErpError
from ..services import get_ledgers
from . import json_payload


manufacturing_bp = Blueprint("manufacturing", __name__, url_prefix="/api/manufacturing")


@manufacturing_bp.get("/boms")
@require_role()
def list_boms_route():
    return {"boms": [b.to_dict() for b in get_ledgers().boms.list_boms()]}


@manufacturing_bp.post("/boms")
@require_role()
def create_bom_route():
    payload = json_payload()
    bom = get_ledgers().boms.create_bom(
        payload.get("product_name"),
        payload.get("description"),
        payload.get("materials"),
        finished_item_id=payload.get("finished_item_id"),
    )
    return {"bom": bom.to_dict()}, 201


@manufacturing_bp.get("/boms/<int:bom_id>")
@require_role()
def get_bom_route(bom_id: int):
    return {"bom": get_ledgers().boms.get_bom(bom_id).to_dict()}


@manufacturing_bp.put("/boms/<int:bom_id>")
@require_role()
def update_bom_route(bom_id: int):
    payload = json_payload()
    bom = get_ledgers().boms.update_bom(
        bom_id,
        payload.get("product_name"),
        payload.get("description"),
        payload.get("materials"),
        finished_item_id=payload.get("finished_item_id"),
    )
    return {"bom": bom.to_dict()}


@manufacturing_bp.delete("/boms/<int:bom_id>")
@require_manager
def delete_bom_route(bom_id: int):
    return get_ledgers().boms.delete_bom(bom_id)


@manufacturing_bp.get("/production-orders")
@require_role()
def list_production_orders_route():
    status = request.args.get("status")
    orders = get_ledgers().production.list_production_orders(status=status)
    return {"production_orders": [o.to_dict() for o in orders]}


@manufacturing_bp.post("/production-orders")
@require_role()
def create_production_order_route():
    payload = json_payload()
    order = get_ledgers().production.create_production_order(
        payload.get("bom_id"),
        payload.get("quantity_to_produce"),
        payload.get("start_date"),
    )
    return {"production_order": order.to_dict()}, 201


@manufacturing_bp.get("/production-orders/<int:order_id>")
@require_role()
def get_production_order_route(order_id: int):
    production = get_ledgers().production
    order = production.get_production_order(order_id)
    body = {"production_order": order.to_dict()}
    if request.args.get("include") == "materials":
        body["materials"] = production.material_requirements(order_id)
    return body


@manufacturing_bp.post("/production-orders/<int:order_id>/status")
@require_role()
def update_production_order_status_route(order_id: int):
    payload = json_payload()
    order = get_ledgers().production.update_production_order_status(
        order_id,
        payload.get("status"),
        completion_date=payload.get("completion_date"),
    )
    return {"production_order": order.to_dict()}


@manufacturing_bp.post("/production-orders/<int:order_id>/complete")
@require_role()
def complete_production_order_route(order_id: int):
    """
    Complete a production run: credits finished goods and books the cost.

    Body: {"labor_cost_cents": 2000, "additional_costs_cents": 500}
    """
    payload = json_payload()
    try:
        order = get_ledgers().production.complete_production_order(
            order_id,
            payload.get("labor_cost_cents", 0),
            payload.get("additional_costs_cents", 0),
            completed_by=current_actor(),
        )
    except ErpError:
        raise
    except Exception:
        current_app.logger.exception("Failed to complete production order")
        return {"error": "Failed to complete production order"}, 500
    return {"production_order": order.to_dict()}


@manufacturing_bp.post("/production-orders/<int:order_id>/costs")
@require_manager
def correct_production_costs_route(order_id: int):
    payload = json_payload()
    order = get_ledgers().production.correct_production_costs(
        order_id,
        payload.get("labor_cost_cents", 0),
        payload.get("additional_costs_cents", 0),
    )
    return {"production_order": order.to_dict()}
