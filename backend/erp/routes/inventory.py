# backend/erp/routes/inventory.py
"""
Inventory item and stock adjustment routes.

SECURITY: Every route requires a known role (X-User-Role).
- Deleting items and direct stock adjustments require manager
- A PATCH that changes current_stock is a stock adjustment and requires manager
"""
from flask import Blueprint, request, g

from ..decorators import ROLE_MANAGER, current_actor, require_manager, require_role
from ..services import get_ledgers
from . import flag_arg, json_payload


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/items")
@require_role()
def list_items_route():
    include_inactive = flag_arg("include_inactive", default=True)
    items = get_ledgers().inventory.list_items(include_inactive=include_inactive)
    return {"items": [i.to_dict() for i in items]}


@inventory_bp.post("/items")
@require_role()
def create_item_route():
    item = get_ledgers().inventory.create_item(json_payload(), created_by=current_actor())
    return {"item": item.to_dict()}, 201


@inventory_bp.get("/items/<int:item_id>")
@require_role()
def get_item_route(item_id: int):
    item = get_ledgers().inventory.get_item(item_id)
    return {"item": item.to_dict()}


@inventory_bp.patch("/items/<int:item_id>")
@require_role()
def update_item_route(item_id: int):
    payload = json_payload()
    if "current_stock" in payload and g.current_role != ROLE_MANAGER:
        return {"error": "Permission denied", "required_role": ROLE_MANAGER}, 403
    item = get_ledgers().inventory.update_item(item_id, payload, updated_by=current_actor())
    return {"item": item.to_dict()}


@inventory_bp.delete("/items/<int:item_id>")
@require_manager
def delete_item_route(item_id: int):
    get_ledgers().inventory.delete_item(item_id)
    return {"deleted": True}


@inventory_bp.post("/items/<int:item_id>/adjust")
@require_manager
def adjust_item_route(item_id: int):
    """
    Adjust stock for one item.

    Body: {"quantity_delta": -3, "reason": "damage", "notes": "..."}
      or  {"new_quantity": 12, "reason": "counting_error"}
    """
    payload = json_payload()
    inventory = get_ledgers().inventory
    reason = payload.get("reason") or "other"

    if "new_quantity" in payload:
        change = inventory.set_stock(
            item_id,
            payload.get("new_quantity"),
            reason,
            notes=payload.get("notes"),
            created_by=current_actor(),
        )
    else:
        change = inventory.adjust_stock(
            item_id,
            payload.get("quantity_delta"),
            reason,
            notes=payload.get("notes"),
            created_by=current_actor(),
            reference_number=payload.get("reference_number"),
        )
    return change.to_dict()


@inventory_bp.get("/adjustments")
@require_role()
def list_adjustments_route():
    item_id = request.args.get("item_id", type=int)
    limit = request.args.get("limit", default=200, type=int)
    adjustments = get_ledgers().inventory.list_adjustments(item_id=item_id, limit=limit)
    return {"adjustments": [a.to_dict() for a in adjustments]}


@inventory_bp.get("/low-stock")
@require_role()
def low_stock_route():
    items = get_ledgers().inventory.low_stock_items()
    return {"items": [i.to_dict() for i in items], "count": len(items)}
