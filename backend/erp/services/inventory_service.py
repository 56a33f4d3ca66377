# Overview: Inventory ledger; owns items and the append-only stock adjustment history.

# backend/erp/services/inventory_service.py
"""
Inventory invariants (authoritative)

- current_stock is never negative.
- current_stock only changes together with an InventoryAdjustment row written
  in the same DB transaction (previous_quantity, new_quantity, quantity_delta).
- Adjustments are append-only; deleting an item leaves its history in place.
- Stock read-modify-write is serialized per item: SELECT ... FOR UPDATE plus the
  version_id compare-and-swap, retried by run_with_retry on conflict.

Other ledgers (production, procurement, sales) change stock through
apply_adjustment() inside their own transaction; only the public methods here
commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from ..errors import InvalidOperationError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryAdjustment, InventoryItem
from ..numbers import QUANTITY_LIMIT, as_number, to_decimal
from ..time_utils import utcnow
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_item,
    require_choice,
    require_id,
    require_quantity,
    validate_payload,
)
from .concurrency import run_with_retry
from .repository import Repository

logger = logging.getLogger(__name__)

ADJUSTMENT_REASONS = {
    "damage",
    "counting_error",
    "return",
    "theft",
    "production",
    "sale",
    "purchase",
    "other",
}

ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "description",
        "category",
        "unit_of_measure",
        "purchase_cost_cents",
        "selling_price_cents",
        "current_stock",
        "reorder_level",
        "sku",
        "is_active",
    },
    required_on_create={"name"},
)


@dataclass
class StockChange:
    previous_quantity: Decimal
    new_quantity: Decimal
    adjustment: InventoryAdjustment | None

    def to_dict(self) -> dict:
        return {
            "previous_quantity": as_number(self.previous_quantity),
            "new_quantity": as_number(self.new_quantity),
            "adjustment": self.adjustment.to_dict() if self.adjustment is not None else None,
        }


class InventoryLedger:
    def __init__(self, session=None):
        self._session = session
        self.items = Repository(InventoryItem, InventoryItem.name.asc(), InventoryItem.id.asc(), session=session)
        self.adjustments = Repository(
            InventoryAdjustment,
            InventoryAdjustment.adjustment_date.desc(),
            InventoryAdjustment.id.desc(),
            session=session,
        )

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def invalidate(self) -> None:
        self.items.invalidate()
        self.adjustments.invalidate()

    # ------------------------------------------------------------------ reads

    def list_items(self, include_inactive: bool = True) -> list[InventoryItem]:
        items = self.items.all()
        if include_inactive:
            return items
        return [i for i in items if i.is_active]

    def get_item(self, item_id: int) -> InventoryItem:
        item = self.items.get(item_id)
        if item is None:
            raise NotFoundError(f"Inventory item {item_id} not found")
        return item

    def find_by_name(self, name: str) -> InventoryItem | None:
        """Exact-name lookup used to match supplier lines to stocked items."""
        if not name:
            return None
        return (
            self.session.query(InventoryItem)
            .filter(InventoryItem.name == name.strip())
            .order_by(InventoryItem.id.asc())
            .first()
        )

    def list_adjustments(self, item_id: int | None = None, limit: int = 200) -> list[InventoryAdjustment]:
        query = self.session.query(InventoryAdjustment)
        if item_id is not None:
            query = query.filter(InventoryAdjustment.item_id == item_id)
        return (
            query.order_by(InventoryAdjustment.adjustment_date.desc(), InventoryAdjustment.id.desc())
            .limit(max(1, min(int(limit), 1000)))
            .all()
        )

    def low_stock_items(self) -> list[InventoryItem]:
        return (
            self.session.query(InventoryItem)
            .filter(
                InventoryItem.is_active.is_(True),
                InventoryItem.current_stock <= InventoryItem.reorder_level,
            )
            .order_by(InventoryItem.name.asc(), InventoryItem.id.asc())
            .all()
        )

    # ------------------------------------------------------- transactional core

    def apply_adjustment(
        self,
        item_id: int,
        quantity_delta,
        reason: str,
        *,
        notes: str | None = None,
        created_by: str | None = None,
        reference_number: str | None = None,
    ) -> StockChange:
        """
        Change one item's stock and append the matching adjustment row.

        Does NOT commit: the caller owns the transaction (and its retry).
        Raises InvalidOperationError when the result would be negative.
        """
        reason = require_choice(reason, ADJUSTMENT_REASONS, "reason")
        try:
            delta = to_decimal(quantity_delta, "quantity_delta")
        except ValueError as e:
            raise ValidationError(str(e))
        if delta == 0:
            raise ValidationError("quantity_delta must not be zero")

        item = self.items.get(require_id(item_id, "item_id"), lock=True)
        if item is None:
            raise NotFoundError(f"Inventory item {item_id} not found")

        previous = Decimal(item.current_stock or 0)
        new = previous + delta
        if new < 0:
            raise InvalidOperationError(
                "Adjustment would result in negative stock",
                details={
                    "item_id": item.id,
                    "current_stock": as_number(previous),
                    "quantity_delta": as_number(delta),
                },
            )
        if new >= QUANTITY_LIMIT:
            raise ValidationError("Adjustment would exceed the maximum stock quantity")

        adjustment = InventoryAdjustment(
            item_id=item.id,
            item_name=item.name,
            previous_quantity=previous,
            new_quantity=new,
            quantity_delta=delta,
            reason=reason,
            notes=notes,
            created_by=created_by or "System",
            reference_number=reference_number,
            adjustment_date=utcnow(),
        )
        item.current_stock = new
        self.session.add(adjustment)
        self.session.flush()
        return StockChange(previous, new, adjustment)

    # ------------------------------------------------------------- mutations

    def create_item(self, data: dict, *, created_by: str | None = None) -> InventoryItem:
        patch = validate_payload(model=InventoryItem, payload=data, policy=ITEM_POLICY, partial=False)
        enforce_rules_item(patch)
        opening_stock = patch.pop("current_stock", None) or Decimal("0")

        def _op():
            item = InventoryItem(**patch)
            item.current_stock = Decimal("0")
            self.session.add(item)
            self.session.flush()
            if opening_stock > 0:
                self.apply_adjustment(
                    item.id,
                    opening_stock,
                    "other",
                    notes="Opening balance",
                    created_by=created_by,
                )
            self.session.commit()
            return item

        item = run_with_retry(_op, session=self.session)
        self.invalidate()
        logger.info("Created inventory item %s (%s)", item.id, item.name)
        return item

    def update_item(self, item_id: int, data: dict, *, updated_by: str | None = None) -> InventoryItem:
        patch = validate_payload(model=InventoryItem, payload=data, policy=ITEM_POLICY, partial=True)
        enforce_rules_item(patch)
        target_stock = patch.pop("current_stock", None)

        def _op():
            item = self.items.get(item_id, lock=True)
            if item is None:
                raise NotFoundError(f"Inventory item {item_id} not found")
            # Stock first: apply_adjustment re-reads the row and would discard unflushed edits
            if target_stock is not None:
                delta = target_stock - Decimal(item.current_stock or 0)
                if delta != 0:
                    self.apply_adjustment(
                        item.id,
                        delta,
                        "counting_error",
                        notes="Stock corrected via item update",
                        created_by=updated_by,
                    )
            for key, value in patch.items():
                setattr(item, key, value)
            item.updated_at = utcnow()
            self.session.commit()
            return item

        item = run_with_retry(_op, session=self.session)
        self.invalidate()
        return item

    def adjust_stock(
        self,
        item_id: int,
        quantity_delta,
        reason: str,
        notes: str | None = None,
        created_by: str | None = None,
        reference_number: str | None = None,
    ) -> StockChange:
        def _op():
            change = self.apply_adjustment(
                item_id,
                quantity_delta,
                reason,
                notes=notes,
                created_by=created_by,
                reference_number=reference_number,
            )
            self.session.commit()
            return change

        change = run_with_retry(_op, session=self.session)
        self.invalidate()
        return change

    def set_stock(
        self,
        item_id: int,
        new_quantity,
        reason: str,
        notes: str | None = None,
        created_by: str | None = None,
    ) -> StockChange:
        target = require_quantity(new_quantity, "new_quantity", allow_zero=True)

        def _op():
            item = self.items.get(item_id, lock=True)
            if item is None:
                raise NotFoundError(f"Inventory item {item_id} not found")
            previous = Decimal(item.current_stock or 0)
            if target == previous:
                return StockChange(previous, previous, None)
            change = self.apply_adjustment(
                item.id,
                target - previous,
                reason,
                notes=notes,
                created_by=created_by,
            )
            self.session.commit()
            return change

        change = run_with_retry(_op, session=self.session)
        self.invalidate()
        return change

    def increase_stock(
        self,
        item_id: int,
        quantity,
        reason: str = "return",
        notes: str | None = None,
        created_by: str | None = None,
    ) -> StockChange:
        qty = require_quantity(quantity, "quantity")
        return self.adjust_stock(item_id, qty, reason, notes=notes, created_by=created_by)

    def delete_item(self, item_id: int) -> None:
        def _op():
            item = self.items.get(item_id)
            if item is None:
                raise NotFoundError(f"Inventory item {item_id} not found")
            self.session.delete(item)
            self.session.commit()

        run_with_retry(_op, session=self.session)
        self.invalidate()
        logger.info("Deleted inventory item %s; adjustment history retained", item_id)
