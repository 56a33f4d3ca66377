# Overview: Procurement ledger; suppliers, purchase orders and goods receipt.

# backend/erp/services/procurement_service.py
"""
Purchase order lifecycle.

    draft -> sent | received | cancelled
    sent -> received | cancelled
    received -> completed

Entering received goes through receive_goods(): received quantities credit
stock (reason "purchase", reference = order number) and the received value is
booked as a "purchases" expense, all in one DB transaction. Lines whose item
cannot be resolved (by item_id, else by exact name) are recorded as received
but skipped for stock, with a warning.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from ..errors import InvalidOperationError, InvalidTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderItem, Supplier
from ..numbers import round_cents
from ..time_utils import utcnow
from ..validation import (
    ModelValidationPolicy,
    optional_datetime,
    require_cents,
    require_choice,
    require_id,
    require_quantity,
    require_text,
    validate_payload,
)
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .finance_service import FinancialLedger
from .inventory_service import InventoryLedger
from .repository import Repository

logger = logging.getLogger(__name__)

PO_DRAFT = "draft"
PO_SENT = "sent"
PO_RECEIVED = "received"
PO_COMPLETED = "completed"
PO_CANCELLED = "cancelled"

PO_STATUSES = {PO_DRAFT, PO_SENT, PO_RECEIVED, PO_COMPLETED, PO_CANCELLED}
RECEIVABLE_STATUSES = {PO_DRAFT, PO_SENT}
OPEN_STATUSES = {PO_DRAFT, PO_SENT}

PO_TRANSITIONS = {
    (PO_DRAFT, PO_SENT),
    (PO_DRAFT, PO_RECEIVED),
    (PO_DRAFT, PO_CANCELLED),
    (PO_SENT, PO_RECEIVED),
    (PO_SENT, PO_CANCELLED),
    (PO_RECEIVED, PO_COMPLETED),
}

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "telephone", "address", "payment_terms", "is_active"},
    required_on_create={"name"},
)


class ProcurementLedger:
    def __init__(self, inventory: InventoryLedger, finance: FinancialLedger, session=None):
        self.inventory = inventory
        self.finance = finance
        self._session = session
        self.suppliers = Repository(Supplier, Supplier.name.asc(), Supplier.id.asc(), session=session)
        self.orders = Repository(
            PurchaseOrder,
            PurchaseOrder.created_at.desc(),
            PurchaseOrder.id.desc(),
            session=session,
        )

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    # -------------------------------------------------------------- suppliers

    def list_suppliers(self, include_inactive: bool = False) -> list[Supplier]:
        suppliers = self.suppliers.all()
        if include_inactive:
            return suppliers
        return [s for s in suppliers if s.is_active]

    def get_supplier(self, supplier_id: int) -> Supplier:
        supplier = self.suppliers.get(supplier_id)
        if supplier is None:
            raise NotFoundError(f"Supplier {supplier_id} not found")
        return supplier

    def create_supplier(self, data: dict) -> Supplier:
        patch = validate_payload(model=Supplier, payload=data, policy=SUPPLIER_POLICY, partial=False)

        def _op():
            supplier = Supplier(**patch)
            self.session.add(supplier)
            self.session.commit()
            return supplier

        supplier = run_with_retry(_op, attempts=1, session=self.session)
        self.suppliers.invalidate()
        return supplier

    def update_supplier(self, supplier_id: int, data: dict) -> Supplier:
        patch = validate_payload(model=Supplier, payload=data, policy=SUPPLIER_POLICY, partial=True)

        def _op():
            supplier = self.get_supplier(supplier_id)
            for key, value in patch.items():
                setattr(supplier, key, value)
            self.session.commit()
            return supplier

        supplier = run_with_retry(_op, attempts=1, session=self.session)
        self.suppliers.invalidate()
        return supplier

    # ----------------------------------------------------------------- orders

    def list_orders(self, status: str | None = None) -> list[PurchaseOrder]:
        orders = self.orders.all()
        if status is None:
            return orders
        status = require_choice(status, PO_STATUSES, "status")
        return [o for o in orders if o.status == status]

    def get_order(self, order_id: int) -> PurchaseOrder:
        order = self.orders.get(order_id)
        if order is None:
            raise NotFoundError(f"Purchase order {order_id} not found")
        return order

    def _locked_order(self, order_id: int) -> PurchaseOrder:
        order = lock_for_update(self.session.query(PurchaseOrder).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError(f"Purchase order {order_id} not found")
        return order

    def _build_lines(self, items) -> list[PurchaseOrderItem]:
        if not items or not isinstance(items, list):
            raise ValidationError("A purchase order needs at least one line")

        lines = []
        for idx, raw in enumerate(items):
            if not isinstance(raw, dict):
                raise ValidationError(f"items[{idx}] must be an object")
            item = None
            if raw.get("item_id") is not None:
                item = self.inventory.get_item(require_id(raw["item_id"], f"items[{idx}].item_id"))
            name = raw.get("name") or (item.name if item is not None else None)
            name = require_text(name, f"items[{idx}].name")
            quantity = require_quantity(raw.get("quantity"), f"items[{idx}].quantity")
            unit_cost = raw.get("unit_cost_cents")
            if unit_cost is None:
                if item is None:
                    raise ValidationError(f"items[{idx}].unit_cost_cents is required")
                unit_cost = item.purchase_cost_cents
            unit_cost = require_cents(unit_cost, f"items[{idx}].unit_cost_cents")
            lines.append(
                PurchaseOrderItem(
                    item_id=item.id if item is not None else None,
                    name=name,
                    quantity=quantity,
                    unit_cost_cents=unit_cost,
                    total_cost_cents=round_cents(quantity * unit_cost),
                    received_quantity=Decimal("0"),
                )
            )
        return lines

    def create_order(self, supplier_id, items, notes: str | None = None, expected_delivery_date=None) -> PurchaseOrder:
        supplier_id = require_id(supplier_id, "supplier_id")
        expected = optional_datetime(expected_delivery_date, "expected_delivery_date")

        def _op():
            self.get_supplier(supplier_id)
            lines = self._build_lines(items)
            order = PurchaseOrder(
                order_number=next_document_number(
                    document_type="PURCHASE_ORDER", prefix="PO", session=self.session
                ),
                supplier_id=supplier_id,
                status=PO_DRAFT,
                total_amount_cents=sum(line.total_cost_cents for line in lines),
                expected_delivery_date=expected,
                notes=(notes or "").strip() or None,
            )
            order.items.extend(lines)
            self.session.add(order)
            self.session.commit()
            return order

        order = run_with_retry(_op, session=self.session)
        self.orders.invalidate()
        logger.info("Created purchase order %s (%s cents)", order.order_number, order.total_amount_cents)
        return order

    def update_status(self, order_id: int, status: str, *, changed_by: str | None = None) -> PurchaseOrder:
        target = require_choice(status, PO_STATUSES, "status")
        if target == PO_RECEIVED:
            return self.receive_goods(order_id, None, received_by=changed_by)["order"]

        def _op():
            order = self._locked_order(order_id)
            if (order.status, target) not in PO_TRANSITIONS:
                raise InvalidTransitionError("purchase order", order.status, target)
            order.status = target
            self.session.commit()
            return order

        order = run_with_retry(_op, session=self.session)
        self.orders.invalidate()
        return order

    def _received_quantities(self, order: PurchaseOrder, quantities) -> list[tuple[PurchaseOrderItem, Decimal]]:
        if quantities is None:
            return [(line, line.outstanding_quantity) for line in order.items]
        if not isinstance(quantities, dict):
            raise ValidationError("quantities must map line ids to received quantities")

        lines_by_id = {line.id: line for line in order.items}
        result = []
        for raw_id, raw_qty in quantities.items():
            line_id = require_id(raw_id, "line id")
            line = lines_by_id.get(line_id)
            if line is None:
                raise ValidationError(f"Line {line_id} does not belong to purchase order {order.order_number}")
            qty = require_quantity(raw_qty, f"quantities[{line_id}]", allow_zero=True)
            if qty > line.outstanding_quantity:
                raise ValidationError(
                    f"Received quantity for line {line_id} cannot exceed the outstanding "
                    f"{line.outstanding_quantity} ({line.name})"
                )
            result.append((line, qty))
        return result

    def receive_goods(
        self,
        order_id: int,
        quantities: dict | None = None,
        notes: str | None = None,
        *,
        received_by: str | None = None,
    ) -> dict:
        """
        Receive a draft/sent order. quantities maps line id -> received qty
        (0..outstanding); None receives every outstanding quantity.
        """
        def _op():
            order = self._locked_order(order_id)
            if order.status not in RECEIVABLE_STATUSES:
                raise InvalidTransitionError("purchase order", order.status, PO_RECEIVED)

            received_value = Decimal("0")
            skipped = []
            for line, qty in self._received_quantities(order, quantities):
                if qty <= 0:
                    continue
                line.received_quantity = Decimal(line.received_quantity or 0) + qty
                received_value += qty * line.unit_cost_cents

                item = None
                if line.item_id is not None:
                    item = self.inventory.items.get(line.item_id)
                if item is None:
                    item = self.inventory.find_by_name(line.name)
                if item is None:
                    logger.warning(
                        "Purchase order %s line %s (%s) has no matching inventory item; stock not updated",
                        order.order_number,
                        line.id,
                        line.name,
                    )
                    skipped.append(line.id)
                    continue

                self.inventory.apply_adjustment(
                    item.id,
                    qty,
                    "purchase",
                    notes=f"Goods received for {order.order_number}",
                    created_by=received_by,
                    reference_number=order.order_number,
                )

            received_at = utcnow()
            value_cents = round_cents(received_value)
            if value_cents > 0:
                self.finance.record_transaction(
                    "expense",
                    value_cents,
                    "purchases",
                    description=f"Goods received for {order.order_number}",
                    date=received_at,
                    payment_method="bank",
                    reference_number=order.order_number,
                )

            order.status = PO_RECEIVED
            order.received_at = received_at
            if notes:
                order.notes = f"{order.notes}\n{notes.strip()}" if order.notes else notes.strip()
            self.session.commit()
            return order, skipped, value_cents

        order, skipped, value_cents = run_with_retry(_op, session=self.session)
        self.orders.invalidate()
        self.inventory.invalidate()
        self.finance.invalidate()
        return {
            "order": order,
            "received_value_cents": value_cents,
            "skipped_line_ids": skipped,
        }

    def delete_order(self, order_id: int) -> None:
        def _op():
            order = self._locked_order(order_id)
            if order.status in {PO_RECEIVED, PO_COMPLETED}:
                raise InvalidOperationError(
                    f"Purchase order {order.order_number} has been received and cannot be deleted"
                )
            self.session.delete(order)
            self.session.commit()

        run_with_retry(_op, session=self.session)
        self.orders.invalidate()
