# Overview: Production order workflow; status transitions and completion effects.

# backend/erp/services/production_service.py
"""
Production order lifecycle.

States:
- planned      Order created, nothing consumed yet
- in_progress  Work started
- completed    Finished goods credited, cost recorded (terminal)
- cancelled    Abandoned (terminal)

Valid transitions:
- planned -> in_progress, completed, cancelled
- in_progress -> completed, cancelled

Legacy rows may carry the spelling "in-progress"; normalize_status() maps it to
in_progress on every read, and normalize_persisted_statuses() rewrites stored
rows.

Completion runs as one DB transaction: optional material debits, the finished
goods credit, the cost fields and the production expense commit together or
not at all.
"""

from __future__ import annotations

import logging
import time
from decimal import Decimal

from ..errors import InvalidOperationError, InvalidTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Bom, ProductionOrder
from ..numbers import as_number
from ..time_utils import utcnow
from ..validation import optional_datetime, require_cents, require_id, require_quantity
from .bom_service import BomCatalog
from .concurrency import lock_for_update, run_with_retry
from .finance_service import FinancialLedger
from .inventory_service import InventoryLedger
from .repository import Repository

logger = logging.getLogger(__name__)

STATUS_PLANNED = "planned"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

VALID_STATUSES = {STATUS_PLANNED, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_CANCELLED}
OPEN_STATUSES = {STATUS_PLANNED, STATUS_IN_PROGRESS}

LEGACY_STATUS_ALIASES = {
    "in-progress": STATUS_IN_PROGRESS,
    "in progress": STATUS_IN_PROGRESS,
}

VALID_TRANSITIONS = {
    (STATUS_PLANNED, STATUS_IN_PROGRESS),
    (STATUS_PLANNED, STATUS_COMPLETED),
    (STATUS_PLANNED, STATUS_CANCELLED),
    (STATUS_IN_PROGRESS, STATUS_COMPLETED),
    (STATUS_IN_PROGRESS, STATUS_CANCELLED),
}


def normalize_status(value) -> str:
    status = str(value or "").strip().lower()
    status = LEGACY_STATUS_ALIASES.get(status, status)
    if status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid production status '{value}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )
    return status


def can_transition(from_status: str, to_status: str) -> bool:
    return (normalize_status(from_status), normalize_status(to_status)) in VALID_TRANSITIONS


def generate_batch_id() -> str:
    return f"BATCH-{str(int(time.time() * 1000))[-6:]}"


def normalize_persisted_statuses(*, dry_run: bool = False, session=None) -> int:
    """Rewrite legacy status spellings on stored production orders; returns the row count."""
    session = session if session is not None else db.session
    rows = (
        session.query(ProductionOrder)
        .filter(ProductionOrder.status.in_(list(LEGACY_STATUS_ALIASES)))
        .all()
    )
    if dry_run:
        return len(rows)
    for order in rows:
        order.status = LEGACY_STATUS_ALIASES[order.status]
    session.commit()
    if rows:
        logger.info("Normalized %d legacy production order status value(s)", len(rows))
    return len(rows)


class ProductionWorkflow:
    def __init__(
        self,
        inventory: InventoryLedger,
        boms: BomCatalog,
        finance: FinancialLedger,
        *,
        consume_materials: bool = False,
        session=None,
    ):
        self.inventory = inventory
        self.boms = boms
        self.finance = finance
        self.consume_materials = consume_materials
        self._session = session
        self.orders = Repository(
            ProductionOrder,
            ProductionOrder.created_at.desc(),
            ProductionOrder.id.desc(),
            session=session,
        )

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def _invalidate_all(self) -> None:
        self.orders.invalidate()
        self.inventory.invalidate()
        self.finance.invalidate()

    def list_production_orders(self, status: str | None = None) -> list[ProductionOrder]:
        orders = self.orders.all()
        if status is None:
            return orders
        wanted = normalize_status(status)
        return [o for o in orders if normalize_status(o.status) == wanted]

    def get_production_order(self, order_id: int) -> ProductionOrder:
        order = self.orders.get(order_id)
        if order is None:
            raise NotFoundError(f"Production order {order_id} not found")
        return order

    def _locked_order(self, order_id: int) -> ProductionOrder:
        query = self.session.query(ProductionOrder).filter_by(id=order_id)
        order = lock_for_update(query).first()
        if order is None:
            raise NotFoundError(f"Production order {order_id} not found")
        return order

    def material_requirements(self, order_id: int) -> list[dict]:
        """Per-material quantity needed for the whole run versus current stock."""
        order = self.get_production_order(order_id)
        bom = self.session.get(Bom, order.bom_id)
        if bom is None:
            raise NotFoundError("Bill of Materials not found")
        rows = []
        for material in bom.materials:
            required = Decimal(material.quantity) * Decimal(order.quantity_to_produce)
            item = self.inventory.items.find(material.item_id)
            available = Decimal(item.current_stock) if item is not None else Decimal("0")
            rows.append(
                {
                    "item_id": material.item_id,
                    "name": material.name,
                    "required": as_number(required),
                    "available": as_number(available),
                    "sufficient": available >= required,
                }
            )
        return rows

    def create_production_order(self, bom_id, quantity_to_produce, start_date=None) -> ProductionOrder:
        bom_id = require_id(bom_id, "bom_id")
        quantity = require_quantity(quantity_to_produce, "quantity_to_produce")
        start = optional_datetime(start_date, "start_date") or utcnow()

        def _op():
            if self.session.get(Bom, bom_id) is None:
                raise NotFoundError(f"Bill of materials {bom_id} not found")
            order = ProductionOrder(
                bom_id=bom_id,
                quantity_to_produce=quantity,
                status=STATUS_PLANNED,
                start_date=start,
                labor_cost_cents=0,
                additional_costs_cents=0,
                total_cost_cents=0,
                material_cost_cents=None,
                batch_id=generate_batch_id(),
            )
            self.session.add(order)
            self.session.commit()
            return order

        order = run_with_retry(_op, attempts=1, session=self.session)
        self.orders.invalidate()
        logger.info("Created production order %s for BOM %s (batch %s)", order.id, bom_id, order.batch_id)
        return order

    def update_production_order_status(self, order_id: int, status: str, completion_date=None) -> ProductionOrder:
        """
        Move an order along the transition table without inventory effects.

        Entering completed this way only records the date; use
        complete_production_order() to credit stock and book costs.
        """
        target = normalize_status(status)
        completed_at = optional_datetime(completion_date, "completion_date")
        if target == STATUS_COMPLETED and completed_at is None:
            raise ValidationError("completion_date is required when marking an order completed")

        def _op():
            order = self._locked_order(order_id)
            current = normalize_status(order.status)
            if (current, target) not in VALID_TRANSITIONS:
                raise InvalidTransitionError("production order", current, target)
            order.status = target
            if target == STATUS_COMPLETED:
                order.completion_date = completed_at
            self.session.commit()
            return order

        order = run_with_retry(_op, session=self.session)
        self.orders.invalidate()
        return order

    def complete_production_order(
        self,
        order_id: int,
        labor_cost_cents=0,
        additional_costs_cents=0,
        *,
        completed_by: str | None = None,
    ) -> ProductionOrder:
        labor = require_cents(labor_cost_cents, "labor_cost_cents")
        additional = require_cents(additional_costs_cents, "additional_costs_cents")

        def _op():
            order = self._locked_order(order_id)
            bom = self.session.get(Bom, order.bom_id)
            if bom is None:
                raise NotFoundError("Bill of Materials not found")

            current = normalize_status(order.status)
            if (current, STATUS_COMPLETED) not in VALID_TRANSITIONS:
                raise InvalidTransitionError("production order", current, STATUS_COMPLETED)

            quantity = Decimal(order.quantity_to_produce)
            reference = order.batch_id

            if self.consume_materials:
                for material in bom.materials:
                    if self.inventory.items.get(material.item_id) is None:
                        logger.warning(
                            "BOM %s material item %s no longer exists; not consumed by production order %s",
                            bom.id,
                            material.item_id,
                            order.id,
                        )
                        continue
                    self.inventory.apply_adjustment(
                        material.item_id,
                        -(Decimal(material.quantity) * quantity),
                        "production",
                        notes=f"Consumed by {order.order_number} ({bom.product_name})",
                        created_by=completed_by,
                        reference_number=reference,
                    )

            if bom.finished_item_id is not None:
                self.inventory.apply_adjustment(
                    bom.finished_item_id,
                    quantity,
                    "production",
                    notes=f"Produced by {order.order_number} ({bom.product_name})",
                    created_by=completed_by,
                    reference_number=reference,
                )
            else:
                logger.warning(
                    "BOM %s has no finished item; production order %s completes without a stock credit",
                    bom.id,
                    order.id,
                )

            completed_at = utcnow()
            order.labor_cost_cents = labor
            order.additional_costs_cents = additional
            order.total_cost_cents = labor + additional
            order.material_cost_cents = self.boms.material_cost_cents(bom, quantity)
            order.status = STATUS_COMPLETED
            order.completion_date = completed_at

            if order.total_cost_cents > 0:
                self.finance.record_transaction(
                    "expense",
                    order.total_cost_cents,
                    "production",
                    description=f"Production costs for {order.order_number} ({bom.product_name})",
                    date=completed_at,
                    payment_method="internal",
                    reference_number=reference,
                )

            self.session.commit()
            return order

        order = run_with_retry(_op, session=self.session)
        self._invalidate_all()
        logger.info(
            "Completed production order %s: total_cost_cents=%s material_cost_cents=%s",
            order.id,
            order.total_cost_cents,
            order.material_cost_cents,
        )
        return order

    def correct_production_costs(self, order_id: int, labor_cost_cents, additional_costs_cents) -> ProductionOrder:
        """The only edit allowed on a completed order; the booked expense is not rewritten."""
        labor = require_cents(labor_cost_cents, "labor_cost_cents")
        additional = require_cents(additional_costs_cents, "additional_costs_cents")

        def _op():
            order = self._locked_order(order_id)
            if normalize_status(order.status) == STATUS_CANCELLED:
                raise InvalidOperationError("Costs of a cancelled production order cannot be corrected")
            order.labor_cost_cents = labor
            order.additional_costs_cents = additional
            order.total_cost_cents = labor + additional
            self.session.commit()
            return order

        order = run_with_retry(_op, session=self.session)
        self.orders.invalidate()
        return order
