# Overview: Sales ledger; customers, sales orders, fulfilment and returns.

# backend/erp/services/sales_service.py
"""
Sales order lifecycle.

    draft -> pending | confirmed | cancelled
    pending -> confirmed | processing | cancelled
    confirmed -> processing | shipped | completed | cancelled
    processing -> shipped | completed | cancelled
    shipped -> delivered | completed
    delivered -> completed
    completed -> returned

Entering completed debits stock for every line (reason "sale") and books the
order total as "sales" income. The negative-stock guard of the inventory ledger
is the oversell protection: a short line fails the whole completion.

Returns credit stock (reason "return") and book a "returns" expense with
reference RET-<order number>.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from ..errors import InvalidOperationError, InvalidTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, SalesOrder, SalesOrderItem
from ..numbers import round_cents
from ..time_utils import utcnow
from ..validation import (
    PAYMENT_METHODS,
    ModelValidationPolicy,
    optional_datetime,
    require_cents,
    require_choice,
    require_id,
    require_quantity,
    validate_payload,
)
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .finance_service import FinancialLedger
from .inventory_service import InventoryLedger
from .repository import Repository

logger = logging.getLogger(__name__)

SO_DRAFT = "draft"
SO_PENDING = "pending"
SO_CONFIRMED = "confirmed"
SO_PROCESSING = "processing"
SO_SHIPPED = "shipped"
SO_DELIVERED = "delivered"
SO_COMPLETED = "completed"
SO_CANCELLED = "cancelled"
SO_RETURNED = "returned"

SO_STATUSES = {
    SO_DRAFT,
    SO_PENDING,
    SO_CONFIRMED,
    SO_PROCESSING,
    SO_SHIPPED,
    SO_DELIVERED,
    SO_COMPLETED,
    SO_CANCELLED,
    SO_RETURNED,
}
OPEN_STATUSES = {SO_DRAFT, SO_PENDING, SO_CONFIRMED, SO_PROCESSING}
FULFILLED_STATUSES = {SO_COMPLETED, SO_RETURNED}

SO_TRANSITIONS = {
    (SO_DRAFT, SO_PENDING),
    (SO_DRAFT, SO_CONFIRMED),
    (SO_DRAFT, SO_CANCELLED),
    (SO_PENDING, SO_CONFIRMED),
    (SO_PENDING, SO_PROCESSING),
    (SO_PENDING, SO_CANCELLED),
    (SO_CONFIRMED, SO_PROCESSING),
    (SO_CONFIRMED, SO_SHIPPED),
    (SO_CONFIRMED, SO_COMPLETED),
    (SO_CONFIRMED, SO_CANCELLED),
    (SO_PROCESSING, SO_SHIPPED),
    (SO_PROCESSING, SO_COMPLETED),
    (SO_PROCESSING, SO_CANCELLED),
    (SO_SHIPPED, SO_DELIVERED),
    (SO_SHIPPED, SO_COMPLETED),
    (SO_DELIVERED, SO_COMPLETED),
    (SO_COMPLETED, SO_RETURNED),
}

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "telephone", "address", "email"},
    required_on_create={"name"},
)


class SalesLedger:
    def __init__(self, inventory: InventoryLedger, finance: FinancialLedger, session=None):
        self.inventory = inventory
        self.finance = finance
        self._session = session
        self.customers = Repository(Customer, Customer.name.asc(), Customer.id.asc(), session=session)
        self.orders = Repository(
            SalesOrder,
            SalesOrder.order_date.desc(),
            SalesOrder.id.desc(),
            session=session,
        )

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def _invalidate_all(self) -> None:
        self.orders.invalidate()
        self.inventory.invalidate()
        self.finance.invalidate()

    # -------------------------------------------------------------- customers

    def list_customers(self) -> list[Customer]:
        return self.customers.all()

    def get_customer(self, customer_id: int) -> Customer:
        customer = self.customers.get(customer_id)
        if customer is None:
            raise NotFoundError(f"Customer {customer_id} not found")
        return customer

    def create_customer(self, data: dict) -> Customer:
        patch = validate_payload(model=Customer, payload=data, policy=CUSTOMER_POLICY, partial=False)

        def _op():
            customer = Customer(**patch)
            self.session.add(customer)
            self.session.commit()
            return customer

        customer = run_with_retry(_op, attempts=1, session=self.session)
        self.customers.invalidate()
        return customer

    # ----------------------------------------------------------------- orders

    def list_orders(self, status: str | None = None) -> list[SalesOrder]:
        orders = self.orders.all()
        if status is None:
            return orders
        status = require_choice(status, SO_STATUSES, "status")
        return [o for o in orders if o.status == status]

    def get_order(self, order_id: int) -> SalesOrder:
        order = self.orders.get(order_id)
        if order is None:
            raise NotFoundError(f"Sales order {order_id} not found")
        return order

    def _locked_order(self, order_id: int) -> SalesOrder:
        order = lock_for_update(self.session.query(SalesOrder).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError(f"Sales order {order_id} not found")
        return order

    def _build_lines(self, items) -> list[SalesOrderItem]:
        if not items or not isinstance(items, list):
            raise ValidationError("A sales order needs at least one line")

        lines = []
        for idx, raw in enumerate(items):
            if not isinstance(raw, dict):
                raise ValidationError(f"items[{idx}] must be an object")
            item = self.inventory.get_item(require_id(raw.get("item_id"), f"items[{idx}].item_id"))
            quantity = require_quantity(raw.get("quantity"), f"items[{idx}].quantity")
            unit_price = raw.get("unit_price_cents")
            if unit_price is None:
                unit_price = item.selling_price_cents
            unit_price = require_cents(unit_price, f"items[{idx}].unit_price_cents")
            discount = require_cents(raw.get("discount_cents") or 0, f"items[{idx}].discount_cents")

            gross = round_cents(quantity * unit_price)
            if discount > gross:
                raise ValidationError(f"items[{idx}].discount_cents cannot exceed the line amount {gross}")
            lines.append(
                SalesOrderItem(
                    item_id=item.id,
                    name=item.name,
                    quantity=quantity,
                    unit_price_cents=unit_price,
                    discount_cents=discount,
                    total_price_cents=gross - discount,
                    returned_quantity=Decimal("0"),
                )
            )
        return lines

    def create_order(
        self,
        customer_id,
        items,
        payment_method: str = "cash",
        order_date=None,
        notes: str | None = None,
    ) -> SalesOrder:
        customer_id = require_id(customer_id, "customer_id")
        method = require_choice(payment_method or "cash", PAYMENT_METHODS, "payment_method")
        ordered_at = optional_datetime(order_date, "order_date") or utcnow()

        def _op():
            self.get_customer(customer_id)
            lines = self._build_lines(items)
            order = SalesOrder(
                order_number=next_document_number(
                    document_type="SALES_ORDER", prefix="SO", session=self.session
                ),
                customer_id=customer_id,
                status=SO_DRAFT,
                order_date=ordered_at,
                total_amount_cents=sum(line.total_price_cents for line in lines),
                payment_method=method,
                notes=(notes or "").strip() or None,
            )
            order.items.extend(lines)
            self.session.add(order)
            self.session.commit()
            return order

        order = run_with_retry(_op, session=self.session)
        self.orders.invalidate()
        logger.info("Created sales order %s (%s cents)", order.order_number, order.total_amount_cents)
        return order

    def _fulfil(self, order: SalesOrder, *, changed_by: str | None) -> None:
        """Debit stock for every line and book the sale; caller owns the transaction."""
        for line in order.items:
            self.inventory.apply_adjustment(
                line.item_id,
                -Decimal(line.quantity),
                "sale",
                notes=f"Sold on {order.order_number}",
                created_by=changed_by,
                reference_number=order.order_number,
            )
        completed_at = utcnow()
        if order.total_amount_cents > 0:
            self.finance.record_transaction(
                "income",
                order.total_amount_cents,
                "sales",
                description=f"Sales order {order.order_number}",
                date=completed_at,
                payment_method=order.payment_method,
                reference_number=order.order_number,
            )
        order.completed_at = completed_at

    def update_status(self, order_id: int, status: str, *, changed_by: str | None = None) -> SalesOrder:
        target = require_choice(status, SO_STATUSES, "status")
        if target == SO_RETURNED:
            return self.process_return(order_id, None, processed_by=changed_by)

        def _op():
            order = self._locked_order(order_id)
            if (order.status, target) not in SO_TRANSITIONS:
                raise InvalidTransitionError("sales order", order.status, target)
            if target == SO_COMPLETED:
                self._fulfil(order, changed_by=changed_by)
            order.status = target
            self.session.commit()
            return order

        order = run_with_retry(_op, session=self.session)
        self._invalidate_all()
        return order

    def _returned_quantities(self, order: SalesOrder, items) -> list[tuple[SalesOrderItem, Decimal]]:
        if items is None:
            return [
                (line, Decimal(line.quantity) - Decimal(line.returned_quantity or 0))
                for line in order.items
            ]
        if not isinstance(items, dict) or not items:
            raise ValidationError("items must map line ids to returned quantities")

        lines_by_id = {line.id: line for line in order.items}
        result = []
        for raw_id, raw_qty in items.items():
            line_id = require_id(raw_id, "line id")
            line = lines_by_id.get(line_id)
            if line is None:
                raise ValidationError(f"Line {line_id} does not belong to sales order {order.order_number}")
            qty = require_quantity(raw_qty, f"items[{line_id}]")
            remaining = Decimal(line.quantity) - Decimal(line.returned_quantity or 0)
            if qty > remaining:
                raise ValidationError(
                    f"Returned quantity for line {line_id} cannot exceed {remaining} ({line.name})"
                )
            result.append((line, qty))
        return result

    def process_return(
        self,
        order_id: int,
        items: dict | None = None,
        reason: str | None = None,
        *,
        processed_by: str | None = None,
    ) -> SalesOrder:
        """
        Return goods from a completed order. items maps line id -> quantity;
        None returns everything not yet returned.
        """
        def _op():
            order = self._locked_order(order_id)
            if order.status != SO_COMPLETED:
                raise InvalidTransitionError("sales order", order.status, SO_RETURNED)

            reference = f"RET-{order.order_number}"
            refund = Decimal("0")
            for line, qty in self._returned_quantities(order, items):
                if qty <= 0:
                    continue
                line.returned_quantity = Decimal(line.returned_quantity or 0) + qty
                refund += qty * line.unit_price_cents
                self.inventory.apply_adjustment(
                    line.item_id,
                    qty,
                    "return",
                    notes=reason or f"Returned from {order.order_number}",
                    created_by=processed_by,
                    reference_number=reference,
                )

            refund_cents = round_cents(refund)
            if refund_cents <= 0:
                raise ValidationError("Nothing to return on this order")
            self.finance.record_transaction(
                "expense",
                refund_cents,
                "returns",
                description=f"Return for Order #{order.order_number}" + (f": {reason}" if reason else ""),
                date=utcnow(),
                payment_method=order.payment_method,
                reference_number=reference,
            )
            order.status = SO_RETURNED
            self.session.commit()
            return order

        order = run_with_retry(_op, session=self.session)
        self._invalidate_all()
        logger.info("Processed return for sales order %s", order.order_number)
        return order

    def delete_order(self, order_id: int) -> None:
        def _op():
            order = self._locked_order(order_id)
            if order.status in FULFILLED_STATUSES:
                raise InvalidOperationError(
                    f"Sales order {order.order_number} has been completed and cannot be deleted"
                )
            self.session.delete(order)
            self.session.commit()

        run_with_retry(_op, session=self.session)
        self.orders.invalidate()
