from __future__ import annotations

from ..extensions import db
from ..numbers import as_number
from ..time_utils import to_utc_z


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    telephone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)
    payment_terms = db.Column(db.String(120), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "telephone": self.telephone or "",
            "address": self.address or "",
            "payment_terms": self.payment_terms or "",
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class PurchaseOrder(db.Model):
    """
    Purchase order header.

    LIFECYCLE: draft -> sent -> received -> completed, or -> cancelled before receipt.
    Entering 'received' is what credits inventory.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="draft")
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    expected_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))
    items = db.relationship(
        "PurchaseOrderItem",
        backref="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.id",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "supplier_id": self.supplier_id,
            "supplier": self.supplier.to_dict() if self.supplier else None,
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "expected_delivery_date": to_utc_z(self.expected_delivery_date),
            "received_at": to_utc_z(self.received_at),
            "notes": self.notes or "",
            "items": [line.to_dict() for line in self.items],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class PurchaseOrderItem(db.Model):
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_po_items_qty_positive"),
        db.CheckConstraint("received_quantity >= 0", name="ck_po_items_received_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(
        db.Integer,
        db.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Optional: lines without an item id are matched to inventory by name on receipt
    item_id = db.Column(db.Integer, nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    total_cost_cents = db.Column(db.Integer, nullable=False)
    received_quantity = db.Column(db.Numeric(14, 3), nullable=False, default=0)

    @property
    def outstanding_quantity(self):
        return self.quantity - (self.received_quantity or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "item_id": self.item_id,
            "name": self.name,
            "quantity": as_number(self.quantity),
            "unit_cost_cents": self.unit_cost_cents,
            "total_cost_cents": self.total_cost_cents,
            "received_quantity": as_number(self.received_quantity),
        }
