from __future__ import annotations

from ..extensions import db
from ..numbers import as_number
from ..time_utils import to_utc_z


class InventoryItem(db.Model):
    """
    Stocked item (raw material or finished good).

    current_stock is only ever written by the inventory ledger together with an
    InventoryAdjustment row. version_id is the compare-and-swap counter that
    serializes concurrent stock changes on the same row.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="ck_inventory_items_stock_nonneg"),
        db.Index("ix_inventory_items_name", "name"),
        db.Index("ix_inventory_items_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(120), nullable=True)
    unit_of_measure = db.Column(db.String(16), nullable=False, default="units")

    # Authoritative storage in cents (frontend may only format for display)
    purchase_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    current_stock = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    reorder_level = db.Column(db.Numeric(14, 3), nullable=False, default=0)

    sku = db.Column(db.String(64), nullable=True, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} name={self.name!r} stock={self.current_stock}>"

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock is not None and self.current_stock <= (self.reorder_level or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description or "",
            "category": self.category or "",
            "unit_of_measure": self.unit_of_measure,
            "purchase_cost_cents": self.purchase_cost_cents,
            "selling_price_cents": self.selling_price_cents,
            "current_stock": as_number(self.current_stock),
            "reorder_level": as_number(self.reorder_level),
            "sku": self.sku or "",
            "is_active": self.is_active,
            "is_low_stock": self.is_low_stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryAdjustment(db.Model):
    """
    Append-only stock ledger entry.

    item_id is a plain reference: deleting an item leaves its history in place,
    identified by the item_name snapshot taken when the row was written.
    """
    __tablename__ = "inventory_adjustments"
    __table_args__ = (
        db.Index("ix_invadj_item_date", "item_id", "adjustment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    item_id = db.Column(db.Integer, nullable=False, index=True)
    item_name = db.Column(db.String(255), nullable=False)

    previous_quantity = db.Column(db.Numeric(14, 3), nullable=False)
    new_quantity = db.Column(db.Numeric(14, 3), nullable=False)
    quantity_delta = db.Column(db.Numeric(14, 3), nullable=False)

    reason = db.Column(db.String(32), nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(120), nullable=False, default="System")

    # Order number or production batch that caused the change
    reference_number = db.Column(db.String(64), nullable=True, index=True)

    adjustment_date = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryAdjustment id={self.id} item_id={self.item_id} "
            f"{self.previous_quantity}->{self.new_quantity} reason={self.reason}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "item_name": self.item_name,
            "previous_quantity": as_number(self.previous_quantity),
            "new_quantity": as_number(self.new_quantity),
            "quantity_delta": as_number(self.quantity_delta),
            "reason": self.reason,
            "notes": self.notes or "",
            "created_by": self.created_by,
            "reference_number": self.reference_number,
            "adjustment_date": to_utc_z(self.adjustment_date),
        }
