from __future__ import annotations

from ..extensions import db
from ..numbers import as_number
from ..time_utils import to_utc_z, utcnow


class Bom(db.Model):
    """
    Bill of materials: the recipe for one unit of a finished item.

    finished_item_id is optional; without it a completed production run has no
    inventory item to credit.
    """
    __tablename__ = "boms"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    finished_item_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    materials = db.relationship(
        "BomMaterial",
        backref="bom",
        cascade="all, delete-orphan",
        order_by="BomMaterial.id",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Bom id={self.id} product_name={self.product_name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_name": self.product_name,
            "description": self.description or "",
            "finished_item_id": self.finished_item_id,
            "materials": [m.to_dict() for m in self.materials],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class BomMaterial(db.Model):
    __tablename__ = "bom_materials"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_bom_materials_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bom_id = db.Column(db.Integer, db.ForeignKey("boms.id", ondelete="CASCADE"), nullable=False, index=True)

    # Plain reference; name is the display snapshot taken when the BOM was saved
    item_id = db.Column(db.Integer, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)

    # Per one unit of finished output
    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit_of_measure = db.Column(db.String(16), nullable=False, default="units")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "name": self.name,
            "quantity": as_number(self.quantity),
            "unit_of_measure": self.unit_of_measure,
        }


class ProductionOrder(db.Model):
    """
    A manufacturing run of quantity_to_produce units of a BOM.

    total_cost_cents is labor + additional costs. material_cost_cents is the
    BOM-derived material cost captured at completion and kept separate.
    """
    __tablename__ = "production_orders"
    __table_args__ = (
        db.CheckConstraint("quantity_to_produce > 0", name="ck_production_orders_qty_positive"),
        db.Index("ix_production_orders_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Plain reference: a BOM can be deleted while orders still point at it
    bom_id = db.Column(db.Integer, nullable=False, index=True)

    quantity_to_produce = db.Column(db.Numeric(14, 3), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="planned")
    start_date = db.Column(db.DateTime(timezone=True), nullable=False)

    labor_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    additional_costs_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    material_cost_cents = db.Column(db.Integer, nullable=True)

    batch_id = db.Column(db.String(32), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completion_date = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ProductionOrder id={self.id} bom_id={self.bom_id} status={self.status}>"

    @property
    def order_number(self) -> str | None:
        if self.id is None:
            return None
        year = (self.created_at or utcnow()).year
        return f"MO-{year}-{self.id:04d}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "bom_id": self.bom_id,
            "quantity_to_produce": as_number(self.quantity_to_produce),
            "status": self.status,
            "start_date": to_utc_z(self.start_date),
            "labor_cost_cents": self.labor_cost_cents,
            "additional_costs_cents": self.additional_costs_cents,
            "total_cost_cents": self.total_cost_cents,
            "material_cost_cents": self.material_cost_cents,
            "batch_id": self.batch_id,
            "created_at": to_utc_z(self.created_at),
            "completion_date": to_utc_z(self.completion_date),
            "version_id": self.version_id,
        }
