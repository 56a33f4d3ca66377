from __future__ import annotations

from ..extensions import db
from ..numbers import as_number
from ..time_utils import to_utc_z


class Customer(db.Model):
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    telephone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)
    email = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "telephone": self.telephone or "",
            "address": self.address or "",
            "email": self.email,
            "created_at": to_utc_z(self.created_at),
        }


class SalesOrder(db.Model):
    """
    Sales order header.

    Entering 'completed' ships the goods: every line is debited from inventory
    and the order total is booked as income. 'returned' follows a processed return.
    """
    __tablename__ = "sales_orders"
    __table_args__ = (
        db.Index("ix_sales_orders_status", "status"),
        db.Index("ix_sales_orders_order_date", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="draft")
    order_date = db.Column(db.DateTime(timezone=True), nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    notes = db.Column(db.Text, nullable=True)

    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales_orders", lazy=True))
    items = db.relationship(
        "SalesOrderItem",
        backref="sales_order",
        cascade="all, delete-orphan",
        order_by="SalesOrderItem.id",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<SalesOrder id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "customer": self.customer.to_dict() if self.customer else None,
            "status": self.status,
            "order_date": to_utc_z(self.order_date),
            "total_amount_cents": self.total_amount_cents,
            "payment_method": self.payment_method,
            "notes": self.notes or "",
            "items": [line.to_dict() for line in self.items],
            "completed_at": to_utc_z(self.completed_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class SalesOrderItem(db.Model):
    __tablename__ = "sales_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_so_items_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sales_order_id = db.Column(
        db.Integer,
        db.ForeignKey("sales_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    item_id = db.Column(db.Integer, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False)
    returned_quantity = db.Column(db.Numeric(14, 3), nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sales_order_id": self.sales_order_id,
            "item_id": self.item_id,
            "name": self.name,
            "quantity": as_number(self.quantity),
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "total_price_cents": self.total_price_cents,
            "returned_quantity": as_number(self.returned_quantity),
        }
