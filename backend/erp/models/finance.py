from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class FinancialTransaction(db.Model):
    """
    Income or expense entry.

    reference_number links back to the originating order number or production
    batch (e.g. "SO-0004", "BATCH-123456", "RET-SO-0004").
    """
    __tablename__ = "financial_transactions"
    __table_args__ = (
        db.Index("ix_fin_tx_type_date", "type", "date"),
        db.Index("ix_fin_tx_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(64), nullable=False)
    description = db.Column(db.String(255), nullable=False, default="")
    date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    reference_number = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<FinancialTransaction id={self.id} {self.type} {self.amount_cents} {self.category!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "category": self.category,
            "description": self.description,
            "date": to_utc_z(self.date),
            "payment_method": self.payment_method,
            "reference_number": self.reference_number,
            "created_at": to_utc_z(self.created_at),
        }
