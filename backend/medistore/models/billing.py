from __future__ import annotations

from ..extensions import db
from medistore.time_utils import to_utc_z
from .inventory import cents_to_amount

class BillingRecord(db.Model):
    """
    Point-of-sale bill (append-only).

    WHY: Billing history is the source of truth for every sales aggregate.
    Records are written once by billing_service.create_billing and never
    updated or deleted afterwards; lines carry a price/name snapshot so
    analytics stay correct after catalog or stock edits.
    """
    __tablename__ = "billing_records"
    __table_args__ = (
        # Every analytics scan is "store X between t0 and t1"
        db.Index("ix_billing_store_created", "store_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    customer_name = db.Column(db.String(255), nullable=False)
    customer_age = db.Column(db.Integer, nullable=True)
    phone = db.Column(db.String(32), nullable=False)

    total_amount_cents = db.Column(db.Integer, nullable=False)

    # Transaction start time (UTC-naive)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    store = db.relationship("Store", back_populates="billing_records")
    lines = db.relationship(
        "BillingLine",
        back_populates="billing",
        order_by="BillingLine.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<BillingRecord id={self.id} store_id={self.store_id} total_cents={self.total_amount_cents}>"

    @property
    def items_sold(self) -> int:
        return sum(line.quantity or 0 for line in self.lines)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "customer_name": self.customer_name,
            "customer_age": self.customer_age,
            "phone": self.phone,
            "total_amount": cents_to_amount(self.total_amount_cents),
            "created_at": to_utc_z(self.created_at),
            "product_list": [line.to_dict() for line in self.lines],
        }


class BillingLine(db.Model):
    """Individual line items on a bill, in the order they were rung up."""
    __tablename__ = "billing_lines"
    __table_args__ = (
        db.UniqueConstraint("billing_id", "position", name="uq_billing_lines_position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    billing_id = db.Column(db.Integer, db.ForeignKey("billing_records.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    med_id = db.Column(db.String(64), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=True)
    batch_number = db.Column(db.String(64), nullable=False, default="")

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    billing = db.relationship("BillingRecord", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "position": self.position,
            "med_id": self.med_id,
            "name": self.name,
            "batch_number": self.batch_number,
            "quantity": self.quantity,
            "unit_price": cents_to_amount(self.unit_price_cents),
            "line_price": cents_to_amount(self.line_total_cents),
        }
