from __future__ import annotations

from ..extensions import db
from medistore.time_utils import to_utc_z

class Store(db.Model):
    """
    Tenant root: every pharmacy is a Store, identified by its email.

    OWNERSHIP:
    - stock_entries and billing_records belong to exactly one store
    - both are removed with the store and never shared between stores
    - billing_records are append-only (written by the billing engine only)

    CONCURRENCY:
    version_id is the optimistic-lock counter. The billing engine touches
    last_billed_at on every committed bill, so two bills against the same
    store can never both commit from the same snapshot.
    """
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(255), nullable=False, default="")

    # Calendar bucketing and period boundaries use the store's wall clock
    timezone = db.Column(db.String(64), nullable=False, default="UTC")

    last_billed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    stock_entries = db.relationship(
        "StockEntry",
        back_populates="store",
        cascade="all, delete-orphan",
        lazy=True,
    )
    billing_records = db.relationship(
        "BillingRecord",
        back_populates="store",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Store id={self.id} email={self.email!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "address": self.address,
            "timezone": self.timezone,
            "last_billed_at": to_utc_z(self.last_billed_at) if self.last_billed_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
