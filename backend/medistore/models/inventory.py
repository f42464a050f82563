from __future__ import annotations

from ..extensions import db
from medistore.time_utils import to_utc_z


def cents_to_amount(cents: int | None) -> float | None:
    if cents is None:
        return None
    return round(cents / 100.0, 2)


class Medicine(db.Model):
    """
    Global medicine catalog.

    Stores never sell catalog rows directly: adding stock copies the sellable
    attributes into a StockEntry snapshot, so later catalog edits do not
    rewrite prices already on the shelf.
    """
    __tablename__ = "medicines"
    __table_args__ = (
        db.Index("ix_medicines_name", "name"),
        {"sqlite_autoincrement": True},
    )

    MED_TYPES = ("tablet", "fluid", "capsules", "accessories")

    id = db.Column(db.Integer, primary_key=True)
    med_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    secondary_name = db.Column(db.String(255), nullable=True)
    selling_type = db.Column(db.String(32), nullable=False, default="")
    med_type = db.Column(db.String(32), nullable=False, index=True)

    # Authoritative storage in cents
    price_per_tab_cents = db.Column(db.Integer, nullable=True)
    quantity_per_card = db.Column(db.Integer, nullable=True)
    card_per_box = db.Column(db.Integer, nullable=True)
    price_per_box_cents = db.Column(db.Integer, nullable=True)

    manufacturer = db.Column(db.String(255), nullable=True)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Medicine med_id={self.med_id!r} name={self.name!r}>"

    @property
    def unit_price_cents(self) -> int:
        return self.price_per_tab_cents or self.price_per_box_cents or 0

    def to_dict(self) -> dict:
        return {
            "med_id": self.med_id,
            "name": self.name,
            "secondary_name": self.secondary_name,
            "selling_type": self.selling_type,
            "med_type": self.med_type,
            "price_per_tab": cents_to_amount(self.price_per_tab_cents),
            "quantity_per_card": self.quantity_per_card,
            "card_per_box": self.card_per_box,
            "price_per_box": cents_to_amount(self.price_per_box_cents),
            "manufacturer": self.manufacturer,
            "low_stock_threshold": self.low_stock_threshold,
        }


class StockEntry(db.Model):
    """
    One line of a store's stock ledger.

    INVARIANTS:
    - quantity >= 0 (CHECK constraint); a deduction that reaches 0 deletes the row
    - (store_id, med_id, batch_number) is unique; which part of that key is used
      for matching is decided by STOCK_MATCH_POLICY (see stock_service.stock_key)
    - mutated only through stock_service primitives inside a locked transaction
    """
    __tablename__ = "stock_entries"
    __table_args__ = (
        db.UniqueConstraint("store_id", "med_id", "batch_number", name="uq_stock_store_med_batch"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_quantity_non_negative"),
        db.Index("ix_stock_store_med", "store_id", "med_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    # Sellable snapshot of the catalog entry at the time stock was added
    med_id = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    secondary_name = db.Column(db.String(255), nullable=True)
    selling_type = db.Column(db.String(32), nullable=False, default="")
    med_type = db.Column(db.String(32), nullable=False, default="")
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    card_per_box = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    batch_number = db.Column(db.String(64), nullable=False, default="")
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    store = db.relationship("Store", back_populates="stock_entries")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StockEntry store_id={self.store_id} med_id={self.med_id!r} batch={self.batch_number!r} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "med_id": self.med_id,
            "name": self.name,
            "secondary_name": self.secondary_name,
            "selling_type": self.selling_type,
            "med_type": self.med_type,
            "unit_price": cents_to_amount(self.unit_price_cents),
            "card_per_box": self.card_per_box,
            "low_stock_threshold": self.low_stock_threshold,
            "quantity": self.quantity,
            "batch_number": self.batch_number,
            "expiry_date": to_utc_z(self.expiry_date) if self.expiry_date else None,
            "purchase_price": cents_to_amount(self.purchase_price_cents),
            "version_id": self.version_id,
        }
