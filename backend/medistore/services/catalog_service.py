# Overview: Medicine catalog lookups and seeding.

from __future__ import annotations

from medistore.errors import ValidationError
from medistore.extensions import db
from medistore.models import Medicine


COMMON_MEDICINES = [
    # (med_id, name, med_type, price_per_tab_cents, price_per_box_cents, selling_type)
    ("PARA500", "Paracetamol 500mg", "tablet", 500, None, "strip"),
    ("AMOX500", "Amoxicillin 500mg", "capsules", 1000, None, "strip"),
    ("IBU400", "Ibuprofen 400mg", "tablet", 400, None, "strip"),
    ("CET10", "Cetirizine 10mg", "tablet", 300, None, "strip"),
    ("PAN40", "Pantoprazole 40mg", "tablet", 800, None, "strip"),
    ("AZI500", "Azithromycin 500mg", "tablet", 2000, None, "strip"),
    ("MET500", "Metformin 500mg", "tablet", 250, None, "strip"),
    ("ASP75", "Aspirin 75mg", "tablet", 150, None, "strip"),
    ("OMZ20", "Omeprazole 20mg", "capsules", 500, None, "strip"),
    ("VITC500", "Vitamin C 500mg", "tablet", 300, None, "strip"),
    ("COF100", "Cough Syrup 100ml", "fluid", 8000, 8000, "bottle"),
    ("ORS", "ORS Sachet", "accessories", 2000, 2000, "sachet"),
    ("BAND", "Bandage Stick", "accessories", 200, None, "piece"),
    ("MASK", "Surgical Mask", "accessories", 1000, None, "piece"),
    ("SANI100", "Sanitizer 100ml", "fluid", 5000, 5000, "bottle"),
]


def get_medicine(med_id: str) -> Medicine | None:
    if not med_id:
        return None
    return db.session.query(Medicine).filter_by(med_id=med_id).first()


def list_medicines(med_type: str | None = None) -> list[dict]:
    """Catalog entries ordered by name, optionally restricted to one med_type."""
    query = db.session.query(Medicine)
    if med_type:
        if med_type not in Medicine.MED_TYPES:
            raise ValidationError(
                f"Unknown med_type: {med_type}",
                details={"med_type": med_type, "allowed": list(Medicine.MED_TYPES)},
            )
        query = query.filter_by(med_type=med_type)
    return [medicine.to_dict() for medicine in query.order_by(Medicine.name.asc()).all()]


def seed_common_medicines() -> int:
    """Insert the starter catalog if the table is empty. Returns rows inserted."""
    if db.session.query(Medicine).count() > 0:
        return 0

    for med_id, name, med_type, tab_cents, box_cents, selling_type in COMMON_MEDICINES:
        db.session.add(Medicine(
            med_id=med_id,
            name=name,
            med_type=med_type,
            price_per_tab_cents=tab_cents,
            price_per_box_cents=box_cents,
            selling_type=selling_type,
        ))
    db.session.commit()
    return len(COMMON_MEDICINES)
