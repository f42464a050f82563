# Overview: Stock ledger primitives and stock-management operations.

"""
Stock Ledger Invariants (authoritative)

- StockEntry.quantity never goes negative; an entry whose quantity reaches
  exactly 0 is deleted in the same transaction.
- Entries are matched through stock_key() only. STOCK_MATCH_POLICY decides
  whether the key is (med_id) or (med_id, batch_number); the add path and the
  deduct path both go through find_entry(), so they can never disagree about
  which entry a request refers to.
- Every mutation runs inside run_with_retry() after begin_write_transaction()
  and with the store row locked, so it serializes with billing.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from flask import current_app

from medistore.errors import InsufficientStock, MedicineNotFound, ValidationError
from medistore.extensions import db
from medistore.models import Store, StockEntry
from medistore.services.catalog_service import get_medicine
from medistore.services.concurrency import begin_write_transaction, lock_for_update, run_with_retry
from medistore.services.store_service import require_store
from medistore.time_utils import utcnow
from medistore.validation import (
    parse_money_cents,
    parse_optional_datetime,
    parse_quantity,
    sanitize_string,
)


MATCH_POLICIES = ("medicine", "batch")


def match_policy() -> str:
    policy = current_app.config.get("STOCK_MATCH_POLICY", "medicine")
    if policy not in MATCH_POLICIES:
        raise ValueError(f"STOCK_MATCH_POLICY must be one of {MATCH_POLICIES}, got {policy!r}")
    return policy


def stock_key(med_id: str, batch_number: str | None = None) -> tuple:
    if match_policy() == "batch":
        return (med_id, batch_number or "")
    return (med_id,)


def find_entry(store_id: int, med_id: str, batch_number: str | None = None, *, lock: bool = False) -> StockEntry | None:
    key = stock_key(med_id, batch_number)
    query = db.session.query(StockEntry).filter(
        StockEntry.store_id == store_id,
        StockEntry.med_id == key[0],
    )
    if len(key) > 1:
        query = query.filter(StockEntry.batch_number == key[1])
    if lock:
        query = lock_for_update(query)
    return query.order_by(StockEntry.id.asc()).first()


def deduct_entry(entry: StockEntry, quantity: int) -> int:
    """Deduct from a locked entry; deletes it at zero. Returns the remaining quantity."""
    if quantity > entry.quantity:
        raise InsufficientStock(entry.med_id, quantity, entry.quantity)
    remaining = entry.quantity - quantity
    if remaining == 0:
        db.session.delete(entry)
    else:
        entry.quantity = remaining
    return remaining


def restore_entry(
    store: Store,
    snapshot: dict,
    quantity: int,
    *,
    batch_number: str | None = None,
    expiry_date: datetime | None = None,
    purchase_price_cents: int | None = None,
) -> tuple[StockEntry, bool]:
    """Add quantity back to the ledger, creating the entry if needed. Returns (entry, created)."""
    entry = find_entry(store.id, snapshot["med_id"], batch_number, lock=True)
    if entry is not None:
        entry.quantity += quantity
        if expiry_date is not None:
            entry.expiry_date = expiry_date
        if batch_number and match_policy() == "medicine":
            entry.batch_number = batch_number
        if purchase_price_cents is not None:
            entry.purchase_price_cents = purchase_price_cents
        return entry, False

    if not snapshot.get("name"):
        # Nothing to stock: unknown to the catalog and no name supplied
        raise MedicineNotFound(snapshot["med_id"], batch_number)

    entry = StockEntry(
        store_id=store.id,
        med_id=snapshot["med_id"],
        name=snapshot["name"],
        secondary_name=snapshot.get("secondary_name"),
        selling_type=snapshot.get("selling_type") or "",
        med_type=snapshot.get("med_type") or "",
        unit_price_cents=snapshot.get("unit_price_cents") or 0,
        card_per_box=snapshot.get("card_per_box") or 0,
        low_stock_threshold=snapshot.get("low_stock_threshold"),
        quantity=quantity,
        batch_number=batch_number or "",
        expiry_date=expiry_date,
        purchase_price_cents=purchase_price_cents or 0,
    )
    db.session.add(entry)
    return entry, True


def _build_snapshot(medicine_data: dict) -> dict:
    med_id = sanitize_string(medicine_data.get("med_id"))
    if not med_id:
        raise ValidationError("med_id is required")

    catalog = get_medicine(med_id)
    name = sanitize_string(medicine_data.get("name")) or (catalog.name if catalog else "")

    price_cents = None
    for field in ("price_per_tab", "price_per_box", "unit_price"):
        raw = medicine_data.get(field)
        if raw not in (None, ""):
            price_cents = parse_money_cents(raw, field)
            if price_cents:
                break
    if not price_cents and catalog is not None:
        price_cents = catalog.unit_price_cents

    card_per_box = medicine_data.get("card_per_box")
    if card_per_box in (None, ""):
        card_per_box = catalog.card_per_box if catalog else 0
    else:
        card_per_box = parse_quantity(card_per_box, "card_per_box", allow_zero=True)

    return {
        "med_id": med_id,
        "name": name,
        "secondary_name": sanitize_string(medicine_data.get("secondary_name")) or (catalog.secondary_name if catalog else None),
        "selling_type": sanitize_string(medicine_data.get("selling_type")) or (catalog.selling_type if catalog else ""),
        "med_type": sanitize_string(medicine_data.get("med_type")) or (catalog.med_type if catalog else ""),
        "unit_price_cents": price_cents or 0,
        "card_per_box": card_per_box or 0,
        "low_stock_threshold": catalog.low_stock_threshold if catalog else None,
    }


def add_to_stock(
    store_email: str,
    medicine_data: dict,
    quantity,
    *,
    batch_number: str | None = None,
    expiry_date=None,
    purchase_price=None,
) -> dict:
    """
    Add medicine to a store's stock, merging into the entry selected by the
    match policy. Snapshot fields missing from medicine_data come from the catalog.
    """
    qty = parse_quantity(quantity)
    snapshot = _build_snapshot(medicine_data or {})
    expiry = parse_optional_datetime(expiry_date, "expiry_date")
    purchase_cents = parse_money_cents(purchase_price, "purchase_price") if purchase_price not in (None, "") else None
    batch = sanitize_string(batch_number) or None

    def _op():
        begin_write_transaction()
        store = require_store(store_email, lock=True)
        entry, created = restore_entry(
            store,
            snapshot,
            qty,
            batch_number=batch,
            expiry_date=expiry,
            purchase_price_cents=purchase_cents,
        )
        db.session.commit()
        return {
            "med_id": entry.med_id,
            "name": entry.name,
            "batch_number": entry.batch_number,
            "quantity": entry.quantity,
            "action": "added" if created else "updated",
        }

    result = run_with_retry(_op)
    current_app.logger.info(
        "Stock %s: store=%s med_id=%s added=%d quantity=%d",
        result["action"], store_email, result["med_id"], qty, result["quantity"],
    )
    return result


def remove_from_stock(store_email: str, med_id: str, quantity, *, batch_number: str | None = None) -> dict:
    qty = parse_quantity(quantity)
    if not med_id:
        raise ValidationError("med_id is required")

    def _op():
        begin_write_transaction()
        store = require_store(store_email, lock=True)
        entry = find_entry(store.id, med_id, batch_number, lock=True)
        if entry is None:
            raise MedicineNotFound(med_id, batch_number)
        remaining = deduct_entry(entry, qty)
        db.session.commit()
        return {
            "med_id": med_id,
            "removed_quantity": qty,
            "remaining_quantity": remaining,
            "removed": remaining == 0,
        }

    result = run_with_retry(_op)
    current_app.logger.info(
        "Stock reduced: store=%s med_id=%s removed=%d remaining=%d",
        store_email, med_id, qty, result["remaining_quantity"],
    )
    return result


def update_stock_item(store_email: str, med_id: str, updates: dict, *, batch_number: str | None = None) -> dict:
    """
    Edit one stock entry in place. Setting quantity to 0 removes the entry,
    keeping the no-zero-quantity invariant.
    """
    updates = updates or {}
    patch: dict = {}
    if "unit_price" in updates or "price_per_tab" in updates:
        raw = updates.get("unit_price", updates.get("price_per_tab"))
        patch["unit_price_cents"] = parse_money_cents(raw, "unit_price")
    if "quantity" in updates:
        patch["quantity"] = parse_quantity(updates["quantity"], allow_zero=True)
    if "expiry_date" in updates:
        patch["expiry_date"] = parse_optional_datetime(updates["expiry_date"], "expiry_date")
    if "batch_number" in updates:
        patch["batch_number"] = sanitize_string(updates["batch_number"])
    if "card_per_box" in updates:
        patch["card_per_box"] = parse_quantity(updates["card_per_box"], "card_per_box", allow_zero=True)
    if "name" in updates:
        name = sanitize_string(updates["name"])
        if not name:
            raise ValidationError("name cannot be blank")
        patch["name"] = name
    if "low_stock_threshold" in updates:
        patch["low_stock_threshold"] = parse_quantity(updates["low_stock_threshold"], "low_stock_threshold", allow_zero=True)
    if not patch:
        raise ValidationError("No updatable fields supplied")

    def _op():
        begin_write_transaction()
        store = require_store(store_email, lock=True)
        entry = find_entry(store.id, med_id, batch_number, lock=True)
        if entry is None:
            raise MedicineNotFound(med_id, batch_number)

        new_batch = patch.get("batch_number")
        if new_batch is not None and new_batch != entry.batch_number:
            clash = db.session.query(StockEntry).filter(
                StockEntry.store_id == store.id,
                StockEntry.med_id == entry.med_id,
                StockEntry.batch_number == new_batch,
            ).first()
            if clash is not None:
                raise ValidationError("Another stock entry already uses this batch number")

        for field, value in patch.items():
            setattr(entry, field, value)

        removed = entry.quantity == 0
        item = None if removed else entry.to_dict()
        if removed:
            db.session.delete(entry)
        db.session.commit()
        if item is not None:
            item["version_id"] = entry.version_id
        return {"med_id": med_id, "updated": True, "removed": removed, "item": item}

    result = run_with_retry(_op)
    current_app.logger.info("Stock item updated: store=%s med_id=%s fields=%s", store_email, med_id, sorted(patch))
    return result


def list_stock(store_email: str) -> list[dict]:
    store = require_store(store_email)
    entries = db.session.query(StockEntry).filter_by(store_id=store.id).order_by(
        StockEntry.name.asc(), StockEntry.id.asc()
    ).all()
    return [entry.to_dict() for entry in entries]


def expiring_stock(store_email: str, days=90, *, now: datetime | None = None) -> dict:
    """Entries expiring within `days` (already-expired first, then nearest expiry)."""
    window = parse_quantity(days, "days", allow_zero=True)
    now = now or utcnow()
    store = require_store(store_email)
    cutoff = now + timedelta(days=window)

    entries = db.session.query(StockEntry).filter(
        StockEntry.store_id == store.id,
        StockEntry.expiry_date.isnot(None),
        StockEntry.expiry_date <= cutoff,
    ).all()

    items = []
    for entry in entries:
        item = entry.to_dict()
        item["days_until_expiry"] = math.ceil((entry.expiry_date - now).total_seconds() / 86400)
        items.append(item)
    items.sort(key=lambda item: item["days_until_expiry"])

    return {"count": len(items), "items": items, "threshold_days": window}


def low_stock(store_email: str, threshold=10) -> dict:
    """Entries at or below their own threshold, or the global one when unset."""
    limit = parse_quantity(threshold, "threshold", allow_zero=True)
    store = require_store(store_email)

    entries = db.session.query(StockEntry).filter_by(store_id=store.id).order_by(
        StockEntry.quantity.asc(), StockEntry.id.asc()
    ).all()
    items = [
        entry.to_dict()
        for entry in entries
        if entry.quantity <= (entry.low_stock_threshold or limit)
    ]
    return {"count": len(items), "items": items, "threshold": limit}
