from __future__ import annotations

from flask import current_app

from medistore.errors import InvalidQuantity, StoreNotFound, ValidationError
from medistore.extensions import db
from medistore.models import BillingRecord, StockEntry, Store
from medistore.services.concurrency import lock_for_update, run_with_retry
from medistore.time_utils import get_zone
from medistore.validation import normalize_email, parse_quantity, sanitize_string


MAX_HISTORY_LIMIT = 500


def find_store_by_email(email: str) -> Store | None:
    return db.session.query(Store).filter_by(email=(email or "").strip().lower()).first()


def require_store(email: str, *, lock: bool = False) -> Store:
    """Load a store by identity, optionally row-locked; raises StoreNotFound."""
    query = db.session.query(Store).filter_by(email=(email or "").strip().lower())
    if lock:
        query = lock_for_update(query)
    store = query.first()
    if store is None:
        raise StoreNotFound(email)
    return store


def create_store(email: str, name: str, address: str = "", timezone: str = "UTC") -> Store:
    email = normalize_email(email)
    name = sanitize_string(name)
    if len(name) < 2 or len(name) > 100:
        raise ValidationError("Store name must be 2-100 characters")
    if get_zone(timezone).key != timezone:
        raise ValidationError(f"Unknown timezone: {timezone}")

    def _op():
        if find_store_by_email(email):
            raise ValidationError("A store with this email already exists")
        store = Store(email=email, name=name, address=sanitize_string(address), timezone=timezone)
        db.session.add(store)
        db.session.commit()
        return store

    store = run_with_retry(_op)
    current_app.logger.info("Store created: %s", store.email)
    return store


def list_stores() -> list[Store]:
    return db.session.query(Store).order_by(Store.id.asc()).all()


def _parse_history_limit(limit) -> int | None:
    if limit is None:
        return None
    message = f"history_limit must be an integer between 1 and {MAX_HISTORY_LIMIT}"
    try:
        value = parse_quantity(limit, "history_limit")
    except InvalidQuantity:
        raise ValidationError(message, details={"history_limit": limit})
    if value > MAX_HISTORY_LIMIT:
        raise ValidationError(message, details={"history_limit": limit})
    return value


def get_store_data(email: str, history_limit=None) -> dict:
    """
    Store profile with its current stock and billing history.

    Stock is ordered by name; history is newest first and optionally limited.
    `billing_count` is always the full number of bills.
    """
    limit = _parse_history_limit(history_limit)
    store = require_store(email)

    entries = db.session.query(StockEntry).filter_by(store_id=store.id).order_by(
        StockEntry.name.asc(), StockEntry.id.asc()
    ).all()

    history = db.session.query(BillingRecord).filter_by(store_id=store.id).order_by(
        BillingRecord.created_at.desc(), BillingRecord.id.desc()
    )
    billing_count = history.count()
    if limit is not None:
        history = history.limit(limit)

    return {
        "store": store.to_dict(),
        "stock": [entry.to_dict() for entry in entries],
        "billing_history": [record.to_dict() for record in history.all()],
        "billing_count": billing_count,
    }
