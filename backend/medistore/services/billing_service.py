"""
Billing Transaction Engine

WHY: A bill deducts stock for several medicines at once. Either every line
is deducted and the bill is appended to the store's history, or nothing
changes. Two cashiers billing the same store concurrently must never
oversell an entry.

HOW:
- The store row is write-locked for the whole unit of work
  (BEGIN IMMEDIATE on SQLite, SELECT ... FOR UPDATE elsewhere)
- Requested quantities are aggregated per stock key and validated before
  the first deduction
- The bill total is recomputed from the stock snapshot prices
- Touching store.last_billed_at bumps Store.version_id, so a stale writer
  fails with StaleDataError and run_with_retry replays the unit of work
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from flask import current_app
from sqlalchemy.orm.attributes import flag_modified

from medistore.errors import InsufficientStock, MedicineNotFound, MedistoreError, TotalMismatch
from medistore.extensions import db
from medistore.models import BillingLine, BillingRecord, StockEntry
from medistore.models.inventory import cents_to_amount
from medistore.services.concurrency import begin_write_transaction, run_with_retry
from medistore.services.stock_service import deduct_entry, find_entry, stock_key
from medistore.services.store_service import require_store
from medistore.time_utils import utcnow
from medistore.validation import (
    Customer,
    LineItem,
    parse_customer,
    parse_line_items,
    parse_money_cents,
)


def _coerce_customer(customer: Any) -> Customer:
    if isinstance(customer, Customer):
        return customer
    customer = customer or {}
    return parse_customer(customer.get("name"), customer.get("age"), customer.get("phone"))


def _coerce_line_items(line_items: Any) -> list[LineItem]:
    if isinstance(line_items, list) and line_items and all(isinstance(i, LineItem) for i in line_items):
        return line_items
    return parse_line_items(line_items)


def _check_total(supplied_cents: int | None, computed_cents: int) -> int:
    """Returns the total to record."""
    if supplied_cents is None:
        return computed_cents
    if not current_app.config.get("BILLING_VERIFY_TOTAL", True):
        return supplied_cents
    tolerance = current_app.config.get("BILLING_TOTAL_TOLERANCE_CENTS", 1)
    if abs(supplied_cents - computed_cents) > tolerance:
        raise TotalMismatch(supplied_cents, computed_cents)
    return computed_cents


def _reserve_entries(store_id: int, items: list[LineItem]) -> tuple[dict[tuple, StockEntry], dict[tuple, int]]:
    """Lock and validate one entry per stock key; raises before anything is mutated."""
    requested: dict[tuple, int] = {}
    for item in items:
        key = stock_key(item.med_id, item.batch_number)
        requested[key] = requested.get(key, 0) + item.quantity

    entries: dict[tuple, StockEntry] = {}
    for item in items:
        key = stock_key(item.med_id, item.batch_number)
        if key in entries:
            continue
        entry = find_entry(store_id, item.med_id, item.batch_number, lock=True)
        if entry is None:
            raise MedicineNotFound(item.med_id, item.batch_number)
        if entry.quantity < requested[key]:
            raise InsufficientStock(item.med_id, requested[key], entry.quantity)
        entries[key] = entry
    return entries, requested


def create_billing(
    store_email: str,
    customer: Customer | dict,
    line_items: list[LineItem] | list[dict] | str,
    total_amount=None,
    *,
    now: datetime | None = None,
) -> BillingRecord:
    """
    Validate every line, deduct stock and append the bill, atomically.

    Raises InvalidQuantity / ValidationError before touching storage,
    StoreNotFound, MedicineNotFound or InsufficientStock (naming the failing
    med_id) during validation, TotalMismatch when the supplied total is off
    by more than the configured tolerance, and ConcurrentModification when
    optimistic-lock retries run out.
    """
    buyer = _coerce_customer(customer)
    items = _coerce_line_items(line_items)
    supplied_cents = None
    if total_amount is not None and total_amount != "":
        supplied_cents = parse_money_cents(total_amount, "total_amount")

    def _op():
        begin_write_transaction()
        created_at = now or utcnow()
        store = require_store(store_email, lock=True)

        entries, requested = _reserve_entries(store.id, items)

        # Snapshot prices before deducting: a deduction to zero deletes the entry
        lines = []
        computed_cents = 0
        for position, item in enumerate(items, start=1):
            entry = entries[stock_key(item.med_id, item.batch_number)]
            line_total = entry.unit_price_cents * item.quantity
            computed_cents += line_total
            lines.append(BillingLine(
                position=position,
                med_id=entry.med_id,
                name=entry.name,
                batch_number=entry.batch_number,
                quantity=item.quantity,
                unit_price_cents=entry.unit_price_cents,
                line_total_cents=line_total,
            ))

        total_cents = _check_total(supplied_cents, computed_cents)

        for key, entry in entries.items():
            deduct_entry(entry, requested[key])

        record = BillingRecord(
            store_id=store.id,
            customer_name=buyer.name,
            customer_age=buyer.age,
            phone=buyer.phone,
            total_amount_cents=total_cents,
            created_at=created_at,
            lines=lines,
        )
        db.session.add(record)

        store.last_billed_at = created_at
        flag_modified(store, "last_billed_at")

        db.session.commit()
        return record

    try:
        record = run_with_retry(_op)
    except MedistoreError as e:
        current_app.logger.warning("Billing aborted for %s: %s %s", store_email, e.code, e.details)
        raise

    current_app.logger.info(
        "Billing committed: store=%s billing_id=%s total_cents=%d lines=%d",
        store_email, record.id, record.total_amount_cents, len(items),
    )
    return record


def billing_summary(record: BillingRecord) -> dict:
    return {
        "billing_id": record.id,
        "customer_name": record.customer_name,
        "total_amount": cents_to_amount(record.total_amount_cents),
        "product_count": len(record.lines),
    }
