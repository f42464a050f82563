# Overview: Sales aggregation, bucketed series and top-seller ranking over billing history.

"""
Every aggregate is computed from one scan primitive, iter_billing_records(),
which streams a store's bills for a UTC window in (created_at, id) order.

Windows arrive in store-local wall-clock time (see period_service) and are
converted to UTC at the query boundary; bucketing converts each bill back to
local time. Money is accumulated in integer cents and converted to currency
only in the returned dicts.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterator

from flask import current_app

from medistore.errors import AnalyticsCancelled, InvalidPeriod, InvalidQuantity, ValidationError
from medistore.extensions import db
from medistore.models import BillingRecord, Store, StockEntry
from medistore.models.inventory import cents_to_amount
from medistore.services.period_service import (
    PERIODS,
    end_of_day,
    growth_percentage,
    parse_custom_bounds,
    resolve_period,
    start_of_day,
)
from medistore.services.store_service import require_store
from medistore.time_utils import local_to_utc, utc_to_local, utcnow
from medistore.validation import parse_quantity


MAX_TOP_LIMIT = 100
SCAN_BATCH_SIZE = 500
DEFAULT_LOW_STOCK_THRESHOLD = 10


@dataclass
class ScanBudget:
    """Wall-clock deadline plus an optional cancel flag, checked per scanned bill."""
    deadline_seconds: float | None = None
    cancel_event: threading.Event | None = None
    clock: Callable[[], float] = time.monotonic
    started_at: float = field(init=False)

    def __post_init__(self):
        self.started_at = self.clock()

    @classmethod
    def from_config(cls, cancel_event: threading.Event | None = None) -> "ScanBudget":
        return cls(current_app.config.get("ANALYTICS_SCAN_BUDGET_SECONDS"), cancel_event)

    def check(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise AnalyticsCancelled("Analytics scan was cancelled")
        if self.deadline_seconds is not None and self.clock() - self.started_at > self.deadline_seconds:
            raise AnalyticsCancelled(
                "Analytics scan exceeded its time budget",
                details={"budget_seconds": self.deadline_seconds},
            )


def iter_billing_records(
    store_id: int,
    start_utc: datetime | None,
    end_utc: datetime | None,
    budget: ScanBudget | None = None,
) -> Iterator[BillingRecord]:
    """Stream a store's bills with start_utc <= created_at <= end_utc (either bound optional)."""
    if budget is not None:
        budget.check()

    query = db.session.query(BillingRecord).filter(BillingRecord.store_id == store_id)
    if start_utc is not None:
        query = query.filter(BillingRecord.created_at >= start_utc)
    if end_utc is not None:
        query = query.filter(BillingRecord.created_at <= end_utc)
    query = query.order_by(BillingRecord.created_at.asc(), BillingRecord.id.asc())

    for record in query.yield_per(SCAN_BATCH_SIZE):
        if budget is not None:
            budget.check()
        yield record


@dataclass
class SalesTotals:
    total_cents: int = 0
    transaction_count: int = 0
    items_sold: int = 0

    def add(self, record: BillingRecord) -> None:
        self.total_cents += record.total_amount_cents or 0
        self.transaction_count += 1
        self.items_sold += record.items_sold

    def to_dict(self) -> dict:
        average = 0.0
        if self.transaction_count:
            average_cents = (Decimal(self.total_cents) / self.transaction_count).quantize(
                Decimal("1"), rounding=ROUND_HALF_UP
            )
            average = cents_to_amount(int(average_cents))
        return {
            "total_sales": cents_to_amount(self.total_cents),
            "transaction_count": self.transaction_count,
            "items_sold": self.items_sold,
            "average_transaction": average,
        }


def _empty_buckets(start: datetime, end: datetime, granularity: str) -> dict:
    buckets: dict = {}
    if granularity == "hourly":
        for hour in range(24):
            label = f"{hour:02d}:00"
            buckets[hour] = {"label": label, "key": label, "sales_cents": 0, "transactions": 0}
    elif granularity == "daily":
        day = start.date()
        while day <= end.date():
            # "Fri, Mar 1"
            label = f"{day.strftime('%a, %b')} {day.day}"
            buckets[day] = {"label": label, "key": day.isoformat(), "sales_cents": 0, "transactions": 0}
            day += timedelta(days=1)
    elif granularity == "monthly":
        year, month = start.year, start.month
        while (year, month) <= (end.year, end.month):
            first = datetime(year, month, 1)
            buckets[(year, month)] = {
                "label": first.strftime("%b %Y"),
                "key": f"{year:04d}-{month:02d}",
                "sales_cents": 0,
                "transactions": 0,
            }
            year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    else:
        raise ValidationError(f"Unknown granularity: {granularity}")
    return buckets


def _bucket_key(local_dt: datetime, granularity: str):
    if granularity == "hourly":
        return local_dt.hour
    if granularity == "daily":
        return local_dt.date()
    return (local_dt.year, local_dt.month)


def _scan_window(
    store: Store,
    start: datetime,
    end: datetime,
    granularity: str | None = None,
    budget: ScanBudget | None = None,
) -> tuple[SalesTotals, list[dict] | None]:
    """One pass over the window: totals, plus the zero-filled series when granularity is given."""
    totals = SalesTotals()
    buckets = _empty_buckets(start, end, granularity) if granularity else None

    records = iter_billing_records(
        store.id,
        local_to_utc(start, store.timezone),
        local_to_utc(end, store.timezone),
        budget,
    )
    for record in records:
        totals.add(record)
        if buckets is not None:
            bucket = buckets.get(_bucket_key(utc_to_local(record.created_at, store.timezone), granularity))
            if bucket is not None:
                bucket["sales_cents"] += record.total_amount_cents or 0
                bucket["transactions"] += 1

    if buckets is None:
        return totals, None
    series = [
        {
            "label": bucket["label"],
            "key": bucket["key"],
            "sales": cents_to_amount(bucket["sales_cents"]),
            "transactions": bucket["transactions"],
        }
        for bucket in buckets.values()
    ]
    return totals, series


def aggregate_sales(store: Store, start: datetime, end: datetime, *, budget: ScanBudget | None = None) -> dict:
    totals, _ = _scan_window(store, start, end, None, budget)
    return totals.to_dict()


def bucketed_series(
    store: Store,
    start: datetime,
    end: datetime,
    granularity: str,
    *,
    budget: ScanBudget | None = None,
) -> list[dict]:
    _, series = _scan_window(store, start, end, granularity, budget)
    return series


def _validate_period(period: str, start=None, end=None) -> tuple:
    """Reject a bad period name or custom bounds before any storage access."""
    if period not in PERIODS:
        raise InvalidPeriod(f"Invalid period: {period}", details={"period": period, "allowed": list(PERIODS)})
    if period == "custom":
        return parse_custom_bounds(start, end)
    return start, end


def get_sales_analytics(
    store_email: str,
    period: str = "today",
    start=None,
    end=None,
    *,
    now: datetime | None = None,
    cache=None,
    budget: ScanBudget | None = None,
) -> dict:
    """
    Sales summary for a period with its comparison window, growth and series.

    Results are cached per (store, window); a scan that is cancelled or runs
    out of budget raises AnalyticsCancelled and caches nothing.
    """
    start, end = _validate_period(period, start, end)
    store = require_store(store_email)
    local_now = utc_to_local(now or utcnow(), store.timezone)
    resolved = resolve_period(period, start, end, now=local_now)

    if cache is None:
        cache = current_app.extensions["analytics_cache"]
    key = cache.make_key(
        store.email,
        resolved.start,
        resolved.end,
        resolved.comparison_start,
        resolved.comparison_end,
        resolved.granularity,
    )

    cached = cache.get(key)
    if cached is not None:
        # Identical resolution under another name (custom over exactly today)
        cached["period"]["name"] = period
        current_app.logger.info("Analytics served from cache: store=%s period=%s", store.email, period)
        return cached

    if budget is None:
        budget = ScanBudget.from_config()

    current, series = _scan_window(store, resolved.start, resolved.end, resolved.granularity, budget)
    comparison = None
    if resolved.comparison_start is not None and resolved.comparison_end is not None:
        comparison, _ = _scan_window(store, resolved.comparison_start, resolved.comparison_end, None, budget)

    result = {
        "period": resolved.to_dict(),
        "current": current.to_dict(),
        "comparison": comparison.to_dict() if comparison is not None else None,
        "growth": growth_percentage(current.total_cents, comparison.total_cents if comparison else None),
        "granularity": resolved.granularity,
        "series": series,
    }
    cache.set(key, result)

    current_app.logger.info(
        "Sales analytics generated: store=%s period=%s total_cents=%d",
        store.email, period, current.total_cents,
    )
    return result


def _parse_limit(limit) -> int:
    try:
        value = parse_quantity(limit, "limit")
    except InvalidQuantity:
        raise ValidationError(f"limit must be an integer between 1 and {MAX_TOP_LIMIT}", details={"limit": limit})
    if value > MAX_TOP_LIMIT:
        raise ValidationError(f"limit must be an integer between 1 and {MAX_TOP_LIMIT}", details={"limit": limit})
    return value


def top_selling(
    store: Store,
    start: datetime,
    limit: int,
    *,
    end: datetime | None = None,
    rank_by: str = "revenue",
    budget: ScanBudget | None = None,
) -> list[dict]:
    """
    Medicines sold since `start`, ranked descending by revenue (or quantity).

    Revenue is quantity x the unit price snapshotted on each bill line. Lines
    without a med_id are skipped. The sort is stable, so ties keep the order
    in which each medicine was first seen in the scan.
    """
    if rank_by not in ("revenue", "quantity"):
        raise ValidationError("rank_by must be 'revenue' or 'quantity'")

    sold: dict[str, dict] = {}
    records = iter_billing_records(
        store.id,
        local_to_utc(start, store.timezone),
        local_to_utc(end, store.timezone) if end is not None else None,
        budget,
    )
    for record in records:
        for line in record.lines:
            if not line.med_id:
                continue
            row = sold.get(line.med_id)
            if row is None:
                row = sold[line.med_id] = {"med_id": line.med_id, "name": line.name, "quantity": 0, "revenue": 0}
            row["quantity"] += line.quantity or 0
            row["revenue"] += (line.quantity or 0) * (line.unit_price_cents or 0)

    ranked = sorted(sold.values(), key=lambda row: row[rank_by], reverse=True)[:limit]
    return [{**row, "revenue": cents_to_amount(row["revenue"])} for row in ranked]


def get_top_selling(
    store_email: str,
    period: str = "thisMonth",
    limit=10,
    *,
    start=None,
    end=None,
    now: datetime | None = None,
    budget: ScanBudget | None = None,
) -> list[dict]:
    start, end = _validate_period(period, start, end)
    top_n = _parse_limit(limit)
    store = require_store(store_email)
    resolved = resolve_period(period, start, end, now=utc_to_local(now or utcnow(), store.timezone))

    return top_selling(
        store,
        resolved.start,
        top_n,
        end=resolved.end,
        budget=budget if budget is not None else ScanBudget.from_config(),
    )


def dashboard_stats(store_email: str, *, now: datetime | None = None) -> dict:
    """Stock counts and value, today's and this month's sales, and the month's top 5 by quantity."""
    store = require_store(store_email)
    local_now = utc_to_local(now or utcnow(), store.timezone)
    day_start = start_of_day(local_now.date())
    day_end = end_of_day(local_now.date())
    month_start = day_start.replace(day=1)

    entries = db.session.query(StockEntry).filter_by(store_id=store.id).all()
    low_stock_items = sum(
        1 for entry in entries
        if entry.quantity <= (entry.low_stock_threshold or DEFAULT_LOW_STOCK_THRESHOLD)
    )
    stock_value_cents = sum((entry.unit_price_cents or 0) * entry.quantity for entry in entries)

    budget = ScanBudget.from_config()
    today, _ = _scan_window(store, day_start, day_end, None, budget)
    month, _ = _scan_window(store, month_start, day_end, None, budget)

    return {
        "stock": {
            "total_products": len(entries),
            "low_stock_items": low_stock_items,
            "total_value": cents_to_amount(stock_value_cents),
        },
        "sales": {
            "today": {"amount": cents_to_amount(today.total_cents), "transactions": today.transaction_count},
            "monthly": {"amount": cents_to_amount(month.total_cents), "transactions": month.transaction_count},
        },
        "top_selling": top_selling(store, month_start, 5, end=day_end, rank_by="quantity", budget=budget),
    }
