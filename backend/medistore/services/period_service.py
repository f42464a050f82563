# Overview: Named and custom analytics periods resolved to concrete store-local windows.

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP

from medistore.errors import InvalidPeriod


PERIODS = ("today", "yesterday", "thisWeek", "thisMonth", "thisYear", "custom")
GRANULARITIES = ("hourly", "daily", "monthly")

ONE_DAY = timedelta(days=1)
ONE_MICROSECOND = timedelta(microseconds=1)


@dataclass(frozen=True)
class ResolvedPeriod:
    """
    A concrete analytics window in store-local wall-clock time.

    Both ends are inclusive; an "end of day" bound is 23:59:59.999999.
    """
    name: str
    start: datetime
    end: datetime
    comparison_start: datetime | None
    comparison_end: datetime | None
    granularity: str

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "start": self.start.isoformat(timespec="milliseconds"),
            "end": self.end.isoformat(timespec="milliseconds"),
            "comparison_start": self.comparison_start.isoformat(timespec="milliseconds") if self.comparison_start else None,
            "comparison_end": self.comparison_end.isoformat(timespec="milliseconds") if self.comparison_end else None,
        }


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, time.max)


def _same_day_last_year(day: date) -> date:
    try:
        return day.replace(year=day.year - 1)
    except ValueError:
        # 29 Feb -> 28 Feb
        return day.replace(year=day.year - 1, day=28)


def granularity_for_span(start: datetime, end: datetime) -> str:
    days = math.ceil((end - start) / ONE_DAY)
    if days <= 1:
        return "hourly"
    if days <= 31:
        return "daily"
    return "monthly"


def _parse_bound(value, field: str, *, is_end: bool) -> datetime:
    """Accept a datetime, a date, or an ISO string; date-only values snap to day bounds."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return end_of_day(value) if is_end else start_of_day(value)
    if not isinstance(value, str) or not value.strip():
        raise InvalidPeriod(f"{field} is required for a custom period", details={"field": field})

    raw = value.strip()
    try:
        if len(raw) == 10:
            day = date.fromisoformat(raw)
            return end_of_day(day) if is_end else start_of_day(day)
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        return datetime.fromisoformat(raw).replace(tzinfo=None)
    except ValueError:
        raise InvalidPeriod(f"{field} must be an ISO-8601 date or datetime", details={"field": field, "value": value})


def parse_custom_bounds(custom_start, custom_end) -> tuple[datetime, datetime]:
    """
    Parse and order-check custom bounds without needing a store.

    Raises InvalidPeriod on a missing or malformed bound, or when end < start.
    """
    start = _parse_bound(custom_start, "start_date", is_end=False)
    end = _parse_bound(custom_end, "end_date", is_end=True)
    if end < start:
        raise InvalidPeriod(
            "end_date must not be before start_date",
            details={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )
    return start, end


def resolve_period(period: str, custom_start=None, custom_end=None, *, now: datetime) -> ResolvedPeriod:
    """
    Map a period name (or custom bounds) to the current and comparison windows.

    `now` is the store-local wall clock. Windows that run "until now" end at
    the end of today, which keeps the cache key stable for the whole day.
    """
    if period not in PERIODS:
        raise InvalidPeriod(f"Invalid period: {period}", details={"period": period, "allowed": list(PERIODS)})

    today = now.date()
    today_start = start_of_day(today)
    today_end = end_of_day(today)

    if period == "today":
        return ResolvedPeriod(period, today_start, today_end, today_start - ONE_DAY, today_end - ONE_DAY, "hourly")

    if period == "yesterday":
        start, end = today_start - ONE_DAY, today_end - ONE_DAY
        return ResolvedPeriod(period, start, end, start - ONE_DAY, end - ONE_DAY, "hourly")

    if period == "thisWeek":
        # weekday(): Monday=0 ... Sunday=6; weeks start on Sunday
        start = today_start - timedelta(days=(today.weekday() + 1) % 7)
        week = timedelta(days=7)
        return ResolvedPeriod(period, start, today_end, start - week, today_end - week, "daily")

    if period == "thisMonth":
        start = today_start.replace(day=1)
        comparison_end = start - ONE_MICROSECOND
        comparison_start = start_of_day(comparison_end.date().replace(day=1))
        return ResolvedPeriod(period, start, today_end, comparison_start, comparison_end, "daily")

    if period == "thisYear":
        start = today_start.replace(month=1, day=1)
        comparison_start = start.replace(year=start.year - 1)
        comparison_end = end_of_day(_same_day_last_year(today))
        return ResolvedPeriod(period, start, today_end, comparison_start, comparison_end, "monthly")

    start, end = parse_custom_bounds(custom_start, custom_end)
    span = end - start + ONE_MICROSECOND
    return ResolvedPeriod(period, start, end, start - span, end - span, granularity_for_span(start, end))


def growth_percentage(current_cents: int, comparison_cents: int | None) -> dict:
    """Whole-percent growth, half-up; 0 when there is nothing to compare against."""
    percentage = 0
    if comparison_cents:
        ratio = Decimal(current_cents - comparison_cents) * 100 / Decimal(comparison_cents)
        percentage = int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return {"percentage": percentage, "is_positive": percentage >= 0}
