"""
Sales aggregator, bucketed series and top-seller ranker tests.

Bills are created through the billing engine with fixed timestamps so every
window below is deterministic.
"""

import threading
from datetime import datetime

import pytest

from medistore.errors import AnalyticsCancelled, InvalidPeriod, StoreNotFound, ValidationError
from medistore.models import BillingLine, BillingRecord
from medistore.services import analytics_service
from medistore.services.analytics_cache import AnalyticsCache
from medistore.services.analytics_service import (
    ScanBudget,
    aggregate_sales,
    bucketed_series,
    dashboard_stats,
    get_sales_analytics,
    get_top_selling,
    top_selling,
)

from conftest import STORE_EMAIL, add_entry, bill


@pytest.fixture
def march_sales(db_session, store):
    """3 bills on 2024-03-01 totalling 150.00 and 2 on 2024-03-02 totalling 80.00."""
    add_entry(db_session, store, "P10", 1000, 1000, name="Ten")
    add_entry(db_session, store, "P5", 1000, 500, name="Five")

    bill([("P10", 5)], at=datetime(2024, 3, 1, 9, 15))
    bill([("P10", 4)], at=datetime(2024, 3, 1, 13, 5))
    bill([("P10", 6)], at=datetime(2024, 3, 1, 13, 40))
    bill([("P5", 10)], at=datetime(2024, 3, 2, 10, 0))
    bill([("P10", 3)], at=datetime(2024, 3, 2, 18, 0))
    return store


class TestAggregateSales:
    def test_two_day_window(self, march_sales):
        result = aggregate_sales(march_sales, datetime(2024, 3, 1), datetime(2024, 3, 2, 23, 59, 59, 999999))

        assert result == {
            "total_sales": 230.0,
            "transaction_count": 5,
            "items_sold": 28,
            "average_transaction": 46.0,
        }

    def test_bounds_are_inclusive(self, march_sales):
        result = aggregate_sales(march_sales, datetime(2024, 3, 1, 9, 15), datetime(2024, 3, 1, 13, 40))
        assert result["transaction_count"] == 3

    def test_empty_window(self, march_sales):
        result = aggregate_sales(march_sales, datetime(2024, 4, 1), datetime(2024, 4, 30))
        assert result == {"total_sales": 0.0, "transaction_count": 0, "items_sold": 0, "average_transaction": 0.0}

    def test_average_rounds_half_up(self, db_session, store):
        add_entry(db_session, store, "ODD", 100, 1)
        bill([("ODD", 1)], at=datetime(2024, 3, 1, 9))
        bill([("ODD", 2)], at=datetime(2024, 3, 1, 10))

        result = aggregate_sales(store, datetime(2024, 3, 1), datetime(2024, 3, 1, 23))

        # 3 cents over 2 bills = 1.5 cents -> 0.02
        assert result["average_transaction"] == 0.02


class TestBucketedSeries:
    def test_hourly_has_24_zero_filled_buckets(self, march_sales):
        series = bucketed_series(march_sales, datetime(2024, 3, 1), datetime(2024, 3, 1, 23, 59, 59), "hourly")

        assert len(series) == 24
        assert [b["label"] for b in series[:3]] == ["00:00", "01:00", "02:00"]
        by_label = {b["label"]: b for b in series}
        assert by_label["09:00"] == {"label": "09:00", "key": "09:00", "sales": 50.0, "transactions": 1}
        assert by_label["13:00"]["sales"] == 100.0
        assert by_label["13:00"]["transactions"] == 2
        assert sum(b["transactions"] for b in series) == 3

    def test_daily_covers_every_day(self, march_sales):
        series = bucketed_series(march_sales, datetime(2024, 2, 28), datetime(2024, 3, 3, 23, 59), "daily")

        assert [b["key"] for b in series] == ["2024-02-28", "2024-02-29", "2024-03-01", "2024-03-02", "2024-03-03"]
        assert series[2]["label"] == "Fri, Mar 1"
        assert [b["sales"] for b in series] == [0.0, 0.0, 150.0, 80.0, 0.0]

    def test_monthly_covers_every_month(self, march_sales):
        series = bucketed_series(march_sales, datetime(2023, 12, 1), datetime(2024, 4, 30), "monthly")

        assert [b["key"] for b in series] == ["2023-12", "2024-01", "2024-02", "2024-03", "2024-04"]
        assert series[0]["label"] == "Dec 2023"
        assert series[3] == {"label": "Mar 2024", "key": "2024-03", "sales": 230.0, "transactions": 5}

    def test_store_timezone_shifts_buckets(self, db_session, march_sales):
        march_sales.timezone = "Asia/Kolkata"
        db_session.commit()

        # 2024-03-01 09:15 UTC is 14:45 in Kolkata
        series = bucketed_series(march_sales, datetime(2024, 3, 1), datetime(2024, 3, 1, 23, 59, 59), "hourly")
        by_label = {b["label"]: b for b in series}
        assert by_label["14:00"]["transactions"] == 1
        assert by_label["09:00"]["transactions"] == 0


class TestScanBudget:
    def test_cancelled_event_aborts_scan(self, march_sales):
        event = threading.Event()
        event.set()

        with pytest.raises(AnalyticsCancelled):
            aggregate_sales(march_sales, datetime(2024, 3, 1), datetime(2024, 3, 2, 23), budget=ScanBudget(cancel_event=event))

    def test_deadline_exceeded(self, march_sales):
        ticks = iter([0.0, 0.0, 100.0, 100.0, 100.0, 100.0, 100.0, 100.0])
        budget = ScanBudget(deadline_seconds=5, clock=lambda: next(ticks))

        with pytest.raises(AnalyticsCancelled):
            aggregate_sales(march_sales, datetime(2024, 3, 1), datetime(2024, 3, 2, 23), budget=budget)

    def test_cancelled_scan_is_not_cached(self, march_sales):
        cache = AnalyticsCache()
        event = threading.Event()
        event.set()

        with pytest.raises(AnalyticsCancelled):
            get_sales_analytics(
                STORE_EMAIL, "custom", "2024-03-01", "2024-03-02",
                cache=cache, budget=ScanBudget(cancel_event=event),
            )
        assert len(cache) == 0


class TestGetSalesAnalytics:
    def test_full_result_shape(self, march_sales):
        result = get_sales_analytics(STORE_EMAIL, "custom", "2024-03-01", "2024-03-02", cache=AnalyticsCache())

        assert result["period"]["name"] == "custom"
        assert result["current"]["total_sales"] == 230.0
        assert result["comparison"]["total_sales"] == 0.0
        assert result["growth"] == {"percentage": 0, "is_positive": True}
        assert result["granularity"] == "daily"
        assert [b["key"] for b in result["series"]] == ["2024-03-01", "2024-03-02"]

    def test_growth_against_previous_window(self, march_sales):
        # 2024-03-02 (80.00) vs 2024-03-01 (150.00)
        result = get_sales_analytics(STORE_EMAIL, "custom", "2024-03-02", "2024-03-02", cache=AnalyticsCache())

        assert result["current"]["total_sales"] == 80.0
        assert result["comparison"]["total_sales"] == 150.0
        assert result["growth"] == {"percentage": -47, "is_positive": False}
        assert len(result["series"]) == 24

    def test_named_period_uses_now(self, march_sales):
        result = get_sales_analytics(STORE_EMAIL, "today", now=datetime(2024, 3, 2, 20, 0), cache=AnalyticsCache())

        assert result["current"]["transaction_count"] == 2
        assert result["comparison"]["transaction_count"] == 3
        assert result["growth"]["percentage"] == -47

    def test_invalid_period_checked_before_store(self, db_session):
        with pytest.raises(InvalidPeriod):
            get_sales_analytics("missing@example.com", "fortnight", cache=AnalyticsCache())

    def test_unknown_store(self, db_session):
        with pytest.raises(StoreNotFound):
            get_sales_analytics("missing@example.com", "today", cache=AnalyticsCache())

    @pytest.mark.parametrize("start, end", [
        ("not-a-date", "2024-03-01"),
        ("2024-03-01", None),
        ("2024-03-05", "2024-03-01"),
    ])
    def test_bad_custom_bounds_checked_before_store(self, db_session, start, end):
        with pytest.raises(InvalidPeriod):
            get_sales_analytics("missing@example.com", "custom", start, end, cache=AnalyticsCache())


class TestTopSelling:
    def test_ranked_by_revenue(self, march_sales):
        items = top_selling(march_sales, datetime(2024, 3, 1), 10)

        assert items == [
            {"med_id": "P10", "name": "Ten", "quantity": 18, "revenue": 180.0},
            {"med_id": "P5", "name": "Five", "quantity": 10, "revenue": 50.0},
        ]

    def test_ties_keep_scan_order(self, db_session, store):
        add_entry(db_session, store, "B", 100, 200)
        add_entry(db_session, store, "A", 100, 100)
        add_entry(db_session, store, "C", 100, 400)
        bill([("B", 1)], at=datetime(2024, 3, 1, 9))
        bill([("A", 2)], at=datetime(2024, 3, 1, 10))
        bill([("C", 1)], at=datetime(2024, 3, 1, 11))

        items = top_selling(store, datetime(2024, 3, 1), 10)

        assert [i["med_id"] for i in items] == ["C", "B", "A"]

    def test_lines_without_med_id_are_excluded(self, db_session, march_sales):
        record = BillingRecord(
            store_id=march_sales.id, customer_name="Walk-in", phone="0",
            total_amount_cents=9999, created_at=datetime(2024, 3, 1, 12),
            lines=[BillingLine(position=1, med_id=None, name="Loose", quantity=1,
                               unit_price_cents=9999, line_total_cents=9999)],
        )
        db_session.add(record)
        db_session.commit()

        items = top_selling(march_sales, datetime(2024, 3, 1), 10)
        assert all(i["med_id"] for i in items)
        assert len(items) == 2

    def test_limit_truncates(self, march_sales):
        assert len(top_selling(march_sales, datetime(2024, 3, 1), 1)) == 1

    def test_rank_by_quantity(self, db_session, store):
        add_entry(db_session, store, "CHEAP", 100, 10)
        add_entry(db_session, store, "DEAR", 100, 5000)
        bill([("DEAR", 1), ("CHEAP", 20)], at=datetime(2024, 3, 1, 9))

        items = top_selling(store, datetime(2024, 3, 1), 10, rank_by="quantity")
        assert [i["med_id"] for i in items] == ["CHEAP", "DEAR"]

    @pytest.mark.parametrize("limit", [0, 101, -1, "ten", 2.5])
    def test_limit_validation(self, march_sales, limit):
        with pytest.raises(ValidationError):
            get_top_selling(STORE_EMAIL, "thisMonth", limit, now=datetime(2024, 3, 20))

    def test_unknown_period(self, march_sales):
        with pytest.raises(InvalidPeriod):
            get_top_selling(STORE_EMAIL, "someday", 10)

    def test_bad_custom_bounds_checked_before_store(self, db_session):
        with pytest.raises(InvalidPeriod):
            get_top_selling("missing@example.com", "custom", 10, start="2024-13-01", end="2024-12-31")

    def test_window_comes_from_period(self, march_sales):
        assert len(get_top_selling(STORE_EMAIL, "thisMonth", 10, now=datetime(2024, 3, 20))) == 2
        assert get_top_selling(STORE_EMAIL, "thisMonth", 10, now=datetime(2024, 4, 2)) == []


def test_dashboard_stats(db_session, march_sales):
    add_entry(db_session, march_sales, "LOW", 3, 100)

    stats = dashboard_stats(STORE_EMAIL, now=datetime(2024, 3, 2, 20, 0))

    assert stats["stock"]["total_products"] == 3
    assert stats["stock"]["low_stock_items"] == 1
    # P10: 982 x 10.00, P5: 990 x 5.00, LOW: 3 x 1.00
    assert stats["stock"]["total_value"] == 9820.0 + 4950.0 + 3.0
    assert stats["sales"]["today"] == {"amount": 80.0, "transactions": 2}
    assert stats["sales"]["monthly"] == {"amount": 230.0, "transactions": 5}
    assert [i["med_id"] for i in stats["top_selling"]] == ["P10", "P5"]
