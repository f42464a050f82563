"""
Billing engine tests: conservation, atomicity, total verification and
stock-key matching.
"""

from datetime import datetime

import pytest
from sqlalchemy.orm.exc import StaleDataError

from medistore.errors import (
    ConcurrentModification,
    InsufficientStock,
    InvalidQuantity,
    MedicineNotFound,
    StoreNotFound,
    TotalMismatch,
    ValidationError,
)
from medistore.models import BillingRecord, BillingLine, StockEntry, Store
from medistore.services import billing_service
from medistore.services.billing_service import billing_summary, create_billing

from conftest import CUSTOMER, STORE_EMAIL, add_entry, bill, stock_snapshot


def _quantity(session, store, med_id, batch_number=None):
    query = session.query(StockEntry).filter_by(store_id=store.id, med_id=med_id)
    if batch_number is not None:
        query = query.filter_by(batch_number=batch_number)
    entry = query.first()
    return entry.quantity if entry else None


class TestConservation:
    def test_successful_bill_deducts_exact_quantities(self, db_session, stocked_store):
        record = bill([("PARA500", 3), ("AMOX500", 5)])

        assert _quantity(db_session, stocked_store, "PARA500") == 7
        assert _quantity(db_session, stocked_store, "AMOX500") == 15
        assert record.total_amount_cents == 3 * 500 + 5 * 1000
        assert record.items_sold == 8

    def test_repeated_med_id_is_aggregated_before_validation(self, db_session, stocked_store):
        bill([("PARA500", 4), ("PARA500", 4)])
        assert _quantity(db_session, stocked_store, "PARA500") == 2

        with pytest.raises(InsufficientStock) as exc:
            bill([("PARA500", 1), ("PARA500", 2)])
        assert exc.value.details["requested_quantity"] == 3
        assert exc.value.details["available_quantity"] == 2
        assert _quantity(db_session, stocked_store, "PARA500") == 2

    def test_lines_snapshot_stock_prices_in_request_order(self, db_session, stocked_store):
        record = bill([("AMOX500", 1), ("PARA500", 2)])

        lines = db_session.query(BillingLine).filter_by(billing_id=record.id).order_by(BillingLine.position).all()
        assert [(l.position, l.med_id, l.unit_price_cents, l.line_total_cents) for l in lines] == [
            (1, "AMOX500", 1000, 1000),
            (2, "PARA500", 500, 1000),
        ]
        assert lines[0].name == "Amoxicillin 500mg"

    def test_created_at_and_store_version_are_touched(self, db_session, stocked_store):
        version_before = stocked_store.version_id
        at = datetime(2024, 3, 1, 9, 30)

        record = bill([("PARA500", 1)], at=at)

        store = db_session.query(Store).filter_by(email=STORE_EMAIL).one()
        assert record.created_at == at
        assert store.last_billed_at == at
        assert store.version_id > version_before


class TestParaScenario:
    def test_billing_entire_quantity_removes_entry(self, db_session, stocked_store):
        bill([("PARA500", 10)])

        assert _quantity(db_session, stocked_store, "PARA500") is None
        assert _quantity(db_session, stocked_store, "AMOX500") == 20

    def test_billing_more_than_available_fails_and_leaves_ledger(self, db_session, stocked_store):
        before = stock_snapshot(db_session, stocked_store)

        with pytest.raises(InsufficientStock) as exc:
            bill([("PARA500", 11)])

        assert exc.value.med_id == "PARA500"
        assert exc.value.details["med_id"] == "PARA500"
        assert stock_snapshot(db_session, stocked_store) == before
        assert db_session.query(BillingRecord).count() == 0


class TestAtomicity:
    def test_late_line_failure_leaves_everything_unchanged(self, db_session, stocked_store):
        before = stock_snapshot(db_session, stocked_store)

        with pytest.raises(InsufficientStock):
            bill([("PARA500", 2), ("AMOX500", 21)])

        assert stock_snapshot(db_session, stocked_store) == before
        assert db_session.query(BillingRecord).count() == 0
        assert db_session.query(BillingLine).count() == 0

    def test_unknown_medicine_fails_with_its_id(self, db_session, stocked_store):
        before = stock_snapshot(db_session, stocked_store)

        with pytest.raises(MedicineNotFound) as exc:
            bill([("PARA500", 1), ("NOPE1", 1)])

        assert exc.value.med_id == "NOPE1"
        assert stock_snapshot(db_session, stocked_store) == before

    def test_other_store_stock_is_never_touched(self, db_session, stocked_store, other_store):
        add_entry(db_session, other_store, "PARA500", 50)

        with pytest.raises(InsufficientStock):
            bill([("PARA500", 30)])

        bill([("PARA500", 5)])
        assert _quantity(db_session, other_store, "PARA500") == 50

    def test_unknown_store(self, db_session, stocked_store):
        with pytest.raises(StoreNotFound):
            bill([("PARA500", 1)], email="missing@example.com")


class TestInputValidation:
    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "2.0", "1e2", True, None])
    def test_invalid_quantities(self, db_session, stocked_store, quantity):
        with pytest.raises(InvalidQuantity):
            create_billing(STORE_EMAIL, CUSTOMER, [{"med_id": "PARA500", "quantity": quantity}])

        assert db_session.query(BillingRecord).count() == 0

    def test_empty_line_items(self, db_session, stocked_store):
        with pytest.raises(ValidationError):
            create_billing(STORE_EMAIL, CUSTOMER, [])

    def test_line_items_as_json_string_with_med_data(self, db_session, stocked_store):
        payload = '[{"med_data": {"med_id": "PARA500", "name": "ignored"}, "quantity": 2}]'
        record = create_billing(STORE_EMAIL, CUSTOMER, payload, now=datetime(2024, 3, 1))

        assert record.lines[0].med_id == "PARA500"
        assert _quantity(db_session, stocked_store, "PARA500") == 8

    def test_customer_age_out_of_range(self, db_session, stocked_store):
        with pytest.raises(ValidationError):
            create_billing(STORE_EMAIL, {**CUSTOMER, "age": 0}, [{"med_id": "PARA500", "quantity": 1}])


class TestTotalVerification:
    def test_omitted_total_uses_computed_total(self, db_session, stocked_store):
        record = bill([("PARA500", 2)])
        assert record.total_amount_cents == 1000

    def test_total_within_tolerance_is_accepted(self, db_session, stocked_store):
        record = bill([("PARA500", 2)], total="10.01")
        assert record.total_amount_cents == 1000

    def test_tampered_total_is_rejected(self, db_session, stocked_store):
        before = stock_snapshot(db_session, stocked_store)

        with pytest.raises(TotalMismatch) as exc:
            bill([("PARA500", 2)], total=1.00)

        assert exc.value.details == {"supplied_cents": 100, "computed_cents": 1000}
        assert stock_snapshot(db_session, stocked_store) == before

    def test_verification_can_be_disabled(self, app, db_session, stocked_store):
        app.config["BILLING_VERIFY_TOTAL"] = False
        try:
            record = bill([("PARA500", 2)], total=1.00)
        finally:
            app.config["BILLING_VERIFY_TOTAL"] = True
        assert record.total_amount_cents == 100


class TestBatchPolicy:
    def test_batch_policy_deducts_only_the_named_batch(self, app, db_session, store):
        app.config["STOCK_MATCH_POLICY"] = "batch"
        add_entry(db_session, store, "PARA500", 5, batch_number="B1")
        add_entry(db_session, store, "PARA500", 5, batch_number="B2")

        create_billing(
            STORE_EMAIL, CUSTOMER,
            [{"med_id": "PARA500", "quantity": 5, "batch_number": "B2"}],
            now=datetime(2024, 3, 1),
        )

        assert _quantity(db_session, store, "PARA500", "B1") == 5
        assert _quantity(db_session, store, "PARA500", "B2") is None

    def test_batch_policy_requires_matching_batch(self, app, db_session, store):
        app.config["STOCK_MATCH_POLICY"] = "batch"
        add_entry(db_session, store, "PARA500", 5, batch_number="B1")

        with pytest.raises(MedicineNotFound):
            create_billing(STORE_EMAIL, CUSTOMER, [{"med_id": "PARA500", "quantity": 1}])


class TestRetry:
    def test_exhausted_stale_retries_raise_concurrent_modification(self, db_session, stocked_store, monkeypatch):
        calls = {"n": 0}

        def always_stale(*args, **kwargs):
            calls["n"] += 1
            raise StaleDataError("simulated concurrent update")

        monkeypatch.setattr(billing_service, "_reserve_entries", always_stale)
        before = stock_snapshot(db_session, stocked_store)

        with pytest.raises(ConcurrentModification):
            bill([("PARA500", 1)])

        assert calls["n"] == 3
        assert stock_snapshot(db_session, stocked_store) == before
        assert db_session.query(BillingRecord).count() == 0

    def test_transient_stale_error_is_retried(self, db_session, stocked_store, monkeypatch):
        real = billing_service._reserve_entries
        calls = {"n": 0}

        def stale_once(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise StaleDataError("simulated concurrent update")
            return real(*args, **kwargs)

        monkeypatch.setattr(billing_service, "_reserve_entries", stale_once)

        record = bill([("PARA500", 1)])

        assert calls["n"] == 2
        assert record.id is not None
        assert _quantity(db_session, stocked_store, "PARA500") == 9


def test_billing_summary(db_session, stocked_store):
    record = bill([("PARA500", 1), ("AMOX500", 2)])

    assert billing_summary(record) == {
        "billing_id": record.id,
        "customer_name": "Jane Doe",
        "total_amount": 25.0,
        "product_count": 2,
    }
