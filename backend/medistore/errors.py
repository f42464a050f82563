# Overview: Domain error taxonomy shared by services and routes.

from __future__ import annotations


class MedistoreError(Exception):
    """Base class for errors surfaced to API callers."""
    code = "ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": self.details}


class ValidationError(MedistoreError):
    """400-level input problem."""
    code = "VALIDATION_ERROR"


class InvalidQuantity(ValidationError):
    code = "INVALID_QUANTITY"


class InvalidPeriod(ValidationError):
    code = "INVALID_PERIOD"


class TotalMismatch(ValidationError):
    """Client-supplied bill total disagrees with the server-side computation."""
    code = "TOTAL_MISMATCH"

    def __init__(self, supplied_cents: int, computed_cents: int):
        super().__init__(
            "Bill total does not match line items",
            details={"supplied_cents": supplied_cents, "computed_cents": computed_cents},
        )


class StoreNotFound(MedistoreError):
    code = "STORE_NOT_FOUND"
    status_code = 404

    def __init__(self, store_email: str | None = None):
        super().__init__("Store not found", details={"store_email": store_email})


class MedicineNotFound(MedistoreError):
    code = "MEDICINE_NOT_FOUND"
    status_code = 404

    def __init__(self, med_id: str | None, batch_number: str | None = None):
        super().__init__(
            f"Medicine not found: {med_id}",
            details={"med_id": med_id, "batch_number": batch_number},
        )
        self.med_id = med_id


class InsufficientStock(MedistoreError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, med_id: str, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for medicine ID: {med_id}",
            details={"med_id": med_id, "requested_quantity": requested, "available_quantity": available},
        )
        self.med_id = med_id


class ConcurrentModification(MedistoreError):
    """Optimistic-lock retries were exhausted."""
    code = "CONCURRENT_MODIFICATION"
    status_code = 409


class AnalyticsCancelled(MedistoreError):
    """A billing-history scan ran past its budget or was cancelled."""
    code = "ANALYTICS_CANCELLED"
    status_code = 503
