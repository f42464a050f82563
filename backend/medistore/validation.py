from __future__ import annotations
import json
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from medistore.errors import ValidationError, InvalidQuantity
from medistore.time_utils import parse_iso_datetime


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_TAG_RE = re.compile(r"<[^>]*>")


@dataclass(frozen=True)
class LineItem:
    med_id: str
    quantity: int
    batch_number: str | None = None


@dataclass(frozen=True)
class Customer:
    name: str
    age: int | None
    phone: str


def sanitize_string(value: Any) -> str:
    if value is None or not isinstance(value, (str, int)):
        return ""
    return _TAG_RE.sub("", str(value)).strip()


def normalize_email(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("store_email is required")
    email = value.strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValidationError("store_email is not a valid email address")
    return email


def parse_quantity(value: Any, field: str = "quantity", *, allow_zero: bool = False) -> int:
    """Strict integer parsing: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, bool):
        raise InvalidQuantity(f"{field} must be an integer", details={"field": field})
    if isinstance(value, int):
        qty = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise InvalidQuantity(f"{field} must be an integer, not a decimal", details={"field": field})
        qty = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not re.fullmatch(r"-?\d+", stripped):
            raise InvalidQuantity(f"{field} must be a plain integer", details={"field": field})
        qty = int(stripped)
    else:
        raise InvalidQuantity(f"{field} must be an integer", details={"field": field})

    if qty < 0 or (qty == 0 and not allow_zero):
        raise InvalidQuantity(
            f"{field} must be {'>= 0' if allow_zero else '> 0'}",
            details={"field": field, "value": qty},
        )
    return qty


def parse_money_cents(value: Any, field: str) -> int:
    """Decimal currency (e.g. 12.5 or "12.50") -> integer cents, half-up."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents < 0:
        raise ValidationError(f"{field} must be >= 0")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS / 100:,.2f}")
    return cents


def parse_optional_datetime(value: Any, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 datetime")
    raise ValidationError(f"{field} must be an ISO-8601 datetime")


def parse_customer(name: Any, age: Any, phone: Any) -> Customer:
    clean_name = sanitize_string(name)
    if not clean_name:
        raise ValidationError("customer_name is required")

    parsed_age = None
    if age is not None and age != "":
        try:
            parsed_age = int(str(age).strip())
        except ValueError:
            raise ValidationError("customer_age must be an integer")
        if parsed_age < 1 or parsed_age > 150:
            raise ValidationError("customer_age must be between 1 and 150")

    clean_phone = sanitize_string(phone)
    if not clean_phone:
        raise ValidationError("customer_phone is required")

    return Customer(name=clean_name, age=parsed_age, phone=clean_phone)


def parse_line_items(raw: Any) -> list[LineItem]:
    """
    Accepts a native list or a JSON-encoded string. Each element is either
    {"med_data": {"med_id": ...}, "quantity": n} or {"med_id": ..., "quantity": n};
    batch_number may sit at either level.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise ValidationError("line_items is not valid JSON")

    if not isinstance(raw, list) or not raw:
        raise ValidationError("At least one line item is required")

    items: list[LineItem] = []
    for index, element in enumerate(raw):
        if not isinstance(element, dict):
            raise ValidationError(f"line_items[{index}] must be an object")
        med_data = element.get("med_data") if isinstance(element.get("med_data"), dict) else {}
        med_id = element.get("med_id") or med_data.get("med_id")
        if not med_id or not isinstance(med_id, str):
            raise ValidationError(f"line_items[{index}] is missing med_id")
        quantity = parse_quantity(element.get("quantity"), f"line_items[{index}].quantity")
        batch = element.get("batch_number", med_data.get("batch_number"))
        items.append(LineItem(
            med_id=med_id.strip(),
            quantity=quantity,
            batch_number=str(batch).strip() if batch is not None else None,
        ))
    return items
