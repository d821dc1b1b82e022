from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

from flask import request

from .errors import ValidationError
from .time_utils import parse_date


# Largest amount accepted on any single entry: 9,999,999,999.99
MAX_AMOUNT = Decimal("9999999999.99")
TWO_PLACES = Decimal("0.01")

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def require_fields(data: dict, fields: Iterable[str], message: str | None = None) -> None:
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(message or f"Missing required fields: {', '.join(missing)}")


def parse_amount(value: Any, field: str = "amount") -> Decimal:
    """
    Parse a positive monetary amount, rounded to two decimal places.

    Accepts numbers or numeric strings. Booleans, NaN/Infinity, zero and
    negatives are rejected.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a positive number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a positive number")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{field} must be a positive number")
    amount = amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    if amount <= 0:
        raise ValidationError(f"{field} must be a positive number")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} exceeds the maximum allowed value")
    return amount


def is_positive_amount(value: Any) -> bool:
    try:
        parse_amount(value)
    except ValidationError:
        return False
    return True


def parse_positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a positive integer")
    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            raise ValidationError(f"{field} must be a positive integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{field} must be a positive integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a positive integer")
    if number <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return number


def parse_optional_id(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    return parse_positive_int(value, field)


def parse_date_field(value: Any, field: str, *, required: bool = True) -> date | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    try:
        return parse_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format")


def check_choice(value: Any, allowed: Iterable[str], field: str) -> str:
    allowed = tuple(allowed)
    if value not in allowed:
        raise ValidationError(f"Invalid {field}. Allowed values: {', '.join(allowed)}")
    return value


def parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValidationError(f"{field} must be true or false")


def parse_pagination(args) -> tuple[int, int]:
    """Returns (offset, limit) from ?page=&limit= query arguments."""
    page = args.get("page", "1")
    limit = args.get("limit", str(DEFAULT_PAGE_SIZE))
    page = parse_positive_int(page, "page")
    limit = parse_positive_int(limit, "limit")
    limit = min(limit, MAX_PAGE_SIZE)
    return (page - 1) * limit, limit


def clean_text(value: Any, field: str, *, max_length: int = 255) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text or None


def json_body() -> dict:
    """Request JSON as a dict; anything else is a 400."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data
