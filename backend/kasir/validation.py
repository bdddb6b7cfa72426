from __future__ import annotations

from datetime import timedelta
from typing import Any

from .errors import ValidationError
from .time_utils import parse_iso_datetime

# Rupiah amounts are stored in BigInteger columns, quantities in Integer columns
MAX_AMOUNT = 999_999_999_999
MAX_QUANTITY = 2_000_000_000

MAX_ID_LENGTH = 64


def coerce_int(value: Any, field: str, maximum: int = MAX_AMOUNT) -> int:
    """
    Strict integer coercion for quantities and cash amounts.

    Accepts ints and plain digit strings (optional leading minus). Rejects
    bools, floats, decimals and scientific notation.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", field=field)
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)", field=field)
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", field=field)
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", field=field)
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", field=field)
    else:
        raise ValidationError(f"{field} must be an integer", field=field)

    if abs(result) > maximum:
        raise ValidationError(f"{field} exceeds maximum {maximum}", field=field)
    return result


def coerce_non_negative_int(value: Any, field: str, maximum: int = MAX_AMOUNT) -> int:
    result = coerce_int(value, field, maximum)
    if result < 0:
        raise ValidationError(f"{field} cannot be negative", field=field)
    return result


def require_id(value: Any, field: str) -> str:
    """Opaque identifier: non-blank string of bounded length."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required", field=field)
    text = str(value).strip()
    if not text:
        raise ValidationError(f"{field} is required", field=field)
    if len(text) > MAX_ID_LENGTH:
        raise ValidationError(f"{field} exceeds max length {MAX_ID_LENGTH}", field=field)
    return text


def clean_notes(value: Any) -> str | None:
    """Strip notes; blank or missing notes normalize to None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def require_payload(payload: Any, required: set[str]) -> dict:
    """Route-level check that a JSON body is an object carrying the required keys."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    missing = sorted(f for f in required if payload.get(f) is None)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    return payload


def parse_date_param(value: str | None, field: str, *, end_of_day: bool = False):
    """
    Query-string date filter. A bare YYYY-MM-DD used as an upper bound covers
    the whole day, so date_to filters stay inclusive.
    """
    if value is None:
        return None
    try:
        dt = parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date or datetime", field=field)
    if dt is not None and end_of_day and len(value.strip()) == 10:
        dt = dt + timedelta(days=1) - timedelta(microseconds=1)
    return dt


def clamp_limit(value: int | None, default: int, maximum: int = 500) -> int:
    if value is None:
        return default
    return max(1, min(value, maximum))
