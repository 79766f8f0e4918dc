# Overview: Strict coercion helpers for JSON request bodies and offline records.

from __future__ import annotations

from datetime import datetime
from typing import Any

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999
MAX_LINE_QUANTITY = 100_000


def json_object(payload: Any) -> dict:
    """Request body as a dict; a missing or unparsable body is empty."""
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("request body must be a JSON object")
    return payload


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion - rejects floats, decimals, and scientific notation.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", {"field": field})
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(
                f"{field} must be a plain integer (scientific notation not allowed)",
                {"field": field},
            )
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", {"field": field})
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", {"field": field})
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", {"field": field})
    raise ValidationError(f"{field} must be an integer", {"field": field})


def require_int(data: dict, field: str) -> int:
    value = data.get(field)
    if value is None:
        raise ValidationError(f"{field} required", {"field": field})
    return coerce_int(value, field)


def optional_int(data: dict, field: str) -> int | None:
    value = data.get(field)
    if value is None or value == "":
        return None
    return coerce_int(value, field)


def require_quantity(value: Any, field: str = "quantity") -> int:
    """Positive, bounded line quantity."""
    if value is None:
        raise ValidationError(f"{field} required", {"field": field})
    qty = coerce_int(value, field)
    if qty <= 0:
        raise ValidationError(f"{field} must be positive", {"field": field, "value": qty})
    if qty > MAX_LINE_QUANTITY:
        raise ValidationError(
            f"{field} exceeds maximum of {MAX_LINE_QUANTITY}",
            {"field": field, "value": qty},
        )
    return qty


def require_price_cents(value: Any, field: str) -> int:
    if value is None:
        raise ValidationError(f"{field} required", {"field": field})
    cents = coerce_int(value, field)
    if cents < 0:
        raise ValidationError(f"{field} cannot be negative", {"field": field})
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(
            f"{field} exceeds maximum of {MAX_PRICE_CENTS} cents",
            {"field": field},
        )
    return cents


def require_string(data: dict, field: str, *, max_length: int = 255) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} required", {"field": field})
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} too long (max {max_length})", {"field": field})
    return value


def optional_datetime(data: dict, field: str) -> datetime | None:
    value = data.get(field)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 string", {"field": field})
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"invalid {field}", {"field": field, "value": value})
