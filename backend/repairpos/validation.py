# Overview: Strict coercion of JSON request fields into service arguments.

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Maximum money amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

_MISSING = object()


def coerce_int(name: str, value: Any) -> int:
    """Strict integer: rejects floats, bools, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def require_field(payload: dict, name: str):
    value = payload.get(name, _MISSING)
    if value is _MISSING or value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{name} is required")
    return value


def get_int(payload: dict, name: str, *, required: bool = False, default=None, minimum: int | None = None):
    value = payload.get(name)
    if value is None:
        if required:
            raise ValidationError(f"{name} is required")
        return default
    number = coerce_int(name, value)
    if minimum is not None and number < minimum:
        raise ValidationError(f"{name} must be >= {minimum}")
    return number


def get_cents(payload: dict, name: str, *, required: bool = False, default=None):
    """Money amounts travel as integer cents."""
    cents = get_int(payload, name, required=required, default=default, minimum=0)
    if cents is not None and cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{name} exceeds maximum allowed amount")
    return cents


def get_decimal(payload: dict, name: str, *, required: bool = False, default=None) -> Decimal | None:
    value = payload.get(name)
    if value is None:
        if required:
            raise ValidationError(f"{name} is required")
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{name} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{name} must be a finite number")
    return number


def get_str(payload: dict, name: str, *, required: bool = False, max_length: int | None = None, upper: bool = False):
    value = payload.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{name} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{name} must be at most {max_length} characters")
    return value.upper() if upper else value


def get_bool(payload: dict, name: str, *, default: bool = False) -> bool:
    value = payload.get(name)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "1", "yes"}:
        return True
    if isinstance(value, str) and value.strip().lower() in {"false", "0", "no"}:
        return False
    raise ValidationError(f"{name} must be a boolean")


def get_datetime(payload: dict, name: str):
    value = payload.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be an ISO-8601 string")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


def get_list(payload: dict, name: str, *, required: bool = False) -> list:
    value = payload.get(name)
    if value is None:
        if required:
            raise ValidationError(f"{name} is required")
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{name} must be a list")
    if required and not value:
        raise ValidationError(f"{name} must not be empty")
    for entry in value:
        if not isinstance(entry, dict):
            raise ValidationError(f"{name} entries must be objects")
    return value


def get_customer(payload: dict, name: str = "customer") -> dict | None:
    value = payload.get(name)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationError(f"{name} must be an object")
    return {
        "name": get_str(value, "name", max_length=255),
        "phone": get_str(value, "phone", max_length=32),
        "email": get_str(value, "email", max_length=255),
    }


def choice(name: str, value, allowed, *, required: bool = True):
    if value is None:
        if required:
            raise ValidationError(f"{name} is required")
        return None
    normalized = str(value).strip().upper()
    if normalized not in allowed:
        raise ValidationError(
            f"{name} must be one of: {', '.join(sorted(allowed))}",
            {"field": name, "value": value},
        )
    return normalized
