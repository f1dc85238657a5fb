from __future__ import annotations

from typing import Any


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


def parse_int(value: Any, field: str, *, required: bool = True, minimum: int | None = None) -> int | None:
    """
    Strict integer coercion for JSON input.

    Accepts ints and plain digit strings; rejects bools, floats, decimals and
    scientific notation.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} required")
        return None

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    elif isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer") from None
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return result


def parse_price_cents(value: Any, field: str, *, required: bool = True) -> int | None:
    cents = parse_int(value, field, required=required, minimum=0)
    if cents is not None and cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS} cents")
    return cents


def parse_str(value: Any, field: str, *, required: bool = True, max_length: int | None = None) -> str | None:
    if value is None:
        if required:
            raise ValidationError(f"{field} required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if required and not value:
        raise ValidationError(f"{field} required")
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value


def parse_str_list(value: Any, field: str, *, required: bool = False) -> list[str] | None:
    if value is None:
        if required:
            raise ValidationError(f"{field} required")
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"{field} must be a list of strings")
    return value


def parse_keystrokes(value: Any) -> list[tuple[str, float]]:
    """[{"key": "A", "at_ms": 12.5}, ...] -> [("A", 12.5), ...]"""
    if not isinstance(value, list) or not value:
        raise ValidationError("keys must be a non-empty list")
    result = []
    for item in value:
        if not isinstance(item, dict) or not isinstance(item.get("key"), str):
            raise ValidationError("each key needs a 'key' string and an 'at_ms' number")
        at_ms = item.get("at_ms")
        if isinstance(at_ms, bool) or not isinstance(at_ms, (int, float)):
            raise ValidationError("each key needs a 'key' string and an 'at_ms' number")
        result.append((item["key"], float(at_ms)))
    return result
