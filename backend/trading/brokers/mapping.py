# trading/brokers/mapping.py

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from trading.brokers.exceptions import MappingError

ZERO = Decimal("0")


def to_decimal(value: Any, default: str = "0") -> Decimal:
    """
    Best-effort conversion to Decimal.

    Accepts str, int, float, Decimal, or None. Falls back to `default`
    (as string) when value is None, empty, or not a number.
    """
    if value is None or isinstance(value, bool):
        return Decimal(default)

    if isinstance(value, Decimal):
        return value

    if isinstance(value, float):
        value = repr(value)

    # Some brokers return "" or " " for missing numeric fields
    s = str(value).strip()
    if not s:
        return Decimal(default)

    try:
        return Decimal(s)
    except InvalidOperation:
        return Decimal(default)


def first_nonzero(raw: Mapping[str, Any], *keys: str) -> Decimal:
    """
    Walk `keys` in order and return the first field with a non-zero value.
    Missing and zero fields both fall through; returns 0 if none match.
    """
    for key in keys:
        value = to_decimal(raw.get(key))
        if value != ZERO:
            return value
    return ZERO


def ratio(raw: Mapping[str, Any], numerator_key: str, denominator_key: str) -> Decimal:
    """
    numerator / denominator when the denominator is positive, else 0.
    """
    denominator = to_decimal(raw.get(denominator_key))
    if denominator <= ZERO:
        return ZERO
    return to_decimal(raw.get(numerator_key)) / denominator


def has_value(raw: Mapping[str, Any], key: str) -> bool:
    value = raw.get(key)
    return value is not None and str(value).strip() != ""


def positive_quantity(quantity: Any) -> Decimal:
    qty = to_decimal(quantity)
    if qty <= ZERO:
        raise MappingError(f"Order quantity must be positive, got {quantity!r}")
    return qty


def format_decimal(value: Optional[Decimal]) -> str:
    """
    Render a Decimal without exponent or trailing zeros ("10", "2450.5").
    """
    if value is None:
        return "0"
    value = to_decimal(value)
    if value == value.to_integral_value():
        return str(value.quantize(Decimal("1")))
    return format(value.normalize(), "f")
