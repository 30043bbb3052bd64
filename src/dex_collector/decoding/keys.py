"""Key construction for the flat key-value document."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

_WHITESPACE = re.compile(r"\s+")

CENTS = Decimal(100)
TWO_PLACES = Decimal("0.01")


def _part(value: object) -> str:
    return _WHITESPACE.sub("_", str(value).strip()).lower()


def key(category: str, ident: object = None, field: str | None = None) -> str:
    """Build a key such as tube_1_count or ma5_error_ua09_active.

    Parts are lower-cased and inner whitespace becomes '_'; a None ident or
    field is left out, so key("ca3", None, "cash_sales_value") is
    'ca3_cash_sales_value'.
    """
    parts = [_part(category)]
    if ident is not None:
        parts.append(_part(ident))
    if field:
        parts.append(_part(field))
    return "_".join(parts)


def segment_key(segment_type: str, field: str) -> str:
    """Key for a plain per-segment field, e.g. ('CA3', 'cash_sales_value')."""
    return key(segment_type, None, field)


def cents_to_dollars(cents: str) -> str:
    """Convert an integer-cents field to a dollar string with two places.

    '166110' -> '1661.10'. Raises ValueError for non-integer input.
    """
    text = cents.strip()
    try:
        amount = Decimal(int(text))
    except ValueError:
        raise ValueError(f"not an integer cents value: {cents!r}") from None
    return str((amount / CENTS).quantize(TWO_PLACES))


def scaled_dollars(cents: str, multiplier: str) -> str:
    """Dollar value of cents x multiplier, e.g. a coin tube's total value."""
    try:
        amount = Decimal(int(cents.strip())) * Decimal(int(multiplier.strip()))
    except (ValueError, InvalidOperation):
        raise ValueError(f"not integer values: {cents!r} x {multiplier!r}") from None
    return str((amount / CENTS).quantize(TWO_PLACES))
