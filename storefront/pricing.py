# storefront/pricing.py
"""Unit price extraction for product and cart-line payloads.

Prices arrive as plain numbers, as display strings such as ``"₿ 12.50"``
or not at all. :func:`normalize_price` turns any of them into a
non-negative :class:`~decimal.Decimal` and never raises.
"""

import re
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

ZERO = Decimal("0")

# Checked in order; the first numeric one wins.
PRICE_FIELDS = ("actual_price", "unit_price", "numeric_price", "price")

_NON_NUMERIC = re.compile(r"[^0-9.]")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _checked(value: Decimal) -> Decimal:
    if not value.is_finite() or value < 0:
        return ZERO
    return value


def _from_number(value) -> Decimal:
    try:
        return _checked(Decimal(str(value)) if isinstance(value, float) else Decimal(value))
    except (InvalidOperation, ValueError):
        return ZERO


def _from_text(text: str) -> Decimal:
    cleaned = _NON_NUMERIC.sub("", text)
    if not cleaned:
        return ZERO
    try:
        return _checked(Decimal(cleaned))
    except InvalidOperation:
        return ZERO


def read_field(value: Any, name: str) -> Optional[Any]:
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


def normalize_price(value: Any) -> Decimal:
    """Return the unit price carried by ``value``, or ``0``.

    ``value`` may be a number, a display string, ``None``, a mapping or an
    object with price attributes. An explicit numeric field is preferred over
    a display string; negative, NaN and unparseable prices become ``0``.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if _is_number(value):
        return _from_number(value)
    if isinstance(value, str):
        return _from_text(value)

    fields = [read_field(value, name) for name in PRICE_FIELDS]
    for candidate in fields:
        if _is_number(candidate):
            return _from_number(candidate)
    for candidate in fields:
        if isinstance(candidate, str):
            return _from_text(candidate)
    return ZERO
