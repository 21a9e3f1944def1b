"""Normalization of raw webhook scalars into bounded values."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

MAX_TEXT_LENGTH = 100
MAX_MESSAGE_LENGTH = 500
MAX_AMOUNT = Decimal(1_000_000_000)


def sanitize_text(value: Any, max_length: int = MAX_TEXT_LENGTH) -> str:
    """Trim and truncate a text field; missing values become an empty string."""

    if value is None:
        return ""
    if not isinstance(value, str):
        # nested structures are never meaningful display text
        if isinstance(value, (dict, list, tuple, set)):
            return ""
        value = str(value)
    return value.strip()[:max_length]


def sanitize_amount(value: Any) -> Decimal:
    """Parse an amount, degrading to zero on anything malformed or negative."""

    if value is None or isinstance(value, bool):
        return Decimal(0)
    if isinstance(value, str):
        value = value.strip()
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal(0)
    if not amount.is_finite() or amount < 0:
        return Decimal(0)
    return min(amount, MAX_AMOUNT)
