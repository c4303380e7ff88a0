from __future__ import annotations

from decimal import Decimal, InvalidOperation

ZERO = Decimal('0')


def coerce_reading(value) -> Decimal:
    """Turn a raw meter reading into a Decimal, treating anything unusable as 0."""
    if value is None or isinstance(value, bool):
        return ZERO
    try:
        parsed = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return ZERO
    if not parsed.is_finite():
        return ZERO
    return parsed


def total_cable(start, middle, end) -> Decimal:
    # The middle reading is a checkpoint only; the total is first leg plus last leg.
    return coerce_reading(start) + coerce_reading(end)
