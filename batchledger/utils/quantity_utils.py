"""Quantity normalization shared by the ledger.

Quantities carry three decimal places of precision; anything closer than
``QUANTITY_TOLERANCE`` is treated as equal.
"""

from __future__ import annotations

QUANTITY_PRECISION = 3
QUANTITY_TOLERANCE = 0.001


def normalize_quantity(value) -> float:
    if value is None:
        raise ValueError("Quantity is required")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Quantity must be numeric, got {value!r}") from None
    if number != number or number in (float('inf'), float('-inf')):
        raise ValueError(f"Quantity must be finite, got {value!r}")
    # -0.0 reads badly in audit rows
    return round(number, QUANTITY_PRECISION) + 0.0


def is_effectively_zero(value: float) -> bool:
    return abs(float(value)) < QUANTITY_TOLERANCE


def exceeds(requested: float, available: float) -> bool:
    """True when ``requested`` is larger than ``available`` beyond tolerance."""
    return float(requested) - float(available) > QUANTITY_TOLERANCE
