"""
Decimal helpers for ledger amounts.

All amounts are stored as NUMERIC(18, 2); aggregate queries may come back as
float or int depending on the driver, so everything goes through to_money().
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Coerce a driver value to a Decimal rounded to cents."""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def within_tolerance(difference: Decimal, tolerance: float) -> bool:
    """True when the absolute difference is strictly below the tolerance."""
    return abs(difference) < Decimal(str(tolerance))
