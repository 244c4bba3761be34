"""Minor-unit money helpers.

All amounts in the engine are integers in minor currency units (cents).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal


def format_amount(amount: int) -> str:
    """Format a minor-unit amount for display, e.g. 7500 -> '$75.00'."""
    sign = "-" if amount < 0 else ""
    dollars = (Decimal(abs(amount)) / Decimal(100)).quantize(Decimal("0.01"))
    return f"{sign}${dollars:,}"


def percent_of(amount: int, percent: Decimal | float) -> int:
    """Return `percent` (0.10 == 10%) of `amount`, rounded half up to a whole unit."""
    value = Decimal(amount) * Decimal(str(percent))
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
