"""Bi-weekly settlement date calculation.

Employee earnings are settled every other Friday. Settlement Fridays are
counted in whole weeks from a fixed anchor Friday; every even week is a
settlement Friday. All functions are pure.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

DEFAULT_ANCHOR = date(2024, 1, 5)

FRIDAY = 4


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def is_settlement_date(value: date | datetime, anchor: date = DEFAULT_ANCHOR) -> bool:
    """Return True if `value` is a settlement Friday."""
    day = _as_date(value)
    if day.weekday() != FRIDAY:
        return False
    weeks_since_anchor = (day - anchor).days // 7
    return weeks_since_anchor % 2 == 0


def next_settlement_date(value: date | datetime, anchor: date = DEFAULT_ANCHOR) -> date:
    """Return the first settlement Friday on or after `value`."""
    day = _as_date(value)
    if is_settlement_date(day, anchor):
        return day

    days_until_friday = (FRIDAY - day.weekday()) % 7 or 7
    candidate = day + timedelta(days=days_until_friday)
    if not is_settlement_date(candidate, anchor):
        candidate += timedelta(days=7)
    return candidate


class SettlementCalendar:
    """Settlement calendar bound to an anchor date."""

    def __init__(self, anchor: date = DEFAULT_ANCHOR):
        if anchor.weekday() != FRIDAY:
            raise ValueError("Settlement anchor must be a Friday")
        self.anchor = anchor

    def is_settlement_date(self, value: date | datetime) -> bool:
        return is_settlement_date(value, self.anchor)

    def next_settlement_date(self, value: date | datetime) -> date:
        return next_settlement_date(value, self.anchor)

    def upcoming(self, value: date | datetime, count: int) -> list[date]:
        """Return the next `count` settlement dates on or after `value`."""
        first = self.next_settlement_date(value)
        return [first + timedelta(days=14 * i) for i in range(count)]
