"""Tests for the bi-weekly settlement calendar."""

from datetime import date, datetime, timedelta, timezone

import pytest
from hypothesis import given, strategies as st

from payout_engine.services.settlement_calendar import (
    DEFAULT_ANCHOR,
    SettlementCalendar,
    is_settlement_date,
    next_settlement_date,
)

dates = st.dates(min_value=date(2015, 1, 1), max_value=date(2040, 12, 31))


class TestIsSettlementDate:
    """Every other Friday counted from the anchor."""

    def test_anchor_is_settlement_date(self):
        assert is_settlement_date(DEFAULT_ANCHOR) is True

    def test_odd_week_friday_is_not(self):
        assert is_settlement_date(date(2024, 1, 12)) is False

    def test_even_week_friday_is(self):
        assert is_settlement_date(date(2024, 1, 19)) is True
        assert is_settlement_date(date(2024, 2, 2)) is True

    def test_fridays_before_anchor(self):
        """Negative week offsets keep the same parity."""
        assert is_settlement_date(date(2023, 12, 22)) is True
        assert is_settlement_date(date(2023, 12, 29)) is False

    def test_non_fridays_are_never_settlement_dates(self):
        for offset in range(1, 7):
            assert is_settlement_date(DEFAULT_ANCHOR + timedelta(days=offset)) is False

    def test_accepts_datetime(self):
        assert is_settlement_date(datetime(2024, 1, 19, 23, 59, tzinfo=timezone.utc)) is True


class TestNextSettlementDate:
    """First settlement Friday on or after a date."""

    def test_monday_rolls_past_invalid_friday(self):
        """Earned Monday 2024-01-08: Friday 01-12 is an off week, so 01-19."""
        assert next_settlement_date(date(2024, 1, 8)) == date(2024, 1, 19)

    def test_off_week_friday(self):
        assert next_settlement_date(date(2024, 1, 12)) == date(2024, 1, 19)

    def test_settlement_day_returns_itself(self):
        assert next_settlement_date(date(2024, 1, 19)) == date(2024, 1, 19)

    def test_day_after_settlement(self):
        assert next_settlement_date(date(2024, 1, 20)) == date(2024, 2, 2)

    def test_week_before_valid_friday(self):
        assert next_settlement_date(date(2024, 1, 15)) == date(2024, 1, 19)

    def test_accepts_datetime(self):
        earned = datetime(2024, 1, 8, 12, 0, tzinfo=timezone.utc)
        assert next_settlement_date(earned) == date(2024, 1, 19)


class TestSettlementDateProperties:
    """Properties that must hold for every date."""

    @given(dates)
    def test_result_is_settlement_date(self, day: date):
        assert is_settlement_date(next_settlement_date(day))

    @given(dates)
    def test_result_within_two_weeks(self, day: date):
        result = next_settlement_date(day)
        assert day <= result < day + timedelta(days=14)

    @given(dates)
    def test_idempotent(self, day: date):
        result = next_settlement_date(day)
        assert next_settlement_date(result) == result

    @given(dates)
    def test_no_settlement_date_skipped(self, day: date):
        result = next_settlement_date(day)
        between = [day + timedelta(days=i) for i in range((result - day).days)]
        assert not any(is_settlement_date(d) for d in between)

    @given(dates)
    def test_fortnightly_period(self, day: date):
        assert is_settlement_date(day) == is_settlement_date(day + timedelta(days=14))


class TestSettlementCalendar:
    """Calendar bound to a configurable anchor."""

    def test_rejects_non_friday_anchor(self):
        with pytest.raises(ValueError):
            SettlementCalendar(date(2024, 1, 8))

    def test_custom_anchor_shifts_weeks(self):
        calendar = SettlementCalendar(date(2024, 1, 12))
        assert calendar.is_settlement_date(date(2024, 1, 12)) is True
        assert calendar.is_settlement_date(date(2024, 1, 19)) is False
        assert calendar.next_settlement_date(date(2024, 1, 15)) == date(2024, 1, 26)

    def test_upcoming(self):
        calendar = SettlementCalendar()
        assert calendar.upcoming(date(2024, 1, 8), 3) == [
            date(2024, 1, 19),
            date(2024, 2, 2),
            date(2024, 2, 16),
        ]
