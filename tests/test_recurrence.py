"""Tests for recurrence matching."""

from datetime import date

import pytest

from cashflow_forecast.models import Frequency, IncomeStream, MonthlyMode, OneOffTransaction
from cashflow_forecast.recurrence import (
    estimate_occurrences_per_week,
    expand_occurrences,
    matches,
    normalize_nth,
    to_weekday_list,
)


def _stream(frequency: Frequency, **kwargs) -> IncomeStream:
    kwargs.setdefault("start_date", date(2025, 1, 1))
    kwargs.setdefault("end_date", date(2025, 12, 31))
    return IncomeStream(id="s1", amount=100.0, frequency=frequency, **kwargs)


class TestWeekdayParsing:
    """Tests for weekday and nth normalization."""

    def test_to_weekday_list(self):
        assert to_weekday_list(["mon", "Friday", 1, 9]) == [1, 5, 6]
        assert to_weekday_list("mon,wed") == [1, 3]
        assert to_weekday_list(3) == [3]
        assert to_weekday_list(None) == []
        assert to_weekday_list(["", None, "nope"]) == []

    def test_normalize_nth(self):
        assert normalize_nth(3) == "3"
        assert normalize_nth("LAST") == "last"
        assert normalize_nth(9) == "1"
        assert normalize_nth(None) == "1"


class TestMatches:
    """Tests for the recurrence matcher."""

    def test_outside_window_never_matches(self):
        rule = _stream(Frequency.DAILY, start_date=date(2025, 2, 1), end_date=date(2025, 2, 28))
        assert not matches(date(2025, 1, 31), rule)
        assert not matches(date(2025, 3, 1), rule)
        assert matches(date(2025, 2, 28), rule)

    def test_once(self):
        rule = _stream(Frequency.ONCE, on_date=date(2025, 5, 5))
        assert matches(date(2025, 5, 5), rule)
        assert not matches(date(2025, 5, 6), rule)

    def test_daily_skip_weekends(self):
        rule = _stream(Frequency.DAILY, skip_weekends=True)
        assert not matches(date(2025, 1, 4), rule)
        assert not matches(date(2025, 1, 5), rule)
        assert matches(date(2025, 1, 6), rule)

    def test_weekly(self):
        rule = _stream(Frequency.WEEKLY, day_of_week=(1, 3))
        assert matches(date(2025, 1, 6), rule)
        assert matches(date(2025, 1, 8), rule)
        assert not matches(date(2025, 1, 7), rule)

    def test_biweekly_anchor(self):
        """Biweekly matches repeat every 14 days from the first on-or-after weekday."""
        rule = _stream(Frequency.BIWEEKLY, start_date=date(2025, 1, 6), day_of_week=(1,))
        assert matches(date(2025, 1, 6), rule)
        assert not matches(date(2025, 1, 13), rule)
        assert matches(date(2025, 1, 20), rule)

    def test_biweekly_anchor_from_mid_week_start(self):
        rule = _stream(Frequency.BIWEEKLY, start_date=date(2025, 1, 1), day_of_week=(1,))
        assert matches(date(2025, 1, 6), rule)
        assert not matches(date(2025, 1, 13), rule)
        assert matches(date(2025, 1, 20), rule)

    def test_monthly_day_clamps_to_month_length(self):
        rule = _stream(Frequency.MONTHLY, monthly_mode=MonthlyMode.DAY, day_of_month=31)
        assert matches(date(2025, 1, 31), rule)
        assert matches(date(2025, 4, 30), rule)
        assert not matches(date(2025, 4, 29), rule)
        assert matches(date(2025, 2, 28), rule)

    def test_monthly_nth_weekday(self):
        rule = _stream(
            Frequency.MONTHLY, monthly_mode=MonthlyMode.NTH, nth_week="2", nth_weekday=1
        )
        assert matches(date(2025, 2, 10), rule)
        assert not matches(date(2025, 2, 3), rule)

    def test_monthly_last_weekday(self):
        rule = _stream(
            Frequency.MONTHLY, monthly_mode=MonthlyMode.NTH, nth_week="last", nth_weekday=5
        )
        assert matches(date(2025, 2, 28), rule)
        assert not matches(date(2025, 2, 21), rule)

    def test_monthly_fifth_weekday_skips_short_months(self):
        rule = _stream(
            Frequency.MONTHLY, monthly_mode=MonthlyMode.NTH, nth_week="5", nth_weekday=1
        )
        assert matches(date(2025, 3, 31), rule)
        february = expand_occurrences(rule, date(2025, 2, 1), date(2025, 2, 28))
        assert february == []


class TestOccurrences:
    """Tests for occurrence estimates and expansion."""

    @pytest.mark.parametrize(
        ("frequency", "kwargs", "expected"),
        [
            (Frequency.DAILY, {}, 7.0),
            (Frequency.DAILY, {"skip_weekends": True}, 5.0),
            (Frequency.WEEKLY, {"day_of_week": (1, 4)}, 2.0),
            (Frequency.BIWEEKLY, {"day_of_week": (1, 4)}, 1.0),
            (Frequency.MONTHLY, {"monthly_mode": MonthlyMode.DAY, "day_of_month": 1}, 12 / 52),
            (Frequency.ONCE, {"on_date": date(2025, 1, 1)}, 0.0),
        ],
    )
    def test_estimate_occurrences_per_week(self, frequency, kwargs, expected):
        assert estimate_occurrences_per_week(_stream(frequency, **kwargs)) == pytest.approx(expected)

    def test_expand_weekly(self):
        rule = _stream(Frequency.WEEKLY, day_of_week=(1,))
        days = expand_occurrences(rule, date(2025, 1, 1), date(2025, 1, 31))
        assert days == [date(2025, 1, 6), date(2025, 1, 13), date(2025, 1, 20), date(2025, 1, 27)]

    def test_expand_respects_entry_window(self):
        rule = _stream(
            Frequency.DAILY, start_date=date(2025, 1, 10), end_date=date(2025, 1, 12)
        )
        days = expand_occurrences(rule, date(2025, 1, 1), date(2025, 1, 31))
        assert days == [date(2025, 1, 10), date(2025, 1, 11), date(2025, 1, 12)]

    def test_expand_single_one_off(self):
        entry = OneOffTransaction(id="t", amount=5.0, date=date(2025, 1, 15))
        assert expand_occurrences(entry, date(2025, 1, 1), date(2025, 1, 31)) == [date(2025, 1, 15)]
        assert expand_occurrences(entry, date(2025, 2, 1), date(2025, 2, 28)) == []
