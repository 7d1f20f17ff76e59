"""Recurrence matching for income streams and recurring one-offs."""

from __future__ import annotations

import calendar
import math
from collections.abc import Iterable
from datetime import date, timedelta
from typing import Any

from cashflow_forecast.dates import iter_days, weekday_index
from cashflow_forecast.models import (
    Frequency,
    MonthlyMode,
    NthWeek,
    OneOffTransaction,
    RecurringEntry,
)

# Persisted weekday indices run 0 = Sunday .. 6 = Saturday.
WEEKDAY_NAME_TO_INDEX = {
    "sunday": 0,
    "sun": 0,
    "monday": 1,
    "mon": 1,
    "tuesday": 2,
    "tue": 2,
    "tues": 2,
    "wednesday": 3,
    "wed": 3,
    "thursday": 4,
    "thu": 4,
    "thurs": 4,
    "friday": 5,
    "fri": 5,
    "saturday": 6,
    "sat": 6,
}

NTH_VALUES: tuple[NthWeek, ...] = ("1", "2", "3", "4", "5", "last")

BIWEEKLY_PERIOD_DAYS = 14


def _weekday_from_item(item: Any) -> int | None:
    if item is None or isinstance(item, bool):
        return None
    if isinstance(item, str):
        text = item.strip().lower()
        if not text:
            return None
        if text in WEEKDAY_NAME_TO_INDEX:
            return WEEKDAY_NAME_TO_INDEX[text]
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        try:
            number = float(item)
        except (TypeError, ValueError):
            return None
    if not math.isfinite(number):
        return None
    return min(6, max(0, math.trunc(number)))


def to_weekday_list(value: Any) -> list[int]:
    """Normalize weekday input into a sorted list of unique indices.

    Accepts a single index or name, an iterable of them, or a
    comma-separated string.
    """
    if value is None:
        return []
    if isinstance(value, str):
        raw: Iterable[Any] = value.replace(",", " ").split() if "," in value else [value]
    elif isinstance(value, (list, tuple, set, frozenset)):
        raw = value
    else:
        raw = [value]

    days = {day for day in (_weekday_from_item(item) for item in raw) if day is not None}
    return sorted(days)


def normalize_nth(value: Any) -> NthWeek:
    """Normalize an nth-week qualifier to ``"1"``..``"5"`` or ``"last"``."""
    if isinstance(value, str):
        text = value.strip().lower()
        if text == "last":
            return "last"
        try:
            number = int(text)
        except ValueError:
            return "1"
        if 1 <= number <= 5:
            return NTH_VALUES[number - 1]
        return "1"
    if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
        number = math.trunc(value)
        if 1 <= number <= 5:
            return NTH_VALUES[number - 1]
    return "1"


def first_weekday(value: Any, fallback: int = 0) -> int:
    """First weekday index found in ``value``, else ``fallback`` clamped to 0-6."""
    days = to_weekday_list(value)
    if days:
        return days[0]
    return min(6, max(0, int(fallback or 0)))


def _days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def matches_monthly_by_day(day: date, day_of_month: int) -> bool:
    """True if ``day`` is ``day_of_month`` clamped to the month's length."""
    target = min(max(day_of_month, 1), _days_in_month(day.year, day.month))
    return day.day == target


def _weekday_days_of_month(year: int, month: int, weekday: int) -> list[int]:
    # monthcalendar weeks are Monday-first; shift from the Sunday-based index.
    column = (weekday - 1) % 7
    month_weeks = calendar.monthcalendar(year, month)
    return [week[column] for week in month_weeks if week[column] != 0]


def matches_monthly_by_nth_weekday(day: date, nth: Any, weekday: Any) -> bool:
    """True if ``day`` is the nth (or last) given weekday of its month."""
    nth_value = normalize_nth(nth)
    target = first_weekday(weekday, 0)
    occurrences = _weekday_days_of_month(day.year, day.month, target)
    if not occurrences:
        return False
    if nth_value == "last":
        return day.day == occurrences[-1]
    index = int(nth_value) - 1
    if index >= len(occurrences):
        return False
    return day.day == occurrences[index]


def matches_weekly(day: date, weekdays: Any) -> bool:
    days = to_weekday_list(weekdays)
    return weekday_index(day) in days


def matches_biweekly(day: date, weekdays: Any, anchor: date) -> bool:
    """True if ``day`` falls on a selected weekday in an on-week.

    Each weekday is anchored at its first occurrence on or after ``anchor``;
    matches repeat every 14 days from there.
    """
    dow = weekday_index(day)
    for weekday in to_weekday_list(weekdays):
        if weekday != dow:
            continue
        first = anchor + timedelta(days=(weekday - weekday_index(anchor)) % 7)
        if day < first:
            return False
        return (day - first).days % BIWEEKLY_PERIOD_DAYS == 0
    return False


def matches(day: date, rule: RecurringEntry) -> bool:
    """Return True if the recurring ``rule`` fires on ``day``."""
    start = rule.start_date
    end = rule.end_date
    if start is None or end is None or not (start <= day <= end):
        return False

    frequency = rule.frequency
    if frequency is Frequency.ONCE:
        return rule.on_date is not None and day == rule.on_date
    if frequency is Frequency.DAILY:
        return not (rule.skip_weekends and day.weekday() >= 5)
    if frequency is Frequency.WEEKLY:
        return matches_weekly(day, rule.day_of_week)
    if frequency is Frequency.BIWEEKLY:
        return matches_biweekly(day, rule.day_of_week, start)
    if frequency is Frequency.MONTHLY:
        if rule.monthly_mode is MonthlyMode.NTH:
            return matches_monthly_by_nth_weekday(day, rule.nth_week, rule.nth_weekday)
        return matches_monthly_by_day(day, rule.day_of_month or 1)
    return False


def estimate_occurrences_per_week(rule: RecurringEntry | None) -> float:
    """Average number of firings per week implied by the schedule."""
    if rule is None:
        return 0.0
    frequency = rule.frequency
    if frequency is Frequency.DAILY:
        return 5.0 if rule.skip_weekends else 7.0
    if frequency is Frequency.WEEKLY:
        return float(len(to_weekday_list(rule.day_of_week)) or 1)
    if frequency is Frequency.BIWEEKLY:
        return (len(to_weekday_list(rule.day_of_week)) or 1) / 2
    if frequency is Frequency.MONTHLY:
        return 12 / 52
    return 0.0


def is_recurring(entry: RecurringEntry) -> bool:
    if isinstance(entry, OneOffTransaction):
        return entry.recurring
    return True


def expand_occurrences(entry: RecurringEntry, start: date, end: date) -> list[date]:
    """List every date in ``[start, end]`` on which the entry fires."""
    if not is_recurring(entry):
        single = getattr(entry, "date", None)
        return [single] if single is not None and start <= single <= end else []
    if entry.start_date is None or entry.end_date is None:
        return []
    window_start = max(start, entry.start_date)
    window_end = min(end, entry.end_date)
    return [day for day in iter_days(window_start, window_end) if matches(day, entry)]
