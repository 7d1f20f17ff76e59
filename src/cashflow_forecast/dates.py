"""Calendar date helpers.

All dates in persisted payloads are canonical ``YYYY-MM-DD`` strings. Inside
the engine they are plain :class:`datetime.date` values; these helpers convert
between the two and implement the small amount of calendar arithmetic the
projection needs. Weekday indices follow the persisted convention
(0 = Sunday .. 6 = Saturday).
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterator
from datetime import date, datetime, timedelta
from typing import Any, Literal

from dateutil import parser as dateutil_parser

RollPolicy = Literal["forward", "back", "none"]

_CANONICAL_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ISO_LOOSE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_US_DATE_RE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})$")

# Excel stores day 1 as 1900-01-01 and treats 1900 as a leap year.
_EXCEL_EPOCH = datetime(1899, 12, 31)
_EXCEL_LEAP_BUG_SERIAL = 59
_MS_PER_DAY = 86_400_000

_MAX_ROLL_STEPS = 14


def to_canonical(value: date) -> str:
    """Format a date as ``YYYY-MM-DD``."""
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def from_canonical(value: Any) -> date | None:
    """Parse a canonical ``YYYY-MM-DD`` string.

    Returns ``None`` (the invalid sentinel) for anything that does not
    round-trip exactly, e.g. ``"2025-1-5"`` or ``"2025-02-30"``.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _CANONICAL_RE.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def is_canonical(value: Any) -> bool:
    """Return True if value is a valid canonical date string."""
    return isinstance(value, str) and from_canonical(value) is not None


def compare(a: str | None, b: str | None) -> int:
    """Compare two canonical date strings lexicographically."""
    left = a or ""
    right = b or ""
    return (left > right) - (left < right)


def _as_date(value: date | str | None) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return from_canonical(value)


def add_days(value: date | str, days: float = 0) -> date | str:
    """Shift a date by ``days`` calendar days (negative subtracts).

    Strings come back as canonical strings and dates as dates. Invalid
    input or a non-finite offset returns the input unchanged.
    """
    parsed = _as_date(value)
    if parsed is None:
        return value
    try:
        delta = float(days or 0)
    except (TypeError, ValueError):
        return value
    if not math.isfinite(delta):
        return value
    try:
        shifted = parsed + timedelta(days=int(delta))
    except OverflowError:
        return value
    return shifted if isinstance(value, date) else to_canonical(shifted)


def subtract_days(value: date | str, days: float = 0) -> date | str:
    """Shift a date backwards by ``days`` calendar days."""
    try:
        delta = float(days or 0)
    except (TypeError, ValueError):
        return value
    return add_days(value, -delta)


def weekday_index(value: date) -> int:
    """Weekday index with 0 = Sunday .. 6 = Saturday."""
    return value.isoweekday() % 7


def _is_weekend_date(value: date) -> bool:
    return value.weekday() >= 5


def is_weekend(value: date | str | None) -> bool:
    """Return True for Saturday or Sunday; False for invalid input."""
    parsed = _as_date(value)
    if parsed is None:
        return False
    return _is_weekend_date(parsed)


def roll_to_business_day(value: date | str, policy: RollPolicy = "forward") -> date | str:
    """Move a weekend date onto the nearest weekday in the policy's direction.

    Weekdays are returned unchanged, as is everything under ``"none"``.
    """
    parsed = _as_date(value)
    if parsed is None or not _is_weekend_date(parsed) or policy not in ("forward", "back"):
        return value
    step = timedelta(days=1 if policy == "forward" else -1)
    rolled = parsed
    while _is_weekend_date(rolled):
        rolled += step
    return rolled if isinstance(value, date) else to_canonical(rolled)


def next_business_day(
    value: date | str, direction: Literal["forward", "back"] = "forward"
) -> date | str:
    """Return the first weekday strictly after (or before) the given date."""
    parsed = _as_date(value)
    if parsed is None:
        return value
    step = timedelta(days=-1 if direction == "back" else 1)
    candidate = parsed + step
    for _ in range(_MAX_ROLL_STEPS):
        if not _is_weekend_date(candidate):
            break
        candidate += step
    return candidate if isinstance(value, date) else to_canonical(candidate)


def _from_excel_serial(serial: float) -> date | None:
    whole = math.floor(serial)
    fraction = serial - whole
    days = whole - 1 if whole > _EXCEL_LEAP_BUG_SERIAL else whole
    try:
        moment = _EXCEL_EPOCH + timedelta(
            days=days, milliseconds=round(fraction * _MS_PER_DAY)
        )
    except OverflowError:
        return None
    return moment.date()


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_loose_date(value: Any) -> str | None:
    """Parse user or spreadsheet input into a canonical date string.

    Accepts date objects, Excel serial numbers, ``Y-M-D`` strings,
    ``M/D/Y`` or ``M-D-Y`` strings (two-digit years below 70 land in the
    2000s) and, as a last resort, anything ``dateutil`` can read.
    Returns ``None`` when nothing matches.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_canonical(value.date())
    if isinstance(value, date):
        return to_canonical(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if not math.isfinite(value):
            return None
        parsed = _from_excel_serial(float(value))
        return to_canonical(parsed) if parsed else None

    text = str(value).strip()
    if not text:
        return None

    iso = _ISO_LOOSE_RE.match(text)
    if iso:
        year, month, day = (int(part) for part in iso.groups())
        parsed = _safe_date(year, month, day)
        return to_canonical(parsed) if parsed else None

    us = _US_DATE_RE.match(text.split()[0])
    if us:
        month, day, year = (int(part) for part in us.groups())
        if year < 100:
            year += 1900 if year >= 70 else 2000
        parsed = _safe_date(year, month, day)
        return to_canonical(parsed) if parsed else None

    try:
        return to_canonical(dateutil_parser.parse(text).date())
    except (ValueError, OverflowError):
        return None


def months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start`` to ``end``, never negative."""
    diff = (end.year - start.year) * 12 + (end.month - start.month)
    return max(0, diff)


def days_between(start: date, end: date) -> int:
    """Signed number of calendar days from ``start`` to ``end``."""
    return (end - start).days


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every date from ``start`` to ``end`` inclusive."""
    current = start
    step = timedelta(days=1)
    while current <= end:
        yield current
        current += step


def today() -> date:
    """Current wall-clock date, used only for state defaults."""
    return date.today()
