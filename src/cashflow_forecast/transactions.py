"""Labels, next-occurrence lookup and list helpers for one-offs and streams.

List helpers never mutate their input; they return a new list.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any

import structlog

from cashflow_forecast.amounts import resolve_amount
from cashflow_forecast.dates import iter_days, to_canonical
from cashflow_forecast.models import IncomeStream, OneOffTransaction, RecurringEntry
from cashflow_forecast.recurrence import is_recurring, matches
from cashflow_forecast.validation import sanitize_one_off, sanitize_stream

logger = structlog.get_logger(__name__)

LABEL_SEPARATOR = " – "


@dataclass(frozen=True)
class Occurrence:
    date: date
    amount: float

    def to_dict(self) -> dict[str, Any]:
        return {"date": to_canonical(self.date), "amount": self.amount}


def describe_entry(entry: Any, fallback: str) -> str:
    """``"name – category"``, else the note, else ``fallback``."""
    if entry is None:
        return fallback
    name = getattr(entry, "name", "")
    category = getattr(entry, "category", "")
    parts = [part for part in (name, category) if part]
    if not parts:
        note = getattr(entry, "note", None)
        if note:
            parts.append(note)
    return LABEL_SEPARATOR.join(parts) or fallback


def has_valid_recurrence_window(entry: RecurringEntry) -> bool:
    start = entry.start_date
    end = entry.end_date
    return start is not None and end is not None and start <= end


def next_occurrence(entry: RecurringEntry, from_date: date | None = None) -> Occurrence | None:
    """First occurrence on or after ``from_date`` with its resolved amount.

    Occurrences before ``from_date`` still advance the escalation cursor, so
    the returned amount matches what a projection would apply on that day.
    Returns None when nothing fires or the resolved amount is zero.
    """
    if not is_recurring(entry):
        single = getattr(entry, "date", None)
        if single is None or (from_date is not None and single < from_date):
            return None
        return Occurrence(date=single, amount=abs(entry.amount))

    if not has_valid_recurrence_window(entry):
        return None

    previous: date | None = None
    for day in iter_days(entry.start_date, entry.end_date):
        if not matches(day, entry):
            continue
        if from_date is not None and day < from_date:
            previous = day
            continue
        amount = resolve_amount(entry, day, previous)
        if not amount:
            return None
        return Occurrence(date=day, amount=abs(amount))
    return None


def _replace_by_id(
    items: Sequence[Any], entry_id: str, updates: Mapping[str, Any], sanitize, strict: bool
) -> list[Any]:
    result = []
    for item in items:
        if item.id != entry_id:
            result.append(item)
            continue
        merged = {**item.to_dict(), **updates}
        sanitized = sanitize(merged, strict)
        if sanitized is None:
            logger.warning("update_rejected", entry_id=entry_id)
            result.append(item)
        else:
            result.append(sanitized)
    return result


def create_one_off(entry: Any, strict: bool = False) -> OneOffTransaction | None:
    return sanitize_one_off(entry, strict)


def update_one_off(
    items: Sequence[OneOffTransaction],
    entry_id: str,
    updates: Mapping[str, Any],
    strict: bool = False,
) -> list[OneOffTransaction]:
    """Merge camelCase ``updates`` into the matching one-off and re-sanitize it.

    A merge that no longer validates keeps the original record.
    """
    return _replace_by_id(items, entry_id, updates, sanitize_one_off, strict)


def delete_one_off(items: Sequence[OneOffTransaction], entry_id: str) -> list[OneOffTransaction]:
    return [item for item in items if item.id != entry_id]


def create_income_stream(entry: Any, strict: bool = False) -> IncomeStream | None:
    return sanitize_stream(entry, strict)


def update_income_stream(
    items: Sequence[IncomeStream],
    entry_id: str,
    updates: Mapping[str, Any],
    strict: bool = False,
) -> list[IncomeStream]:
    """Stream counterpart of :func:`update_one_off`."""
    return _replace_by_id(items, entry_id, updates, sanitize_stream, strict)


def delete_income_stream(items: Sequence[IncomeStream], entry_id: str) -> list[IncomeStream]:
    return [item for item in items if item.id != entry_id]
