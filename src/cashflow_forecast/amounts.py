"""Per-occurrence amount resolution: step overrides and escalators."""

from __future__ import annotations

import math
from datetime import date

from cashflow_forecast.dates import months_between
from cashflow_forecast.models import RecurringEntry


def base_amount_on(entry: RecurringEntry, day: date) -> float:
    """Amount in force on ``day``: the latest step effective by then, else the base.

    Steps are expected in ascending ``effective_from`` order; the walk stops
    at the first step that has not yet taken effect.
    """
    current = abs(entry.amount or 0.0)
    for step in entry.steps:
        if step.effective_from > day:
            break
        if not math.isfinite(step.amount):
            continue
        current = abs(step.amount)
    return current


def escalation_factor(escalator_pct: float, months: int) -> float:
    """Compound monthly growth factor for ``months`` whole months."""
    if months <= 0 or escalator_pct == 0:
        return 1.0
    return (1 + escalator_pct / 100) ** months


def resolve_amount(entry: RecurringEntry, day: date, previous: date | None) -> float:
    """Amount to apply for the occurrence on ``day``.

    ``previous`` is the entry's own last occurrence in the current sweep.
    The escalator compounds once per whole calendar month elapsed since that
    occurrence; the first occurrence is never escalated.
    """
    base = base_amount_on(entry, day)
    if not base:
        return 0.0
    escalator = entry.escalator_pct
    if previous is None or not escalator or not math.isfinite(escalator):
        return base
    months = months_between(previous, day)
    if not months:
        return base
    return base * escalation_factor(escalator, months)
