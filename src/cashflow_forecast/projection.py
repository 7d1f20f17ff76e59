"""Day-by-day cash-flow projection.

Each run is a pure function of its inputs. Per-entry escalation cursors live
in a local mapping for the duration of one :func:`project` call.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

import structlog

from cashflow_forecast.amounts import resolve_amount
from cashflow_forecast.dates import iter_days
from cashflow_forecast.models import (
    DayRow,
    IncomeStream,
    OneOffTransaction,
    ProjectionResult,
    SaleConfig,
    SaleEntry,
    State,
    TransactionType,
)
from cashflow_forecast.money import round2
from cashflow_forecast.recurrence import matches
from cashflow_forecast.transactions import describe_entry

logger = structlog.get_logger(__name__)

StreamAmountFn = Callable[[IncomeStream, float, date], float]


class ProjectionError(RuntimeError):
    """Raised when a projection is requested on an unsanitized state."""


@dataclass(frozen=True)
class ReplaceAmount:
    """Replace each stream occurrence amount with ``fn(stream, base, day)``."""

    fn: StreamAmountFn


@dataclass(frozen=True)
class ScaleAmount:
    """Multiply each stream occurrence amount by ``fn(stream, base, day)``."""

    fn: StreamAmountFn


AmountOverride = ReplaceAmount | ScaleAmount


@dataclass(frozen=True)
class ProjectionOverrides:
    amount: AmountOverride | None = None
    sale: SaleConfig | None = None


def generate_calendar(start: date, end: date) -> list[DayRow]:
    """One zeroed row per day in ``[start, end]``."""
    return [DayRow(date=day) for day in iter_days(start, end)]


def _label_for(entry: OneOffTransaction) -> str:
    return describe_entry(entry, "Expense" if entry.type is TransactionType.EXPENSE else "Income")


def _apply_override(
    override: AmountOverride | None, stream: IncomeStream, amount: float, day: date
) -> float:
    if isinstance(override, ReplaceAmount):
        replaced = override.fn(stream, amount, day)
        if replaced is None or not math.isfinite(replaced) or replaced < 0:
            return 0.0
        return round2(replaced)
    factor = override.fn(stream, amount, day) if isinstance(override, ScaleAmount) else 1.0
    if factor is None or not math.isfinite(factor):
        factor = 1.0
    return round2(amount * max(0.0, factor))


def _apply_singles(state: State, rows: dict[date, DayRow]) -> None:
    for tx in state.one_offs:
        if tx.recurring or tx.is_archived_receivable or tx.date is None:
            continue
        row = rows.get(tx.date)
        if row is None or not tx.amount:
            continue
        if tx.type is TransactionType.EXPENSE:
            row.add_expense(_label_for(tx), abs(tx.amount))
        else:
            row.add_income(_label_for(tx), tx.amount)


def _apply_streams(
    state: State, calendar: list[DayRow], override: AmountOverride | None
) -> float:
    """Apply income streams; returns the total stream income applied."""
    total = 0.0
    last_occurrence: dict[str, date] = {}
    for index, stream in enumerate(state.income_streams):
        key = f"stream:{stream.id or index}"
        label = describe_entry(stream, "Income Stream")
        for row in calendar:
            if not matches(row.date, stream):
                continue
            amount = resolve_amount(stream, row.date, last_occurrence.get(key))
            if amount:
                applied = _apply_override(override, stream, abs(amount), row.date)
                if applied:
                    row.add_income(label, applied)
                    total += applied
            last_occurrence[key] = row.date
    return total


def _apply_recurring_one_offs(state: State, calendar: list[DayRow]) -> None:
    last_occurrence: dict[str, date] = {}
    for index, tx in enumerate(state.one_offs):
        if not tx.recurring or tx.frequency is None:
            continue
        if tx.start_date is None or tx.end_date is None:
            continue
        key = f"tx:{tx.id or index}"
        label = _label_for(tx)
        for row in calendar:
            if not matches(row.date, tx):
                continue
            amount = resolve_amount(tx, row.date, last_occurrence.get(key))
            if amount:
                if tx.type is TransactionType.EXPENSE:
                    row.add_expense(label, abs(amount))
                else:
                    row.add_income(label, abs(amount))
            last_occurrence[key] = row.date


def _apply_adjustments(state: State, rows: dict[date, DayRow]) -> None:
    for adj in state.adjustments:
        row = rows.get(adj.date)
        if row is None:
            continue
        label = f"Adjustment – {adj.note}" if adj.note else "Adjustment"
        if adj.amount >= 0:
            row.add_income(label, adj.amount)
        else:
            row.add_expense(label, abs(adj.amount))


def _active_sale_entries(sale: SaleConfig | None) -> list[SaleEntry]:
    if sale is None or not sale.enabled:
        return []
    return list(sale.entries)


def _apply_sales(row: DayRow, entries: list[SaleEntry]) -> None:
    base_income = row.income
    is_business_day = row.date.weekday() < 5
    for entry in entries:
        if not entry.covers(row.date):
            continue
        if entry.business_days_only and not is_business_day:
            continue
        if entry.last_edited == "topup":
            boost = round2(entry.topup)
            if boost:
                row.add_income(f"Sale top-up ({entry.window_label})", boost)
        elif entry.pct > 0:
            boost = round2(base_income * entry.pct)
            if boost:
                row.add_income(f"Sale uplift ({entry.window_label})", boost)


def project(state: State, overrides: ProjectionOverrides | None = None) -> ProjectionResult:
    """Project the running balance for every day of the state's window.

    Raises:
        ProjectionError: If the state carries no settings.
    """
    if state is None or state.settings is None:
        raise ProjectionError("State missing settings for projection")
    overrides = overrides or ProjectionOverrides()
    settings = state.settings

    calendar = generate_calendar(settings.start_date, settings.end_date)
    rows = {row.date: row for row in calendar}

    _apply_singles(state, rows)
    stream_income = _apply_streams(state, calendar, overrides.amount)
    _apply_recurring_one_offs(state, calendar)
    _apply_adjustments(state, rows)
    sale_entries = _active_sale_entries(overrides.sale)

    running = round2(settings.starting_balance)
    total_income = 0.0
    total_expenses = 0.0
    lowest = peak = running
    lowest_date = peak_date = settings.start_date
    first_negative: date | None = None
    negative_days = 0

    for row in calendar:
        if sale_entries:
            _apply_sales(row, sale_entries)
        row.income = round2(row.income)
        row.expenses = round2(row.expenses)
        row.net = round2(row.income - row.expenses)
        running = round2(running + row.net)
        row.running = running
        total_income += row.income
        total_expenses += row.expenses

        if running < lowest:
            lowest, lowest_date = running, row.date
        if running > peak:
            peak, peak_date = running, row.date
        if running < 0:
            negative_days += 1
            if first_negative is None:
                first_negative = row.date

    total_weeks = len(calendar) / 7
    weekly_income = round2(stream_income / total_weeks) if total_weeks > 0 else 0.0

    result = ProjectionResult(
        calendar=calendar,
        total_income=round2(total_income),
        total_expenses=round2(total_expenses),
        end_balance=running,
        lowest_balance=lowest,
        lowest_balance_date=lowest_date,
        peak_balance=peak,
        peak_balance_date=peak_date,
        first_negative_date=first_negative,
        negative_days=negative_days,
        projected_weekly_income=weekly_income,
    )
    logger.info(
        "projection_computed",
        days=len(calendar),
        end_balance=result.end_balance,
        lowest_balance=result.lowest_balance,
        negative_days=negative_days,
        sale_entries=len(sale_entries),
    )
    return result
