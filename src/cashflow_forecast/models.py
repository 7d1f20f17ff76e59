"""Canonical data model for states, scenarios and projection results.

Engine-side values use :class:`datetime.date` and snake_case attributes.
``to_dict()`` produces the persisted/JSON shape (camelCase keys, canonical
``YYYY-MM-DD`` date strings).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Literal

from cashflow_forecast.dates import to_canonical


class TransactionType(str, Enum):
    """Direction of a cash movement."""

    INCOME = "income"
    EXPENSE = "expense"


class Frequency(str, Enum):
    """Recurrence cadence for streams and recurring one-offs."""

    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class MonthlyMode(str, Enum):
    """How a monthly recurrence picks its day."""

    DAY = "day"
    NTH = "nth"


NthWeek = Literal["1", "2", "3", "4", "5", "last"]
GlobalEditMode = Literal["pct", "delta", "effective"]
StreamEditMode = Literal["pct", "delta", "effective", "weekly"]
SaleEditMode = Literal["pct", "topup"]


def _iso(value: date | None) -> str | None:
    return to_canonical(value) if value is not None else None


@dataclass(frozen=True)
class Step:
    """Amount override effective from a date forward."""

    effective_from: date
    amount: float

    def to_dict(self) -> dict[str, Any]:
        return {"effectiveFrom": to_canonical(self.effective_from), "amount": self.amount}


@dataclass
class Settings:
    """Projection window and opening balance."""

    start_date: date
    end_date: date
    starting_balance: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "startDate": to_canonical(self.start_date),
            "endDate": to_canonical(self.end_date),
            "startingBalance": self.starting_balance,
        }


@dataclass
class _Schedule:
    """Recurrence fields shared by recurring one-offs and income streams."""

    frequency: Frequency | None = None
    start_date: date | None = None
    end_date: date | None = None
    on_date: date | None = None
    skip_weekends: bool = False
    day_of_week: tuple[int, ...] = ()
    monthly_mode: MonthlyMode | None = None
    day_of_month: int | None = None
    nth_week: NthWeek | None = None
    nth_weekday: int | None = None
    steps: tuple[Step, ...] = ()
    escalator_pct: float = 0.0

    def _schedule_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "frequency": self.frequency.value if self.frequency else None,
            "startDate": _iso(self.start_date),
            "endDate": _iso(self.end_date),
            "onDate": _iso(self.on_date),
        }
        if self.frequency is Frequency.DAILY:
            data["skipWeekends"] = self.skip_weekends
        if self.day_of_week:
            data["dayOfWeek"] = list(self.day_of_week)
        if self.monthly_mode is not None:
            data["monthlyMode"] = self.monthly_mode.value
        if self.day_of_month is not None:
            data["dayOfMonth"] = self.day_of_month
        if self.nth_week is not None:
            data["nthWeek"] = self.nth_week
        if self.nth_weekday is not None:
            data["nthWeekday"] = self.nth_weekday
        return data


@dataclass
class OneOffTransaction(_Schedule):
    """A dated or recurring income/expense entry.

    ``amount`` is always non-negative; direction comes from ``type``.
    Non-recurring entries carry ``date``; recurring ones carry the schedule.
    """

    id: str = ""
    type: TransactionType = TransactionType.EXPENSE
    amount: float = 0.0
    name: str = ""
    category: str = ""
    note: str | None = None
    recurring: bool = False
    date: date | None = None
    source: str | None = None
    status: str | None = None

    @property
    def is_archived_receivable(self) -> bool:
        return self.source == "AR" and self.status == "archived"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "category": self.category,
            "amount": self.amount,
            "recurring": self.recurring,
        }
        if self.note is not None:
            data["note"] = self.note
        if self.source is not None:
            data["source"] = self.source
        if self.status is not None:
            data["status"] = self.status
        if self.recurring:
            data.update(self._schedule_dict())
            data["steps"] = [step.to_dict() for step in self.steps]
            data["escalatorPct"] = self.escalator_pct
        else:
            data["date"] = _iso(self.date)
            data["steps"] = []
            data["escalatorPct"] = 0
        return data


@dataclass
class IncomeStream(_Schedule):
    """Recurring income with its own schedule, steps and escalator."""

    id: str = ""
    amount: float = 0.0
    name: str = ""
    category: str = ""
    note: str | None = None

    @property
    def type(self) -> TransactionType:
        return TransactionType.INCOME

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "amount": self.amount,
        }
        if self.note is not None:
            data["note"] = self.note
        data.update(self._schedule_dict())
        data["steps"] = [step.to_dict() for step in self.steps]
        data["escalatorPct"] = self.escalator_pct
        return data


RecurringEntry = OneOffTransaction | IncomeStream


@dataclass
class Adjustment:
    """Manual signed correction applied on a single day."""

    date: date
    amount: float
    note: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"date": to_canonical(self.date), "amount": self.amount, "note": self.note}


@dataclass
class InstanceOverride:
    """Edit or removal of a single expanded occurrence of a parent entry."""

    parent_id: str
    instance_date: date
    id: str = ""
    amount: float | None = None
    name: str | None = None
    category: str | None = None
    deleted: bool = False

    @property
    def key(self) -> tuple[str, date]:
        return (self.parent_id, self.instance_date)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "parentId": self.parent_id,
            "instanceDate": to_canonical(self.instance_date),
            "deleted": self.deleted,
        }
        modifications = {
            key: value
            for key, value in (("amount", self.amount), ("name", self.name), ("category", self.category))
            if value is not None
        }
        if modifications:
            data["modifications"] = modifications
        return data


@dataclass(frozen=True)
class TransactionInstance:
    """One concrete firing of a one-off or stream, as listed in the ledger."""

    parent_id: str
    parent_kind: Literal["oneOff", "incomeStream"]
    date: date
    type: TransactionType
    amount: float
    name: str = ""
    category: str = ""
    recurring: bool = False
    override_id: str | None = None

    @property
    def id(self) -> str:
        return f"{self.parent_id}-{to_canonical(self.date)}"

    @property
    def modified(self) -> bool:
        return self.override_id is not None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "parentId": self.parent_id,
            "parentType": self.parent_kind,
            "instanceDate": to_canonical(self.date),
            "name": self.name,
            "category": self.category,
            "amount": self.amount,
            "type": self.type.value,
            "isRecurring": self.recurring,
            "isModified": self.modified,
        }
        if self.override_id is not None:
            data["overrideId"] = self.override_id
        return data


@dataclass
class State:
    """Complete forecast input."""

    settings: Settings | None
    one_offs: list[OneOffTransaction] = field(default_factory=list)
    income_streams: list[IncomeStream] = field(default_factory=list)
    adjustments: list[Adjustment] = field(default_factory=list)
    transaction_overrides: list[InstanceOverride] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "settings": self.settings.to_dict() if self.settings else None,
            "oneOffs": [entry.to_dict() for entry in self.one_offs],
            "incomeStreams": [stream.to_dict() for stream in self.income_streams],
            "adjustments": [adj.to_dict() for adj in self.adjustments],
            "transactionOverrides": [item.to_dict() for item in self.transaction_overrides],
        }


@dataclass
class SaleEntry:
    """Time-boxed income uplift used only inside What-If scenarios."""

    start_date: date
    end_date: date
    id: str = ""
    name: str = ""
    pct: float = 0.0
    topup: float = 0.0
    business_days_only: bool = False
    last_edited: SaleEditMode = "pct"

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    @property
    def window_label(self) -> str:
        start = to_canonical(self.start_date)
        end = to_canonical(self.end_date)
        return start if start == end else f"{start}→{end}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "pct": self.pct,
            "topup": self.topup,
            "startDate": to_canonical(self.start_date),
            "endDate": to_canonical(self.end_date),
            "businessDaysOnly": self.business_days_only,
            "lastEdited": self.last_edited,
        }


@dataclass
class SaleConfig:
    enabled: bool = False
    entries: list[SaleEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"enabled": self.enabled, "entries": [e.to_dict() for e in self.entries]}


@dataclass
class GlobalTweak:
    """Adjustment applied to every stream occurrence before per-stream tweaks."""

    pct: float = 0.0
    delta: float = 0.0
    last_edited: GlobalEditMode = "pct"

    def to_dict(self) -> dict[str, Any]:
        return {"pct": self.pct, "delta": self.delta, "lastEdited": self.last_edited}


@dataclass
class StreamTweak:
    """Per-stream What-If input; ``last_edited`` selects the active mode."""

    pct: float = 0.0
    delta: float = 0.0
    effective: float | None = None
    weekly_target: float | None = None
    last_edited: StreamEditMode = "pct"

    def to_dict(self) -> dict[str, Any]:
        return {
            "pct": self.pct,
            "delta": self.delta,
            "effective": self.effective,
            "weeklyTarget": self.weekly_target,
            "lastEdited": self.last_edited,
        }


@dataclass
class WhatIfTweaks:
    start_date: date
    end_date: date
    global_tweak: GlobalTweak = field(default_factory=GlobalTweak)
    streams: dict[str, StreamTweak] = field(default_factory=dict)
    sale: SaleConfig = field(default_factory=SaleConfig)

    def to_dict(self) -> dict[str, Any]:
        return {
            "global": self.global_tweak.to_dict(),
            "streams": {key: tweak.to_dict() for key, tweak in self.streams.items()},
            "sale": self.sale.to_dict(),
            "startDate": to_canonical(self.start_date),
            "endDate": to_canonical(self.end_date),
        }


@dataclass
class WhatIfScenario:
    """A sandboxed copy of state plus the tweaks evaluated against it."""

    base: State
    tweaks: WhatIfTweaks

    def to_dict(self) -> dict[str, Any]:
        return {"base": self.base.to_dict(), "tweaks": self.tweaks.to_dict()}


@dataclass(frozen=True)
class DetailLine:
    source: str
    amount: float

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "amount": self.amount}


@dataclass
class DayRow:
    """One calendar day of the projection."""

    date: date
    income: float = 0.0
    expenses: float = 0.0
    net: float = 0.0
    running: float = 0.0
    income_details: list[DetailLine] = field(default_factory=list)
    expense_details: list[DetailLine] = field(default_factory=list)

    def add_income(self, source: str, amount: float) -> None:
        self.income += amount
        self.income_details.append(DetailLine(source=source, amount=amount))

    def add_expense(self, source: str, amount: float) -> None:
        self.expenses += amount
        self.expense_details.append(DetailLine(source=source, amount=amount))

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": to_canonical(self.date),
            "income": self.income,
            "expenses": self.expenses,
            "net": self.net,
            "running": self.running,
            "incomeDetails": [d.to_dict() for d in self.income_details],
            "expenseDetails": [d.to_dict() for d in self.expense_details],
        }


@dataclass
class ProjectionResult:
    """Calendar plus balance statistics for one projection run."""

    calendar: list[DayRow]
    total_income: float
    total_expenses: float
    end_balance: float
    lowest_balance: float
    lowest_balance_date: date | None
    peak_balance: float
    peak_balance_date: date | None
    first_negative_date: date | None
    negative_days: int
    projected_weekly_income: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "calendar": [row.to_dict() for row in self.calendar],
            "totalIncome": self.total_income,
            "totalExpenses": self.total_expenses,
            "endBalance": self.end_balance,
            "lowestBalance": self.lowest_balance,
            "lowestBalanceDate": _iso(self.lowest_balance_date),
            "peakBalance": self.peak_balance,
            "peakBalanceDate": _iso(self.peak_balance_date),
            "firstNegativeDate": _iso(self.first_negative_date),
            "negativeDays": self.negative_days,
            "projectedWeeklyIncome": self.projected_weekly_income,
        }


FirstNegativeStatus = Literal["none", "cleared", "new", "unchanged", "later", "sooner"]


@dataclass(frozen=True)
class FirstNegativeComparison:
    actual: date | None
    scenario: date | None
    delta_days: int | None
    status: FirstNegativeStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "actual": _iso(self.actual),
            "scenario": _iso(self.scenario),
            "deltaDays": self.delta_days,
            "status": self.status,
        }


@dataclass(frozen=True)
class ScenarioComparison:
    """Scenario minus actual for the headline projection metrics."""

    end_balance: float
    total_income: float
    total_expenses: float
    lowest_balance: float
    peak_balance: float
    negative_days: int
    first_negative: FirstNegativeComparison

    def to_dict(self) -> dict[str, Any]:
        return {
            "endBalance": self.end_balance,
            "totalIncome": self.total_income,
            "totalExpenses": self.total_expenses,
            "lowestBalance": self.lowest_balance,
            "peakBalance": self.peak_balance,
            "negativeDays": self.negative_days,
            "firstNegative": self.first_negative.to_dict(),
        }


@dataclass
class ScenarioEvaluation:
    actual: ProjectionResult
    sandbox: ProjectionResult
    comparison: ScenarioComparison

    def to_dict(self) -> dict[str, Any]:
        return {
            "actual": self.actual.to_dict(),
            "sandbox": self.sandbox.to_dict(),
            "comparison": self.comparison.to_dict(),
        }
