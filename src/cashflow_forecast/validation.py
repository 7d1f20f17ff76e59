"""Sanitizers that turn raw persisted payloads into the canonical model.

Every sanitizer has two modes. Non-strict (the default) substitutes safe
defaults for malformed fields and drops list items that cannot be
salvaged. Strict mode raises :class:`StateValidationError` on the same
conditions, for callers that want an import to fail loudly.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import date, timedelta
from typing import Any
from uuid import uuid4

import structlog

from cashflow_forecast.config import get_settings
from cashflow_forecast.dates import from_canonical, parse_loose_date, today, weekday_index
from cashflow_forecast.models import (
    Adjustment,
    Frequency,
    GlobalTweak,
    IncomeStream,
    InstanceOverride,
    MonthlyMode,
    OneOffTransaction,
    SaleConfig,
    SaleEntry,
    Settings,
    State,
    Step,
    StreamTweak,
    TransactionType,
    WhatIfScenario,
    WhatIfTweaks,
)
from cashflow_forecast.money import clamp_currency, clamp_percent, round2
from cashflow_forecast.recurrence import first_weekday, normalize_nth, to_weekday_list

logger = structlog.get_logger(__name__)

SALE_NAME_MAX_LENGTH = 120
SALE_PCT_BOUNDS = (-1.0, 5.0)
TWEAK_PCT_BOUNDS = (-1.0, 2.0)

_GLOBAL_EDIT_MODES = ("pct", "delta", "effective")
_STREAM_EDIT_MODES = ("pct", "delta", "effective", "weekly")


class StateValidationError(ValueError):
    """Raised by strict-mode sanitizers on malformed input."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


def new_id() -> str:
    """Generate a short client-side record identifier."""
    return uuid4().hex[:12]


def _reject(strict: bool, message: str, field: str | None = None) -> None:
    if strict:
        raise StateValidationError(message, field=field)
    logger.debug("record_dropped", reason=message, field=field)
    return None


def _number(value: Any) -> float | None:
    """Loose numeric coercion: falsy values read as 0, garbage as None."""
    if not value:
        return 0.0
    if isinstance(value, bool):
        return 1.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _optional_text(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _loose_date(value: Any) -> date | None:
    parsed = from_canonical(value)
    if parsed is not None:
        return parsed
    canonical = parse_loose_date(value)
    return from_canonical(canonical) if canonical else None


def _frequency(value: Any) -> Frequency | None:
    if isinstance(value, Frequency):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Frequency(value.strip().lower())
    except ValueError:
        return None


def default_end_date(start: date) -> date:
    """Default projection end for a window starting on ``start``."""
    settings = get_settings()
    if settings.default_end_date is not None:
        return max(start, settings.default_end_date)
    return start + timedelta(days=settings.horizon_days)


def default_settings() -> Settings:
    start = today()
    return Settings(start_date=start, end_date=default_end_date(start), starting_balance=0.0)


def default_state() -> State:
    """Empty state projecting from today over the configured horizon."""
    return State(settings=default_settings())


def sanitize_steps(value: Any) -> tuple[Step, ...]:
    """Keep well-formed steps, absolute amounts, sorted by effective date."""
    if not isinstance(value, (list, tuple)):
        return ()
    steps: list[Step] = []
    for item in value:
        if isinstance(item, Step):
            item = item.to_dict()
        if not isinstance(item, Mapping):
            continue
        effective_from = from_canonical(item.get("effectiveFrom"))
        amount = _number(item.get("amount"))
        if effective_from is None or amount is None:
            continue
        steps.append(Step(effective_from=effective_from, amount=abs(amount)))
    steps.sort(key=lambda step: step.effective_from)
    return tuple(steps)


def _escalator(value: Any) -> float:
    number = _number(value)
    return number if number is not None else 0.0


def _apply_schedule_details(
    target: OneOffTransaction | IncomeStream, raw: Mapping[str, Any]
) -> None:
    """Fill frequency-specific fields, defaulting from the start date."""
    start = target.start_date
    start_dow = weekday_index(start) if start else 0
    start_dom = start.day if start else 1

    if target.frequency is Frequency.DAILY:
        target.skip_weekends = bool(raw.get("skipWeekends"))
    elif target.frequency in (Frequency.WEEKLY, Frequency.BIWEEKLY):
        weekdays = to_weekday_list(raw.get("dayOfWeek"))
        target.day_of_week = tuple(weekdays or [start_dow])
    elif target.frequency is Frequency.MONTHLY:
        mode = MonthlyMode.NTH if raw.get("monthlyMode") == "nth" else MonthlyMode.DAY
        target.monthly_mode = mode
        if mode is MonthlyMode.NTH:
            nth_raw = raw.get("nthWeek")
            if nth_raw is None:
                nth_raw = raw.get("nthWeekNumber")
            weekday_raw = raw.get("nthWeekday")
            if weekday_raw is None:
                weekday_raw = raw.get("dayOfWeek")
            target.nth_week = normalize_nth(nth_raw)
            target.nth_weekday = first_weekday(weekday_raw, start_dow)
        else:
            dom = _number(raw.get("dayOfMonth")) if raw.get("dayOfMonth") is not None else None
            day_of_month = math.trunc(dom) if dom else start_dom
            target.day_of_month = min(31, max(1, day_of_month))


def sanitize_one_off(entry: Any, strict: bool = False) -> OneOffTransaction | None:
    """Sanitize a single or recurring one-off; None if it cannot be kept."""
    if isinstance(entry, OneOffTransaction):
        entry = entry.to_dict()
    if not isinstance(entry, Mapping):
        return _reject(strict, "Invalid one-off record")

    amount = _number(entry.get("amount"))
    if amount is None:
        return _reject(strict, "Invalid one-off amount", "amount")

    raw_type = entry.get("type")
    if isinstance(raw_type, TransactionType):
        raw_type = raw_type.value
    result = OneOffTransaction(
        id=entry["id"] if isinstance(entry.get("id"), str) else new_id(),
        type=TransactionType.INCOME if raw_type == "income" else TransactionType.EXPENSE,
        amount=abs(amount),
        name=_text(entry.get("name")),
        category=_text(entry.get("category")),
        note=_optional_text(entry.get("note")),
        recurring=bool(entry.get("recurring")),
        source=_optional_text(entry.get("source")),
        status=_optional_text(entry.get("status")),
    )

    if not result.recurring:
        single = _loose_date(entry.get("date"))
        if single is None:
            return _reject(strict, "Invalid one-off date", "date")
        result.date = single
        return result

    frequency = _frequency(entry.get("frequency"))
    start = from_canonical(entry.get("startDate"))
    end_raw = entry.get("endDate")
    end = from_canonical(entry.get("date") if end_raw is None else end_raw)
    if frequency is None or start is None or end is None:
        return _reject(strict, "Invalid recurring one-off metadata")
    if start > end:
        if strict:
            raise StateValidationError("Invalid recurring one-off range", field="endDate")
        end = start

    result.frequency = frequency
    result.start_date = start
    result.end_date = end
    result.steps = sanitize_steps(entry.get("steps"))
    result.escalator_pct = _escalator(entry.get("escalatorPct"))
    on_date = from_canonical(entry.get("onDate"))
    if frequency is Frequency.ONCE:
        result.on_date = on_date or start
    else:
        result.on_date = on_date
    _apply_schedule_details(result, entry)
    return result


def sanitize_stream(entry: Any, strict: bool = False) -> IncomeStream | None:
    """Sanitize an income stream; an inverted window is swapped, not clamped."""
    if isinstance(entry, IncomeStream):
        entry = entry.to_dict()
    if not isinstance(entry, Mapping):
        return _reject(strict, "Invalid income stream record")

    amount = _number(entry.get("amount"))
    if amount is None:
        return _reject(strict, "Invalid income stream amount", "amount")

    raw_frequency = entry.get("frequency")
    frequency = _frequency(raw_frequency) if raw_frequency is not None else Frequency.ONCE
    if frequency is None:
        return _reject(strict, "Invalid income stream frequency", "frequency")

    on_date_raw = entry.get("onDate")
    start_raw = entry.get("startDate")
    end_raw = entry.get("endDate")
    start = from_canonical(on_date_raw if start_raw is None else start_raw)
    end = from_canonical(on_date_raw if end_raw is None else end_raw)
    if start is None or end is None:
        return _reject(strict, "Invalid income stream date range")
    if start > end:
        start, end = end, start

    on_date = from_canonical(on_date_raw)
    stream = IncomeStream(
        id=entry["id"] if isinstance(entry.get("id"), str) else new_id(),
        amount=abs(amount),
        name=_text(entry.get("name")),
        category=_text(entry.get("category")),
        note=_optional_text(entry.get("note")),
        frequency=frequency,
        start_date=start,
        end_date=end,
        on_date=(on_date or start) if frequency is Frequency.ONCE else on_date,
        steps=sanitize_steps(entry.get("steps")),
        escalator_pct=_escalator(entry.get("escalatorPct")),
    )
    _apply_schedule_details(stream, entry)
    return stream


def sanitize_adjustment(entry: Any, strict: bool = False) -> Adjustment | None:
    if isinstance(entry, Adjustment):
        entry = entry.to_dict()
    if not isinstance(entry, Mapping):
        return _reject(strict, "Invalid adjustment record")
    day = _loose_date(entry.get("date"))
    if day is None:
        return _reject(strict, "Invalid adjustment date", "date")
    amount = _number(entry.get("amount"))
    if amount is None:
        return _reject(strict, "Invalid adjustment amount", "amount")
    note = entry.get("note")
    return Adjustment(date=day, amount=amount, note=note if isinstance(note, str) else "")


def sanitize_instance_override(entry: Any, strict: bool = False) -> InstanceOverride | None:
    """Sanitize a per-instance override; amounts are stored as magnitudes."""
    if isinstance(entry, InstanceOverride):
        entry = entry.to_dict()
    if not isinstance(entry, Mapping):
        return _reject(strict, "Invalid transaction override")
    parent_id = entry.get("parentId")
    if not isinstance(parent_id, str) or not parent_id:
        return _reject(strict, "Invalid transaction override parent", "parentId")
    instance_date = from_canonical(entry.get("instanceDate"))
    if instance_date is None:
        return _reject(strict, "Invalid transaction override date", "instanceDate")

    changes = entry.get("modifications")
    changes = changes if isinstance(changes, Mapping) else {}
    amount = _optional_money(changes.get("amount"))
    return InstanceOverride(
        id=entry["id"] if isinstance(entry.get("id"), str) and entry["id"] else new_id(),
        parent_id=parent_id,
        instance_date=instance_date,
        amount=abs(amount) if amount is not None else None,
        name=_optional_text(changes.get("name")),
        category=_optional_text(changes.get("category")),
        deleted=bool(entry.get("deleted")),
    )


def _sanitize_settings(raw: Any, strict: bool) -> Settings:
    defaults = default_settings()
    if not isinstance(raw, Mapping):
        if strict:
            raise StateValidationError("Invalid settings data", field="settings")
        logger.debug("settings_defaulted")
        return defaults

    start = from_canonical(raw.get("startDate"))
    if start is None:
        if strict:
            raise StateValidationError("Invalid settings.startDate", field="startDate")
        start = defaults.start_date

    end_raw = raw.get("endDate")
    end = from_canonical(end_raw)
    if end is None:
        if strict:
            raise StateValidationError("Invalid settings.endDate", field="endDate")
        end = defaults.end_date

    if start > end:
        if strict:
            raise StateValidationError("Invalid settings date range", field="endDate")
        end = start

    balance = defaults.starting_balance
    if "startingBalance" in raw:
        parsed = _number(raw.get("startingBalance"))
        if parsed is None:
            if strict:
                raise StateValidationError(
                    "Invalid settings.startingBalance", field="startingBalance"
                )
        else:
            balance = parsed

    return Settings(start_date=start, end_date=end, starting_balance=balance)


def _list_field(raw: Mapping[str, Any], key: str, strict: bool) -> list[Any]:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        if strict:
            raise StateValidationError(f"Invalid {key}; expected an array", field=key)
        logger.debug("list_defaulted", field=key)
        return []
    return list(value)


def _migrate_expense_streams(
    legacy: list[Any], settings: Settings, strict: bool
) -> list[OneOffTransaction]:
    """Convert legacy ``expenseStreams`` into recurring expense one-offs."""
    migrated: list[OneOffTransaction] = []
    for stream in legacy:
        if not isinstance(stream, Mapping):
            _reject(strict, "Invalid legacy expense stream")
            continue
        start_raw = stream.get("startDate")
        end_raw = stream.get("endDate")
        candidate = {
            **stream,
            "id": stream["id"] if isinstance(stream.get("id"), str) else new_id(),
            "type": TransactionType.EXPENSE.value,
            "recurring": True,
            "date": stream.get("onDate") if start_raw is None else start_raw,
            "startDate": settings.start_date if start_raw is None else start_raw,
            "endDate": settings.end_date if end_raw is None else end_raw,
        }
        entry = sanitize_one_off(candidate, strict)
        if entry is not None:
            migrated.append(entry)
    if migrated:
        logger.info("legacy_expense_streams_migrated", count=len(migrated))
    return migrated


def normalize_state(raw: Any, strict: bool = False) -> State:
    """Validate and normalize a raw state payload into a canonical :class:`State`.

    Non-strict normalization always returns a fully populated state; a
    payload that is not a mapping at all falls back to :func:`default_state`.
    Already-normalized input passes through unchanged.
    """
    if isinstance(raw, State):
        raw = raw.to_dict()
    if not isinstance(raw, Mapping):
        if strict:
            raise StateValidationError("Invalid state payload")
        logger.warning("state_payload_invalid", payload_type=type(raw).__name__)
        return default_state()

    settings = _sanitize_settings(raw.get("settings"), strict)

    one_offs = [
        entry
        for entry in (sanitize_one_off(item, strict) for item in _list_field(raw, "oneOffs", strict))
        if entry is not None
    ]
    streams = [
        stream
        for stream in (
            sanitize_stream(item, strict) for item in _list_field(raw, "incomeStreams", strict)
        )
        if stream is not None
    ]
    adjustments = [
        adj
        for adj in (
            sanitize_adjustment(item, strict) for item in _list_field(raw, "adjustments", strict)
        )
        if adj is not None
    ]
    overrides = [
        item
        for item in (
            sanitize_instance_override(raw_item, strict)
            for raw_item in _list_field(raw, "transactionOverrides", strict)
        )
        if item is not None
    ]

    legacy = raw.get("expenseStreams")
    if isinstance(legacy, (list, tuple)) and legacy:
        one_offs.extend(_migrate_expense_streams(list(legacy), settings, strict))

    return State(
        settings=settings,
        one_offs=one_offs,
        income_streams=streams,
        adjustments=adjustments,
        transaction_overrides=overrides,
    )


def clone_state_for_sandbox(source: Any) -> State:
    """Independent, sanitized copy of a state for scenario use."""
    return normalize_state(source, strict=False)


def _optional_money(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    number = _number(value)
    return round2(number) if number is not None else None


def _sanitize_global_tweak(raw: Any) -> GlobalTweak:
    raw = raw if isinstance(raw, Mapping) else {}
    last_edited = raw.get("lastEdited")
    return GlobalTweak(
        pct=clamp_percent(raw.get("pct"), *TWEAK_PCT_BOUNDS, fallback=0.0),
        delta=clamp_currency(raw.get("delta"), 0.0),
        last_edited=last_edited if last_edited in _GLOBAL_EDIT_MODES else "pct",
    )


def _sanitize_stream_tweak(raw: Any) -> StreamTweak:
    raw = raw if isinstance(raw, Mapping) else {}
    last_edited = raw.get("lastEdited")
    return StreamTweak(
        pct=clamp_percent(raw.get("pct"), *TWEAK_PCT_BOUNDS, fallback=0.0),
        delta=clamp_currency(raw.get("delta"), 0.0),
        effective=_optional_money(raw.get("effective")),
        weekly_target=_optional_money(raw.get("weeklyTarget")),
        last_edited=last_edited if last_edited in _STREAM_EDIT_MODES else "pct",
    )


def _sanitize_sale_entry(raw: Mapping[str, Any], fallback_start: date) -> SaleEntry:
    start = from_canonical(raw.get("startDate")) or fallback_start
    end = from_canonical(raw.get("endDate")) or start
    if start > end:
        end = start
    name = raw.get("name")
    return SaleEntry(
        id=raw["id"] if isinstance(raw.get("id"), str) else new_id(),
        name=name.strip()[:SALE_NAME_MAX_LENGTH] if isinstance(name, str) else "",
        start_date=start,
        end_date=end,
        pct=clamp_percent(raw.get("pct"), *SALE_PCT_BOUNDS, fallback=0.0),
        topup=clamp_currency(raw.get("topup"), 0.0),
        business_days_only=bool(raw.get("businessDaysOnly")),
        last_edited="topup" if raw.get("lastEdited") == "topup" else "pct",
    )


def sanitize_sale_config(raw: Any, window_start: date) -> SaleConfig:
    """Sanitize sale tweaks, lifting the legacy single-sale shape into ``entries``."""
    raw = raw if isinstance(raw, Mapping) else {}
    legacy_start = from_canonical(raw.get("startDate")) or window_start
    legacy_end = from_canonical(raw.get("endDate")) or legacy_start
    if legacy_start > legacy_end:
        legacy_end = legacy_start

    entries_raw = raw.get("entries")
    if isinstance(entries_raw, (list, tuple)):
        candidates: list[Any] = list(entries_raw)
    elif any(raw.get(key) for key in ("startDate", "endDate", "pct", "topup", "businessDaysOnly")):
        candidates = [
            {**raw, "startDate": legacy_start.isoformat(), "endDate": legacy_end.isoformat()}
        ]
    else:
        candidates = []

    entries = [
        _sanitize_sale_entry(item, legacy_start)
        for item in candidates
        if isinstance(item, Mapping)
    ]
    return SaleConfig(enabled=bool(raw.get("enabled")), entries=entries)


def sanitize_whatif_state(raw: Any, fallback_base: Any = None) -> WhatIfScenario:
    """Recover a What-If payload ``{base, tweaks}``; never raises.

    A missing or empty ``base`` falls back to a sanitized copy of
    ``fallback_base`` (or the default state). Stream tweaks are kept only
    for streams present in the base.
    """
    if isinstance(raw, WhatIfScenario):
        raw = raw.to_dict()
    fallback = clone_state_for_sandbox(fallback_base if fallback_base is not None else default_state())
    raw = raw if isinstance(raw, Mapping) else {}
    base_raw = raw.get("base")
    base = clone_state_for_sandbox(base_raw) if base_raw else fallback
    base_settings = base.settings or fallback.settings or default_settings()

    tweaks_raw = raw.get("tweaks")
    if isinstance(tweaks_raw, WhatIfTweaks):
        tweaks_raw = tweaks_raw.to_dict()
    tweaks_raw = tweaks_raw if isinstance(tweaks_raw, Mapping) else {}

    streams_raw = tweaks_raw.get("streams")
    streams_raw = streams_raw if isinstance(streams_raw, Mapping) else {}
    streams = {
        stream.id: _sanitize_stream_tweak(streams_raw.get(stream.id))
        for stream in base.income_streams
    }

    start = from_canonical(tweaks_raw.get("startDate")) or base_settings.start_date
    end = from_canonical(tweaks_raw.get("endDate")) or base_settings.end_date
    if start > end:
        end = start

    return WhatIfScenario(
        base=base,
        tweaks=WhatIfTweaks(
            start_date=start,
            end_date=end,
            global_tweak=_sanitize_global_tweak(tweaks_raw.get("global")),
            streams=streams,
            sale=sanitize_sale_config(tweaks_raw.get("sale"), start),
        ),
    )
