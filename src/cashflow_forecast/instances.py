"""Transaction ledger: recurring entries expanded into dated instances.

Each one-off and income stream expands into one :class:`TransactionInstance`
per firing inside the state's window. An :class:`InstanceOverride` edits or
removes a single instance without touching its parent rule. Overrides shape
the ledger only; :func:`cashflow_forecast.projection.project` still works
from the parent rules.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import date

import structlog

from cashflow_forecast.amounts import resolve_amount
from cashflow_forecast.models import (
    IncomeStream,
    InstanceOverride,
    RecurringEntry,
    State,
    TransactionInstance,
    TransactionType,
)
from cashflow_forecast.money import round2
from cashflow_forecast.recurrence import expand_occurrences, is_recurring
from cashflow_forecast.validation import new_id, sanitize_instance_override

logger = structlog.get_logger(__name__)


def expand_entry(entry: RecurringEntry, start: date, end: date) -> list[TransactionInstance]:
    """One instance per firing of ``entry`` in ``[start, end]``.

    Amounts are the ones the projection applies over the same window: the
    step in force, escalated from the previous in-window occurrence.
    """
    if isinstance(entry, IncomeStream):
        kind, tx_type = "incomeStream", TransactionType.INCOME
    else:
        if entry.is_archived_receivable:
            return []
        kind, tx_type = "oneOff", entry.type

    recurring = is_recurring(entry)
    instances: list[TransactionInstance] = []
    previous: date | None = None
    for day in expand_occurrences(entry, start, end):
        amount = resolve_amount(entry, day, previous) if recurring else abs(entry.amount or 0.0)
        previous = day
        if not amount:
            continue
        instances.append(
            TransactionInstance(
                parent_id=entry.id,
                parent_kind=kind,
                date=day,
                type=tx_type,
                amount=round2(abs(amount)),
                name=entry.name,
                category=entry.category,
                recurring=recurring,
            )
        )
    return instances


def expand_state(state: State) -> list[TransactionInstance]:
    """Expand every one-off, then every stream, over the state's window."""
    settings = state.settings
    if settings is None:
        return []
    instances: list[TransactionInstance] = []
    for entry in [*state.one_offs, *state.income_streams]:
        instances.extend(expand_entry(entry, settings.start_date, settings.end_date))
    return instances


def apply_overrides(
    instances: Sequence[TransactionInstance], overrides: Sequence[InstanceOverride]
) -> list[TransactionInstance]:
    """Apply per-instance overrides; the last override for an instance wins."""
    by_key = {override.key: override for override in overrides}
    result: list[TransactionInstance] = []
    for instance in instances:
        override = by_key.get((instance.parent_id, instance.date))
        if override is None:
            result.append(instance)
            continue
        if override.deleted:
            continue
        result.append(
            replace(
                instance,
                amount=instance.amount if override.amount is None else override.amount,
                name=instance.name if override.name is None else override.name,
                category=instance.category if override.category is None else override.category,
                override_id=override.id,
            )
        )
    return result


def master_table(state: State) -> list[TransactionInstance]:
    """Expanded ledger with the state's overrides applied, ordered by date."""
    table = apply_overrides(expand_state(state), state.transaction_overrides)
    return sorted(table, key=lambda instance: instance.date)


def _upsert(
    overrides: Sequence[InstanceOverride], payload: dict
) -> list[InstanceOverride]:
    override = sanitize_instance_override(payload, strict=True)
    result = [item for item in overrides if item.key != override.key]
    result.append(override)
    return result


def _existing_id(
    overrides: Sequence[InstanceOverride], parent_id: str, instance_date: date
) -> str:
    for item in overrides:
        if item.key == (parent_id, instance_date):
            return item.id
    return new_id()


def save_override(
    overrides: Sequence[InstanceOverride],
    parent_id: str,
    instance_date: date,
    amount: float | None = None,
    name: str | None = None,
    category: str | None = None,
) -> list[InstanceOverride]:
    """Record an edit of one instance, replacing any earlier override for it.

    Raises:
        StateValidationError: If ``parent_id`` or ``instance_date`` is invalid.
    """
    modifications = {"amount": amount, "name": name, "category": category}
    payload = {
        "id": _existing_id(overrides, parent_id, instance_date),
        "parentId": parent_id,
        "instanceDate": instance_date,
        "deleted": False,
        "modifications": {key: value for key, value in modifications.items() if value is not None},
    }
    result = _upsert(overrides, payload)
    logger.debug("instance_override_saved", parent_id=parent_id, instance_date=str(instance_date))
    return result


def delete_instance(
    overrides: Sequence[InstanceOverride], parent_id: str, instance_date: date
) -> list[InstanceOverride]:
    """Hide one instance from the ledger, replacing any earlier override for it."""
    payload = {
        "id": _existing_id(overrides, parent_id, instance_date),
        "parentId": parent_id,
        "instanceDate": instance_date,
        "deleted": True,
    }
    result = _upsert(overrides, payload)
    logger.debug("instance_deleted", parent_id=parent_id, instance_date=str(instance_date))
    return result


def revert_override(
    overrides: Sequence[InstanceOverride], override_id: str
) -> list[InstanceOverride]:
    return [item for item in overrides if item.id != override_id]
