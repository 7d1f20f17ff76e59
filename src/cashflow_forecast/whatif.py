"""What-If scenario evaluation.

A scenario owns a sanitized copy of a base state plus tweaks. Evaluation
projects the live state untouched and the sandbox with stream-amount
overrides, then diffs the two results.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import date
from typing import Any

import structlog

from cashflow_forecast.config import get_settings
from cashflow_forecast.dates import days_between
from cashflow_forecast.models import (
    FirstNegativeComparison,
    GlobalTweak,
    IncomeStream,
    ProjectionResult,
    SaleConfig,
    ScenarioComparison,
    ScenarioEvaluation,
    State,
    StreamTweak,
    WhatIfScenario,
    WhatIfTweaks,
)
from cashflow_forecast.money import compute_effective_amount, round2
from cashflow_forecast.projection import ProjectionOverrides, ReplaceAmount, project
from cashflow_forecast.recurrence import estimate_occurrences_per_week
from cashflow_forecast.snapshots import load_whatif, save_whatif
from cashflow_forecast.validation import (
    clone_state_for_sandbox,
    default_settings,
    default_state,
    sanitize_whatif_state,
)

logger = structlog.get_logger(__name__)

ScenarioLoader = Callable[[State], Any]
ScenarioSaver = Callable[[WhatIfScenario], None]


def _resolve_stream_tweak(
    tweak: StreamTweak, base_after_global: float, occurrences: float
) -> float:
    if tweak.last_edited == "weekly" and tweak.weekly_target is not None and occurrences > 0:
        return round2(tweak.weekly_target / occurrences)
    if tweak.last_edited == "effective" and tweak.effective is not None:
        return round2(tweak.effective)
    return compute_effective_amount(base_after_global, tweak.pct, tweak.delta)


def evaluate_whatif_stream(
    stream: IncomeStream,
    tweak: StreamTweak,
    base_amount: float,
    global_tweak: GlobalTweak,
) -> float:
    """Per-occurrence amount for ``stream`` under the given tweaks.

    The global tweak applies first. A weekly target then wins over an
    absolute effective amount, which wins over the stream's pct/delta.
    """
    adjusted = compute_effective_amount(abs(base_amount or 0.0), global_tweak.pct, global_tweak.delta)
    return _resolve_stream_tweak(tweak, adjusted, estimate_occurrences_per_week(stream))


def build_whatif_overrides(state: State, tweaks: WhatIfTweaks) -> ProjectionOverrides:
    """Projection overrides that apply ``tweaks`` to every stream occurrence."""
    global_tweak = tweaks.global_tweak
    stream_info: dict[str, tuple[StreamTweak, float]] = {}
    for stream in state.income_streams:
        tweak = tweaks.streams.get(stream.id) or StreamTweak()
        stream_info[stream.id] = (tweak, estimate_occurrences_per_week(stream))

    def transform(stream: IncomeStream, base_amount: float, day: date) -> float:
        base_after_global = compute_effective_amount(
            abs(base_amount or 0.0), global_tweak.pct, global_tweak.delta
        )
        info = stream_info.get(stream.id)
        if info is None:
            return base_after_global
        tweak, occurrences = info
        return _resolve_stream_tweak(tweak, base_after_global, occurrences)

    sale = SaleConfig(
        enabled=tweaks.sale.enabled,
        entries=[replace(entry) for entry in tweaks.sale.entries],
    )
    return ProjectionOverrides(amount=ReplaceAmount(transform), sale=sale)


def _compare_first_negative(actual: date | None, scenario: date | None) -> FirstNegativeComparison:
    if actual is None and scenario is None:
        return FirstNegativeComparison(actual=None, scenario=None, delta_days=0, status="none")
    if scenario is None:
        return FirstNegativeComparison(actual=actual, scenario=None, delta_days=None, status="cleared")
    if actual is None:
        return FirstNegativeComparison(actual=None, scenario=scenario, delta_days=None, status="new")
    delta = days_between(actual, scenario)
    if delta == 0:
        status = "unchanged"
    elif delta > 0:
        status = "later"
    else:
        status = "sooner"
    return FirstNegativeComparison(actual=actual, scenario=scenario, delta_days=delta, status=status)


def compare_projections(actual: ProjectionResult, scenario: ProjectionResult) -> ScenarioComparison:
    """Scenario minus actual for the headline metrics."""
    return ScenarioComparison(
        end_balance=round2(scenario.end_balance - actual.end_balance),
        total_income=round2(scenario.total_income - actual.total_income),
        total_expenses=round2(scenario.total_expenses - actual.total_expenses),
        lowest_balance=round2(scenario.lowest_balance - actual.lowest_balance),
        peak_balance=round2(scenario.peak_balance - actual.peak_balance),
        negative_days=scenario.negative_days - actual.negative_days,
        first_negative=_compare_first_negative(
            actual.first_negative_date, scenario.first_negative_date
        ),
    )


def prepare_scenario(raw: Any, fallback_base: State | None = None) -> WhatIfScenario:
    return sanitize_whatif_state(raw, fallback_base if fallback_base is not None else default_state())


def create_scenario(base: State, tweaks: Any = None) -> WhatIfScenario:
    """New scenario owning a sanitized copy of ``base``."""
    return prepare_scenario({"base": base, "tweaks": tweaks or {}}, base)


def _build_scenario_state(scenario: WhatIfScenario) -> State:
    state = clone_state_for_sandbox(scenario.base)
    settings = state.settings or default_settings()
    state.settings = replace(
        settings,
        start_date=scenario.tweaks.start_date or settings.start_date,
        end_date=scenario.tweaks.end_date or settings.end_date,
    )
    return state


def evaluate_scenario(actual_state: State, scenario: Any) -> ScenarioEvaluation:
    """Project ``actual_state`` as-is and the scenario sandbox, then diff them."""
    prepared = prepare_scenario(scenario, actual_state)
    sandbox_state = _build_scenario_state(prepared)
    overrides = build_whatif_overrides(sandbox_state, prepared.tweaks)

    actual = project(actual_state)
    sandbox = project(sandbox_state, overrides)
    comparison = compare_projections(actual, sandbox)
    logger.info(
        "scenario_evaluated",
        end_balance_delta=comparison.end_balance,
        negative_days_delta=comparison.negative_days,
        first_negative=comparison.first_negative.status,
    )
    return ScenarioEvaluation(actual=actual, sandbox=sandbox, comparison=comparison)


def _load_from_settings(fallback_base: State) -> WhatIfScenario | None:
    path = get_settings().scenario_file
    if not path:
        return None
    return load_whatif(path, fallback_base)


def _save_to_settings(scenario: WhatIfScenario) -> None:
    path = get_settings().scenario_file
    if not path:
        logger.warning("scenario_save_skipped", reason="no scenario file configured")
        return
    save_whatif(path, scenario)


class WhatIfManager:
    """Holds the active scenario around injectable load/save hooks.

    Without hooks, scenarios are read from and written to the configured
    ``FORECAST_SCENARIO_FILE`` snapshot.
    """

    def __init__(
        self,
        loader: ScenarioLoader | None = None,
        saver: ScenarioSaver | None = None,
    ):
        self._loader = loader or _load_from_settings
        self._saver = saver or _save_to_settings
        self._scenario: WhatIfScenario | None = None
        self._fallback_base: State = default_state()

    def load(self, base_state: State | None = None) -> WhatIfScenario:
        self._fallback_base = clone_state_for_sandbox(base_state or default_state())
        raw = self._loader(self._fallback_base)
        self._scenario = prepare_scenario(raw, self._fallback_base)
        logger.debug("scenario_loaded", streams=len(self._scenario.base.income_streams))
        return self._scenario

    def get_scenario(self) -> WhatIfScenario:
        if self._scenario is None:
            self._scenario = create_scenario(self._fallback_base)
        return self._scenario

    def set_scenario(self, scenario: Any) -> WhatIfScenario:
        self._scenario = prepare_scenario(scenario, self._fallback_base)
        return self._scenario

    def save(self) -> None:
        if self._scenario is None:
            return
        self._saver(self._scenario)

    def evaluate(self, actual_state: State) -> ScenarioEvaluation:
        return evaluate_scenario(actual_state, self.get_scenario())
