"""Command-line entry point: project a state snapshot, optionally against a scenario."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence

import structlog

from cashflow_forecast.config import configure_logging, get_settings
from cashflow_forecast.dates import to_canonical
from cashflow_forecast.models import ProjectionResult, ScenarioComparison, State
from cashflow_forecast.money import format_money
from cashflow_forecast.projection import ProjectionError, project
from cashflow_forecast.snapshots import SnapshotError, load_state, load_whatif
from cashflow_forecast.validation import StateValidationError
from cashflow_forecast.whatif import evaluate_scenario

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cashflow-forecast",
        description="Day-by-day cash-flow forecast from a state snapshot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s state.json                       # Summary of the projection
  %(prog)s state.yaml --json                # Full projection as JSON
  %(prog)s state.json --scenario whatif.json
  %(prog)s state.json --strict              # Fail on malformed records
        """,
    )
    parser.add_argument(
        "state",
        nargs="?",
        default=None,
        help="State snapshot (.json or .yaml; default: FORECAST_STATE_FILE)",
    )
    parser.add_argument(
        "--scenario",
        default=None,
        help="What-If snapshot to compare against (default: FORECAST_SCENARIO_FILE)",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Reject malformed records instead of dropping them",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full result as JSON",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Override LOG_LEVEL",
    )
    return parser


def _signed_money(value: float) -> str:
    return f"+{format_money(value)}" if value > 0 else format_money(value)


def format_summary(state: State, result: ProjectionResult) -> str:
    settings = state.settings
    first_negative = (
        to_canonical(result.first_negative_date) if result.first_negative_date else "none"
    )
    lines = [
        f"Window:           {to_canonical(settings.start_date)} → "
        f"{to_canonical(settings.end_date)} ({len(result.calendar)} days)",
        f"Starting balance: {format_money(settings.starting_balance)}",
        f"Total income:     {format_money(result.total_income)}",
        f"Total expenses:   {format_money(result.total_expenses)}",
        f"End balance:      {format_money(result.end_balance)}",
        f"Lowest balance:   {format_money(result.lowest_balance)} "
        f"on {to_canonical(result.lowest_balance_date)}",
        f"Peak balance:     {format_money(result.peak_balance)} "
        f"on {to_canonical(result.peak_balance_date)}",
        f"First negative:   {first_negative}",
        f"Negative days:    {result.negative_days}",
        f"Weekly income:    {format_money(result.projected_weekly_income)}",
    ]
    return "\n".join(lines)


def format_comparison(comparison: ScenarioComparison) -> str:
    first = comparison.first_negative
    first_line = first.status
    if first.delta_days:
        first_line = f"{first.status} ({first.delta_days:+d} days)"
    lines = [
        "Scenario vs actual:",
        f"  End balance:    {_signed_money(comparison.end_balance)}",
        f"  Total income:   {_signed_money(comparison.total_income)}",
        f"  Total expenses: {_signed_money(comparison.total_expenses)}",
        f"  Lowest balance: {_signed_money(comparison.lowest_balance)}",
        f"  Peak balance:   {_signed_money(comparison.peak_balance)}",
        f"  Negative days:  {comparison.negative_days:+d}",
        f"  First negative: {first_line}",
    ]
    return "\n".join(lines)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the forecast CLI; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(level=args.log_level)
    settings = get_settings()
    state_path = args.state or settings.state_file
    scenario_path = args.scenario or settings.scenario_file

    try:
        state = load_state(state_path, strict=args.strict)
        if scenario_path:
            scenario = load_whatif(scenario_path, state)
            evaluation = evaluate_scenario(state, scenario)
            if args.json:
                print(json.dumps(evaluation.to_dict(), indent=2, ensure_ascii=False))
            else:
                print(format_summary(state, evaluation.actual))
                print()
                print(format_comparison(evaluation.comparison))
            return 0

        result = project(state)
    except (SnapshotError, StateValidationError, ProjectionError) as exc:
        logger.error("forecast_failed", error=str(exc), state_file=str(state_path))
        return 1

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        print(format_summary(state, result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
