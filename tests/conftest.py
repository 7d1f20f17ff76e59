"""Pytest configuration and fixtures."""

import os
from typing import Any

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("FORECAST_HORIZON_DAYS", "365")

from cashflow_forecast.models import State  # noqa: E402
from cashflow_forecast.validation import normalize_state  # noqa: E402


def build_state(
    start: str = "2025-01-01",
    end: str = "2025-01-31",
    balance: float = 0,
    one_offs: list[dict[str, Any]] | None = None,
    streams: list[dict[str, Any]] | None = None,
    adjustments: list[dict[str, Any]] | None = None,
) -> State:
    """Normalize a raw payload built from the given pieces."""
    return normalize_state(
        {
            "settings": {"startDate": start, "endDate": end, "startingBalance": balance},
            "oneOffs": one_offs or [],
            "incomeStreams": streams or [],
            "adjustments": adjustments or [],
        },
        strict=True,
    )


@pytest.fixture
def make_state():
    """Factory for sanitized states."""
    return build_state


@pytest.fixture
def weekly_stream() -> dict[str, Any]:
    """Mondays-only income stream for January 2025."""
    return {
        "id": "salary",
        "name": "Payroll",
        "category": "Salary",
        "amount": 100,
        "frequency": "weekly",
        "dayOfWeek": [1],
        "startDate": "2025-01-01",
        "endDate": "2025-01-31",
    }


@pytest.fixture
def raw_state_payload() -> dict[str, Any]:
    """A persisted payload exercising every record type, including messy input."""
    return {
        "settings": {"startDate": "2025-01-01", "endDate": "2025-03-31", "startingBalance": "250"},
        "oneOffs": [
            {"id": "rent", "type": "expense", "name": "Rent", "amount": -1200, "date": "2025-01-05"},
            {"type": "income", "name": "Refund", "amount": 40, "date": "1/20/2025"},
            {
                "id": "gym",
                "type": "expense",
                "name": "Gym",
                "amount": 30,
                "recurring": True,
                "frequency": "monthly",
                "monthlyMode": "nth",
                "nthWeekNumber": 2,
                "nthWeekday": "mon",
                "startDate": "2025-01-01",
                "endDate": "2025-03-31",
                "steps": [
                    {"effectiveFrom": "2025-03-01", "amount": 35},
                    {"effectiveFrom": "2025-02-01", "amount": -32},
                    {"effectiveFrom": "garbage", "amount": 99},
                ],
            },
            {"id": "broken", "type": "expense", "amount": "lots", "date": "2025-01-02"},
        ],
        "incomeStreams": [
            {
                "id": "salary",
                "name": "Payroll",
                "amount": 1000,
                "frequency": "biweekly",
                "startDate": "2025-01-03",
                "endDate": "2025-03-31",
                "escalatorPct": 2,
            },
            {"id": "bonus", "amount": 500, "onDate": "2025-02-14"},
        ],
        "adjustments": [
            {"date": "2025-01-10", "amount": -25, "note": "bank fee"},
            {"date": "not-a-date", "amount": 5},
        ],
    }
