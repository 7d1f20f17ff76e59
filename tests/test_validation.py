"""Tests for state and What-If sanitization."""

from datetime import date, timedelta

import pytest

from cashflow_forecast.config import get_settings
from cashflow_forecast.dates import today
from cashflow_forecast.models import (
    Frequency,
    MonthlyMode,
    State,
    Step,
    TransactionType,
    WhatIfScenario,
)
from cashflow_forecast.validation import (
    StateValidationError,
    clone_state_for_sandbox,
    default_state,
    normalize_state,
    sanitize_adjustment,
    sanitize_one_off,
    sanitize_steps,
    sanitize_stream,
    sanitize_whatif_state,
)


class TestNormalizeState:
    """Tests for whole-state normalization."""

    def test_non_mapping_returns_default_state(self):
        state = normalize_state("not a state")
        assert state.settings.start_date == today()
        assert state.settings.end_date - state.settings.start_date == timedelta(
            days=get_settings().horizon_days
        )
        assert state.one_offs == []
        assert state.income_streams == []
        assert state.adjustments == []

    def test_non_mapping_raises_when_strict(self):
        with pytest.raises(StateValidationError):
            normalize_state(["nope"], strict=True)

    def test_missing_arrays_become_empty(self):
        state = normalize_state({"settings": {"startDate": "2025-01-01", "endDate": "2025-01-31"}})
        assert state.one_offs == []
        assert state.income_streams == []
        assert state.adjustments == []
        assert state.settings.starting_balance == 0.0

    def test_inverted_settings_window_is_corrected(self):
        state = normalize_state({"settings": {"startDate": "2025-02-01", "endDate": "2025-01-01"}})
        assert state.settings.start_date == date(2025, 2, 1)
        assert state.settings.end_date == date(2025, 2, 1)

    def test_inverted_settings_window_raises_when_strict(self):
        with pytest.raises(StateValidationError) as exc_info:
            normalize_state(
                {"settings": {"startDate": "2025-02-01", "endDate": "2025-01-01"}}, strict=True
            )
        assert exc_info.value.field == "endDate"

    def test_non_finite_balance_defaults(self):
        raw = {"settings": {"startDate": "2025-01-01", "endDate": "2025-01-31", "startingBalance": "abc"}}
        assert normalize_state(raw).settings.starting_balance == 0.0
        with pytest.raises(StateValidationError):
            normalize_state(raw, strict=True)

    def test_wrong_list_type_raises_when_strict(self):
        raw = {"settings": {"startDate": "2025-01-01", "endDate": "2025-01-31"}, "oneOffs": "x"}
        assert normalize_state(raw).one_offs == []
        with pytest.raises(StateValidationError):
            normalize_state(raw, strict=True)

    def test_mixed_payload(self, raw_state_payload):
        """Messy records are repaired or dropped."""
        state = normalize_state(raw_state_payload)

        assert state.settings.starting_balance == 250.0
        assert [entry.name for entry in state.one_offs] == ["Rent", "Refund", "Gym"]

        rent, refund, gym = state.one_offs
        assert rent.amount == 1200.0
        assert rent.type is TransactionType.EXPENSE
        assert refund.id
        assert refund.date == date(2025, 1, 20)
        assert gym.monthly_mode is MonthlyMode.NTH
        assert gym.nth_week == "2"
        assert gym.nth_weekday == 1
        assert gym.steps == (Step(date(2025, 2, 1), 32.0), Step(date(2025, 3, 1), 35.0))

        salary, bonus = state.income_streams
        assert salary.day_of_week == (5,)
        assert bonus.frequency is Frequency.ONCE
        assert bonus.start_date == bonus.end_date == bonus.on_date == date(2025, 2, 14)

        assert len(state.adjustments) == 1
        assert state.adjustments[0].note == "bank fee"

    def test_idempotent(self, raw_state_payload):
        """Normalizing an already-normalized state changes nothing."""
        once = normalize_state(raw_state_payload)
        assert normalize_state(once) == once
        assert normalize_state(once.to_dict()) == once
        assert normalize_state(once.to_dict(), strict=True) == once

    def test_accepts_state_instance(self, make_state):
        state = make_state(balance=10)
        assert isinstance(normalize_state(state), State)
        assert normalize_state(state).settings.starting_balance == 10.0

    def test_legacy_expense_streams_are_migrated(self):
        state = normalize_state(
            {
                "settings": {"startDate": "2025-01-01", "endDate": "2025-06-30"},
                "expenseStreams": [
                    {"id": "phone", "name": "Phone", "amount": 60, "frequency": "monthly", "dayOfMonth": 12}
                ],
            }
        )
        (phone,) = state.one_offs
        assert phone.id == "phone"
        assert phone.type is TransactionType.EXPENSE
        assert phone.recurring is True
        assert phone.start_date == date(2025, 1, 1)
        assert phone.end_date == date(2025, 6, 30)
        assert phone.day_of_month == 12

    def test_legacy_expense_stream_keeps_date_object_window(self):
        state = normalize_state(
            {
                "settings": {"startDate": date(2025, 1, 1), "endDate": date(2025, 12, 31)},
                "expenseStreams": [
                    {
                        "id": "gym",
                        "amount": 40,
                        "frequency": "monthly",
                        "startDate": date(2025, 3, 1),
                        "endDate": date(2025, 8, 31),
                    }
                ],
            }
        )
        (gym,) = state.one_offs
        assert gym.start_date == date(2025, 3, 1)
        assert gym.end_date == date(2025, 8, 31)
        assert gym.day_of_month == 1

    def test_default_state_has_no_entries(self):
        state = default_state()
        assert state.settings.start_date <= state.settings.end_date
        assert state.one_offs == []


class TestRecordSanitizers:
    """Tests for per-record sanitizers."""

    def test_bad_amount_is_dropped(self):
        assert sanitize_one_off({"amount": "lots", "date": "2025-01-01"}) is None
        with pytest.raises(StateValidationError) as exc_info:
            sanitize_one_off({"amount": "lots", "date": "2025-01-01"}, strict=True)
        assert exc_info.value.field == "amount"

    def test_single_requires_a_date(self):
        assert sanitize_one_off({"amount": 5}) is None

    def test_type_defaults_to_expense(self):
        entry = sanitize_one_off({"amount": 5, "date": "2025-01-01", "type": "bogus"})
        assert entry.type is TransactionType.EXPENSE
        assert entry.steps == ()
        assert entry.escalator_pct == 0.0

    def test_recurring_requires_frequency(self):
        raw = {"amount": 5, "recurring": True, "startDate": "2025-01-01", "endDate": "2025-02-01"}
        assert sanitize_one_off(raw) is None
        assert sanitize_one_off({**raw, "frequency": "fortnightly"}) is None

    def test_date_objects_are_accepted_for_windows(self):
        """Test that windows given as date objects are kept, not dropped."""
        tx = sanitize_one_off(
            {
                "amount": 75,
                "recurring": True,
                "frequency": "monthly",
                "dayOfMonth": 15,
                "startDate": date(2025, 1, 1),
                "endDate": date(2025, 6, 30),
            }
        )
        stream = sanitize_stream(
            {
                "amount": 200,
                "frequency": "weekly",
                "startDate": date(2025, 1, 3),
                "endDate": date(2025, 1, 31),
            }
        )

        assert (tx.start_date, tx.end_date) == (date(2025, 1, 1), date(2025, 6, 30))
        assert (stream.start_date, stream.end_date) == (date(2025, 1, 3), date(2025, 1, 31))
        assert stream.day_of_week == (5,)

    def test_unparseable_end_date_is_not_replaced(self):
        raw = {
            "amount": 5,
            "recurring": True,
            "frequency": "daily",
            "startDate": "2025-01-01",
            "endDate": 20250110,
            "date": "2025-01-10",
        }
        assert sanitize_one_off(raw) is None

    def test_recurring_end_falls_back_to_date(self):
        entry = sanitize_one_off(
            {
                "amount": 5,
                "recurring": True,
                "frequency": "daily",
                "startDate": "2025-01-01",
                "date": "2025-01-10",
            }
        )
        assert entry.end_date == date(2025, 1, 10)

    def test_recurring_inverted_window_clamps_end(self):
        raw = {
            "amount": 5,
            "recurring": True,
            "frequency": "weekly",
            "startDate": "2025-01-06",
            "endDate": "2025-01-01",
        }
        entry = sanitize_one_off(raw)
        assert entry.end_date == date(2025, 1, 6)
        assert entry.day_of_week == (1,)
        with pytest.raises(StateValidationError):
            sanitize_one_off(raw, strict=True)

    def test_monthly_day_defaults_and_clamps(self):
        base = {
            "amount": 5,
            "recurring": True,
            "frequency": "monthly",
            "startDate": "2025-01-15",
            "endDate": "2025-12-31",
        }
        assert sanitize_one_off(base).day_of_month == 15
        assert sanitize_one_off({**base, "dayOfMonth": 40}).day_of_month == 31
        assert sanitize_one_off({**base, "dayOfMonth": -3}).day_of_month == 1

    def test_daily_skip_weekends_only_for_daily(self):
        base = {"amount": 5, "startDate": "2025-01-01", "endDate": "2025-01-31", "skipWeekends": True}
        assert sanitize_stream({**base, "frequency": "daily"}).skip_weekends is True
        assert sanitize_stream({**base, "frequency": "weekly"}).skip_weekends is False

    def test_stream_inverted_window_is_swapped(self):
        stream = sanitize_stream(
            {"amount": 5, "frequency": "daily", "startDate": "2025-03-01", "endDate": "2025-01-01"}
        )
        assert stream.start_date == date(2025, 1, 1)
        assert stream.end_date == date(2025, 3, 1)

    def test_stream_without_window_is_dropped(self):
        assert sanitize_stream({"amount": 5, "frequency": "daily"}) is None

    def test_sanitize_steps(self):
        steps = sanitize_steps(
            [
                {"effectiveFrom": "2025-03-01", "amount": 3},
                {"effectiveFrom": "2025-01-01", "amount": -1},
                {"effectiveFrom": "bad", "amount": 2},
                {"effectiveFrom": "2025-02-01", "amount": "x"},
                "junk",
            ]
        )
        assert steps == (Step(date(2025, 1, 1), 1.0), Step(date(2025, 3, 1), 3.0))
        assert sanitize_steps(None) == ()

    def test_sanitize_adjustment(self):
        adj = sanitize_adjustment({"date": "2025-01-02", "amount": -12.5})
        assert adj.amount == -12.5
        assert adj.note == ""
        assert sanitize_adjustment({"date": "2025-01-02", "amount": float("nan")}) is None


class TestSandboxAndWhatIf:
    """Tests for sandbox cloning and What-If payload recovery."""

    def test_clone_does_not_alias(self, make_state, weekly_stream):
        original = make_state(streams=[weekly_stream])
        clone = clone_state_for_sandbox(original)
        assert clone == original

        clone.settings.starting_balance = 999.0
        clone.income_streams.clear()
        assert original.settings.starting_balance == 0.0
        assert len(original.income_streams) == 1

    def test_missing_base_uses_fallback(self, make_state, weekly_stream):
        base = make_state(streams=[weekly_stream])
        scenario = sanitize_whatif_state({}, base)
        assert isinstance(scenario, WhatIfScenario)
        assert scenario.base == base
        assert scenario.base is not base
        assert set(scenario.tweaks.streams) == {"salary"}
        assert scenario.tweaks.start_date == date(2025, 1, 1)
        assert scenario.tweaks.end_date == date(2025, 1, 31)

    def test_tweaks_are_clamped(self, make_state, weekly_stream):
        base = make_state(streams=[weekly_stream])
        scenario = sanitize_whatif_state(
            {
                "tweaks": {
                    "global": {"pct": 9, "delta": 10.555, "lastEdited": "weekly"},
                    "streams": {
                        "salary": {"pct": -4, "effective": "12.345", "lastEdited": "bogus"},
                        "ghost": {"pct": 0.5},
                    },
                    "startDate": "2025-01-20",
                    "endDate": "2025-01-10",
                }
            },
            base,
        )
        tweaks = scenario.tweaks
        assert tweaks.global_tweak.pct == 2.0
        assert tweaks.global_tweak.delta == 10.56
        assert tweaks.global_tweak.last_edited == "pct"
        assert tweaks.streams["salary"].pct == -1.0
        assert tweaks.streams["salary"].effective == 12.35
        assert tweaks.streams["salary"].weekly_target is None
        assert tweaks.streams["salary"].last_edited == "pct"
        assert "ghost" not in tweaks.streams
        assert tweaks.start_date == date(2025, 1, 20)
        assert tweaks.end_date == date(2025, 1, 20)

    def test_legacy_single_sale_is_lifted(self, make_state):
        base = make_state()
        scenario = sanitize_whatif_state(
            {
                "tweaks": {
                    "sale": {
                        "enabled": True,
                        "startDate": "2025-01-10",
                        "endDate": "2025-01-12",
                        "pct": 8,
                        "businessDaysOnly": 1,
                    }
                }
            },
            base,
        )
        sale = scenario.tweaks.sale
        assert sale.enabled is True
        (entry,) = sale.entries
        assert entry.start_date == date(2025, 1, 10)
        assert entry.end_date == date(2025, 1, 12)
        assert entry.pct == 5.0
        assert entry.business_days_only is True
        assert entry.id

    def test_sale_entries_are_sanitized(self, make_state):
        scenario = sanitize_whatif_state(
            {
                "tweaks": {
                    "sale": {
                        "enabled": True,
                        "entries": [
                            {
                                "id": "spring",
                                "name": "  " + "x" * 200,
                                "startDate": "2025-01-15",
                                "endDate": "2025-01-01",
                                "topup": "20.005",
                                "lastEdited": "topup",
                            },
                            "junk",
                        ],
                    }
                }
            },
            make_state(),
        )
        (entry,) = scenario.tweaks.sale.entries
        assert entry.id == "spring"
        assert len(entry.name) == 120
        assert entry.end_date == date(2025, 1, 15)
        assert entry.topup == 20.01
        assert entry.last_edited == "topup"

    def test_whatif_round_trip_is_stable(self, make_state, weekly_stream):
        base = make_state(streams=[weekly_stream])
        scenario = sanitize_whatif_state(
            {"tweaks": {"streams": {"salary": {"weeklyTarget": 700, "lastEdited": "weekly"}}}}, base
        )
        assert sanitize_whatif_state(scenario.to_dict(), base) == scenario
