"""Cash-flow forecast - day-by-day balance projection with What-If scenarios."""

__version__ = "0.1.0"

from cashflow_forecast.config import configure_logging, get_settings
from cashflow_forecast.instances import (
    delete_instance,
    expand_state,
    master_table,
    revert_override,
    save_override,
)
from cashflow_forecast.models import (
    Adjustment,
    DayRow,
    Frequency,
    IncomeStream,
    InstanceOverride,
    OneOffTransaction,
    ProjectionResult,
    ScenarioComparison,
    ScenarioEvaluation,
    Settings,
    State,
    TransactionInstance,
    TransactionType,
    WhatIfScenario,
)
from cashflow_forecast.projection import (
    ProjectionError,
    ProjectionOverrides,
    ReplaceAmount,
    ScaleAmount,
    project,
)
from cashflow_forecast.snapshots import SnapshotError, load_state, load_whatif, save_state, save_whatif
from cashflow_forecast.validation import StateValidationError, normalize_state, sanitize_whatif_state
from cashflow_forecast.whatif import WhatIfManager, create_scenario, evaluate_scenario

__all__ = [
    # Version
    "__version__",
    # Model
    "Adjustment",
    "DayRow",
    "Frequency",
    "IncomeStream",
    "InstanceOverride",
    "OneOffTransaction",
    "ProjectionResult",
    "ScenarioComparison",
    "ScenarioEvaluation",
    "Settings",
    "State",
    "TransactionInstance",
    "TransactionType",
    "WhatIfScenario",
    # Validation
    "StateValidationError",
    "normalize_state",
    "sanitize_whatif_state",
    # Projection
    "ProjectionError",
    "ProjectionOverrides",
    "ReplaceAmount",
    "ScaleAmount",
    "project",
    # Ledger
    "delete_instance",
    "expand_state",
    "master_table",
    "revert_override",
    "save_override",
    # What-If
    "WhatIfManager",
    "create_scenario",
    "evaluate_scenario",
    # Snapshots
    "SnapshotError",
    "load_state",
    "load_whatif",
    "save_state",
    "save_whatif",
    # Config
    "get_settings",
    "configure_logging",
]
