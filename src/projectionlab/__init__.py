"""
ProjectionLab - Daily Cash-Flow Projection for Bank Accounts

ProjectionLab turns recurring rules and one-off events into a day-by-day
expected balance for each bank account, and lets you compare "what if"
scenarios by switching decision paths on and off.

Key Features:
- **Recurring Rules**: Daily to annual schedules with month-end clamping
- **Working Days**: Incoming payments roll to the next working day
- **Revisions**: Change a rule's value from a future date without losing history
- **Scenarios**: Tag rules and events with decision paths and toggle them
- **Actual Balances**: Confirmed balances re-anchor the projection from the next day

Architecture Overview:
- **core**: Pure components (calendar, expansion, revisions, overlay, cascade)
- **ProjectionStore**: SQLite persistence with atomic transactions
- **ProjectionEngine**: Validates input, materializes events, recalculates balances

Quick Start:
    ```python
    from datetime import date
    from projectionlab import ProjectionEngine, ProjectionStore

    engine = ProjectionEngine(ProjectionStore().initialize())
    engine.add_account("main", "Current account", "1000.00", date(2026, 1, 5))
    engine.expand_rule({
        "name": "Groceries", "value": "100", "direction": "EXPENSE",
        "certainty": "CERTAIN", "frequency": "WEEKLY",
        "start_date": "2026-01-05", "end_date": "2026-02-01",
        "bank_account_id": "main",
    })
    series = engine.compute_daily_balances("main", date(2026, 1, 5), date(2026, 2, 1))
    series.to_frame()
    ```
"""

# Version information
__version__ = "0.1.0"
__author__ = "ProjectionLab Team"
__description__ = "Daily cash-flow projection with recurring rules and scenarios"

from .core import (
    UK_BANK_HOLIDAYS,
    BalanceCascade,
    BalanceSeries,
    BankAccount,
    CalendarPolicy,
    Certainty,
    ConfigError,
    ConsistencyError,
    DailyBalance,
    DecisionPath,
    Direction,
    EngineConfig,
    FileHolidayProvider,
    Frequency,
    HolidayDataUnavailable,
    HolidayProvider,
    NotFoundError,
    Occurrence,
    ProjectionError,
    ProjectionEvent,
    RecurringRule,
    RevisionResolver,
    RuleExpander,
    ScenarioSet,
    StaticHolidayProvider,
    ValidationError,
    load_config,
)
from .engine import ExpansionResult, ProjectionEngine, RevisionResult
from .store import ProjectionStore

# Define what gets imported with "from projectionlab import *"
__all__ = [
    # Boundary
    "ProjectionEngine",
    "ProjectionStore",
    "ExpansionResult",
    "RevisionResult",
    # Records
    "BankAccount",
    "RecurringRule",
    "ProjectionEvent",
    "Occurrence",
    "DecisionPath",
    "ScenarioSet",
    "DailyBalance",
    "BalanceSeries",
    # Kinds
    "Direction",
    "Certainty",
    "Frequency",
    # Components
    "CalendarPolicy",
    "HolidayProvider",
    "StaticHolidayProvider",
    "FileHolidayProvider",
    "UK_BANK_HOLIDAYS",
    "RuleExpander",
    "RevisionResolver",
    "BalanceCascade",
    # Configuration
    "EngineConfig",
    "load_config",
    # Errors
    "ProjectionError",
    "ValidationError",
    "NotFoundError",
    "ConsistencyError",
    "ConfigError",
    "HolidayDataUnavailable",
]
