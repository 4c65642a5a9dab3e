"""
Shared fixtures: an in-memory store, a weekend-only engine and one account.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest
from projectionlab import (
    BankAccount,
    CalendarPolicy,
    Certainty,
    Direction,
    EngineConfig,
    Frequency,
    ProjectionEngine,
    ProjectionEvent,
    ProjectionStore,
    RecurringRule,
)

# Monday
DAY0 = date(2026, 1, 5)


def day(n: int) -> date:
    """Day `n` counted from DAY0."""
    return DAY0 + timedelta(days=n)


def make_rule(**overrides) -> RecurringRule:
    fields = dict(
        name="Groceries",
        value=Decimal("100.00"),
        direction=Direction.EXPENSE,
        certainty=Certainty.CERTAIN,
        start_date=DAY0,
        end_date=day(27),
        frequency=Frequency.WEEKLY,
        bank_account_id="main",
    )
    fields.update(overrides)
    return RecurringRule(**fields)


def make_event(on: date, value: str = "100.00", **overrides) -> ProjectionEvent:
    fields = dict(
        name="One-off",
        value=Decimal(value),
        direction=Direction.EXPENSE,
        certainty=Certainty.CERTAIN,
        date=on,
        bank_account_id="main",
    )
    fields.update(overrides)
    return ProjectionEvent(**fields)


def rule_definition(**overrides) -> dict:
    definition = {
        "name": "Groceries",
        "value": "100.00",
        "direction": "EXPENSE",
        "certainty": "CERTAIN",
        "frequency": "WEEKLY",
        "start_date": DAY0.isoformat(),
        "end_date": day(27).isoformat(),
        "bank_account_id": "main",
    }
    definition.update(overrides)
    return definition


@pytest.fixture
def account() -> BankAccount:
    return BankAccount(
        id="main",
        name="Current account",
        initial_balance=Decimal("1000.00"),
        initial_balance_date=DAY0,
    )


@pytest.fixture
def store():
    store = ProjectionStore().initialize()
    yield store
    store.close()


@pytest.fixture
def engine(store) -> ProjectionEngine:
    engine = ProjectionEngine(store, EngineConfig(), calendar=CalendarPolicy())
    engine.add_account("main", "Current account", "1000.00", DAY0)
    return engine
