"""
Record types for ProjectionLab.

All records are dataclasses. Events and occurrences are frozen; rules and
scenario sets are mutable because the engine edits them in place before
writing them back through the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Literal

from .kinds import Certainty, Direction, Frequency


@dataclass
class BankAccount:
    """
    Account scope for rules, events and balances.

    Attributes:
        id: Account identifier
        name: Display name
        initial_balance: Opening balance before any event on `initial_balance_date`
        initial_balance_date: Effective date of the opening balance
        currency: Currency code used to quantize amounts (default: 'GBP')
    """

    id: str
    name: str
    initial_balance: Decimal
    initial_balance_date: date
    currency: str = "GBP"


@dataclass
class RecurringRule:
    """
    Template for a repeating cash flow.

    Attributes:
        name: Label copied onto every generated event
        value: Amount per occurrence (strictly positive)
        direction: EXPENSE or INCOMING
        certainty: Confidence tag copied onto generated events
        start_date: First scheduled occurrence
        end_date: Inclusive end of the active window (strictly after start_date)
        frequency: Recurrence cadence
        bank_account_id: Account the rule applies to
        counterparty: Who is paid, or who pays
        description: Free text
        decision_path_id: Optional decision path tag
        base_rule_id: Root of the revision chain this rule belongs to (None for roots)
        is_base_rule: True for a chain root or a standalone rule
        id: Assigned by the store on insert
    """

    name: str
    value: Decimal
    direction: Direction
    certainty: Certainty
    start_date: date
    end_date: date
    frequency: Frequency
    bank_account_id: str
    counterparty: str | None = None
    description: str | None = None
    decision_path_id: str | None = None
    base_rule_id: int | None = None
    is_base_rule: bool = True
    id: int | None = None

    @property
    def chain_root_id(self) -> int | None:
        """Id of the revision chain this rule belongs to."""
        return self.base_rule_id if self.base_rule_id is not None else self.id

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def copy(self, **changes: Any) -> RecurringRule:
        return replace(self, **changes)


@dataclass(frozen=True)
class ProjectionEvent:
    """
    One concrete, dated expected cash flow.

    `recurring_rule_id` is None for one-off events.
    """

    name: str
    value: Decimal
    direction: Direction
    certainty: Certainty
    date: date
    bank_account_id: str
    decision_path_id: str | None = None
    recurring_rule_id: int | None = None
    counterparty: str | None = None
    description: str | None = None
    id: int | None = None

    @property
    def signed_value(self) -> Decimal:
        return self.value * self.direction.sign

    @property
    def is_one_off(self) -> bool:
        return self.recurring_rule_id is None


@dataclass(frozen=True)
class Occurrence:
    """
    One expansion step of a recurring rule.

    Attributes:
        scheduled_date: Date produced by calendar stepping
        date: Payment date after working-day adjustment
    """

    scheduled_date: date
    date: date

    @property
    def is_adjusted(self) -> bool:
        return self.date != self.scheduled_date


@dataclass(frozen=True)
class DecisionPath:
    """A named hypothetical choice that rules and events can be tagged with."""

    id: str
    name: str
    description: str | None = None


@dataclass
class ScenarioSet:
    """
    Saved combination of decision-path flags.

    Paths absent from `flags` are treated as enabled when the scenario is applied.
    """

    id: str
    name: str
    flags: dict[str, bool] = field(default_factory=dict)
    is_default: bool = False
    description: str | None = None


@dataclass(frozen=True)
class DailyBalance:
    """One row of a balance series for a (date, account) pair."""

    date: date
    bank_account_id: str
    expected_balance: Decimal
    actual_balance: Decimal | None = None
    event_count: int = 0

    @property
    def effective_balance(self) -> Decimal:
        """Value carried into the next day."""
        return self.actual_balance if self.actual_balance is not None else self.expected_balance


@dataclass(frozen=True)
class Anchor:
    """
    Known balance at a known date.

    `balance` is the value *before* folding the events of `fold_from`; the
    cascade starts its running total there.

    Attributes:
        date: Day the balance is known for
        balance: The known balance
        source: Where the anchor came from
    """

    date: date
    balance: Decimal
    source: Literal["initial", "actual", "zero_fill"]

    @property
    def fold_from(self) -> date:
        """First day whose events are folded on top of `balance`."""
        if self.source == "initial":
            return self.date
        return self.date + timedelta(days=1)
