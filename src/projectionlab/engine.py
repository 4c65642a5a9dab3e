"""
ProjectionEngine: the boundary that ties validation, expansion, revisions,
scenario overlays and the balance cascade to the store.

Every mutating operation validates its input first, then performs all of its
writes (including the balance recalculation it triggers) inside one store
transaction, so a failure at any point leaves nothing behind.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from .core.calendar import CalendarPolicy, FileHolidayProvider, StaticHolidayProvider
from .core.cascade import BalanceCascade, BalanceSeries, resolve_anchor
from .core.config import EngineConfig
from .core.currency import get_currency
from .core.errors import NotFoundError, ValidationError
from .core.expansion import RuleExpander
from .core.models import (
    BankAccount,
    DecisionPath,
    Occurrence,
    ProjectionEvent,
    RecurringRule,
    ScenarioSet,
)
from .core.overlay import ScenarioState, build_scenario_state
from .core.revisions import RevisionResolver, chain_span
from .core.validation import (
    apply_rule_changes,
    parse_date,
    parse_event_definition,
    parse_money,
    parse_rule_definition,
    require_text,
    validate_range,
)
from .store import ProjectionStore

logger = logging.getLogger(__name__)

CHAIN_LOCKED_FIELDS = frozenset({"start_date", "end_date", "bank_account_id"})


@dataclass(frozen=True)
class ExpansionResult:
    """Outcome of creating or editing a recurring rule."""

    rule_id: int
    generated_event_count: int


@dataclass(frozen=True)
class RevisionResult:
    """
    Outcome of revising a recurring rule.

    Attributes:
        new_rule_id: Id of the stored revision
        regenerated_counts: Events generated per rule id (truncated base and revision)
    """

    new_rule_id: int
    regenerated_counts: dict[int, int]


class ProjectionEngine:
    """
    Cash-flow projection engine over a ProjectionStore.

    Args:
        store: Initialized store
        config: Engine settings (defaults to EngineConfig())
        calendar: Working-day policy; built from the config's holidays when omitted

    Example:
        ```python
        store = ProjectionStore().initialize()
        engine = ProjectionEngine(store)
        engine.add_account("main", "Current account", "1000", date(2026, 1, 5))
        engine.expand_rule({
            "name": "Rent", "value": "100", "direction": "EXPENSE",
            "certainty": "CERTAIN", "frequency": "WEEKLY",
            "start_date": "2026-01-05", "end_date": "2026-02-01",
            "bank_account_id": "main",
        })
        series = engine.compute_daily_balances("main", date(2026, 1, 5), date(2026, 2, 1))
        ```
    """

    def __init__(
        self,
        store: ProjectionStore,
        config: EngineConfig | None = None,
        calendar: CalendarPolicy | None = None,
    ):
        self.store = store
        self.config = config or EngineConfig()
        self.currency = get_currency(self.config.currency)
        self.calendar = calendar or self._build_calendar(self.config)
        self.expander = RuleExpander(self.calendar, self.config.max_occurrences)
        self.revisions = RevisionResolver(self.currency)
        self.cascade = BalanceCascade(
            pre_inception=self.config.pre_inception,
            max_projection_days=self.config.max_projection_days,
        )
        self._active_scenario_id: str | None = None

    @staticmethod
    def _build_calendar(config: EngineConfig) -> CalendarPolicy:
        if config.holidays_file is not None:
            provider = FileHolidayProvider(config.holidays_file)
        elif config.holidays:
            provider = StaticHolidayProvider(config.holidays)
        else:
            provider = None
        return CalendarPolicy(provider, max_adjustment_days=config.max_adjustment_days)

    # --- Lookups --------------------------------------------------------------

    def _require_account(self, account_id: str) -> BankAccount:
        account = self.store.get_account(account_id)
        if account is None:
            raise NotFoundError("account", account_id)
        return account

    def _require_rule(self, rule_id: int) -> RecurringRule:
        rule = self.store.get_rule(rule_id)
        if rule is None:
            raise NotFoundError("recurring rule", rule_id)
        return rule

    def _require_decision_path(self, path_id: str | None) -> None:
        if path_id is not None and self.store.get_decision_path(path_id) is None:
            raise NotFoundError("decision path", path_id)

    def _require_scenario_set(self, scenario_set_id: str) -> ScenarioSet:
        scenario = self.store.get_scenario_set(scenario_set_id)
        if scenario is None:
            raise NotFoundError("scenario set", scenario_set_id)
        return scenario

    # --- Setup ----------------------------------------------------------------

    def add_account(
        self,
        account_id: str,
        name: str,
        initial_balance: Any,
        initial_balance_date: Any,
        currency: str | None = None,
    ) -> BankAccount:
        """Register a bank account with its opening balance."""
        code = (currency or self.config.currency).upper()
        account = BankAccount(
            id=require_text(account_id, "id"),
            name=require_text(name, "name"),
            initial_balance=parse_money(initial_balance, "initial_balance", get_currency(code)),
            initial_balance_date=parse_date(initial_balance_date, "initial_balance_date"),
            currency=code,
        )
        if self.store.get_account(account.id) is not None:
            raise ValidationError("id", f"account {account.id!r} already exists")
        return self.store.add_account(account)

    def add_decision_path(
        self, path_id: str, name: str, description: str | None = None
    ) -> DecisionPath:
        path = DecisionPath(require_text(path_id, "id"), require_text(name, "name"), description)
        if self.store.get_decision_path(path.id) is not None:
            raise ValidationError("id", f"decision path {path.id!r} already exists")
        return self.store.add_decision_path(path)

    def add_scenario_set(
        self,
        scenario_set_id: str,
        name: str,
        flags: Mapping[str, bool] | None = None,
        *,
        is_default: bool = False,
        description: str | None = None,
    ) -> ScenarioSet:
        """Save a combination of decision-path flags."""
        flags = dict(flags or {})
        for path_id in flags:
            self._require_decision_path(path_id)
        scenario = ScenarioSet(
            id=require_text(scenario_set_id, "id"),
            name=require_text(name, "name"),
            flags={k: bool(v) for k, v in flags.items()},
            is_default=is_default,
            description=description,
        )
        if self.store.get_scenario_set(scenario.id) is not None:
            raise ValidationError("id", f"scenario set {scenario.id!r} already exists")
        return self.store.add_scenario_set(scenario)

    # --- Recurring rules ------------------------------------------------------

    def preview_rule(self, rule_definition: Mapping[str, Any], limit: int = 10) -> list[Occurrence]:
        """First `limit` occurrences a definition would produce; nothing is stored."""
        rule = parse_rule_definition(rule_definition, self.currency)
        return self.expander.preview(rule, limit)

    def expand_rule(self, rule_definition: Mapping[str, Any]) -> ExpansionResult:
        """
        Validate, store and expand a new recurring rule.

        Raises:
            ValidationError: For an invalid definition or one that would expand
                past `max_occurrences`
            NotFoundError: If the account or decision path does not exist
        """
        rule = parse_rule_definition(rule_definition, self.currency)
        self._require_account(rule.bank_account_id)
        self._require_decision_path(rule.decision_path_id)
        self.expander.expand(rule)

        with self.store.transaction():
            stored = self.store.add_rule(rule)
            events = self.expander.materialize(stored)
            self.store.add_events(events)
            self._recalculate(stored.bank_account_id, stored.start_date)

        logger.info(
            "Created rule %s '%s' with %d events", stored.id, stored.name, len(events)
        )
        return ExpansionResult(rule_id=stored.id, generated_event_count=len(events))

    def update_rule(self, rule_id: int, **changes: Any) -> ExpansionResult:
        """
        Edit a rule and regenerate its events atomically.

        Dates and account of a rule that is part of a revision chain cannot
        be edited directly; create a revision instead.
        """
        rule = self._require_rule(rule_id)
        in_chain = not rule.is_base_rule or len(self.store.rules_in_chain(rule.id)) > 1
        locked = CHAIN_LOCKED_FIELDS.intersection(changes)
        if in_chain and locked:
            raise ValidationError(
                sorted(locked)[0], "cannot be changed on a rule in a revision chain"
            )

        updated = apply_rule_changes(rule, changes, self.currency)
        self._require_account(updated.bank_account_id)
        self._require_decision_path(updated.decision_path_id)
        self.expander.expand(updated)

        with self.store.transaction():
            self.store.update_rule(updated)
            events = self.expander.materialize(updated)
            self.store.replace_rule_events(updated.id, events)
            from_date = min(rule.start_date, updated.start_date)
            self._recalculate(updated.bank_account_id, from_date)
            if rule.bank_account_id != updated.bank_account_id:
                self._recalculate(rule.bank_account_id, rule.start_date)

        logger.info("Updated rule %s: %d events regenerated", rule_id, len(events))
        return ExpansionResult(rule_id=rule_id, generated_event_count=len(events))

    def delete_rule(self, rule_id: int) -> None:
        """
        Delete a rule with its generated events.

        Deleting a chain root removes every revision built on it. Deleting a
        revision hands its window back to the preceding member.
        """
        rule = self._require_rule(rule_id)
        chain = self.store.rules_in_chain(rule.chain_root_id)
        extended = self.revisions.plan_removal(chain, rule)

        with self.store.transaction():
            if extended is not None:
                self.store.update_rule(extended)
            self.store.delete_rule(rule.id)
            if extended is not None:
                self.store.replace_rule_events(
                    extended.id, self.expander.materialize(extended)
                )
                self.revisions.check_chain(
                    self.store.rules_in_chain(rule.chain_root_id), chain_span(chain)
                )
            from_date = min(r.start_date for r in chain) if extended is None else rule.start_date
            self._recalculate(rule.bank_account_id, from_date)

        logger.info("Deleted rule %s", rule_id)

    def create_revision(
        self,
        rule_id: int,
        revision_start_date: Any,
        new_value: Any,
        **overrides: Any,
    ) -> RevisionResult:
        """
        Change a rule's value from `revision_start_date` onwards.

        The revised rule is truncated to end the day before, a revision covers
        the remainder of its window, and both sets of events are regenerated.

        Raises:
            ValidationError: If the date is outside the rule's window or an
                override is not allowed
            NotFoundError: If the rule or an overridden decision path does not exist
            ConsistencyError: If the resulting chain would overlap or leave a gap
        """
        base = self._require_rule(rule_id)
        start = parse_date(revision_start_date, "start_date")
        plan = self.revisions.plan_revision(base, start, new_value, overrides)
        self._require_decision_path(plan.revision.decision_path_id)
        self.expander.expand(plan.revision)

        root_id = base.chain_root_id
        span = chain_span(self.store.rules_in_chain(root_id))

        with self.store.transaction():
            self.store.update_rule(plan.truncated_base)
            revision = self.store.add_rule(plan.revision)
            base_events = self.expander.materialize(plan.truncated_base)
            revision_events = self.expander.materialize(revision)
            self.store.replace_rule_events(base.id, base_events)
            self.store.add_events(revision_events)
            self.revisions.check_chain(self.store.rules_in_chain(root_id), span)
            self._recalculate(base.bank_account_id, start)

        logger.info(
            "Revised rule %s from %s: new rule %s value %s",
            rule_id,
            start,
            revision.id,
            revision.value,
        )
        return RevisionResult(
            new_rule_id=revision.id,
            regenerated_counts={base.id: len(base_events), revision.id: len(revision_events)},
        )

    # --- One-off events -------------------------------------------------------

    def create_event(self, event_definition: Mapping[str, Any]) -> ProjectionEvent:
        """Store a one-off event and recalculate from its date."""
        event = parse_event_definition(event_definition, self.currency)
        self._require_account(event.bank_account_id)
        self._require_decision_path(event.decision_path_id)

        with self.store.transaction():
            event_id = self.store.add_event(event)
            self._recalculate(event.bank_account_id, event.date)

        logger.info("Created event %s '%s' on %s", event_id, event.name, event.date)
        return self.store.get_event(event_id)

    def delete_event(self, event_id: int) -> None:
        """Delete a one-off event; rule-generated events belong to their rule."""
        event = self.store.get_event(event_id)
        if event is None:
            raise NotFoundError("event", event_id)
        if not event.is_one_off:
            raise ValidationError(
                "event_id",
                f"generated by recurring rule {event.recurring_rule_id}; "
                "edit or revise the rule instead",
            )
        with self.store.transaction():
            self.store.delete_event(event_id)
            self._recalculate(event.bank_account_id, event.date)
        logger.info("Deleted event %s", event_id)

    # --- Scenarios ------------------------------------------------------------

    @property
    def active_scenario_id(self) -> str | None:
        """Scenario set switched to, or None when the store's default applies."""
        return self._active_scenario_id

    def scenario_state(self, scenario_set_id: str | None = None) -> dict[str, bool]:
        """
        Enabled-map for a scenario set.

        Without an id, the active scenario set is used, falling back to the
        store's default set, and finally to every path enabled.
        """
        scenario_set_id = scenario_set_id or self._active_scenario_id
        if scenario_set_id is not None:
            scenario = self._require_scenario_set(scenario_set_id)
        else:
            scenario = self.store.default_scenario_set()
        return build_scenario_state(self.store.decision_path_ids(), scenario)

    def switch_scenario(
        self, scenario_set_id: str, *, make_default: bool = False
    ) -> dict[str, bool]:
        """Activate a scenario set and recalculate every persisted balance range."""
        self._require_scenario_set(scenario_set_id)
        previous = self._active_scenario_id
        self._active_scenario_id = scenario_set_id
        try:
            with self.store.transaction():
                if make_default:
                    self.store.set_default_scenario_set(scenario_set_id)
                state = self.scenario_state()
                for account_id in self.store.account_ids():
                    span = self.store.daily_balance_span(account_id)
                    if span is not None:
                        self._store_series(self._require_account(account_id), *span, state)
        except Exception:
            self._active_scenario_id = previous
            raise
        logger.info("Switched to scenario set %s", scenario_set_id)
        return state

    # --- Balances -------------------------------------------------------------

    def compute_daily_balances(
        self,
        account_id: str,
        start_date: Any,
        end_date: Any,
        scenario_state: ScenarioState | None = None,
        persist: bool = True,
    ) -> BalanceSeries:
        """
        Project daily balances for an account over [start_date, end_date].

        Args:
            account_id: Account to project
            start_date: First day (date or ISO string)
            end_date: Last day, inclusive
            scenario_state: Explicit enabled-map; defaults to the active scenario
            persist: Store the rows. Series computed under an explicit
                `scenario_state` are what-if views and are never stored.

        Raises:
            ValidationError: For a malformed, inverted, oversized or
                pre-inception range
            NotFoundError: If the account does not exist
        """
        start, end = validate_range(start_date, end_date, self.config.max_projection_days)
        account = self._require_account(account_id)
        if scenario_state is not None or not persist:
            state = scenario_state if scenario_state is not None else self.scenario_state()
            return self._fold(account, start, end, state)

        with self.store.transaction():
            return self._store_series(account, start, end, self.scenario_state())

    def set_actual_balance(self, account_id: str, day: Any, value: Any) -> BalanceSeries | None:
        """Record a confirmed balance and recalculate from that day forward."""
        account = self._require_account(account_id)
        day = parse_date(day, "date")
        amount = parse_money(value, "value", get_currency(account.currency))
        with self.store.transaction():
            self.store.set_actual_balance(account.id, day, amount)
            series = self._recalculate(account.id, day)
        logger.info("Actual balance for %s on %s set to %s", account.id, day, amount)
        return series

    def clear_actual_balance(self, account_id: str, day: Any) -> BalanceSeries | None:
        account = self._require_account(account_id)
        day = parse_date(day, "date")
        with self.store.transaction():
            if not self.store.clear_actual_balance(account.id, day):
                raise NotFoundError("actual balance", f"{account.id}@{day.isoformat()}")
            series = self._recalculate(account.id, day)
        logger.info("Actual balance for %s on %s cleared", account.id, day)
        return series

    def set_initial_balance(
        self, account_id: str, value: Any, effective_date: Any
    ) -> BalanceSeries | None:
        """Change an account's opening balance and its effective date."""
        account = self._require_account(account_id)
        amount = parse_money(value, "initial_balance", get_currency(account.currency))
        effective = parse_date(effective_date, "initial_balance_date")
        with self.store.transaction():
            self.store.update_initial_balance(account.id, amount, effective)
            if self.config.pre_inception == "reject" and effective > account.initial_balance_date:
                self.store.replace_daily_balances(
                    account.id, account.initial_balance_date, effective - timedelta(days=1), []
                )
            series = self._recalculate(
                account.id, min(account.initial_balance_date, effective)
            )
        return series

    def _fold(
        self, account: BankAccount, start: date, end: date, state: ScenarioState
    ) -> BalanceSeries:
        actuals = self.store.actual_balances(account.id, end=end)
        anchor = resolve_anchor(account, start, actuals, self.config.pre_inception)
        events = self.store.events_in_range(account.id, anchor.fold_from, end)
        return self.cascade.compute_daily_balances(
            account, start, end, state, events, actuals
        )

    def _store_series(
        self, account: BankAccount, start: date, end: date, state: ScenarioState
    ) -> BalanceSeries:
        series = self._fold(account, start, end, state)
        self.store.replace_daily_balances(account.id, start, end, series.rows)
        return series

    def _recalculate(self, account_id: str, from_date: date) -> BalanceSeries | None:
        """
        Refresh stored balances from `from_date` to the last stored balance or event.

        Must run inside the caller's transaction. Returns None when there is
        nothing on or after `from_date` to recalculate.
        """
        account = self._require_account(account_id)
        start = from_date
        if self.config.pre_inception == "reject":
            start = max(start, account.initial_balance_date)
        ends = [
            d
            for d in (
                self.store.last_daily_balance_date(account_id),
                self.store.last_event_date(account_id),
            )
            if d is not None
        ]
        if not ends or max(ends) < start:
            return None
        end = max(ends)
        series = self._store_series(account, start, end, self.scenario_state())
        logger.info(
            "Recalculated %s from %s to %s (%d days)", account_id, start, end, len(series)
        )
        return series
