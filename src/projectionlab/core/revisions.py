"""
Revision chains for recurring rules.

A revision changes a rule's value (and optionally a few other attributes) from
a future date onwards. The base rule is truncated to end the day before the
revision starts, and the new rule runs to the base rule's original end date.
Every rule in a chain points at the chain root through `base_rule_id`, so the
chain is a flat list of windows rather than a linked list.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from .currency import Currency, GBP
from .errors import ConsistencyError, ValidationError
from .models import RecurringRule
from .validation import RULE_OVERRIDABLE_FIELDS, apply_rule_changes, validate_rule

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class RevisionPlan:
    """
    The two rule records a revision produces.

    Attributes:
        truncated_base: Base rule with its end_date moved to the day before the revision
        revision: New rule covering the rest of the base rule's original window
    """

    truncated_base: RecurringRule
    revision: RecurringRule


def chain_span(rules: Iterable[RecurringRule]) -> tuple[date, date]:
    """Earliest start and latest end across a chain."""
    members = list(rules)
    if not members:
        raise ValueError("chain is empty")
    return min(r.start_date for r in members), max(r.end_date for r in members)


class RevisionResolver:
    """
    Plans revisions and checks chain invariants.

    All methods are pure: they return new rule records and never touch storage.
    """

    def __init__(self, currency: Currency = GBP):
        self.currency = currency

    def plan_revision(
        self,
        base_rule: RecurringRule,
        revision_start_date: date,
        new_value: Decimal,
        overrides: Mapping[str, Any] | None = None,
    ) -> RevisionPlan:
        """
        Split `base_rule` at `revision_start_date`.

        Args:
            base_rule: Stored rule being revised (root or an earlier revision)
            revision_start_date: First day the new value applies
            new_value: Value for the revision
            overrides: Optional changes to name, description, counterparty,
                certainty, frequency or decision_path_id

        Returns:
            RevisionPlan with the truncated base rule and the unsaved revision

        Raises:
            ValidationError: If the start date is not strictly after the base
                rule's start and on/before its end, or an override is invalid
        """
        if base_rule.id is None:
            raise ValueError("Only stored rules can be revised")
        if not (base_rule.start_date < revision_start_date <= base_rule.end_date):
            raise ValidationError(
                "start_date",
                "revision start date must be after "
                f"{base_rule.start_date.isoformat()} and on or before "
                f"{base_rule.end_date.isoformat()}",
            )

        overrides = dict(overrides or {})
        not_allowed = set(overrides) - RULE_OVERRIDABLE_FIELDS
        if not_allowed:
            raise ValidationError(
                sorted(not_allowed)[0], "cannot be overridden by a revision"
            )

        truncated = base_rule.copy(end_date=revision_start_date - ONE_DAY)
        revision = apply_rule_changes(
            base_rule.copy(
                id=None,
                start_date=revision_start_date,
                base_rule_id=base_rule.chain_root_id,
                is_base_rule=False,
            ),
            {"value": new_value, **overrides},
            self.currency,
        )
        validate_rule(truncated, single_day_ok=True)

        if revision.value == base_rule.value and all(
            getattr(revision, key) == getattr(base_rule, key) for key in overrides
        ):
            warnings.warn(
                f"Revision of rule {base_rule.id} at {revision_start_date} "
                "changes neither value nor any attribute",
                stacklevel=2,
            )

        logger.debug(
            "Planned revision of rule %s: base now ends %s, revision %s..%s value %s",
            base_rule.id,
            truncated.end_date,
            revision.start_date,
            revision.end_date,
            revision.value,
        )
        return RevisionPlan(truncated_base=truncated, revision=revision)

    def plan_removal(
        self, chain: Iterable[RecurringRule], rule: RecurringRule
    ) -> RecurringRule | None:
        """
        Work out how the chain closes the hole left by deleting `rule`.

        Deleting a chain root removes the whole chain, so nothing needs
        extending and None is returned. Deleting a revision hands its window
        back to the member that ends the day before it starts.

        Returns:
            The predecessor with its end_date extended, or None

        Raises:
            ConsistencyError: If no member precedes the revision
        """
        if rule.is_base_rule:
            return None
        members = [m for m in chain if m.id != rule.id]
        for member in members:
            if member.end_date == rule.start_date - ONE_DAY:
                return member.copy(end_date=rule.end_date)
        raise ConsistencyError(
            f"revision {rule.id} has no predecessor ending {rule.start_date - ONE_DAY}",
            problem_ids=[rule.id],
        )

    def check_chain(
        self,
        rules: Iterable[RecurringRule],
        span: tuple[date, date] | None = None,
    ) -> None:
        """
        Verify that chain windows neither overlap nor leave gaps.

        Args:
            rules: Every member of one chain
            span: Expected (start, end) of the whole chain, if known

        Raises:
            ConsistencyError: On overlap, gap, inverted window or span mismatch
        """
        ordered = sorted(rules, key=lambda r: (r.start_date, r.end_date))
        if not ordered:
            return
        for member in ordered:
            if member.end_date < member.start_date:
                raise ConsistencyError(
                    "rule window ends before it starts", problem_ids=[member.id]
                )
        for prev, nxt in zip(ordered, ordered[1:]):
            if nxt.start_date <= prev.end_date:
                raise ConsistencyError(
                    f"overlapping windows in revision chain around {nxt.start_date}",
                    problem_ids=[prev.id, nxt.id],
                )
            if nxt.start_date > prev.end_date + ONE_DAY:
                raise ConsistencyError(
                    f"gap in revision chain between {prev.end_date} and {nxt.start_date}",
                    problem_ids=[prev.id, nxt.id],
                )
        if span is not None and (ordered[0].start_date, ordered[-1].end_date) != span:
            raise ConsistencyError(
                f"revision chain covers {ordered[0].start_date}..{ordered[-1].end_date}, "
                f"expected {span[0]}..{span[1]}",
                problem_ids=[r.id for r in ordered],
            )

    def rule_active_on(
        self, rules: Iterable[RecurringRule], day: date
    ) -> RecurringRule | None:
        """
        The chain member whose window contains `day`, or None outside the chain.

        Raises:
            ConsistencyError: If more than one member covers `day`
        """
        matches = [r for r in rules if r.covers(day)]
        if len(matches) > 1:
            raise ConsistencyError(
                f"more than one rule in chain active on {day}",
                problem_ids=[r.id for r in matches],
            )
        return matches[0] if matches else None
