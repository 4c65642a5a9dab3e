"""
Recurring-rule expansion.

Turns one recurring rule into its ordered, dated occurrences and the projection
events materialized from them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import date, timedelta

import pandas as pd

from .calendar import CalendarPolicy
from .errors import ValidationError
from .kinds import Direction, Frequency
from .models import Occurrence, ProjectionEvent, RecurringRule

logger = logging.getLogger(__name__)


def add_months(anchor: date, months: int) -> date:
    """
    Shift `anchor` by whole months, clamping the day to the target month's length.

    Always compute from the original anchor: add_months(Jan 31, 2) is Mar 31,
    whereas stepping twice through Feb 28 would drift to Mar 28.
    """
    return (pd.Timestamp(anchor) + pd.DateOffset(months=months)).date()


def iter_schedule(start: date, end: date, frequency: Frequency) -> Iterator[date]:
    """
    Yield the calendar steps of a rule from `start` up to and including `end`.

    Args:
        start: First occurrence (always yielded when start <= end)
        end: Inclusive upper bound
        frequency: Step size

    Yields:
        Strictly increasing dates
    """
    step_days, step_months = frequency.step
    k = 0
    while True:
        if step_days:
            current = start + timedelta(days=step_days * k)
        else:
            current = add_months(start, step_months * k)
        if current > end:
            return
        yield current
        k += 1


class RuleExpander:
    """
    Expands recurring rules into occurrences and projection events.

    Expansion is deterministic: it depends only on the rule and the calendar,
    never on the current date.

    Args:
        calendar: Working-day policy used to adjust INCOMING payments
        max_occurrences: Reject rules that would expand past this many occurrences

    Example:
        ```python
        expander = RuleExpander(CalendarPolicy())
        for occ in expander.expand(rule):
            print(occ.scheduled_date, occ.date)
        ```
    """

    def __init__(self, calendar: CalendarPolicy | None = None, max_occurrences: int = 3650):
        self.calendar = calendar or CalendarPolicy()
        self.max_occurrences = max_occurrences

    def expand(self, rule: RecurringRule) -> list[Occurrence]:
        """
        Expand a validated rule into its ordered occurrences.

        INCOMING payments are rolled to the next working day; EXPENSE payments
        stay on their scheduled date.

        Raises:
            ValidationError: If the rule would exceed `max_occurrences`
        """
        adjust = rule.direction is Direction.INCOMING
        occurrences: list[Occurrence] = []
        for scheduled in iter_schedule(rule.start_date, rule.end_date, rule.frequency):
            if len(occurrences) >= self.max_occurrences:
                raise ValidationError(
                    "end_date",
                    f"rule would generate more than {self.max_occurrences} "
                    f"{rule.frequency.value} occurrences between "
                    f"{rule.start_date.isoformat()} and {rule.end_date.isoformat()}",
                )
            paid = (
                self.calendar.next_working_day_on_or_after(scheduled)
                if adjust
                else scheduled
            )
            occurrences.append(Occurrence(scheduled_date=scheduled, date=paid))

        logger.debug(
            "Expanded rule %s (%s, %s..%s) into %d occurrences",
            rule.id,
            rule.frequency.value,
            rule.start_date,
            rule.end_date,
            len(occurrences),
        )
        return occurrences

    def preview(self, rule: RecurringRule, limit: int = 10) -> list[Occurrence]:
        """First `limit` occurrences of a rule, e.g. for a confirmation prompt."""
        return self.expand(rule)[:limit]

    def materialize(self, rule: RecurringRule) -> list[ProjectionEvent]:
        """
        Build the projection events for a stored rule.

        Every event inherits the rule's attributes and references it through
        `recurring_rule_id`.
        """
        if rule.id is None:
            raise ValueError("Rule must be stored before its events are materialized")
        return [
            ProjectionEvent(
                name=rule.name,
                value=rule.value,
                direction=rule.direction,
                certainty=rule.certainty,
                date=occ.date,
                bank_account_id=rule.bank_account_id,
                decision_path_id=rule.decision_path_id,
                recurring_rule_id=rule.id,
                counterparty=rule.counterparty,
                description=rule.description,
            )
            for occ in self.expand(rule)
        ]
