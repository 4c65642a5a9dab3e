"""Tests for recurring-rule expansion."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from projectionlab.core.calendar import CalendarPolicy, StaticHolidayProvider
from projectionlab.core.errors import ValidationError
from projectionlab.core.expansion import RuleExpander, add_months, iter_schedule
from projectionlab.core.kinds import Direction, Frequency

from tests.conftest import DAY0, day, make_rule


def scheduled(rule):
    return [o.scheduled_date for o in RuleExpander().expand(rule)]


class TestStepping:
    """Calendar stepping per frequency."""

    def test_weekly_four_occurrences(self):
        assert scheduled(make_rule()) == [day(0), day(7), day(14), day(21)]

    def test_daily_includes_end_date(self):
        rule = make_rule(frequency=Frequency.DAILY, end_date=day(3))
        assert scheduled(rule) == [day(0), day(1), day(2), day(3)]

    def test_monthly_on_31st_clamps_without_drift(self):
        rule = make_rule(
            frequency=Frequency.MONTHLY,
            start_date=date(2026, 1, 31),
            end_date=date(2026, 6, 30),
        )
        assert scheduled(rule) == [
            date(2026, 1, 31),
            date(2026, 2, 28),
            date(2026, 3, 31),
            date(2026, 4, 30),
            date(2026, 5, 31),
            date(2026, 6, 30),
        ]

    def test_monthly_on_31st_in_leap_year(self):
        rule = make_rule(
            frequency=Frequency.MONTHLY,
            start_date=date(2028, 1, 31),
            end_date=date(2028, 3, 31),
        )
        assert scheduled(rule) == [date(2028, 1, 31), date(2028, 2, 29), date(2028, 3, 31)]

    def test_annual_on_feb_29(self):
        rule = make_rule(
            frequency=Frequency.ANNUAL,
            start_date=date(2024, 2, 29),
            end_date=date(2028, 12, 31),
        )
        assert scheduled(rule) == [
            date(2024, 2, 29),
            date(2025, 2, 28),
            date(2026, 2, 28),
            date(2027, 2, 28),
            date(2028, 2, 29),
        ]

    def test_quarterly_and_biannual(self):
        quarterly = make_rule(
            frequency=Frequency.QUARTERLY,
            start_date=date(2026, 1, 15),
            end_date=date(2026, 12, 31),
        )
        biannual = quarterly.copy(frequency=Frequency.BIANNUAL)
        assert scheduled(quarterly) == [
            date(2026, 1, 15),
            date(2026, 4, 15),
            date(2026, 7, 15),
            date(2026, 10, 15),
        ]
        assert scheduled(biannual) == [date(2026, 1, 15), date(2026, 7, 15)]

    def test_add_months_computes_from_anchor(self):
        assert add_months(date(2026, 1, 31), 1) == date(2026, 2, 28)
        assert add_months(date(2026, 1, 31), 2) == date(2026, 3, 31)

    def test_iter_schedule_empty_when_end_before_start(self):
        assert list(iter_schedule(day(5), day(1), Frequency.DAILY)) == []


class TestPaymentDates:
    """Working-day adjustment applies to INCOMING only."""

    def test_incoming_on_saturday_moves_to_monday(self):
        saturday = date(2026, 1, 10)
        rule = make_rule(
            direction=Direction.INCOMING,
            start_date=saturday,
            end_date=saturday + timedelta(days=14),
        )
        occurrences = RuleExpander().expand(rule)
        assert [o.date for o in occurrences] == [
            date(2026, 1, 12),
            date(2026, 1, 19),
            date(2026, 1, 26),
        ]
        assert all(o.is_adjusted for o in occurrences)

    def test_expense_on_saturday_is_not_moved(self):
        saturday = date(2026, 1, 10)
        rule = make_rule(start_date=saturday, end_date=saturday + timedelta(days=7))
        occurrences = RuleExpander().expand(rule)
        assert [o.date for o in occurrences] == [saturday, saturday + timedelta(days=7)]
        assert not any(o.is_adjusted for o in occurrences)

    def test_incoming_on_holiday_moves_to_next_working_day(self):
        expander = RuleExpander(CalendarPolicy(StaticHolidayProvider([date(2026, 1, 15)])))
        rule = make_rule(
            direction=Direction.INCOMING,
            frequency=Frequency.MONTHLY,
            start_date=date(2026, 1, 15),
            end_date=date(2026, 2, 28),
        )
        assert [o.date for o in expander.expand(rule)] == [date(2026, 1, 16), date(2026, 2, 16)]


class TestBounds:
    """Work bounds and materialization."""

    def test_rejects_more_than_max_occurrences(self):
        rule = make_rule(frequency=Frequency.DAILY, end_date=DAY0 + timedelta(days=20))
        with pytest.raises(ValidationError) as exc:
            RuleExpander(max_occurrences=10).expand(rule)
        assert exc.value.field == "end_date"

    def test_preview_returns_first_occurrences(self):
        rule = make_rule(frequency=Frequency.DAILY, end_date=day(30))
        preview = RuleExpander().preview(rule, limit=3)
        assert [o.scheduled_date for o in preview] == [day(0), day(1), day(2)]

    def test_materialize_requires_stored_rule(self):
        with pytest.raises(ValueError):
            RuleExpander().materialize(make_rule())

    def test_materialized_events_inherit_rule_attributes(self):
        rule = make_rule(id=7, counterparty="Shop", decision_path_id="move")
        events = RuleExpander().materialize(rule)
        assert len(events) == 4
        first = events[0]
        assert first.recurring_rule_id == 7
        assert first.value == Decimal("100.00")
        assert first.counterparty == "Shop"
        assert first.decision_path_id == "move"
        assert first.signed_value == Decimal("-100.00")


@settings(max_examples=60, deadline=None)
@given(
    start=st.dates(min_value=date(2020, 1, 1), max_value=date(2030, 12, 31)),
    span=st.integers(min_value=1, max_value=800),
    frequency=st.sampled_from(list(Frequency)),
    direction=st.sampled_from(list(Direction)),
)
def test_expansion_properties(start, span, frequency, direction):
    rule = make_rule(
        start_date=start,
        end_date=start + timedelta(days=span),
        frequency=frequency,
        direction=direction,
    )
    expander = RuleExpander()
    occurrences = expander.expand(rule)
    dates = [o.scheduled_date for o in occurrences]

    assert dates[0] == rule.start_date
    assert dates[-1] <= rule.end_date
    assert all(a < b for a, b in zip(dates, dates[1:]))
    assert occurrences == expander.expand(rule)
    for occ in occurrences:
        if direction is Direction.INCOMING:
            assert expander.calendar.is_working_day(occ.date)
        else:
            assert occ.date == occ.scheduled_date
