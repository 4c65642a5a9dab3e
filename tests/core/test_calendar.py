"""Tests for working-day classification and payment-date rolling."""

from __future__ import annotations

import logging
from datetime import date, timedelta

import pytest
from hypothesis import given
from hypothesis import strategies as st
from projectionlab.core.calendar import (
    UK_BANK_HOLIDAYS,
    CalendarPolicy,
    FileHolidayProvider,
    HolidayProvider,
    StaticHolidayProvider,
)
from projectionlab.core.errors import HolidayDataUnavailable


class BrokenProvider:
    def holidays(self):
        raise HolidayDataUnavailable("feed offline")


class TestWorkingDays:
    """Weekend and holiday classification."""

    def test_weekdays_are_working_days(self):
        cal = CalendarPolicy()
        assert cal.is_working_day(date(2026, 1, 5))  # Monday
        assert cal.is_working_day(date(2026, 1, 9))  # Friday

    def test_weekend_is_not_a_working_day(self):
        cal = CalendarPolicy()
        assert not cal.is_working_day(date(2026, 1, 10))
        assert not cal.is_working_day(date(2026, 1, 11))

    def test_holiday_is_not_a_working_day(self):
        cal = CalendarPolicy(StaticHolidayProvider([date(2026, 1, 7)]))
        assert not cal.is_working_day(date(2026, 1, 7))

    def test_static_provider_satisfies_protocol(self):
        assert isinstance(StaticHolidayProvider(), HolidayProvider)


class TestRolling:
    """next_working_day_on_or_after."""

    def test_working_day_is_unchanged(self):
        assert CalendarPolicy().next_working_day_on_or_after(date(2026, 1, 6)) == date(2026, 1, 6)

    def test_saturday_and_sunday_roll_to_monday(self):
        cal = CalendarPolicy()
        assert cal.next_working_day_on_or_after(date(2026, 1, 10)) == date(2026, 1, 12)
        assert cal.next_working_day_on_or_after(date(2026, 1, 11)) == date(2026, 1, 12)

    def test_christmas_rolls_past_substitute_boxing_day(self):
        cal = CalendarPolicy(StaticHolidayProvider(UK_BANK_HOLIDAYS))
        # Fri 25th and Mon 28th are both bank holidays in 2026
        assert cal.next_working_day_on_or_after(date(2026, 12, 25)) == date(2026, 12, 29)

    def test_long_roll_logs_warning(self, caplog):
        closed = [date(2026, 3, 2) + timedelta(days=i) for i in range(10)]
        cal = CalendarPolicy(StaticHolidayProvider(closed), max_adjustment_days=5)
        with caplog.at_level(logging.WARNING, logger="projectionlab.core.calendar"):
            rolled = cal.next_working_day_on_or_after(date(2026, 3, 2))
        assert rolled == date(2026, 3, 12)
        assert "adjustment" in caplog.text

    @given(st.dates(min_value=date(2000, 1, 1), max_value=date(2100, 12, 31)))
    def test_rolled_date_is_a_working_day_within_three_days(self, d):
        cal = CalendarPolicy()
        rolled = cal.next_working_day_on_or_after(d)
        assert cal.is_working_day(rolled)
        assert 0 <= (rolled - d).days <= 2


class TestDegradation:
    """Missing holiday data falls back to weekend-only."""

    def test_failing_provider_degrades_with_warning(self, caplog):
        cal = CalendarPolicy(BrokenProvider())
        with caplog.at_level(logging.WARNING, logger="projectionlab.core.calendar"):
            assert cal.next_working_day_on_or_after(date(2026, 1, 10)) == date(2026, 1, 12)
        assert cal.degraded
        assert "weekend-only" in caplog.text

    def test_missing_file_degrades(self, tmp_path):
        cal = CalendarPolicy(FileHolidayProvider(tmp_path / "missing.yaml"))
        assert cal.is_working_day(date(2026, 12, 25))
        assert cal.degraded

    def test_file_provider_reads_yaml_mapping(self, tmp_path):
        path = tmp_path / "holidays.yaml"
        path.write_text("holidays:\n  - 2026-01-07\n  - '2026-01-08'\n", encoding="utf-8")
        provider = FileHolidayProvider(path)
        assert provider.holidays() == [date(2026, 1, 7), date(2026, 1, 8)]
        cal = CalendarPolicy(provider)
        assert cal.next_working_day_on_or_after(date(2026, 1, 7)) == date(2026, 1, 9)
        assert not cal.degraded

    def test_file_provider_rejects_bad_dates(self, tmp_path):
        path = tmp_path / "holidays.json"
        path.write_text('["2026-13-01"]', encoding="utf-8")
        with pytest.raises(HolidayDataUnavailable):
            FileHolidayProvider(path).holidays()
