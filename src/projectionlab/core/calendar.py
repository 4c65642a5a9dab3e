"""
Working-day calendar for payment-date adjustment.

Incoming payments that fall on a weekend or holiday arrive on the next working
day. Holiday dates are jurisdiction specific, so they come from an injected
HolidayProvider; when the provider cannot deliver, the calendar degrades to
skipping weekends only.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date
from pathlib import Path
from typing import Protocol, runtime_checkable

import numpy as np
import yaml

from .config import load_holiday_dates, read_mapping_or_list
from .errors import ConfigError, HolidayDataUnavailable

logger = logging.getLogger(__name__)

WEEKMASK = "1111100"  # Mon-Fri


@runtime_checkable
class HolidayProvider(Protocol):
    """Source of non-working dates for one jurisdiction."""

    def holidays(self) -> Iterable[date]:
        """
        Return every holiday the provider knows about.

        Raises:
            HolidayDataUnavailable: If the data cannot be produced
        """
        ...


class StaticHolidayProvider:
    """Holiday provider backed by an explicit collection of dates."""

    def __init__(self, dates: Iterable[date] = ()):
        self._dates = tuple(sorted(set(dates)))

    def holidays(self) -> tuple[date, ...]:
        return self._dates

    def __repr__(self) -> str:
        return f"StaticHolidayProvider({len(self._dates)} dates)"


class FileHolidayProvider:
    """
    Holiday provider reading a YAML or JSON document.

    The document is either a plain list of ISO dates or a mapping with a
    `holidays` key holding that list.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def holidays(self) -> list[date]:
        try:
            data = read_mapping_or_list(self.path)
        except (OSError, ValueError, yaml.YAMLError, ConfigError) as exc:
            raise HolidayDataUnavailable(f"cannot read {self.path}: {exc}") from exc
        if isinstance(data, dict):
            data = data.get("holidays")
        try:
            return load_holiday_dates(data, str(self.path))
        except ConfigError as exc:
            raise HolidayDataUnavailable(str(exc)) from exc


# England & Wales bank holidays, including substitute days.
UK_BANK_HOLIDAYS: tuple[date, ...] = (
    # 2025
    date(2025, 1, 1),
    date(2025, 4, 18),
    date(2025, 4, 21),
    date(2025, 5, 5),
    date(2025, 5, 26),
    date(2025, 8, 25),
    date(2025, 12, 25),
    date(2025, 12, 26),
    # 2026
    date(2026, 1, 1),
    date(2026, 4, 3),
    date(2026, 4, 6),
    date(2026, 5, 4),
    date(2026, 5, 25),
    date(2026, 8, 31),
    date(2026, 12, 25),
    date(2026, 12, 28),
    # 2027
    date(2027, 1, 1),
    date(2027, 3, 26),
    date(2027, 3, 29),
    date(2027, 5, 3),
    date(2027, 5, 31),
    date(2027, 8, 30),
    date(2027, 12, 27),
    date(2027, 12, 28),
)


class CalendarPolicy:
    """
    Classifies dates as working days and rolls dates forward to the next one.

    Args:
        provider: Holiday source; None means weekends only
        max_adjustment_days: Roll length above which a warning is logged

    Example:
        ```python
        from datetime import date
        from projectionlab.core.calendar import CalendarPolicy, StaticHolidayProvider

        cal = CalendarPolicy(StaticHolidayProvider([date(2026, 12, 25)]))
        cal.next_working_day_on_or_after(date(2026, 12, 25))  # date(2026, 12, 28)
        ```
    """

    def __init__(
        self,
        provider: HolidayProvider | None = None,
        max_adjustment_days: int = 5,
    ):
        self.provider = provider
        self.max_adjustment_days = max_adjustment_days
        self._busdaycal: np.busdaycalendar | None = None
        self._degraded = False

    @property
    def degraded(self) -> bool:
        """True when holiday data could not be loaded and only weekends are skipped."""
        self._calendar()
        return self._degraded

    def _calendar(self) -> np.busdaycalendar:
        if self._busdaycal is not None:
            return self._busdaycal

        holidays: list[date] = []
        if self.provider is not None:
            try:
                holidays = list(self.provider.holidays())
            except (HolidayDataUnavailable, OSError, ValueError) as exc:
                logger.warning(
                    "Holiday data unavailable from %r (%s); "
                    "falling back to weekend-only working days.",
                    self.provider,
                    exc,
                )
                self._degraded = True
                holidays = []

        self._busdaycal = np.busdaycalendar(
            weekmask=WEEKMASK,
            holidays=np.array(holidays, dtype="datetime64[D]"),
        )
        return self._busdaycal

    def is_working_day(self, day: date) -> bool:
        return bool(np.is_busday(np.datetime64(day, "D"), busdaycal=self._calendar()))

    def next_working_day_on_or_after(self, day: date) -> date:
        """Return `day` if it is a working day, otherwise the next working day."""
        rolled = np.busday_offset(
            np.datetime64(day, "D"), 0, roll="forward", busdaycal=self._calendar()
        ).item()
        shift = (rolled - day).days
        if shift > self.max_adjustment_days:
            logger.warning(
                "Date %s required %d days adjustment. Using %s",
                day.isoformat(),
                shift,
                rolled.isoformat(),
            )
        return rolled
