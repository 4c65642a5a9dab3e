"""
ProjectionLab enumerations for cash-flow direction, certainty and frequency.
"""

from __future__ import annotations

from enum import Enum


class Direction(str, Enum):
    """Which way money moves relative to the bank account."""

    EXPENSE = "EXPENSE"
    INCOMING = "INCOMING"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.INCOMING else -1


class Certainty(str, Enum):
    """
    Confidence tag on an event.

    Only the lowest tier has a hard effect: UNLIKELY events never enter the
    balance fold, under any scenario.
    """

    UNLIKELY = "UNLIKELY"
    POSSIBLE = "POSSIBLE"
    LIKELY = "LIKELY"
    CERTAIN = "CERTAIN"

    @property
    def counts_towards_balance(self) -> bool:
        return self is not Certainty.UNLIKELY


class Frequency(str, Enum):
    """Recurrence cadence of a recurring rule."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    BIANNUAL = "BIANNUAL"
    ANNUAL = "ANNUAL"

    @property
    def step(self) -> tuple[int, int]:
        """Step size as (days, months); exactly one of the two is non-zero."""
        return _STEPS[self]


_STEPS: dict[Frequency, tuple[int, int]] = {
    Frequency.DAILY: (1, 0),
    Frequency.WEEKLY: (7, 0),
    Frequency.MONTHLY: (0, 1),
    Frequency.QUARTERLY: (0, 3),
    Frequency.BIANNUAL: (0, 6),
    Frequency.ANNUAL: (0, 12),
}
