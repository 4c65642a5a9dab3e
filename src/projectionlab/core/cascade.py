"""
Balance cascade: the day-by-day fold from an anchor to a balance series.

The fold is a pure function of the account, the events, the actual balances
and the scenario state. It never reads storage and never mutates its inputs,
so switching scenarios is a repeatable re-run.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from itertools import accumulate

import numpy as np
import pandas as pd

from .config import PRE_INCEPTION_POLICIES
from .errors import ConsistencyError, ValidationError
from .models import Anchor, BankAccount, DailyBalance, ProjectionEvent
from .overlay import ScenarioState, is_event_active

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)
ZERO = Decimal("0")


@dataclass(frozen=True)
class Segment:
    """
    A run of days folded from one known seed.

    Attributes:
        start: First day folded
        end: Last day folded (inclusive)
        seed: Balance before folding `start`
    """

    start: date
    end: date
    seed: Decimal


def split_at_anchors(
    start: date, end: date, first_seed: Decimal, seeds: Mapping[date, Decimal]
) -> list[Segment]:
    """
    Split [start, end] at every day whose starting balance is known.

    `seeds` maps a day to the balance it starts from (e.g. the day after an
    actual balance). Each segment can be folded independently because its
    starting value does not depend on the previous segment.
    """
    cuts = sorted(d for d in seeds if start < d <= end)
    segments: list[Segment] = []
    seg_start, seed = start, first_seed
    for cut in cuts:
        segments.append(Segment(seg_start, cut - ONE_DAY, seed))
        seg_start, seed = cut, seeds[cut]
    segments.append(Segment(seg_start, end, seed))
    return segments


def resolve_anchor(
    account: BankAccount,
    start_date: date,
    actual_balances: Mapping[date, Decimal],
    pre_inception: str = "reject",
) -> Anchor:
    """
    Find the known balance the cascade resumes from.

    Priority:
        1. Actual balance of the day before `start_date`
        2. Most recent earlier actual balance on/after the initial-balance date
        3. The account's initial balance, when `start_date` is on/after its date
        4. Before inception: reject, or a zero anchor under 'zero_fill'

    Under 'zero_fill' the cascade reseeds from the initial balance on its
    effective date, so that balance wins over any actual balance recorded for
    the day before it.

    Raises:
        ValidationError: For a pre-inception range under the 'reject' policy
    """
    previous_day = start_date - ONE_DAY
    if previous_day in actual_balances:
        return Anchor(previous_day, actual_balances[previous_day], "actual")

    earlier = [
        d
        for d in actual_balances
        if account.initial_balance_date <= d < start_date
    ]
    if earlier:
        latest = max(earlier)
        return Anchor(latest, actual_balances[latest], "actual")

    if start_date >= account.initial_balance_date:
        return Anchor(account.initial_balance_date, account.initial_balance, "initial")

    if pre_inception == "zero_fill":
        return Anchor(previous_day, ZERO, "zero_fill")
    raise ValidationError(
        "start_date",
        f"{start_date.isoformat()} is before account {account.id!r} initial balance "
        f"date {account.initial_balance_date.isoformat()}",
    )


@dataclass(frozen=True)
class BalanceSeries(Sequence[DailyBalance]):
    """
    Ordered, gap-free daily balances for one account and date range.

    Provides convenient read access and a pandas view of the series.

    Attributes:
        bank_account_id: Account the series belongs to
        start_date: First day in the series
        end_date: Last day in the series
        anchor: Known balance the fold resumed from
        rows: One DailyBalance per day, in date order
    """

    bank_account_id: str
    start_date: date
    end_date: date
    anchor: Anchor
    rows: tuple[DailyBalance, ...]

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[DailyBalance]:
        return iter(self.rows)

    def __getitem__(self, index):
        return self.rows[index]

    def on(self, day: date) -> DailyBalance:
        """Row for `day`."""
        offset = (day - self.start_date).days
        if not 0 <= offset < len(self.rows):
            raise KeyError(day)
        return self.rows[offset]

    @property
    def final_balance(self) -> Decimal:
        return self.rows[-1].expected_balance

    def lowest(self) -> DailyBalance:
        """Row with the lowest expected balance (earliest on ties)."""
        return min(self.rows, key=lambda r: r.expected_balance)

    def to_records(self) -> list[dict]:
        """Plain dictionaries, e.g. for JSON responses."""
        return [
            {
                "date": r.date.isoformat(),
                "bank_account_id": r.bank_account_id,
                "expected_balance": str(r.expected_balance),
                "actual_balance": None if r.actual_balance is None else str(r.actual_balance),
                "event_count": r.event_count,
            }
            for r in self.rows
        ]

    def to_frame(self) -> pd.DataFrame:
        """
        DataFrame indexed by day with expected/actual balances and event counts.

        Missing actual balances are NaN.
        """
        index = pd.DatetimeIndex([pd.Timestamp(r.date) for r in self.rows], name="date")
        return pd.DataFrame(
            {
                "expected_balance": np.array(
                    [float(r.expected_balance) for r in self.rows], dtype=float
                ),
                "actual_balance": np.array(
                    [
                        np.nan if r.actual_balance is None else float(r.actual_balance)
                        for r in self.rows
                    ],
                    dtype=float,
                ),
                "event_count": np.array([r.event_count for r in self.rows], dtype=int),
            },
            index=index,
        )


def check_series(rows: Sequence[DailyBalance], start: date, end: date) -> None:
    """
    Verify that `rows` has exactly one row per day from `start` to `end`.

    Raises:
        ConsistencyError: On a missing, duplicated or out-of-order day
    """
    expected = start
    for row in rows:
        if row.date != expected:
            raise ConsistencyError(
                f"balance series expected {expected.isoformat()}, found {row.date.isoformat()}"
            )
        expected += ONE_DAY
    if expected != end + ONE_DAY:
        raise ConsistencyError(
            f"balance series ends {(expected - ONE_DAY).isoformat()}, expected {end.isoformat()}"
        )


class BalanceCascade:
    """
    Folds events and anchors into a per-day balance series.

    Args:
        pre_inception: 'reject' or 'zero_fill' for ranges before the initial balance
        max_projection_days: Upper bound on days folded in one run

    Example:
        ```python
        cascade = BalanceCascade()
        series = cascade.compute_daily_balances(
            account, date(2026, 1, 1), date(2026, 1, 31),
            scenario_state={}, events=events, actual_balances={},
        )
        series.final_balance
        ```
    """

    def __init__(self, pre_inception: str = "reject", max_projection_days: int = 36_600):
        if pre_inception not in PRE_INCEPTION_POLICIES:
            raise ValueError(f"unknown pre_inception policy {pre_inception!r}")
        self.pre_inception = pre_inception
        self.max_projection_days = max_projection_days

    def compute_daily_balances(
        self,
        account: BankAccount,
        start_date: date,
        end_date: date,
        scenario_state: ScenarioState,
        events: Iterable[ProjectionEvent],
        actual_balances: Mapping[date, Decimal],
    ) -> BalanceSeries:
        """
        Compute expected balances for every day in [start_date, end_date].

        Each day's expected balance is the running balance after that day's
        counted events. A day with an actual balance keeps its computed
        expected balance, but the actual value is what carries into the next day.

        Args:
            account: Account with its initial balance and effective date
            start_date: First day to emit
            end_date: Last day to emit (inclusive)
            scenario_state: Decision path id -> enabled
            events: Candidate events; other accounts and out-of-range days are ignored
            actual_balances: User-confirmed balances by day

        Returns:
            BalanceSeries for the requested range

        Raises:
            ValidationError: For an inverted, oversized or pre-inception range
            ConsistencyError: If the computed series is not gap-free
        """
        if end_date < start_date:
            raise ValidationError("end_date", "must not be before start_date")

        anchor = resolve_anchor(account, start_date, actual_balances, self.pre_inception)
        fold_from = anchor.fold_from
        if (end_date - fold_from).days + 1 > self.max_projection_days:
            raise ValidationError(
                "end_date",
                f"folding {fold_from.isoformat()}..{end_date.isoformat()} exceeds "
                f"the maximum of {self.max_projection_days} days",
            )

        impact, counts = self._daily_impact(
            account.id, fold_from, end_date, scenario_state, events
        )

        seeds: dict[date, Decimal] = {
            d + ONE_DAY: value
            for d, value in actual_balances.items()
            if fold_from <= d < end_date
        }
        # initial balance overrides an actual recorded the day before it
        if anchor.source == "zero_fill" and fold_from < account.initial_balance_date <= end_date:
            seeds[account.initial_balance_date] = account.initial_balance

        rows: list[DailyBalance] = []
        for segment in split_at_anchors(fold_from, end_date, anchor.balance, seeds):
            days = pd.date_range(segment.start, segment.end, freq="D").date
            running = accumulate(
                (impact.get(d, ZERO) for d in days), initial=segment.seed
            )
            next(running)  # the seed itself
            for day, balance in zip(days, running):
                if day < start_date:
                    continue
                rows.append(
                    DailyBalance(
                        date=day,
                        bank_account_id=account.id,
                        expected_balance=balance,
                        actual_balance=actual_balances.get(day),
                        event_count=counts.get(day, 0),
                    )
                )

        check_series(rows, start_date, end_date)
        logger.debug(
            "Folded account %s from %s anchor %s (%s) to %s: %d rows",
            account.id,
            anchor.source,
            anchor.date,
            anchor.balance,
            end_date,
            len(rows),
        )
        return BalanceSeries(
            bank_account_id=account.id,
            start_date=start_date,
            end_date=end_date,
            anchor=anchor,
            rows=tuple(rows),
        )

    @staticmethod
    def _daily_impact(
        account_id: str,
        start: date,
        end: date,
        scenario_state: ScenarioState,
        events: Iterable[ProjectionEvent],
    ) -> tuple[dict[date, Decimal], dict[date, int]]:
        """Net signed value and count of counted events per day."""
        impact: dict[date, Decimal] = defaultdict(lambda: ZERO)
        counts: dict[date, int] = defaultdict(int)
        for event in events:
            if event.bank_account_id != account_id or not start <= event.date <= end:
                continue
            if not event.certainty.counts_towards_balance:
                continue
            if not is_event_active(event, scenario_state):
                continue
            impact[event.date] += event.signed_value
            counts[event.date] += 1
        return dict(impact), dict(counts)
