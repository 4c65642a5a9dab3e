"""
Core module for ProjectionLab.

This module contains the pure building blocks: calendar, rule expansion,
revision chains, scenario overlays and the balance cascade. Nothing in here
touches storage.
"""

from .calendar import (
    UK_BANK_HOLIDAYS,
    CalendarPolicy,
    FileHolidayProvider,
    HolidayProvider,
    StaticHolidayProvider,
)
from .cascade import BalanceCascade, BalanceSeries, Segment, resolve_anchor, split_at_anchors
from .config import EngineConfig, load_config
from .currency import Currency, RoundingPolicy, get_currency, to_money
from .errors import (
    ConfigError,
    ConsistencyError,
    HolidayDataUnavailable,
    NotFoundError,
    ProjectionError,
    ValidationError,
)
from .expansion import RuleExpander, add_months, iter_schedule
from .kinds import Certainty, Direction, Frequency
from .models import (
    Anchor,
    BankAccount,
    DailyBalance,
    DecisionPath,
    Occurrence,
    ProjectionEvent,
    RecurringRule,
    ScenarioSet,
)
from .overlay import ScenarioState, build_scenario_state, is_event_active
from .revisions import RevisionPlan, RevisionResolver, chain_span
