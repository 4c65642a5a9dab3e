"""
Input validation for rule and event definitions.

Definitions arrive from calling layers as plain mappings (snake_case keys,
ISO date strings or `date` objects). Everything here raises ValidationError
naming the offending field, before anything is written.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar

from .currency import Currency, GBP, to_money
from .errors import ValidationError
from .kinds import Certainty, Direction, Frequency
from .models import ProjectionEvent, RecurringRule

E = TypeVar("E", bound=Enum)

RULE_OVERRIDABLE_FIELDS = frozenset(
    {"name", "description", "counterparty", "certainty", "frequency", "decision_path_id"}
)
RULE_UPDATABLE_FIELDS = RULE_OVERRIDABLE_FIELDS | {
    "value",
    "direction",
    "start_date",
    "end_date",
    "bank_account_id",
}


def parse_date(value: Any, field: str) -> date:
    """Accept a `date`, a `datetime` (time dropped) or an ISO `YYYY-MM-DD` string."""
    if value is None:
        raise ValidationError(field, "is required")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError as exc:
            raise ValidationError(field, f"invalid ISO date {value!r}") from exc
    raise ValidationError(field, f"expected a date, got {type(value).__name__}")


def parse_positive_money(value: Any, field: str, currency: Currency = GBP) -> Decimal:
    if value is None:
        raise ValidationError(field, "is required")
    try:
        amount = to_money(value, currency)
    except ValueError as exc:
        raise ValidationError(field, str(exc)) from exc
    if amount <= 0:
        raise ValidationError(field, f"must be greater than 0, got {amount}")
    return amount


def parse_money(value: Any, field: str, currency: Currency = GBP) -> Decimal:
    if value is None:
        raise ValidationError(field, "is required")
    try:
        return to_money(value, currency)
    except ValueError as exc:
        raise ValidationError(field, str(exc)) from exc


def parse_enum(enum_cls: type[E], value: Any, field: str) -> E:
    if value is None:
        raise ValidationError(field, "is required")
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).upper())
    except ValueError as exc:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(field, f"must be one of {allowed}, got {value!r}") from exc


def require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, "is required")
    return value


def optional_text(value: Any, field: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(field, "must be a string")
    return value


def parse_rule_definition(
    data: Mapping[str, Any], currency: Currency = GBP
) -> RecurringRule:
    """
    Build a RecurringRule from a definition mapping.

    Required keys: name, value, direction, certainty, start_date, end_date,
    frequency, bank_account_id. Optional: counterparty, description,
    decision_path_id.

    Raises:
        ValidationError: For the first invalid field found
    """
    unknown = set(data) - RULE_UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(sorted(unknown)[0], "is not a recurring rule field")

    rule = RecurringRule(
        name=require_text(data.get("name"), "name"),
        value=parse_positive_money(data.get("value"), "value", currency),
        direction=parse_enum(Direction, data.get("direction"), "direction"),
        certainty=parse_enum(Certainty, data.get("certainty"), "certainty"),
        start_date=parse_date(data.get("start_date"), "start_date"),
        end_date=parse_date(data.get("end_date"), "end_date"),
        frequency=parse_enum(Frequency, data.get("frequency"), "frequency"),
        bank_account_id=require_text(data.get("bank_account_id"), "bank_account_id"),
        counterparty=optional_text(data.get("counterparty"), "counterparty"),
        description=optional_text(data.get("description"), "description"),
        decision_path_id=optional_text(data.get("decision_path_id"), "decision_path_id"),
    )
    validate_rule(rule)
    return rule


def apply_rule_changes(
    rule: RecurringRule, changes: Mapping[str, Any], currency: Currency = GBP
) -> RecurringRule:
    """Return a copy of `rule` with validated `changes` applied."""
    unknown = set(changes) - RULE_UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(sorted(unknown)[0], "cannot be changed on a recurring rule")

    parsers = {
        "name": lambda v: require_text(v, "name"),
        "value": lambda v: parse_positive_money(v, "value", currency),
        "direction": lambda v: parse_enum(Direction, v, "direction"),
        "certainty": lambda v: parse_enum(Certainty, v, "certainty"),
        "frequency": lambda v: parse_enum(Frequency, v, "frequency"),
        "start_date": lambda v: parse_date(v, "start_date"),
        "end_date": lambda v: parse_date(v, "end_date"),
        "bank_account_id": lambda v: require_text(v, "bank_account_id"),
        "counterparty": lambda v: optional_text(v, "counterparty"),
        "description": lambda v: optional_text(v, "description"),
        "decision_path_id": lambda v: optional_text(v, "decision_path_id"),
    }
    updated = rule.copy(**{key: parsers[key](value) for key, value in changes.items()})
    dates_changed = "start_date" in changes or "end_date" in changes
    validate_rule(updated, single_day_ok=not dates_changed)
    return updated


def validate_rule(rule: RecurringRule, *, single_day_ok: bool = False) -> None:
    """
    Check the record-level invariants of a recurring rule.

    `single_day_ok` admits windows where end_date == start_date; revision
    chains produce those when a revision starts the day after its base rule
    or on the base rule's last day.
    """
    if rule.value <= 0:
        raise ValidationError("value", f"must be greater than 0, got {rule.value}")
    if rule.end_date < rule.start_date or (
        rule.end_date == rule.start_date and not single_day_ok
    ):
        raise ValidationError(
            "end_date",
            f"must be after start_date ({rule.end_date.isoformat()} <= "
            f"{rule.start_date.isoformat()})",
        )


def parse_event_definition(
    data: Mapping[str, Any], currency: Currency = GBP
) -> ProjectionEvent:
    """
    Build a one-off ProjectionEvent from a definition mapping.

    Required keys: name, value, direction, certainty, date, bank_account_id.
    Optional: counterparty, description, decision_path_id.
    """
    if data.get("recurring_rule_id") is not None:
        raise ValidationError(
            "recurring_rule_id", "rule-generated events are created by expanding the rule"
        )
    return ProjectionEvent(
        name=require_text(data.get("name"), "name"),
        value=parse_positive_money(data.get("value"), "value", currency),
        direction=parse_enum(Direction, data.get("direction"), "direction"),
        certainty=parse_enum(Certainty, data.get("certainty"), "certainty"),
        date=parse_date(data.get("date"), "date"),
        bank_account_id=require_text(data.get("bank_account_id"), "bank_account_id"),
        counterparty=optional_text(data.get("counterparty"), "counterparty"),
        description=optional_text(data.get("description"), "description"),
        decision_path_id=optional_text(data.get("decision_path_id"), "decision_path_id"),
    )


def validate_range(start: Any, end: Any, max_days: int) -> tuple[date, date]:
    """
    Parse and bound a projection range.

    Raises:
        ValidationError: If a bound is malformed, end precedes start, or the
            range spans more than `max_days` days
    """
    start_date = parse_date(start, "start_date")
    end_date = parse_date(end, "end_date")
    if end_date < start_date:
        raise ValidationError("end_date", "must not be before start_date")
    if end_date - start_date >= timedelta(days=max_days):
        raise ValidationError(
            "end_date", f"range exceeds the maximum of {max_days} days"
        )
    return start_date, end_date
