"""
Error classes for ProjectionLab.

This module defines the exception taxonomy used throughout the projection engine.
Every error that crosses the engine boundary is a subclass of ProjectionError, so
calling layers can catch the whole family at once or react to a specific kind.

**Taxonomy:**
- ValidationError: bad input, reported before anything is materialized
- NotFoundError: a referenced id does not exist
- ConsistencyError: internal fault; the surrounding transaction is rolled back
- ConfigError: invalid engine configuration
- HolidayDataUnavailable: holiday provider could not load its data

**Example Usage:**
    ```python
    from projectionlab.core.errors import ValidationError

    try:
        engine.expand_rule(definition)
    except ValidationError as e:
        print(f"{e.field}: {e.message}")
    ```
"""

from __future__ import annotations


class ProjectionError(Exception):
    """Base class for every error raised by ProjectionLab."""


class ValidationError(ProjectionError):
    """
    Invalid input detected before any materialization.

    Raised for missing fields, malformed dates, `end_date <= start_date`,
    non-positive values, revision dates outside the base rule's window and
    ranges that would exceed the configured work bounds.

    Attributes:
        field: Name of the offending field
        message: Human-readable description of the problem
    """

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class NotFoundError(ProjectionError):
    """
    A referenced rule, event, decision path, scenario set or account is missing.

    Attributes:
        kind: What was looked up (e.g. 'rule', 'account')
        id: The identifier that could not be resolved
    """

    def __init__(self, kind: str, id: str | int):
        self.kind = kind
        self.id = id
        super().__init__(f"{kind} not found: {id!r}")


class ConsistencyError(ProjectionError):
    """
    Internal invariant violated; should never occur in correct operation.

    Raised when a revision chain overlaps or leaves a gap, or when a computed
    balance series has a missing or out-of-order day. The engine aborts and
    rolls back the whole recalculation when this is raised.

    Attributes:
        problem_ids: Ids of the records involved, when known
    """

    def __init__(self, message: str, problem_ids: list[str | int] | None = None):
        self.problem_ids = list(problem_ids or [])
        super().__init__(self._fmt(message))

    def _fmt(self, msg: str) -> str:
        """Format the error message with the ids involved."""
        if not self.problem_ids:
            return msg
        preview = ", ".join(str(i) for i in self.problem_ids[:10])
        more = (
            f" (+{len(self.problem_ids) - 10} more)"
            if len(self.problem_ids) > 10
            else ""
        )
        return f"{msg} | problem_ids: [{preview}]{more}"


class ConfigError(ProjectionError):
    """
    Configuration error while loading or validating engine settings.

    **Common Causes:**
    - Unknown `pre_inception` policy
    - Non-positive bounds such as `max_occurrences`
    - Malformed holiday dates in an inline list or holidays file
    """


class HolidayDataUnavailable(ProjectionError):
    """Raised by holiday providers that cannot produce their dates."""
