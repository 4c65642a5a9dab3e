"""Engine configuration and its YAML/JSON loader."""

from __future__ import annotations

import json
from copy import deepcopy
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

__all__ = [
    "EngineConfig",
    "PRE_INCEPTION_POLICIES",
    "load_config",
]

PRE_INCEPTION_POLICIES = ("reject", "zero_fill")


@dataclass
class EngineConfig:
    """
    Configuration options for rule expansion and balance projection.

    Attributes:
        currency: Default currency code for accounts created without one
        max_occurrences: Upper bound on occurrences a single rule may expand to
        max_projection_days: Upper bound on days folded by one cascade run
        max_adjustment_days: Working-day roll that triggers a warning when exceeded
        pre_inception: 'reject' or 'zero_fill' for ranges before the initial balance
        holidays: Inline holiday dates for the default calendar
        holidays_file: YAML/JSON file listing holiday dates
    """

    currency: str = "GBP"
    max_occurrences: int = 3650
    max_projection_days: int = 36_600
    max_adjustment_days: int = 5
    pre_inception: str = "reject"
    holidays: list[date] = field(default_factory=list)
    holidays_file: Path | None = None

    def __post_init__(self) -> None:
        for key in ("max_occurrences", "max_projection_days", "max_adjustment_days"):
            value = getattr(self, key)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigError(f"{key} must be a positive integer, got {value!r}")
        if self.pre_inception not in PRE_INCEPTION_POLICIES:
            raise ConfigError(
                f"pre_inception must be one of {PRE_INCEPTION_POLICIES}, "
                f"got {self.pre_inception!r}"
            )


def load_config(
    source: str | Path | dict[str, Any], *, format: str | None = None
) -> EngineConfig:
    """Parse engine settings from YAML/JSON/dict into an EngineConfig."""

    mapping, label = _read_source(source, format=format)
    section = _ensure_dict(mapping.get("engine", mapping), f"{label}::engine")

    kwargs: dict[str, Any] = {}
    for key in ("max_occurrences", "max_projection_days", "max_adjustment_days"):
        if key in section:
            kwargs[key] = _coerce_positive_int(section[key], f"{label}::{key}")
    if "currency" in section:
        kwargs["currency"] = _coerce_str(section["currency"], f"{label}::currency").upper()
    if "pre_inception" in section:
        kwargs["pre_inception"] = _coerce_str(
            section["pre_inception"], f"{label}::pre_inception"
        )
    if "holidays" in section:
        kwargs["holidays"] = load_holiday_dates(
            section["holidays"], f"{label}::holidays"
        )
    if "holidays_file" in section:
        path = Path(_coerce_str(section["holidays_file"], f"{label}::holidays_file"))
        if not path.is_absolute() and label != "<mapping>":
            path = Path(label).parent / path
        kwargs["holidays_file"] = path

    return EngineConfig(**kwargs)


def load_holiday_dates(raw: Any, ctx: str) -> list[date]:
    """Normalize a list of ISO date strings (or dates) into sorted, unique dates."""
    entries = _ensure_list(raw, ctx)
    out: set[date] = set()
    for idx, item in enumerate(entries):
        out.add(_coerce_date(item, f"{ctx}[{idx}]"))
    return sorted(out)


def read_mapping_or_list(path: Path, *, format: str | None = None) -> Any:
    """Read a YAML or JSON file and return the parsed document."""
    if not path.exists():
        raise FileNotFoundError(path)

    fmt = (format or path.suffix.lstrip(".")).lower()
    text = path.read_text(encoding="utf-8")
    if fmt in {"yaml", "yml", ""}:
        return yaml.safe_load(text)
    if fmt == "json":
        return json.loads(text)
    raise ConfigError(f"Unsupported config format '{fmt}' for {path}")


def _read_source(
    source: str | Path | dict[str, Any], *, format: str | None
) -> tuple[dict[str, Any], str]:
    if isinstance(source, dict):
        return deepcopy(source), "<mapping>"

    path = Path(source)
    data = read_mapping_or_list(path, format=format)
    if not isinstance(data, dict):
        raise ConfigError(f"Config root must be a mapping (source={path})")
    return data, str(path)


def _coerce_date(value: Any, ctx: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError as exc:
            raise ConfigError(f"{ctx}: invalid ISO date '{value}'") from exc
    raise ConfigError(f"{ctx}: expected ISO date string")


def _coerce_positive_int(value: Any, ctx: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{ctx}: expected an integer")
    if value < 1:
        raise ConfigError(f"{ctx}: must be >= 1")
    return value


def _coerce_str(value: Any, ctx: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{ctx}: expected non-empty string")
    return value


def _ensure_dict(value: Any, ctx: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{ctx}: expected a mapping")
    return deepcopy(value)


def _ensure_list(value: Any, ctx: str) -> list[Any]:
    if not isinstance(value, list):
        raise ConfigError(f"{ctx}: expected a list")
    return list(value)
