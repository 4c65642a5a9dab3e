from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import pytest
from projectionlab.core.config import EngineConfig, load_config
from projectionlab.core.errors import ConfigError


def test_defaults():
    config = EngineConfig()
    assert config.currency == "GBP"
    assert config.max_occurrences == 3650
    assert config.max_projection_days == 36_600
    assert config.pre_inception == "reject"
    assert config.holidays == []


def test_load_yaml_with_engine_section(tmp_path: Path) -> None:
    path = tmp_path / "engine.yaml"
    path.write_text(
        "engine:\n"
        "  currency: eur\n"
        "  max_occurrences: 500\n"
        "  pre_inception: zero_fill\n"
        "  holidays: [2026-12-25, '2026-12-28']\n"
        "  holidays_file: holidays.yaml\n",
        encoding="utf-8",
    )
    config = load_config(path)

    assert config.currency == "EUR"
    assert config.max_occurrences == 500
    assert config.pre_inception == "zero_fill"
    assert config.holidays == [date(2026, 12, 25), date(2026, 12, 28)]
    assert config.holidays_file == tmp_path / "holidays.yaml"


def test_load_json(tmp_path: Path) -> None:
    path = tmp_path / "engine.json"
    path.write_text(json.dumps({"max_projection_days": 400}), encoding="utf-8")
    assert load_config(path).max_projection_days == 400


def test_load_mapping_keeps_relative_holidays_file():
    config = load_config({"holidays_file": "data/holidays.yaml"})
    assert config.holidays_file == Path("data/holidays.yaml")


@pytest.mark.parametrize(
    "mapping, fragment",
    [
        ({"max_occurrences": 0}, "max_occurrences"),
        ({"max_occurrences": True}, "max_occurrences"),
        ({"pre_inception": "guess"}, "pre_inception"),
        ({"holidays": ["2026-02-30"]}, "holidays[0]"),
        ({"holidays": "2026-01-01"}, "holidays"),
        ({"engine": [1, 2]}, "engine"),
    ],
)
def test_invalid_values_raise_config_error(mapping, fragment):
    with pytest.raises(ConfigError, match=fragment.replace("[", r"\[").replace("]", r"\]")):
        load_config(mapping)


def test_non_mapping_root_rejected(tmp_path: Path) -> None:
    path = tmp_path / "engine.yaml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(path)


def test_unsupported_format_rejected(tmp_path: Path) -> None:
    path = tmp_path / "engine.toml"
    path.write_text("x = 1\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="Unsupported"):
        load_config(path)
