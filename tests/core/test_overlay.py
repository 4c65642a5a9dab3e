"""Tests for scenario overlays."""

from __future__ import annotations

from projectionlab.core.models import ScenarioSet
from projectionlab.core.overlay import build_scenario_state, is_event_active

from tests.conftest import DAY0, make_event


def test_untagged_event_is_always_active():
    assert is_event_active(make_event(DAY0), {"move": False})


def test_tagged_event_follows_its_path_flag():
    event = make_event(DAY0, decision_path_id="move")
    assert is_event_active(event, {"move": True})
    assert not is_event_active(event, {"move": False})


def test_unknown_path_defaults_to_active():
    assert is_event_active(make_event(DAY0, decision_path_id="new"), {"move": False})


def test_build_state_merges_scenario_flags():
    scenario = ScenarioSet(id="s1", name="Stay", flags={"move": False})
    state = build_scenario_state(["move", "job"], scenario)
    assert state == {"move": False, "job": True}


def test_build_state_without_scenario_enables_everything():
    assert build_scenario_state(["a", "b"]) == {"a": True, "b": True}
