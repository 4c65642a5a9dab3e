"""
Scenario overlay: which decision-path-tagged events count under a scenario.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .models import ProjectionEvent, ScenarioSet

ScenarioState = Mapping[str, bool]


def is_event_active(event: ProjectionEvent, scenario_state: ScenarioState) -> bool:
    """
    Decide whether an event counts under the given scenario state.

    Untagged events always count. Tagged events count unless their decision
    path is explicitly disabled; a path missing from the state defaults to
    enabled, so events on paths created after a scenario was saved are not
    silently dropped.
    """
    if event.decision_path_id is None:
        return True
    return bool(scenario_state.get(event.decision_path_id, True))


def build_scenario_state(
    decision_path_ids: Iterable[str], scenario_set: ScenarioSet | None = None
) -> dict[str, bool]:
    """
    Build the enabled-map for a scenario.

    Every known decision path starts enabled; the scenario set's explicit
    flags are merged on top.
    """
    state = {path_id: True for path_id in decision_path_ids}
    if scenario_set is not None:
        state.update({k: bool(v) for k, v in scenario_set.flags.items()})
    return state
