"""Tests for the SQLite store."""

from __future__ import annotations

import sqlite3
import threading
from decimal import Decimal

import pytest
from projectionlab import DailyBalance, DecisionPath, ScenarioSet

from tests.conftest import DAY0, day, make_event, make_rule


@pytest.fixture
def seeded(store, account):
    store.add_account(account)
    return store


class TestAccounts:
    def test_round_trip(self, seeded, account):
        assert seeded.get_account("main") == account
        assert seeded.get_account("nope") is None
        assert seeded.account_ids() == ["main"]

    def test_update_initial_balance(self, seeded):
        seeded.update_initial_balance("main", Decimal("-20.50"), day(3))
        stored = seeded.get_account("main")
        assert stored.initial_balance == Decimal("-20.50")
        assert stored.initial_balance_date == day(3)


class TestRules:
    def test_add_assigns_id_and_round_trips(self, seeded):
        rule = seeded.add_rule(make_rule(counterparty="Shop"))
        assert rule.id is not None
        assert seeded.get_rule(rule.id) == rule

    def test_rules_in_chain_ordered_by_start(self, seeded):
        root = seeded.add_rule(make_rule(end_date=day(13)))
        rev = seeded.add_rule(
            make_rule(start_date=day(14), base_rule_id=root.id, is_base_rule=False)
        )
        assert [r.id for r in seeded.rules_in_chain(root.id)] == [root.id, rev.id]

    def test_deleting_root_cascades_to_revisions_and_events(self, seeded):
        root = seeded.add_rule(make_rule(end_date=day(13)))
        rev = seeded.add_rule(
            make_rule(start_date=day(14), base_rule_id=root.id, is_base_rule=False)
        )
        seeded.add_events([make_event(day(14), recurring_rule_id=rev.id)])
        seeded.delete_rule(root.id)
        assert seeded.get_rule(rev.id) is None
        assert seeded.events_in_range("main", day(0), day(30)) == []

    def test_non_positive_value_rejected_by_schema(self, seeded):
        with pytest.raises(sqlite3.IntegrityError):
            seeded.add_rule(make_rule(value=Decimal("0")))

    def test_unknown_account_rejected_by_schema(self, seeded):
        with pytest.raises(sqlite3.IntegrityError):
            seeded.add_rule(make_rule(bank_account_id="ghost"))


class TestEvents:
    def test_range_query_is_ordered_and_bounded(self, seeded):
        seeded.add_events([make_event(day(5)), make_event(day(1)), make_event(day(9))])
        events = seeded.events_in_range("main", day(1), day(5))
        assert [e.date for e in events] == [day(1), day(5)]
        assert seeded.last_event_date("main") == day(9)

    def test_add_event_returns_id(self, seeded):
        event_id = seeded.add_event(make_event(day(2), "12.34"))
        stored = seeded.get_event(event_id)
        assert stored.value == Decimal("12.34")
        assert stored.id == event_id
        seeded.delete_event(event_id)
        assert seeded.get_event(event_id) is None

    def test_replace_rule_events(self, seeded):
        rule = seeded.add_rule(make_rule())
        seeded.add_events([make_event(day(0), recurring_rule_id=rule.id)])
        deleted = seeded.replace_rule_events(
            rule.id,
            [
                make_event(day(1), recurring_rule_id=rule.id),
                make_event(day(2), recurring_rule_id=rule.id),
            ],
        )
        assert deleted == 1
        assert [e.date for e in seeded.rule_events(rule.id)] == [day(1), day(2)]


class TestScenarios:
    def test_scenario_set_round_trip_and_single_default(self, seeded):
        seeded.add_decision_path(DecisionPath("move", "Move house"))
        seeded.add_decision_path(DecisionPath("job", "New job"))
        seeded.add_scenario_set(ScenarioSet("a", "A", {"move": True}, is_default=True))
        seeded.add_scenario_set(ScenarioSet("b", "B", {"move": False, "job": True}))

        assert seeded.decision_path_ids() == ["job", "move"]
        assert seeded.get_scenario_set("b").flags == {"move": False, "job": True}
        assert seeded.default_scenario_set().id == "a"

        seeded.set_default_scenario_set("b")
        assert seeded.default_scenario_set().id == "b"
        assert seeded.get_scenario_set("a").is_default is False


class TestBalances:
    def test_actual_balance_upsert_and_clear(self, seeded):
        seeded.set_actual_balance("main", day(3), Decimal("10.00"))
        seeded.set_actual_balance("main", day(3), Decimal("11.00"))
        seeded.set_actual_balance("main", day(8), Decimal("12.00"))
        assert seeded.actual_balances("main") == {
            day(3): Decimal("11.00"),
            day(8): Decimal("12.00"),
        }
        assert seeded.actual_balances("main", end=day(5)) == {day(3): Decimal("11.00")}
        assert seeded.clear_actual_balance("main", day(3)) is True
        assert seeded.clear_actual_balance("main", day(3)) is False

    def test_replace_daily_balances_range(self, seeded):
        rows = [DailyBalance(day(i), "main", Decimal(i)) for i in range(5)]
        seeded.replace_daily_balances("main", day(0), day(4), rows)
        seeded.replace_daily_balances(
            "main",
            day(2),
            day(3),
            [DailyBalance(day(2), "main", Decimal("9"), Decimal("8"), 2)],
        )
        stored = seeded.daily_balances("main", day(0), day(4))
        assert [r.date for r in stored] == [day(0), day(1), day(2), day(4)]
        assert stored[2] == DailyBalance(day(2), "main", Decimal("9"), Decimal("8"), 2)
        assert seeded.daily_balance_span("main") == (day(0), day(4))
        assert seeded.last_daily_balance_date("main") == day(4)


class TestTransactions:
    def test_exception_rolls_back_everything(self, seeded):
        with pytest.raises(RuntimeError):
            with seeded.transaction():
                seeded.add_events([make_event(day(1))])
                seeded.set_actual_balance("main", day(1), Decimal("5"))
                raise RuntimeError("boom")
        assert seeded.events_in_range("main", DAY0, day(10)) == []
        assert seeded.actual_balances("main") == {}

    def test_nested_transactions_commit_once(self, seeded):
        with seeded.transaction():
            with seeded.transaction():
                seeded.add_events([make_event(day(1))])
            seeded.add_events([make_event(day(2))])
        assert len(seeded.events_in_range("main", DAY0, day(10))) == 2

    def test_reader_on_other_thread_waits_for_rollback(self, seeded):
        rows = [DailyBalance(day(i), "main", Decimal("1000.00")) for i in range(3)]
        seeded.replace_daily_balances("main", day(0), day(2), rows)
        seen = []
        reader = threading.Thread(
            target=lambda: seen.append(len(seeded.daily_balances("main", day(0), day(2))))
        )
        with pytest.raises(RuntimeError):
            with seeded.transaction():
                seeded.replace_daily_balances("main", day(0), day(2), [])
                reader.start()
                reader.join(timeout=0.2)
                assert reader.is_alive()
                raise RuntimeError("boom")
        reader.join(timeout=5)
        assert seen == [3]

    def test_file_database_persists(self, tmp_path, account):
        from projectionlab import ProjectionStore

        path = tmp_path / "projection.db"
        first = ProjectionStore(path).initialize()
        first.add_account(account)
        first.close()
        second = ProjectionStore(path).initialize()
        assert second.get_account("main") == account
        second.close()
