"""
SQLite persistence for accounts, rules, events, scenarios and balances.

Money is stored as TEXT so Decimal values round-trip exactly; dates are ISO
`YYYY-MM-DD` strings, which sort correctly as text.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from pathlib import Path

from .core.kinds import Certainty, Direction, Frequency
from .core.models import (
    BankAccount,
    DailyBalance,
    DecisionPath,
    ProjectionEvent,
    RecurringRule,
    ScenarioSet,
)

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS bank_accounts (
        id                   TEXT PRIMARY KEY,
        name                 TEXT NOT NULL,
        initial_balance      TEXT NOT NULL,
        initial_balance_date TEXT NOT NULL,
        currency             TEXT NOT NULL DEFAULT 'GBP'
    );

    CREATE TABLE IF NOT EXISTS decision_paths (
        id          TEXT PRIMARY KEY,
        name        TEXT NOT NULL UNIQUE,
        description TEXT
    );

    CREATE TABLE IF NOT EXISTS scenario_sets (
        id          TEXT PRIMARY KEY,
        name        TEXT NOT NULL,
        description TEXT,
        is_default  INTEGER NOT NULL DEFAULT 0
    );

    CREATE TABLE IF NOT EXISTS scenario_set_paths (
        scenario_set_id  TEXT NOT NULL REFERENCES scenario_sets(id) ON DELETE CASCADE,
        decision_path_id TEXT NOT NULL REFERENCES decision_paths(id) ON DELETE CASCADE,
        enabled          INTEGER NOT NULL DEFAULT 1,
        PRIMARY KEY (scenario_set_id, decision_path_id)
    );

    CREATE TABLE IF NOT EXISTS recurring_rules (
        id               INTEGER PRIMARY KEY AUTOINCREMENT,
        name             TEXT NOT NULL,
        value            TEXT NOT NULL CHECK(CAST(value AS REAL) > 0),
        direction        TEXT NOT NULL CHECK(direction IN ('EXPENSE','INCOMING')),
        certainty        TEXT NOT NULL
                         CHECK(certainty IN ('UNLIKELY','POSSIBLE','LIKELY','CERTAIN')),
        counterparty     TEXT,
        description      TEXT,
        decision_path_id TEXT REFERENCES decision_paths(id) ON DELETE SET NULL,
        bank_account_id  TEXT NOT NULL REFERENCES bank_accounts(id) ON DELETE CASCADE,
        start_date       TEXT NOT NULL,
        end_date         TEXT NOT NULL CHECK(end_date >= start_date),
        frequency        TEXT NOT NULL CHECK(frequency IN
                         ('DAILY','WEEKLY','MONTHLY','QUARTERLY','BIANNUAL','ANNUAL')),
        base_rule_id     INTEGER REFERENCES recurring_rules(id) ON DELETE CASCADE,
        is_base_rule     INTEGER NOT NULL DEFAULT 1
    );

    CREATE TABLE IF NOT EXISTS projection_events (
        id                INTEGER PRIMARY KEY AUTOINCREMENT,
        name              TEXT NOT NULL,
        value             TEXT NOT NULL CHECK(CAST(value AS REAL) > 0),
        direction         TEXT NOT NULL CHECK(direction IN ('EXPENSE','INCOMING')),
        certainty         TEXT NOT NULL
                          CHECK(certainty IN ('UNLIKELY','POSSIBLE','LIKELY','CERTAIN')),
        date              TEXT NOT NULL,
        bank_account_id   TEXT NOT NULL REFERENCES bank_accounts(id) ON DELETE CASCADE,
        decision_path_id  TEXT REFERENCES decision_paths(id) ON DELETE SET NULL,
        recurring_rule_id INTEGER REFERENCES recurring_rules(id) ON DELETE CASCADE,
        counterparty      TEXT,
        description       TEXT
    );

    CREATE TABLE IF NOT EXISTS actual_balances (
        bank_account_id TEXT NOT NULL REFERENCES bank_accounts(id) ON DELETE CASCADE,
        date            TEXT NOT NULL,
        value           TEXT NOT NULL,
        PRIMARY KEY (bank_account_id, date)
    );

    CREATE TABLE IF NOT EXISTS daily_balances (
        bank_account_id  TEXT NOT NULL REFERENCES bank_accounts(id) ON DELETE CASCADE,
        date             TEXT NOT NULL,
        expected_balance TEXT NOT NULL,
        actual_balance   TEXT,
        event_count      INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (bank_account_id, date)
    );

    CREATE INDEX IF NOT EXISTS idx_rules_base_rule      ON recurring_rules(base_rule_id);
    CREATE INDEX IF NOT EXISTS idx_rules_decision_path  ON recurring_rules(decision_path_id);
    CREATE INDEX IF NOT EXISTS idx_events_account_date  ON projection_events(bank_account_id, date);
    CREATE INDEX IF NOT EXISTS idx_events_rule          ON projection_events(recurring_rule_id);
    CREATE INDEX IF NOT EXISTS idx_scenario_sets_default ON scenario_sets(is_default);
"""


def _money(value: str | None) -> Decimal | None:
    return None if value is None else Decimal(value)


def _day(value: str | None) -> date | None:
    return None if value is None else date.fromisoformat(value)


class ProjectionStore:
    """
    SQLite-backed store.

    Writes performed inside `transaction()` are atomic: they all commit or all
    roll back. A store-wide re-entrant lock serializes writers from different
    threads, and `BEGIN IMMEDIATE` takes SQLite's write lock up front so two
    processes sharing a file cannot interleave either. Reads take the same
    lock, so a reader on another thread waits for an open transaction to
    commit or roll back instead of seeing its partial writes.

    Args:
        db_path: Database file, or ':memory:' (default) for a private database
    """

    def __init__(self, db_path: str | Path = ":memory:"):
        self.db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._depth = 0

    def get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                self.db_path, check_same_thread=False, isolation_level=None
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            if self.db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def _fetchone(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        with self._lock:
            return self.get_connection().execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self.get_connection().execute(sql, params).fetchall()

    def initialize(self) -> ProjectionStore:
        """Create the schema if needed."""
        conn = self.get_connection()
        with self._lock:
            conn.executescript(SCHEMA)
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Atomic unit of work.

        Nested calls join the outermost transaction. Any exception rolls the
        whole unit back and propagates.
        """
        conn = self.get_connection()
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                conn.execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield conn
            except BaseException:
                self._depth -= 1
                if outermost:
                    conn.execute("ROLLBACK")
                    logger.debug("Transaction rolled back")
                raise
            else:
                self._depth -= 1
                if outermost:
                    conn.execute("COMMIT")

    # --- Accounts -------------------------------------------------------------

    def _row_to_account(self, row) -> BankAccount:
        return BankAccount(
            id=row["id"],
            name=row["name"],
            initial_balance=Decimal(row["initial_balance"]),
            initial_balance_date=date.fromisoformat(row["initial_balance_date"]),
            currency=row["currency"],
        )

    def add_account(self, account: BankAccount) -> BankAccount:
        with self.transaction() as conn:
            conn.execute(
                """INSERT INTO bank_accounts
                   (id, name, initial_balance, initial_balance_date, currency)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    account.id,
                    account.name,
                    str(account.initial_balance),
                    account.initial_balance_date.isoformat(),
                    account.currency,
                ),
            )
        return account

    def get_account(self, account_id: str) -> BankAccount | None:
        row = self._fetchone("SELECT * FROM bank_accounts WHERE id = ?", (account_id,))
        return self._row_to_account(row) if row else None

    def account_ids(self) -> list[str]:
        rows = self._fetchall("SELECT id FROM bank_accounts ORDER BY id")
        return [r["id"] for r in rows]

    def update_initial_balance(
        self, account_id: str, value: Decimal, effective_date: date
    ) -> None:
        with self.transaction() as conn:
            conn.execute(
                """UPDATE bank_accounts
                   SET initial_balance = ?, initial_balance_date = ?
                   WHERE id = ?""",
                (str(value), effective_date.isoformat(), account_id),
            )

    # --- Decision paths and scenario sets -------------------------------------

    def add_decision_path(self, path: DecisionPath) -> DecisionPath:
        with self.transaction() as conn:
            conn.execute(
                "INSERT INTO decision_paths (id, name, description) VALUES (?, ?, ?)",
                (path.id, path.name, path.description),
            )
        return path

    def get_decision_path(self, path_id: str) -> DecisionPath | None:
        row = self._fetchone("SELECT * FROM decision_paths WHERE id = ?", (path_id,))
        return DecisionPath(row["id"], row["name"], row["description"]) if row else None

    def decision_path_ids(self) -> list[str]:
        rows = self._fetchall("SELECT id FROM decision_paths ORDER BY id")
        return [r["id"] for r in rows]

    def add_scenario_set(self, scenario: ScenarioSet) -> ScenarioSet:
        with self.transaction() as conn:
            if scenario.is_default:
                conn.execute("UPDATE scenario_sets SET is_default = 0")
            conn.execute(
                """INSERT INTO scenario_sets (id, name, description, is_default)
                   VALUES (?, ?, ?, ?)""",
                (scenario.id, scenario.name, scenario.description, int(scenario.is_default)),
            )
            conn.executemany(
                """INSERT INTO scenario_set_paths
                   (scenario_set_id, decision_path_id, enabled) VALUES (?, ?, ?)""",
                [(scenario.id, k, int(v)) for k, v in sorted(scenario.flags.items())],
            )
        return scenario

    def get_scenario_set(self, scenario_id: str) -> ScenarioSet | None:
        row = self._fetchone("SELECT * FROM scenario_sets WHERE id = ?", (scenario_id,))
        if row is None:
            return None
        flags = self._fetchall(
            """SELECT decision_path_id, enabled FROM scenario_set_paths
               WHERE scenario_set_id = ?""",
            (scenario_id,),
        )
        return ScenarioSet(
            id=row["id"],
            name=row["name"],
            flags={f["decision_path_id"]: bool(f["enabled"]) for f in flags},
            is_default=bool(row["is_default"]),
            description=row["description"],
        )

    def default_scenario_set(self) -> ScenarioSet | None:
        row = self._fetchone("SELECT id FROM scenario_sets WHERE is_default = 1")
        return self.get_scenario_set(row["id"]) if row else None

    def set_default_scenario_set(self, scenario_id: str) -> None:
        with self.transaction() as conn:
            conn.execute("UPDATE scenario_sets SET is_default = 0")
            conn.execute(
                "UPDATE scenario_sets SET is_default = 1 WHERE id = ?", (scenario_id,)
            )

    # --- Recurring rules ------------------------------------------------------

    def _row_to_rule(self, row) -> RecurringRule:
        return RecurringRule(
            id=row["id"],
            name=row["name"],
            value=Decimal(row["value"]),
            direction=Direction(row["direction"]),
            certainty=Certainty(row["certainty"]),
            counterparty=row["counterparty"],
            description=row["description"],
            decision_path_id=row["decision_path_id"],
            bank_account_id=row["bank_account_id"],
            start_date=date.fromisoformat(row["start_date"]),
            end_date=date.fromisoformat(row["end_date"]),
            frequency=Frequency(row["frequency"]),
            base_rule_id=row["base_rule_id"],
            is_base_rule=bool(row["is_base_rule"]),
        )

    @staticmethod
    def _rule_params(rule: RecurringRule) -> tuple:
        return (
            rule.name,
            str(rule.value),
            rule.direction.value,
            rule.certainty.value,
            rule.counterparty,
            rule.description,
            rule.decision_path_id,
            rule.bank_account_id,
            rule.start_date.isoformat(),
            rule.end_date.isoformat(),
            rule.frequency.value,
            rule.base_rule_id,
            int(rule.is_base_rule),
        )

    def add_rule(self, rule: RecurringRule) -> RecurringRule:
        """Insert a rule and return a copy carrying its new id."""
        with self.transaction() as conn:
            cursor = conn.execute(
                """INSERT INTO recurring_rules
                   (name, value, direction, certainty, counterparty, description,
                    decision_path_id, bank_account_id, start_date, end_date,
                    frequency, base_rule_id, is_base_rule)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                self._rule_params(rule),
            )
        return rule.copy(id=cursor.lastrowid)

    def get_rule(self, rule_id: int) -> RecurringRule | None:
        row = self._fetchone("SELECT * FROM recurring_rules WHERE id = ?", (rule_id,))
        return self._row_to_rule(row) if row else None

    def update_rule(self, rule: RecurringRule) -> None:
        with self.transaction() as conn:
            conn.execute(
                """UPDATE recurring_rules SET
                   name = ?, value = ?, direction = ?, certainty = ?, counterparty = ?,
                   description = ?, decision_path_id = ?, bank_account_id = ?,
                   start_date = ?, end_date = ?, frequency = ?, base_rule_id = ?,
                   is_base_rule = ?
                   WHERE id = ?""",
                (*self._rule_params(rule), rule.id),
            )

    def delete_rule(self, rule_id: int) -> None:
        """Delete a rule; its events and (for a root) its revisions cascade."""
        with self.transaction() as conn:
            conn.execute("DELETE FROM recurring_rules WHERE id = ?", (rule_id,))

    def rules_in_chain(self, root_id: int) -> list[RecurringRule]:
        """Root and every revision pointing at it, ordered by start date."""
        rows = self._fetchall(
            """SELECT * FROM recurring_rules
               WHERE id = ? OR base_rule_id = ?
               ORDER BY start_date, id""",
            (root_id, root_id),
        )
        return [self._row_to_rule(r) for r in rows]

    # --- Projection events ----------------------------------------------------

    def _row_to_event(self, row) -> ProjectionEvent:
        return ProjectionEvent(
            id=row["id"],
            name=row["name"],
            value=Decimal(row["value"]),
            direction=Direction(row["direction"]),
            certainty=Certainty(row["certainty"]),
            date=date.fromisoformat(row["date"]),
            bank_account_id=row["bank_account_id"],
            decision_path_id=row["decision_path_id"],
            recurring_rule_id=row["recurring_rule_id"],
            counterparty=row["counterparty"],
            description=row["description"],
        )

    def add_events(self, events: Iterable[ProjectionEvent]) -> int:
        with self.transaction() as conn:
            cursor = conn.executemany(
                """INSERT INTO projection_events
                   (name, value, direction, certainty, date, bank_account_id,
                    decision_path_id, recurring_rule_id, counterparty, description)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                [
                    (
                        e.name,
                        str(e.value),
                        e.direction.value,
                        e.certainty.value,
                        e.date.isoformat(),
                        e.bank_account_id,
                        e.decision_path_id,
                        e.recurring_rule_id,
                        e.counterparty,
                        e.description,
                    )
                    for e in events
                ],
            )
        return cursor.rowcount

    def add_event(self, event: ProjectionEvent) -> int:
        """Insert a single event and return its id."""
        with self.transaction() as conn:
            self.add_events([event])
            return conn.execute("SELECT last_insert_rowid()").fetchone()[0]

    def get_event(self, event_id: int) -> ProjectionEvent | None:
        row = self._fetchone("SELECT * FROM projection_events WHERE id = ?", (event_id,))
        return self._row_to_event(row) if row else None

    def delete_event(self, event_id: int) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM projection_events WHERE id = ?", (event_id,))

    def replace_rule_events(self, rule_id: int, events: Iterable[ProjectionEvent]) -> int:
        """Swap a rule's generated events for a new set; returns the old count."""
        with self.transaction() as conn:
            deleted = conn.execute(
                "DELETE FROM projection_events WHERE recurring_rule_id = ?", (rule_id,)
            ).rowcount
            self.add_events(events)
        return deleted

    def rule_events(self, rule_id: int) -> list[ProjectionEvent]:
        rows = self._fetchall(
            """SELECT * FROM projection_events WHERE recurring_rule_id = ?
               ORDER BY date, id""",
            (rule_id,),
        )
        return [self._row_to_event(r) for r in rows]

    def events_in_range(
        self, account_id: str, start: date, end: date
    ) -> list[ProjectionEvent]:
        rows = self._fetchall(
            """SELECT * FROM projection_events
               WHERE bank_account_id = ? AND date BETWEEN ? AND ?
               ORDER BY date, id""",
            (account_id, start.isoformat(), end.isoformat()),
        )
        return [self._row_to_event(r) for r in rows]

    def last_event_date(self, account_id: str) -> date | None:
        row = self._fetchone(
            "SELECT MAX(date) AS d FROM projection_events WHERE bank_account_id = ?",
            (account_id,),
        )
        return _day(row["d"])

    # --- Actual balances ------------------------------------------------------

    def set_actual_balance(self, account_id: str, day: date, value: Decimal) -> None:
        with self.transaction() as conn:
            conn.execute(
                """INSERT INTO actual_balances (bank_account_id, date, value)
                   VALUES (?, ?, ?)
                   ON CONFLICT(bank_account_id, date) DO UPDATE SET value = excluded.value""",
                (account_id, day.isoformat(), str(value)),
            )

    def clear_actual_balance(self, account_id: str, day: date) -> bool:
        """Remove an actual balance; returns False if none was set."""
        with self.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM actual_balances WHERE bank_account_id = ? AND date = ?",
                (account_id, day.isoformat()),
            )
        return cursor.rowcount > 0

    def actual_balances(
        self, account_id: str, start: date | None = None, end: date | None = None
    ) -> dict[date, Decimal]:
        rows = self._fetchall(
            """SELECT date, value FROM actual_balances
               WHERE bank_account_id = ?
                 AND (? IS NULL OR date >= ?)
                 AND (? IS NULL OR date <= ?)
               ORDER BY date""",
            (
                account_id,
                _iso(start),
                _iso(start),
                _iso(end),
                _iso(end),
            ),
        )
        return {date.fromisoformat(r["date"]): Decimal(r["value"]) for r in rows}

    # --- Daily balances -------------------------------------------------------

    def replace_daily_balances(
        self, account_id: str, start: date, end: date, rows: Iterable[DailyBalance]
    ) -> int:
        """Replace every stored row for the account in [start, end]."""
        with self.transaction() as conn:
            conn.execute(
                """DELETE FROM daily_balances
                   WHERE bank_account_id = ? AND date BETWEEN ? AND ?""",
                (account_id, start.isoformat(), end.isoformat()),
            )
            cursor = conn.executemany(
                """INSERT INTO daily_balances
                   (bank_account_id, date, expected_balance, actual_balance, event_count)
                   VALUES (?, ?, ?, ?, ?)""",
                [
                    (
                        account_id,
                        r.date.isoformat(),
                        str(r.expected_balance),
                        None if r.actual_balance is None else str(r.actual_balance),
                        r.event_count,
                    )
                    for r in rows
                ],
            )
        return cursor.rowcount

    def daily_balances(self, account_id: str, start: date, end: date) -> list[DailyBalance]:
        rows = self._fetchall(
            """SELECT * FROM daily_balances
               WHERE bank_account_id = ? AND date BETWEEN ? AND ?
               ORDER BY date""",
            (account_id, start.isoformat(), end.isoformat()),
        )
        return [
            DailyBalance(
                date=date.fromisoformat(r["date"]),
                bank_account_id=r["bank_account_id"],
                expected_balance=Decimal(r["expected_balance"]),
                actual_balance=_money(r["actual_balance"]),
                event_count=r["event_count"],
            )
            for r in rows
        ]

    def daily_balance_span(self, account_id: str) -> tuple[date, date] | None:
        """First and last persisted day for the account, or None if none are stored."""
        row = self._fetchone(
            """SELECT MIN(date) AS first, MAX(date) AS last FROM daily_balances
               WHERE bank_account_id = ?""",
            (account_id,),
        )
        if row["first"] is None:
            return None
        return date.fromisoformat(row["first"]), date.fromisoformat(row["last"])

    def last_daily_balance_date(self, account_id: str) -> date | None:
        span = self.daily_balance_span(account_id)
        return span[1] if span else None


def _iso(value: date | None) -> str | None:
    return None if value is None else value.isoformat()
