"""SQLite persistence layer for the bozo board."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from odds_client.catalog import CatalogUnavailable, Line
from prop_engine.aggregation import StandingEntry, WorstMiss, rollup, sort_standings
from prop_engine.models import Bet, BetCategory, BetStatus, Cycle, Side
from prop_engine.validation import CohortPolicy


SCHEMA = """
CREATE TABLE IF NOT EXISTS lines (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_id TEXT NOT NULL,
    season INTEGER,
    week INTEGER,
    position INTEGER NOT NULL,
    price INTEGER NOT NULL,
    data TEXT NOT NULL,
    recorded_at TEXT NOT NULL,
    superseded_at TEXT
);

CREATE INDEX IF NOT EXISTS lines_current ON lines (source_id, superseded_at);

CREATE TABLE IF NOT EXISTS cohorts (
    id TEXT PRIMARY KEY,
    name TEXT,
    min_price INTEGER,
    max_price INTEGER,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS memberships (
    cohort_id TEXT NOT NULL,
    member_id TEXT NOT NULL,
    joined_at TEXT NOT NULL,
    PRIMARY KEY (cohort_id, member_id),
    FOREIGN KEY (cohort_id) REFERENCES cohorts(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS bets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    member_id TEXT NOT NULL,
    cohort_id TEXT NOT NULL,
    season INTEGER NOT NULL,
    week INTEGER NOT NULL,
    raw_text TEXT NOT NULL,
    category TEXT NOT NULL,
    side TEXT NOT NULL,
    price INTEGER,
    line TEXT,
    confidence REAL NOT NULL,
    status TEXT NOT NULL,
    created_at TEXT NOT NULL,
    resolved_at TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS bets_one_per_week ON bets (member_id, season, week, category);

CREATE TABLE IF NOT EXISTS standings (
    member_id TEXT NOT NULL,
    cohort_id TEXT NOT NULL,
    season INTEGER NOT NULL,
    week INTEGER NOT NULL,
    hits INTEGER NOT NULL DEFAULT 0,
    misses INTEGER NOT NULL DEFAULT 0,
    pushes INTEGER NOT NULL DEFAULT 0,
    voids INTEGER NOT NULL DEFAULT 0,
    risk_hits INTEGER NOT NULL DEFAULT 0,
    risk_misses INTEGER NOT NULL DEFAULT 0,
    safe_hits INTEGER NOT NULL DEFAULT 0,
    safe_misses INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (member_id, cohort_id, season, week)
);

CREATE TABLE IF NOT EXISTS worst_misses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    season INTEGER NOT NULL,
    week INTEGER NOT NULL,
    cohort_key TEXT NOT NULL,
    bet_id INTEGER NOT NULL,
    member_id TEXT NOT NULL,
    price INTEGER,
    designated_season INTEGER NOT NULL,
    designated_week INTEGER NOT NULL,
    implied_probability TEXT,
    is_current INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    UNIQUE (season, week, cohort_key)
);

CREATE TABLE IF NOT EXISTS profiles (
    name TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at TEXT NOT NULL,
    level TEXT NOT NULL,
    message TEXT NOT NULL,
    context TEXT
);
"""

# Key used for the designation across every cohort.
ALL_COHORTS = "*"

_STANDING_COLUMNS = (
    "hits",
    "misses",
    "pushes",
    "voids",
    "risk_hits",
    "risk_misses",
    "safe_hits",
    "safe_misses",
)

_BET_COLUMNS = (
    "id, member_id, cohort_id, season, week, raw_text, category, side, price, line,"
    " confidence, status, created_at, resolved_at"
)


class StoreError(RuntimeError):
    """Raised when stored data is missing or cannot be interpreted."""


class DuplicateBet(StoreError):
    """Raised when a member already has a bet of that category for the week."""


@dataclass
class LogRecord:
    id: int
    created_at: datetime
    level: str
    message: str
    context: Optional[dict]


class Database:
    def __init__(self, path: str | Path = "bozo_board.db") -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path)
        try:
            yield conn
        finally:
            conn.commit()
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Immediate write transaction; rolled back if the block raises."""

        conn = sqlite3.connect(self._path, isolation_level=None, timeout=30)
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    # Line catalog -----------------------------------------------------------------

    def record_lines(self, lines: Iterable[Line]) -> int:
        """Publish lines; a changed line supersedes the stored one. Returns the change count."""

        changed = 0
        now = datetime.utcnow().isoformat()
        with self._transaction() as conn:
            for line in lines:
                payload = json.dumps(line.to_dict())
                current = conn.execute(
                    "SELECT id, position, data FROM lines WHERE source_id = ? AND superseded_at IS NULL",
                    (line.source_id,),
                ).fetchone()
                if current and current[2] == payload:
                    continue
                if current:
                    position = current[1]
                    conn.execute("UPDATE lines SET superseded_at = ? WHERE id = ?", (now, current[0]))
                else:
                    (position,) = conn.execute("SELECT COALESCE(MAX(position), 0) + 1 FROM lines").fetchone()
                conn.execute(
                    "INSERT INTO lines (source_id, season, week, position, price, data, recorded_at)"
                    " VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        line.source_id,
                        line.cycle.season if line.cycle else None,
                        line.cycle.week if line.cycle else None,
                        position,
                        line.price,
                        payload,
                        now,
                    ),
                )
                changed += 1
        if changed:
            self.log("info", "Line catalog updated", {"changed": changed})
        return changed

    def list_lines(self, cycle: Cycle) -> List[Line]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT data FROM lines WHERE superseded_at IS NULL"
                    " AND ((season = ? AND week = ?) OR season IS NULL)"
                    " ORDER BY position ASC",
                    (cycle.season, cycle.week),
                ).fetchall()
        except sqlite3.Error as exc:
            raise CatalogUnavailable(f"Line catalog could not be read: {exc}") from exc
        return [Line.from_dict(json.loads(row[0])) for row in rows]

    def line_history(self, source_id: str) -> List[Line]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT data FROM lines WHERE source_id = ? ORDER BY id ASC", (source_id,)
            ).fetchall()
        return [Line.from_dict(json.loads(row[0])) for row in rows]

    # Cohorts ----------------------------------------------------------------------

    def upsert_cohort(
        self,
        cohort_id: str,
        min_price: Optional[int] = None,
        max_price: Optional[int] = None,
        name: Optional[str] = None,
    ) -> None:
        if min_price is not None and max_price is not None and min_price > max_price:
            raise ValueError(f"Minimum odds {min_price} is above maximum odds {max_price}")
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO cohorts (id, name, min_price, max_price, updated_at) VALUES (?, ?, ?, ?, ?)"
                " ON CONFLICT(id) DO UPDATE SET name = excluded.name, min_price = excluded.min_price,"
                " max_price = excluded.max_price, updated_at = excluded.updated_at",
                (cohort_id, name, min_price, max_price, datetime.utcnow().isoformat()),
            )
        self.log(
            "info",
            "Team policy updated",
            {"cohort": cohort_id, "min_price": min_price, "max_price": max_price},
        )

    def add_member(self, cohort_id: str, member_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO memberships (cohort_id, member_id, joined_at) VALUES (?, ?, ?)",
                (cohort_id, member_id, datetime.utcnow().isoformat()),
            )

    def remove_member(self, cohort_id: str, member_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM memberships WHERE cohort_id = ? AND member_id = ?", (cohort_id, member_id)
            )

    def get_policy(self, cohort_id: str) -> Optional[CohortPolicy]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, name, min_price, max_price FROM cohorts WHERE id = ?", (cohort_id,)
            ).fetchone()
            if not row:
                return None
            members = conn.execute(
                "SELECT member_id FROM memberships WHERE cohort_id = ?", (cohort_id,)
            ).fetchall()
        return CohortPolicy(
            cohort_id=row[0],
            name=row[1],
            min_price=row[2],
            max_price=row[3],
            members=frozenset(member for (member,) in members),
        )

    def cohort_ids(self) -> List[str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT id FROM cohorts ORDER BY id ASC").fetchall()
        return [row[0] for row in rows]

    # Bets -------------------------------------------------------------------------

    def insert_bet(self, bet: Bet) -> Bet:
        with self._connect() as conn:
            try:
                cur = conn.execute(
                    "INSERT INTO bets (member_id, cohort_id, season, week, raw_text, category, side,"
                    " price, line, confidence, status, created_at, resolved_at)"
                    " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        bet.member_id,
                        bet.cohort_id,
                        bet.cycle.season,
                        bet.cycle.week,
                        bet.raw_text,
                        bet.category.value,
                        bet.side.value,
                        bet.price,
                        json.dumps(bet.line.to_dict()) if bet.line else None,
                        bet.confidence,
                        bet.status.value,
                        bet.created_at.isoformat(),
                        bet.resolved_at.isoformat() if bet.resolved_at else None,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateBet(
                    f"{bet.member_id} already has a {bet.category.value} bet for {bet.cycle.label()}"
                ) from exc
            bet_id = int(cur.lastrowid)
        return self.get_bet(bet_id)

    def get_bet(self, bet_id: int) -> Bet:
        with self._connect() as conn:
            row = conn.execute(f"SELECT {_BET_COLUMNS} FROM bets WHERE id = ?", (bet_id,)).fetchone()
        if row is None:
            raise StoreError(f"Bet {bet_id} does not exist")
        return _row_to_bet(row)

    def bets_for_cycle(self, cycle: Cycle, cohort_id: Optional[str] = None) -> List[Bet]:
        query = f"SELECT {_BET_COLUMNS} FROM bets WHERE season = ? AND week = ?"
        params: tuple = (cycle.season, cycle.week)
        if cohort_id is not None:
            query += " AND cohort_id = ?"
            params += (cohort_id,)
        with self._connect() as conn:
            rows = conn.execute(query + " ORDER BY id ASC", params).fetchall()
        return [_row_to_bet(row) for row in rows]

    def pending_bets(self, cycle: Cycle) -> List[Bet]:
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_BET_COLUMNS} FROM bets WHERE season = ? AND week = ? AND status = ?"
                " ORDER BY id ASC",
                (cycle.season, cycle.week, BetStatus.PENDING.value),
            ).fetchall()
        return [_row_to_bet(row) for row in rows]

    def apply_resolution(self, bet_id: int, status: BetStatus, observed_at: datetime) -> bool:
        """Move a pending bet to a terminal status and count it in the standings.

        Both writes share one transaction, so a bet is counted exactly once no
        matter how often resolution runs.
        """

        status = _parse_status(status)
        if not status.is_terminal:
            raise StoreError(f"Cannot resolve bet {bet_id} to {status.value}")
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT member_id, cohort_id, season, week, category, status FROM bets WHERE id = ?",
                (bet_id,),
            ).fetchone()
            if row is None:
                raise StoreError(f"Bet {bet_id} does not exist")
            member_id, cohort_id, season, week, category, current = row
            if _parse_status(current).is_terminal:
                return False
            conn.execute(
                "UPDATE bets SET status = ?, resolved_at = ? WHERE id = ? AND status = ?",
                (status.value, observed_at.isoformat(), bet_id, BetStatus.PENDING.value),
            )
            entry = _load_standing(conn, member_id, cohort_id, season, week)
            entry = rollup(entry, status, _parse_category(category))
            _store_standing(conn, entry, season, week)
        return True

    # Standings and worst misses ---------------------------------------------------

    def get_standings(
        self,
        cohort_id: Optional[str] = None,
        sort_by: str = "misses",
        cycle: Optional[Cycle] = None,
    ) -> List[StandingEntry]:
        sums = ", ".join(f"SUM({column})" for column in _STANDING_COLUMNS)
        query = f"SELECT member_id, {sums} FROM standings"
        clauses: List[str] = []
        params: List[object] = []
        if cohort_id is not None:
            clauses.append("cohort_id = ?")
            params.append(cohort_id)
        if cycle is not None:
            clauses.append("season = ? AND week = ?")
            params.extend([cycle.season, cycle.week])
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " GROUP BY member_id"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        entries = [
            StandingEntry(member_id=row[0], cohort_id=cohort_id, **dict(zip(_STANDING_COLUMNS, map(int, row[1:]))))
            for row in rows
        ]
        return sort_standings(entries, sort_by)

    def record_worst_miss(self, worst: WorstMiss) -> None:
        cohort_key = worst.cohort_id or ALL_COHORTS
        with self._transaction() as conn:
            conn.execute("UPDATE worst_misses SET is_current = 0 WHERE cohort_key = ?", (cohort_key,))
            conn.execute(
                "INSERT INTO worst_misses (season, week, cohort_key, bet_id, member_id, price,"
                " designated_season, designated_week, implied_probability, is_current, created_at)"
                " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?)"
                " ON CONFLICT(season, week, cohort_key) DO UPDATE SET bet_id = excluded.bet_id,"
                " member_id = excluded.member_id, price = excluded.price,"
                " designated_season = excluded.designated_season, designated_week = excluded.designated_week,"
                " implied_probability = excluded.implied_probability, is_current = 1,"
                " created_at = excluded.created_at",
                (
                    worst.cycle.season,
                    worst.cycle.week,
                    cohort_key,
                    worst.bet.id,
                    worst.bet.member_id,
                    worst.bet.price,
                    worst.designated_cycle.season,
                    worst.designated_cycle.week,
                    str(worst.implied_probability) if worst.implied_probability is not None else None,
                    datetime.utcnow().isoformat(),
                ),
            )
        self.log(
            "info",
            "Worst miss designated",
            {
                "season": worst.cycle.season,
                "week": worst.cycle.week,
                "cohort": cohort_key,
                "member": worst.bet.member_id,
                "price": worst.bet.price,
            },
        )

    def get_worst_miss(self, cycle: Cycle, cohort_id: Optional[str] = None) -> Optional[Bet]:
        record = self.worst_miss_record(cycle, cohort_id)
        return record.bet if record else None

    def worst_miss_record(self, cycle: Cycle, cohort_id: Optional[str] = None) -> Optional[WorstMiss]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT season, week, cohort_key, bet_id, designated_season, designated_week,"
                " implied_probability FROM worst_misses WHERE season = ? AND week = ? AND cohort_key = ?",
                (cycle.season, cycle.week, cohort_id or ALL_COHORTS),
            ).fetchone()
        return self._row_to_worst_miss(row) if row else None

    def worst_miss_history(self, season: int, cohort_id: Optional[str] = None) -> List[WorstMiss]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT season, week, cohort_key, bet_id, designated_season, designated_week,"
                " implied_probability FROM worst_misses WHERE season = ? AND cohort_key = ?"
                " ORDER BY week ASC",
                (season, cohort_id or ALL_COHORTS),
            ).fetchall()
        return [self._row_to_worst_miss(row) for row in rows]

    def _row_to_worst_miss(self, row: tuple) -> WorstMiss:
        season, week, cohort_key, bet_id, designated_season, designated_week, probability = row
        return WorstMiss(
            cycle=Cycle(season=season, week=week),
            cohort_id=None if cohort_key == ALL_COHORTS else cohort_key,
            bet=self.get_bet(bet_id),
            designated_cycle=Cycle(season=designated_season, week=designated_week),
            implied_probability=Decimal(probability) if probability is not None else None,
        )

    # Profiles and logs ------------------------------------------------------------

    def save_profile(self, name: str, payload: dict) -> None:
        with self._connect() as conn:
            conn.execute(
                "REPLACE INTO profiles (name, data, updated_at) VALUES (?, ?, ?)",
                (name, json.dumps(payload, default=_json_default), datetime.utcnow().isoformat()),
            )

    def get_profile(self, name: str) -> Optional[dict]:
        with self._connect() as conn:
            row = conn.execute("SELECT data FROM profiles WHERE name = ?", (name,)).fetchone()
        return json.loads(row[0]) if row else None

    def list_profiles(self) -> List[str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT name FROM profiles ORDER BY name ASC").fetchall()
        return [row[0] for row in rows]

    def log(self, level: str, message: str, context: Optional[dict] = None) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT INTO logs (created_at, level, message, context) VALUES (?, ?, ?, ?)",
                (
                    datetime.utcnow().isoformat(),
                    level,
                    message,
                    json.dumps(context, default=_json_default) if context else None,
                ),
            )
            return int(cur.lastrowid)

    def fetch_logs(self, since_id: Optional[int] = None, limit: int = 200) -> List[LogRecord]:
        query = "SELECT id, created_at, level, message, context FROM logs"
        params: tuple
        if since_id is not None:
            query += " WHERE id > ? ORDER BY id ASC LIMIT ?"
            params = (since_id, limit)
        else:
            query += " ORDER BY id ASC LIMIT ?"
            params = (limit,)

        with self._connect() as conn:
            cur = conn.execute(query, params)
            records: List[LogRecord] = []
            for log_id, created_at, level, message, context in cur.fetchall():
                parsed_context = json.loads(context) if context else None
                records.append(
                    LogRecord(
                        id=int(log_id),
                        created_at=datetime.fromisoformat(created_at),
                        level=level,
                        message=message,
                        context=parsed_context,
                    )
                )
            return records


def _load_standing(
    conn: sqlite3.Connection, member_id: str, cohort_id: str, season: int, week: int
) -> StandingEntry:
    row = conn.execute(
        f"SELECT {', '.join(_STANDING_COLUMNS)} FROM standings"
        " WHERE member_id = ? AND cohort_id = ? AND season = ? AND week = ?",
        (member_id, cohort_id, season, week),
    ).fetchone()
    counters = dict(zip(_STANDING_COLUMNS, row)) if row else {}
    return StandingEntry(member_id=member_id, cohort_id=cohort_id, **counters)


def _store_standing(conn: sqlite3.Connection, entry: StandingEntry, season: int, week: int) -> None:
    columns = ", ".join(_STANDING_COLUMNS)
    placeholders = ", ".join("?" for _ in _STANDING_COLUMNS)
    conn.execute(
        f"REPLACE INTO standings (member_id, cohort_id, season, week, {columns})"
        f" VALUES (?, ?, ?, ?, {placeholders})",
        (entry.member_id, entry.cohort_id, season, week, *(getattr(entry, c) for c in _STANDING_COLUMNS)),
    )


def _row_to_bet(row: tuple) -> Bet:
    (
        bet_id,
        member_id,
        cohort_id,
        season,
        week,
        raw_text,
        category,
        side,
        price,
        line,
        confidence,
        status,
        created_at,
        resolved_at,
    ) = row
    try:
        parsed_side = Side(side)
    except ValueError as exc:
        raise StoreError(f"Bet {bet_id} has unknown side {side!r}") from exc
    return Bet(
        id=int(bet_id),
        member_id=member_id,
        cohort_id=cohort_id,
        cycle=Cycle(season=season, week=week),
        raw_text=raw_text,
        category=_parse_category(category),
        side=parsed_side,
        price=int(price) if price is not None else None,
        line=Line.from_dict(json.loads(line)) if line else None,
        confidence=float(confidence),
        status=_parse_status(status),
        created_at=datetime.fromisoformat(created_at),
        resolved_at=datetime.fromisoformat(resolved_at) if resolved_at else None,
    )


def _parse_status(value: object) -> BetStatus:
    try:
        return BetStatus(value)
    except ValueError as exc:
        raise StoreError(f"Unknown bet status {value!r}") from exc


def _parse_category(value: object) -> BetCategory:
    try:
        return BetCategory(value)
    except ValueError as exc:
        raise StoreError(f"Unknown bet category {value!r}") from exc


def _json_default(value: object) -> object:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
