"""
Claim storage: a narrow repository interface plus its SQLite implementation.
Stores projects, claimable units keyed by (project_id, pr_number) and append-only payout records.
"""

import sqlite3
import threading
import os
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Optional, Any, Dict, List

from ingest.urls import normalize_repository
from models import ClaimKey, ClaimableUnit, PayoutRecord, Project
from normalize.util import parse_timestamp

logger = logging.getLogger(__name__)

# default ledger location; BOUNTY_DB or the CLI --db flag override it
DB_PATH = os.getenv("BOUNTY_DB", "bounty.db")

# expected prior states for upsert_claimable_unit
EXPECT_ABSENT = 'absent'
EXPECT_OPEN = 'open'

UNIT_COLUMNS = (
    'pr_url',
    'merged',
    'score',
    'bounty_amount',
    'bounty_claimed',
    'bounty_claimed_at',
    'bounty_claimed_by',
    'amount_paid',
)

# noinspection SqlResolve
SQL_CREATE = """
CREATE TABLE IF NOT EXISTS projects (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    repo_identifier TEXT NOT NULL UNIQUE,
    lowest_bounty REAL NOT NULL,
    highest_bounty REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS claimable_units (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id INTEGER NOT NULL,
    pr_number INTEGER NOT NULL,
    pr_url TEXT,
    merged INTEGER,
    score REAL,
    bounty_amount REAL,
    bounty_claimed INTEGER,
    bounty_claimed_at TEXT,
    bounty_claimed_by TEXT,
    amount_paid REAL,
    UNIQUE (project_id, pr_number)
);
CREATE INDEX IF NOT EXISTS idx_claimable_units_pr_url ON claimable_units (pr_url);
CREATE TABLE IF NOT EXISTS payouts (
    id TEXT PRIMARY KEY,
    amount REAL NOT NULL,
    developer_id TEXT NOT NULL,
    project_id INTEGER NOT NULL,
    unit_id INTEGER UNIQUE,
    status TEXT NOT NULL,
    created_at TEXT NOT NULL
);
"""


def normalize_pr_url(url: Optional[str]) -> Optional[str]:
    """Canonical form of a PR URL used for the secondary index."""
    if not url:
        return None
    return url.strip().rstrip('/').lower()


class ClaimRepository:
    """Storage operations the claim pipeline depends on."""

    def get_claimable_unit(self, key: ClaimKey) -> Optional[ClaimableUnit]:
        raise NotImplementedError

    def find_claimable_units_by_url(self, pr_url: str) -> List[ClaimableUnit]:
        raise NotImplementedError

    def upsert_claimable_unit(self, key: ClaimKey, fields: Dict[str, Any], expected_prior_state: Optional[str] = None) -> bool:
        """Write fields for key.

        expected_prior_state:
            EXPECT_ABSENT: insert only if no record exists for key.
            EXPECT_OPEN: update only if the record exists and is not claimed.
            None: unconditional insert-or-update.
        Returns True when a row was written.
        """
        raise NotImplementedError

    def create_payout_record(self, record: PayoutRecord) -> PayoutRecord:
        raise NotImplementedError

    def find_project_by_repository(self, identifier: str) -> Optional[Project]:
        raise NotImplementedError

    def get_project(self, project_id: int) -> Optional[Project]:
        raise NotImplementedError

    @contextmanager
    def transaction(self):
        """Commit boundary shared by every write issued inside the block."""
        raise NotImplementedError
        yield  # pragma: no cover


def _to_db(name: str, value: Any) -> Any:
    if value is None:
        return None
    if name in ('merged', 'bounty_claimed'):
        return 1 if value else 0
    if name == 'bounty_claimed_at' and isinstance(value, datetime):
        return value.isoformat()
    if name == 'pr_url':
        return normalize_pr_url(value)
    return value


def _bool_or_none(value: Any) -> Optional[bool]:
    return None if value is None else bool(value)


class SqliteClaimStore(ClaimRepository):
    def __init__(self, path: Optional[str] = None, timeout: float = 30.0):
        """Open (and create if needed) the claim ledger database.

        :param path: SQLite file path, ':memory:' for a private in-memory store. Defaults to DB_PATH.
        :param timeout: seconds to wait for a competing writer's lock.
        """
        self.path = path or DB_PATH or ':memory:'
        # autocommit mode; transactions are opened explicitly with BEGIN IMMEDIATE
        self.conn = sqlite3.connect(self.path, check_same_thread=False, timeout=timeout, isolation_level=None)
        self._lock = threading.RLock()
        self._init_db()

    def _init_db(self):
        with self._lock:
            self.conn.executescript(SQL_CREATE)

    def close(self):
        with self._lock:
            if getattr(self, 'conn', None) is not None:
                try:
                    self.conn.close()
                finally:
                    self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @contextmanager
    def transaction(self):
        """Run the block in one IMMEDIATE transaction; nested use joins the outer transaction."""
        with self._lock:
            if self.conn.in_transaction:
                yield self.conn
                return
            self.conn.execute('BEGIN IMMEDIATE')
            try:
                yield self.conn
            except BaseException:
                self.conn.execute('ROLLBACK')
                raise
            self.conn.execute('COMMIT')

    def _execute_write(self, sql: str, params=()) -> int:
        with self.transaction() as conn:
            cur = conn.execute(sql, params)
            return cur.rowcount

    # --- projects ---

    # noinspection SqlResolve
    def add_project(self, repo_identifier: str, lowest_bounty: float, highest_bounty: float) -> Project:
        project = Project(None, normalize_repository(repo_identifier), float(lowest_bounty), float(highest_bounty))
        if not project.has_valid_range():
            raise ValueError(f"Bounty range must satisfy 0 < lowest < highest (got {lowest_bounty}, {highest_bounty})")
        with self.transaction() as conn:
            try:
                cur = conn.execute(
                    'INSERT INTO projects(repo_identifier, lowest_bounty, highest_bounty) VALUES (?, ?, ?)',
                    (project.repo_identifier, project.lowest_bounty, project.highest_bounty),
                )
            except sqlite3.IntegrityError as ex:
                raise ValueError(f"Project for {project.repo_identifier} already registered") from ex
            project.id = cur.lastrowid
        return project

    @staticmethod
    def _project_from_row(row) -> Optional[Project]:
        if not row:
            return None
        pid, repo, lowest, highest = row
        return Project(pid, repo, float(lowest), float(highest))

    # noinspection SqlResolve
    def get_project(self, project_id: int) -> Optional[Project]:
        with self._lock:
            row = self.conn.execute(
                'SELECT id, repo_identifier, lowest_bounty, highest_bounty FROM projects WHERE id = ?', (int(project_id),)
            ).fetchone()
        return self._project_from_row(row)

    # noinspection SqlResolve
    def find_project_by_repository(self, identifier: str) -> Optional[Project]:
        with self._lock:
            row = self.conn.execute(
                'SELECT id, repo_identifier, lowest_bounty, highest_bounty FROM projects WHERE repo_identifier = ?',
                (normalize_repository(identifier),),
            ).fetchone()
        return self._project_from_row(row)

    # noinspection SqlResolve
    def list_projects(self) -> List[Project]:
        with self._lock:
            rows = self.conn.execute('SELECT id, repo_identifier, lowest_bounty, highest_bounty FROM projects ORDER BY id').fetchall()
        return [self._project_from_row(r) for r in rows]

    # --- claimable units ---

    _UNIT_SELECT = 'SELECT id, project_id, pr_number, ' + ', '.join(UNIT_COLUMNS) + ' FROM claimable_units'

    @staticmethod
    def _unit_from_row(row) -> Optional[ClaimableUnit]:
        if not row:
            return None
        uid, project_id, pr_number, pr_url, merged, score, amount, claimed, claimed_at, claimed_by, paid = row
        return ClaimableUnit(
            project_id=project_id,
            pr_number=pr_number,
            id=uid,
            pr_url=pr_url,
            merged=_bool_or_none(merged),
            score=score,
            bounty_amount=amount,
            bounty_claimed=_bool_or_none(claimed),
            bounty_claimed_at=parse_timestamp(claimed_at),
            bounty_claimed_by=claimed_by,
            amount_paid=paid,
        )

    def get_claimable_unit(self, key: ClaimKey) -> Optional[ClaimableUnit]:
        with self._lock:
            row = self.conn.execute(self._UNIT_SELECT + ' WHERE project_id = ? AND pr_number = ?', (int(key.project_id), int(key.pr_number))).fetchone()
        return self._unit_from_row(row)

    def find_claimable_units_by_url(self, pr_url: str) -> List[ClaimableUnit]:
        url = normalize_pr_url(pr_url)
        if not url:
            return []
        with self._lock:
            rows = self.conn.execute(self._UNIT_SELECT + ' WHERE pr_url = ? ORDER BY id', (url,)).fetchall()
        return [self._unit_from_row(r) for r in rows]

    def upsert_claimable_unit(self, key: ClaimKey, fields: Dict[str, Any], expected_prior_state: Optional[str] = None) -> bool:
        unknown = set(fields) - set(UNIT_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown claimable unit fields: {sorted(unknown)}")
        names = [n for n in UNIT_COLUMNS if n in fields]
        values = [_to_db(n, fields[n]) for n in names]
        key_values = [int(key.project_id), int(key.pr_number)]

        if expected_prior_state == EXPECT_OPEN:
            if not names:
                return False
            assignments = ', '.join(f'{n} = ?' for n in names)
            sql = f'UPDATE claimable_units SET {assignments} WHERE project_id = ? AND pr_number = ? AND COALESCE(bounty_claimed, 0) = 0'
            return self._execute_write(sql, values + key_values) == 1

        columns = ', '.join(['project_id', 'pr_number'] + names)
        placeholders = ', '.join('?' for _ in range(len(names) + 2))
        if expected_prior_state == EXPECT_ABSENT:
            sql = f'INSERT OR IGNORE INTO claimable_units({columns}) VALUES ({placeholders})'
            return self._execute_write(sql, key_values + values) == 1
        if expected_prior_state is not None:
            raise ValueError(f"Unknown expected prior state: {expected_prior_state!r}")

        if names:
            updates = ', '.join(f'{n} = excluded.{n}' for n in names)
            sql = f'INSERT INTO claimable_units({columns}) VALUES ({placeholders}) ON CONFLICT(project_id, pr_number) DO UPDATE SET {updates}'
        else:
            sql = f'INSERT OR IGNORE INTO claimable_units({columns}) VALUES ({placeholders})'
        self._execute_write(sql, key_values + values)
        return True

    # --- payouts ---

    # noinspection SqlResolve
    def create_payout_record(self, record: PayoutRecord) -> PayoutRecord:
        self._execute_write(
            'INSERT INTO payouts(id, amount, developer_id, project_id, unit_id, status, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)',
            (record.id, record.amount, record.developer_id, record.project_id, record.unit_id, record.status, record.created_at.isoformat()),
        )
        return record

    # noinspection SqlResolve
    def list_payouts(self, project_id: Optional[int] = None) -> List[PayoutRecord]:
        sql = 'SELECT id, amount, developer_id, project_id, status, created_at, unit_id FROM payouts'
        params: tuple = ()
        if project_id is not None:
            sql += ' WHERE project_id = ?'
            params = (int(project_id),)
        with self._lock:
            rows = self.conn.execute(sql + ' ORDER BY created_at, id', params).fetchall()
        return [
            PayoutRecord(id=r[0], amount=r[1], developer_id=r[2], project_id=r[3], status=r[4], created_at=parse_timestamp(r[5]), unit_id=r[6])
            for r in rows
        ]


__all__ = ["ClaimRepository", "SqliteClaimStore", "EXPECT_ABSENT", "EXPECT_OPEN", "normalize_pr_url", "DB_PATH"]
