"""Result store: append-only SQLite log of probe responses.

One row per probe attempt, successful or not. Rows are never updated or
deleted. Summaries are aggregated from the rows on every call.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from statter.config import settings
from statter.monitor.engine import Outcome, ProbeOutcome, Success, TransportFailure

logger = logging.getLogger(__name__)

DB_PATH = Path(settings.database_file)
DEFAULT_LIMIT = 100

# Status outside [200, 300) is a failure; the 0 sentinel is included.
_FAILED = "(status_code < 200 OR status_code >= 300)"


class PersistenceError(Exception):
    """Raised when the underlying database cannot be read or written."""


# ── Models ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ResponseRecord:
    """A persisted probe response."""

    id: int | None
    name: str
    url: str
    status_code: int
    error: str | None
    created: datetime

    @classmethod
    def from_outcome(cls, outcome: ProbeOutcome) -> "ResponseRecord":
        return cls(
            id=None,
            name=outcome.service,
            url=outcome.url,
            status_code=outcome.status_code,
            error=outcome.error,
            created=outcome.completed_at,
        )

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ResponseRecord":
        return cls(
            id=row["id"],
            name=row["name"],
            url=row["url"],
            status_code=row["status_code"],
            error=row["error"],
            created=datetime.fromisoformat(row["created"]),
        )

    @property
    def outcome(self) -> Outcome:
        if self.error is not None:
            return TransportFailure(self.error)
        return Success(self.status_code)


@dataclass(frozen=True)
class ServiceStats:
    """Aggregates over all records of one service."""

    total: int = 0
    total_failed: int = 0
    last_failed_at: datetime | None = None
    status_code: int | None = None  # most recent


# ── SQLite storage ───────────────────────────────────────────────────────────


class ResultStore:
    """SQLite-backed storage for probe responses.

    A single connection is shared between the event loop and worker threads;
    every statement runs under ``self._lock`` so appends are atomic and reads
    never see a half-written row.
    """

    def __init__(self, db_path: Path | str | None = None) -> None:
        self._db_path = Path(db_path or DB_PATH)
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None
        self._closed = False
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_db()
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Cannot open result store {self._db_path}: {e}") from e

    def _get_conn(self) -> sqlite3.Connection:
        if self._closed:
            raise PersistenceError(f"Result store {self._db_path} is closed")
        if self._conn is None:
            self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def _init_db(self) -> None:
        with self._lock:
            conn = self._get_conn()
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS responses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    url TEXT NOT NULL,
                    status_code INTEGER NOT NULL,
                    error TEXT,
                    created TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_responses_name
                    ON responses (name, id DESC);
            """)
            conn.commit()

    def _read(self, sql: str, params: dict[str, Any]) -> list[sqlite3.Row]:
        try:
            with self._lock:
                return self._get_conn().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Result store read failed: {e}") from e

    def append(self, record: ResponseRecord) -> int:
        """Insert a record and return its new id. Any id on ``record`` is ignored."""
        try:
            with self._lock:
                conn = self._get_conn()
                with conn:
                    cursor = conn.execute(
                        "INSERT INTO responses (name, url, status_code, error, created) "
                        "VALUES (?, ?, ?, ?, ?)",
                        (
                            record.name, record.url, record.status_code,
                            record.error, record.created.isoformat(),
                        ),
                    )
                return int(cursor.lastrowid)
        except sqlite3.Error as e:
            raise PersistenceError(f"Result store write failed: {e}") from e

    def list_records(
        self, name: str | None = None, limit: int = DEFAULT_LIMIT,
    ) -> list[ResponseRecord]:
        """Most recent records first, optionally for a single service."""
        if name is not None:
            rows = self._read(
                "SELECT * FROM responses WHERE name = :name ORDER BY id DESC LIMIT :limit",
                {"name": name, "limit": limit},
            )
        else:
            rows = self._read(
                "SELECT * FROM responses ORDER BY id DESC LIMIT :limit",
                {"limit": limit},
            )
        return [ResponseRecord.from_row(r) for r in rows]

    def summarize(self, name: str) -> ServiceStats:
        """Total, failed count, last failure and latest status for a service."""
        row = self._read(
            "SELECT COUNT(*) AS total, "
            f"  COALESCE(SUM(CASE WHEN {_FAILED} THEN 1 ELSE 0 END), 0) AS total_failed, "
            "  (SELECT created FROM responses "
            f"     WHERE name = :name AND {_FAILED} ORDER BY id DESC LIMIT 1) AS last_failed, "
            "  (SELECT status_code FROM responses "
            "     WHERE name = :name ORDER BY id DESC LIMIT 1) AS status_code "
            "FROM responses WHERE name = :name",
            {"name": name},
        )[0]
        return ServiceStats(
            total=row["total"],
            total_failed=row["total_failed"],
            last_failed_at=datetime.fromisoformat(row["last_failed"]) if row["last_failed"] else None,
            status_code=row["status_code"],
        )

    def count(self, name: str | None = None) -> int:
        if name is not None:
            rows = self._read("SELECT COUNT(*) AS n FROM responses WHERE name = :name", {"name": name})
        else:
            rows = self._read("SELECT COUNT(*) AS n FROM responses", {})
        return rows[0]["n"]

    def close(self) -> None:
        with self._lock:
            self._closed = True
            if self._conn:
                self._conn.close()
                self._conn = None
