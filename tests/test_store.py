"""Tests for the SQLite result store."""

from __future__ import annotations

import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from statter.monitor.engine import ProbeOutcome, Success, TransportFailure
from statter.monitor.store import PersistenceError, ResponseRecord, ResultStore

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _record(name: str = "ping", status: int = 200, error: str | None = None, minute: int = 0) -> ResponseRecord:
    return ResponseRecord(
        id=None, name=name, url=f"http://{name}.test/",
        status_code=status, error=error, created=T0 + timedelta(minutes=minute),
    )


# ── ResponseRecord ───────────────────────────────────────────────────────────


class TestResponseRecord:
    def test_from_success_outcome(self) -> None:
        outcome = ProbeOutcome(service="ping", url="http://ping.test/", result=Success(200))
        r = ResponseRecord.from_outcome(outcome)
        assert r.id is None
        assert (r.name, r.url, r.status_code, r.error) == ("ping", "http://ping.test/", 200, None)
        assert r.created == outcome.completed_at
        assert r.outcome == Success(200)

    def test_from_failed_outcome(self) -> None:
        outcome = ProbeOutcome(service="b", url="http://b.test/", result=TransportFailure("refused"))
        r = ResponseRecord.from_outcome(outcome)
        assert r.status_code == 0
        assert r.error == "refused"
        assert r.outcome == TransportFailure("refused")


# ── ResultStore ──────────────────────────────────────────────────────────────


class TestAppend:
    def test_append_assigns_increasing_ids(self, store: ResultStore) -> None:
        ids = [store.append(_record(minute=i)) for i in range(3)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 3

    def test_roundtrip(self, store: ResultStore) -> None:
        record_id = store.append(_record(status=0, error="timeout", minute=5))
        [r] = store.list_records("ping")
        assert r.id == record_id
        assert r.status_code == 0
        assert r.error == "timeout"
        assert r.created == T0 + timedelta(minutes=5)

    def test_supplied_id_is_ignored(self, store: ResultStore) -> None:
        first = store.append(_record())
        second = store.append(ResponseRecord(
            id=first, name="ping", url="http://ping.test/", status_code=200, error=None, created=T0,
        ))
        assert second != first
        assert store.count("ping") == 2

    def test_concurrent_appends(self, store: ResultStore) -> None:
        n = 200
        with ThreadPoolExecutor(max_workers=16) as pool:
            ids = list(pool.map(lambda i: store.append(_record(name=f"s{i % 4}", minute=i)), range(n)))

        assert len(set(ids)) == n
        records = store.list_records(limit=n)
        assert len(records) == n
        assert [r.id for r in records] == sorted(ids, reverse=True)
        assert all(r.name.startswith("s") and r.url for r in records)

    def test_reads_during_writes_see_whole_records(self, store: ResultStore) -> None:
        stop = threading.Event()
        bad: list[ResponseRecord] = []

        def reader() -> None:
            while not stop.is_set():
                for r in store.list_records("ping", limit=50):
                    if r.url != "http://ping.test/" or r.status_code != 503:
                        bad.append(r)
                stats = store.summarize("ping")
                if stats.total != stats.total_failed:
                    bad.append(stats)  # type: ignore[arg-type]

        t = threading.Thread(target=reader)
        t.start()
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda i: store.append(_record(status=503, minute=i)), range(100)))
        stop.set()
        t.join()
        assert bad == []
        assert store.count("ping") == 100


class TestListRecords:
    def test_most_recent_first(self, store: ResultStore) -> None:
        for i in range(5):
            store.append(_record(status=200 + i, minute=i))
        records = store.list_records("ping")
        assert [r.status_code for r in records] == [204, 203, 202, 201, 200]

    def test_filter_by_name(self, store: ResultStore) -> None:
        store.append(_record(name="a"))
        store.append(_record(name="b"))
        store.append(_record(name="a"))
        assert [r.name for r in store.list_records("a")] == ["a", "a"]

    def test_all_services_when_no_name(self, store: ResultStore) -> None:
        store.append(_record(name="a"))
        store.append(_record(name="b"))
        assert [r.name for r in store.list_records()] == ["b", "a"]

    def test_default_limit(self, store: ResultStore) -> None:
        for i in range(150):
            store.append(_record(minute=i))
        records = store.list_records("ping")
        assert len(records) == 100
        assert records[0].created == T0 + timedelta(minutes=149)

    def test_explicit_limit(self, store: ResultStore) -> None:
        for i in range(10):
            store.append(_record(minute=i))
        assert len(store.list_records("ping", limit=3)) == 3


class TestSummarize:
    def test_empty(self, store: ResultStore) -> None:
        stats = store.summarize("ping")
        assert stats.total == 0
        assert stats.total_failed == 0
        assert stats.last_failed_at is None
        assert stats.status_code is None

    def test_counts_failures_outside_2xx(self, store: ResultStore) -> None:
        for status in (200, 204, 299, 301, 404, 500, 0, 199):
            store.append(_record(status=status, error="x" if status == 0 else None))
        stats = store.summarize("ping")
        assert stats.total == 8
        assert stats.total_failed == 5
        assert stats.status_code == 199

    def test_last_failed_is_most_recent_failure(self, store: ResultStore) -> None:
        store.append(_record(status=500, minute=1))
        store.append(_record(status=0, error="refused", minute=2))
        store.append(_record(status=200, minute=3))
        stats = store.summarize("ping")
        assert stats.last_failed_at == T0 + timedelta(minutes=2)
        assert stats.status_code == 200

    def test_scoped_to_service(self, store: ResultStore) -> None:
        store.append(_record(name="a", status=500))
        store.append(_record(name="b", status=200))
        assert store.summarize("b").total_failed == 0
        assert store.summarize("a").total_failed == 1

    def test_total_matches_listing(self, store: ResultStore) -> None:
        for i in range(30):
            store.append(_record(name="a" if i % 3 else "b", status=200 if i % 2 else 502))
        for name in ("a", "b"):
            assert store.summarize(name).total == len(store.list_records(name))


class TestPersistenceErrors:
    def test_unopenable_path(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a dir")
        with pytest.raises(PersistenceError):
            ResultStore(db_path=blocker / "nested" / "db.sqlite")

    def test_write_failure_is_wrapped(self, store: ResultStore) -> None:
        with patch.object(store, "_get_conn", side_effect=sqlite3.OperationalError("disk I/O error")):
            with pytest.raises(PersistenceError, match="write failed"):
                store.append(_record())

    def test_read_failure_is_wrapped(self, store: ResultStore) -> None:
        with patch.object(store, "_get_conn", side_effect=sqlite3.OperationalError("database is locked")):
            with pytest.raises(PersistenceError, match="read failed"):
                store.list_records()

    def test_closed_store_rejects_writes(self, tmp_path: Path) -> None:
        store = ResultStore(db_path=tmp_path / "closed.db")
        store.append(_record())
        store.close()

        with pytest.raises(PersistenceError, match="closed"):
            store.append(_record())
        with pytest.raises(PersistenceError, match="closed"):
            store.count()
        assert store._conn is None

        reopened = ResultStore(db_path=tmp_path / "closed.db")
        assert reopened.count() == 1
        reopened.close()

    def test_close_is_idempotent(self, store: ResultStore) -> None:
        store.close()
        store.close()
