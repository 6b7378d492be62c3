"""Tests for the lock-recovery watchdog."""

from __future__ import annotations

import sqlite3
import time
from unittest.mock import MagicMock

import pytest
from structlog.testing import capture_logs

from graves.core.adapters import MySQLProfile, SQLiteProfile
from graves.core.errors import DatabaseError
from graves.core.schema import ErrorClass
from graves.core.watchdog import LockRecoveryWatchdog


def _locked() -> DatabaseError:
    return DatabaseError("Statement failed", cause=sqlite3.OperationalError("database is locked"))


@pytest.fixture
def conn() -> MagicMock:
    return MagicMock(name="connection")


@pytest.fixture
def pool(conn: MagicMock) -> MagicMock:
    pool = MagicMock(name="pool")
    pool.is_open = True
    pool.fresh.return_value.__enter__.return_value = conn
    return pool


class TestTick:
    def test_healthy_probe(self, pool, settings) -> None:
        watchdog = LockRecoveryWatchdog(pool, SQLiteProfile(settings))
        assert watchdog.tick() is ErrorClass.SUCCESS
        pool.probe.assert_called_once()
        pool.check_leaks.assert_called_once()
        pool.fresh.assert_not_called()
        assert watchdog.tick_count == 1

    def test_closed_pool_is_skipped(self, pool, settings) -> None:
        pool.is_open = False
        watchdog = LockRecoveryWatchdog(pool, SQLiteProfile(settings))
        assert watchdog.tick() is ErrorClass.SUCCESS
        pool.probe.assert_not_called()

    def test_locked_probe_commits(self, pool, conn, settings) -> None:
        pool.probe.side_effect = _locked()
        watchdog = LockRecoveryWatchdog(pool, SQLiteProfile(settings))

        with capture_logs() as logs:
            assert watchdog.tick() is ErrorClass.LOCKED

        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        events = [e["event"] for e in logs]
        assert events == ["watchdog.database_locked", "watchdog.unlock_committed"]
        assert watchdog.recoveries == 1
        pool.check_leaks.assert_called_once()

    def test_other_probe_failure_does_not_recover(self, pool, settings) -> None:
        pool.probe.side_effect = DatabaseError("boom", cause=sqlite3.OperationalError("disk I/O error"))
        watchdog = LockRecoveryWatchdog(pool, SQLiteProfile(settings))

        with capture_logs() as logs:
            assert watchdog.tick() is ErrorClass.REAL_ERROR

        pool.fresh.assert_not_called()
        assert logs[0]["event"] == "watchdog.probe_failed"


class TestRecover:
    def test_rollback_after_failed_commit(self, pool, conn, settings) -> None:
        conn.commit.side_effect = sqlite3.OperationalError("cannot commit - no transaction is active")
        watchdog = LockRecoveryWatchdog(pool, SQLiteProfile(settings))

        with capture_logs() as logs:
            assert watchdog.recover() is True

        conn.rollback.assert_called_once()
        assert [e["event"] for e in logs] == ["watchdog.unlock_commit_failed", "watchdog.unlock_rolled_back"]

    def test_no_rollback_when_profile_forbids_it(self, pool, conn, settings) -> None:
        conn.commit.side_effect = RuntimeError("commit refused")
        watchdog = LockRecoveryWatchdog(pool, MySQLProfile(settings))

        assert watchdog.recover() is False
        conn.rollback.assert_not_called()

    def test_rollback_failure(self, pool, conn, settings) -> None:
        conn.commit.side_effect = RuntimeError("commit refused")
        conn.rollback.side_effect = RuntimeError("rollback refused")
        watchdog = LockRecoveryWatchdog(pool, SQLiteProfile(settings))

        with capture_logs() as logs:
            assert watchdog.recover() is False
        assert logs[-1]["event"] == "watchdog.unlock_rollback_failed"

    def test_connect_failure_is_logged(self, pool, settings) -> None:
        pool.fresh.side_effect = DatabaseError("cannot connect")
        watchdog = LockRecoveryWatchdog(pool, SQLiteProfile(settings))

        with capture_logs() as logs:
            assert watchdog.recover() is False
        assert logs[0]["event"] == "watchdog.unlock_connect_failed"


class TestLifecycle:
    def test_start_and_stop(self, pool, settings) -> None:
        watchdog = LockRecoveryWatchdog(pool, SQLiteProfile(settings), interval_seconds=0.01)
        watchdog.start()
        try:
            deadline = time.monotonic() + 5
            while watchdog.tick_count < 2 and time.monotonic() < deadline:
                time.sleep(0.01)
            assert watchdog.is_running
            assert watchdog.tick_count >= 2
        finally:
            watchdog.stop()
        assert not watchdog.is_running
        assert watchdog.health()["tick_count"] >= 2

    def test_tick_exception_keeps_loop_alive(self, pool, settings) -> None:
        pool.check_leaks.side_effect = RuntimeError("unexpected")
        watchdog = LockRecoveryWatchdog(pool, SQLiteProfile(settings), interval_seconds=0.01)
        watchdog.start()
        try:
            deadline = time.monotonic() + 5
            while watchdog.tick_count < 3 and time.monotonic() < deadline:
                time.sleep(0.01)
            assert watchdog.is_running
        finally:
            watchdog.stop()

    def test_stop_without_start(self, pool, settings) -> None:
        LockRecoveryWatchdog(pool, SQLiteProfile(settings)).stop()
