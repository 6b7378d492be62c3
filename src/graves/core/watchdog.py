"""Lock-recovery watchdog for the active connection pool.

┌──────────────────────────────────────────────────────────────────────────────┐
│  LOCK RECOVERY WATCHDOG                                                       │
│                                                                               │
│   start()                                                                     │
│      │                                                                        │
│      ▼                                                                        │
│   ┌─────────────────────────────────────────────────────────┐                │
│   │              Daemon Thread (loop)                       │                │
│   │                                                         │                │
│   │   while not stop_event.wait(interval):                  │                │
│   │       tick()                                            │                │
│   │         ├── pool.probe()          keep-alive            │                │
│   │         │     └── LOCKED? ──► recover()                 │                │
│   │         │                        ├── commit (fresh)     │                │
│   │         │                        └── rollback (policy)  │                │
│   │         └── pool.check_leaks()                          │                │
│   └─────────────────────────────────────────────────────────┘                │
│                                                                               │
│   stop()  ──►  stop_event.set(); thread.join(timeout=5.0)                     │
└──────────────────────────────────────────────────────────────────────────────┘

Recovery is best-effort: it tries to release a stuck transaction and logs
every attempt, but never raises into the caller.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from graves.core.errors import GravesError
from graves.core.logging import get_logger
from graves.core.schema import ErrorClass

if TYPE_CHECKING:
    from graves.core.adapters.base import BackendProfile
    from graves.core.pool import ConnectionPool

logger = get_logger(__name__)


class LockRecoveryWatchdog:
    """Periodic keep-alive probe, lock recovery and leak check.

    Example:
        >>> watchdog = LockRecoveryWatchdog(pool, profile, interval_seconds=25.0)
        >>> watchdog.start()
        >>> # ... later ...
        >>> watchdog.stop()
    """

    def __init__(self, pool: ConnectionPool, profile: BackendProfile, interval_seconds: float = 25.0):
        self._pool = pool
        self._profile = profile
        self._interval = interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._recoveries = 0
        self._started = False

    def start(self) -> None:
        if self._started:
            logger.warning("watchdog.already_started", backend=self._profile.name)
            return

        self._stop_event.clear()

        def _loop() -> None:
            logger.info("watchdog.started", backend=self._profile.name, interval_seconds=self._interval)
            while not self._stop_event.wait(self._interval):
                try:
                    self.tick()
                except Exception:
                    logger.exception("watchdog.tick_failed", backend=self._profile.name)
            logger.info("watchdog.stopped", backend=self._profile.name)

        self._thread = threading.Thread(target=_loop, daemon=True, name="graves-watchdog")
        self._thread.start()
        self._started = True

    def stop(self) -> None:
        """Stop the loop, waiting up to 5 seconds for the current tick."""
        if not self._started:
            return
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
            if self._thread.is_alive():
                logger.warning("watchdog.stop_timeout", backend=self._profile.name)
        self._started = False

    def tick(self) -> ErrorClass:
        """Run one keep-alive cycle and return the probe classification."""
        with self._lock:
            self._tick_count += 1
            self._last_tick = datetime.now(UTC)

        if not self._pool.is_open:
            return ErrorClass.SUCCESS

        outcome = ErrorClass.SUCCESS
        try:
            self._pool.probe()
        except GravesError as e:
            outcome = self._profile.classify_error(e)
            if outcome is ErrorClass.LOCKED:
                logger.warning("watchdog.database_locked", backend=self._profile.name, error=e.message)
                self.recover()
            else:
                logger.warning("watchdog.probe_failed", backend=self._profile.name, error=e.message)

        self._pool.check_leaks()
        return outcome

    def recover(self) -> bool:
        """Try to release a stuck transaction on a fresh connection.

        Commits first; when that fails and the profile allows it, rolls
        back. Returns whether either attempt succeeded.
        """
        with self._lock:
            self._recoveries += 1
        try:
            with self._pool.fresh() as conn:
                try:
                    conn.commit()
                    logger.info("watchdog.unlock_committed", backend=self._profile.name)
                    return True
                except Exception as commit_error:
                    logger.warning(
                        "watchdog.unlock_commit_failed",
                        backend=self._profile.name,
                        error=str(commit_error),
                    )
                    if not self._profile.rollback_on_failed_unlock:
                        return False
                try:
                    conn.rollback()
                    logger.info("watchdog.unlock_rolled_back", backend=self._profile.name)
                    return True
                except Exception as rollback_error:
                    logger.error(
                        "watchdog.unlock_rollback_failed",
                        backend=self._profile.name,
                        error=str(rollback_error),
                    )
                    return False
        except Exception as e:
            logger.error("watchdog.unlock_connect_failed", backend=self._profile.name, error=str(e))
            return False

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_running,
            "backend": self._profile.name,
            "tick_count": self._tick_count,
            "recoveries": self._recoveries,
            "last_tick": self._last_tick.isoformat() if self._last_tick else None,
            "interval_seconds": self._interval,
        }

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def recoveries(self) -> int:
        return self._recoveries


__all__ = [
    "LockRecoveryWatchdog",
]
