"""
Connection pool for the active backend profile.

Wraps SQLAlchemy's ``QueuePool`` around the profile's raw DB-API
``connect()`` so that every backend family gets the same pooling semantics
without SQLAlchemy needing a dialect for it.

Manifesto:
    The pool is the only shared mutable resource besides the cache maps.
    Acquisition may block a *background* thread, never the caller of the
    data manager, and it is always bounded by a timeout.

Features:
    - Bounded acquisition (``connection_timeout``) raising
      :class:`~graves.core.errors.DatabaseConnectionError`
    - Max-lifetime recycling through ``QueuePool(recycle=...)``
    - Idle eviction: a connection idle longer than ``idle_timeout`` is
      discarded at checkout and transparently replaced
    - Leak detection: connections held longer than the threshold are
      reported by :meth:`ConnectionPool.check_leaks`
    - ``fresh()`` for unpooled connections used by lock recovery
    - ``execute()`` / ``query()`` helpers that commit, roll back and wrap
      driver errors in :class:`~graves.core.errors.DatabaseError`

Examples:
    >>> pool = ConnectionPool(profile)
    >>> pool.open()
    >>> pool.query("SELECT uuid FROM grave")
    [{'uuid': '...'}]
    >>> pool.close()

Tags:
    pool, connection, sqlalchemy, leak-detection, graves

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy import exc as sa_exc
from sqlalchemy.pool import QueuePool

from graves.core.errors import DatabaseConnectionError, DatabaseError, GravesError
from graves.core.logging import get_logger
from graves.core.protocols import Connection

if TYPE_CHECKING:
    from graves.core.adapters.base import BackendProfile
    from graves.core.adapters.types import PoolSettings

logger = get_logger(__name__)


@dataclass(frozen=True)
class LeakReport:
    """A connection held longer than the leak detection threshold."""

    connection_id: int
    thread: str
    held_seconds: float


class ConnectionPool:
    """Pool of reusable connections for one backend profile."""

    def __init__(self, profile: BackendProfile, settings: PoolSettings | None = None):
        self._profile = profile
        self._settings = settings or profile.pool_settings()
        self._pool: QueuePool | None = None
        self._lock = threading.Lock()
        self._checked_out: dict[int, tuple[float, str]] = {}
        self._reported_leaks: set[int] = set()

    @property
    def profile(self) -> BackendProfile:
        return self._profile

    @property
    def settings(self) -> PoolSettings:
        return self._settings

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    # -- Lifecycle ---------------------------------------------------------

    def open(self) -> ConnectionPool:
        """Create the underlying pool and warm ``min_idle`` connections."""
        with self._lock:
            if self._pool is not None:
                return self
            s = self._settings
            pool = QueuePool(
                self._profile.connect,
                pool_size=s.max_size,
                max_overflow=0,
                timeout=s.connection_timeout,
                recycle=int(s.max_lifetime) if s.max_lifetime > 0 else -1,
                reset_on_return="rollback",
            )
            event.listen(pool, "checkout", self._on_checkout)
            event.listen(pool, "checkin", self._on_checkin)
            self._pool = pool

        self._warm(self._settings.min_idle)
        logger.info(
            "pool.opened",
            backend=self._profile.name,
            target=self._profile.describe(),
            max_size=self._settings.max_size,
            min_idle=self._settings.min_idle,
        )
        return self

    def close(self) -> None:
        with self._lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.dispose()
            logger.info("pool.closed", backend=self._profile.name)

    def _warm(self, count: int) -> None:
        held = []
        try:
            for _ in range(count):
                held.append(self._require_open().connect())
        except Exception as e:
            logger.warning("pool.warmup_failed", backend=self._profile.name, error=str(e))
        finally:
            for conn in held:
                conn.close()

    # -- Pool events -------------------------------------------------------

    def _on_checkout(self, dbapi_connection: Any, record: Any, proxy: Any) -> None:
        returned_at = record.info.pop("returned_at", None)
        idle_timeout = self._settings.idle_timeout
        if returned_at is not None and idle_timeout > 0:
            idle_for = time.monotonic() - returned_at
            if idle_for > idle_timeout:
                logger.debug("pool.idle_evicted", backend=self._profile.name, idle_seconds=round(idle_for, 1))
                # The pool invalidates this connection and retries with a new one.
                raise sa_exc.DisconnectionError("connection exceeded idle timeout")

    def _on_checkin(self, dbapi_connection: Any, record: Any) -> None:
        record.info["returned_at"] = time.monotonic()

    # -- Acquisition -------------------------------------------------------

    def _require_open(self) -> QueuePool:
        pool = self._pool
        if pool is None:
            raise DatabaseConnectionError(
                f"Connection pool for {self._profile.display_name} is not open"
            ).with_context(backend=self._profile.name)
        return pool

    @contextmanager
    def acquire(self) -> Iterator[Connection]:
        """Borrow a pooled connection; it is returned on exit."""
        pool = self._require_open()
        try:
            conn = pool.connect()
        except sa_exc.TimeoutError as e:
            raise DatabaseConnectionError(
                f"Timed out after {self._settings.connection_timeout}s waiting for a "
                f"{self._profile.display_name} connection",
                cause=e,
            ).with_context(backend=self._profile.name) from e
        except GravesError:
            raise
        except Exception as e:
            raise DatabaseConnectionError(
                f"Could not obtain a {self._profile.display_name} connection: {e}",
                cause=e,
            ).with_context(backend=self._profile.name) from e

        key = id(conn)
        with self._lock:
            self._checked_out[key] = (time.monotonic(), threading.current_thread().name)
        try:
            yield conn
        finally:
            with self._lock:
                self._checked_out.pop(key, None)
                self._reported_leaks.discard(key)
            conn.close()

    @contextmanager
    def fresh(self) -> Iterator[Connection]:
        """Open an unpooled connection straight from the profile."""
        conn = self._profile.connect()
        try:
            yield conn
        finally:
            conn.close()

    # -- Statement helpers -------------------------------------------------

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute one statement in its own transaction; returns the row count."""
        with self.acquire() as conn:
            cursor = conn.cursor()
            try:
                _run(cursor, sql, params)
                rowcount = cursor.rowcount
                conn.commit()
            except Exception as e:
                _rollback_quietly(conn)
                raise self._statement_error(sql, e) from e
            finally:
                cursor.close()
        return rowcount

    def executemany(self, sql: str, rows: Sequence[Sequence[Any]]) -> int:
        """Execute one statement for every row in a single transaction."""
        if not rows:
            return 0
        with self.acquire() as conn:
            cursor = conn.cursor()
            try:
                cursor.executemany(sql, [tuple(row) for row in rows])
                conn.commit()
            except Exception as e:
                _rollback_quietly(conn)
                raise self._statement_error(sql, e) from e
            finally:
                cursor.close()
        return len(rows)

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a query and return rows as dicts keyed by lower-case column name."""
        with self.acquire() as conn:
            cursor = conn.cursor()
            try:
                _run(cursor, sql, params)
                columns = [str(desc[0]).lower() for desc in cursor.description or ()]
                rows = cursor.fetchall()
                conn.commit()
            except Exception as e:
                _rollback_quietly(conn)
                raise self._statement_error(sql, e) from e
            finally:
                cursor.close()
        return [dict(zip(columns, row, strict=False)) for row in rows]

    def scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        """First column of the first row, or ``None``."""
        rows = self.query(sql, params)
        if not rows:
            return None
        return next(iter(rows[0].values()), None)

    def probe(self) -> None:
        """Run the profile's trivial statement; raises on failure."""
        self.scalar(self._profile.dialect.probe_query())

    def _statement_error(self, sql: str, cause: Exception) -> DatabaseError:
        return DatabaseError(f"Statement failed: {cause}", cause=cause).with_context(
            backend=self._profile.name, statement=sql
        )

    # -- Health ------------------------------------------------------------

    def check_leaks(self) -> list[LeakReport]:
        """Report connections held longer than the leak threshold.

        Each leaked connection is logged once until it is returned.
        """
        threshold = self._settings.leak_detection_threshold
        if threshold <= 0:
            return []
        now = time.monotonic()
        leaks: list[LeakReport] = []
        with self._lock:
            for key, (since, thread) in self._checked_out.items():
                held = now - since
                if held <= threshold:
                    continue
                leaks.append(LeakReport(connection_id=key, thread=thread, held_seconds=held))
                if key not in self._reported_leaks:
                    self._reported_leaks.add(key)
                    logger.warning(
                        "pool.connection_leak",
                        backend=self._profile.name,
                        thread=thread,
                        held_seconds=round(held, 1),
                        threshold_seconds=threshold,
                    )
        return leaks

    def status(self) -> dict[str, Any]:
        pool = self._pool
        with self._lock:
            borrowed = len(self._checked_out)
        return {
            "backend": self._profile.name,
            "open": pool is not None,
            "max_size": self._settings.max_size,
            "checked_out": borrowed,
            "idle": pool.checkedin() if pool is not None else 0,
        }


def _run(cursor: Any, sql: str, params: Sequence[Any]) -> None:
    if params:
        cursor.execute(sql, tuple(params))
    else:
        cursor.execute(sql)


def _rollback_quietly(conn: Connection) -> None:
    try:
        conn.rollback()
    except Exception as e:
        logger.debug("pool.rollback_failed", error=str(e))


__all__ = [
    "ConnectionPool",
    "LeakReport",
]
