"""
Background write pipeline with per-key ordering.

Manifesto:
    The simulation thread must never wait on the database, and two writes
    to the same row must reach the backend in the order they were issued.
    A plain thread pool gives the first property but not the second, so
    every task carries a key (grave UUID, block location, entity UUID) and
    tasks sharing a key are drained by a single runner.

ARCHITECTURE
────────────
::

    WriteQueue(max_workers=4)
      ├── .submit(key, fn)   ─ append to the key's deque; start a runner if idle
      ├── .pause()/.resume() ─ gate held closed until schema setup finishes
      ├── .flush(timeout)    ─ wait until every submitted task has finished
      └── .shutdown()        ─ drain (or discard) and stop the pool

    key "a": [t1, t3] ──► runner A (t1 then t3)
    key "b": [t2]     ──► runner B (concurrently with A)

Tags:
    pipeline, thread-pool, ordering, writes, graves

Doc-Types:
    api-reference
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from graves.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class _Task:
    fn: Callable[[], Any]
    description: str


class WriteQueue:
    """ThreadPoolExecutor front end that serializes tasks per key.

    Example:
        >>> queue = WriteQueue(max_workers=4)
        >>> queue.submit("grave-1", lambda: repo.insert_grave(grave))
        >>> queue.submit("grave-1", lambda: repo.update_grave_column(uuid, "experience", 75))
        >>> queue.flush(timeout=5.0)
        True
    """

    def __init__(self, max_workers: int = 4, *, paused: bool = False, name: str = "graves-write"):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._queues: dict[str, deque[_Task]] = {}
        self._outstanding = 0
        self._completed = 0
        self._failed = 0
        self._closed = False
        self._gate = threading.Event()
        if not paused:
            self._gate.set()

    # -- Gate --------------------------------------------------------------

    def pause(self) -> None:
        """Hold new and queued tasks until :meth:`resume`."""
        self._gate.clear()

    def resume(self) -> None:
        self._gate.set()

    @property
    def is_paused(self) -> bool:
        return not self._gate.is_set()

    # -- Submission --------------------------------------------------------

    def submit(self, key: str, fn: Callable[[], Any], description: str = "") -> bool:
        """Queue ``fn`` behind any earlier task with the same ``key``.

        Returns ``False`` when the queue has been shut down.
        """
        task = _Task(fn=fn, description=description or getattr(fn, "__name__", "task"))
        with self._lock:
            if self._closed:
                logger.warning("write_queue.closed", key=key, task=task.description)
                return False
            self._outstanding += 1
            pending = self._queues.get(key)
            if pending is not None:
                pending.append(task)
                return True
            self._queues[key] = deque([task])
        self._executor.submit(self._drain, key)
        return True

    def _drain(self, key: str) -> None:
        self._gate.wait()
        while True:
            with self._lock:
                pending = self._queues.get(key)
                if not pending:
                    self._queues.pop(key, None)
                    return
                task = pending.popleft()
            failed = False
            try:
                task.fn()
            except Exception:
                failed = True
                logger.exception("write_queue.task_failed", key=key, task=task.description)
            finally:
                with self._lock:
                    self._outstanding -= 1
                    if failed:
                        self._failed += 1
                    else:
                        self._completed += 1
                    if self._outstanding == 0:
                        self._idle.notify_all()

    # -- Completion --------------------------------------------------------

    def flush(self, timeout: float | None = None) -> bool:
        """Block until every submitted task has run; ``False`` on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._outstanding == 0, timeout=timeout)

    def discard_pending(self) -> int:
        """Drop queued tasks that have not started yet."""
        with self._lock:
            dropped = sum(len(pending) for pending in self._queues.values())
            for pending in self._queues.values():
                pending.clear()
            self._outstanding -= dropped
            if self._outstanding == 0:
                self._idle.notify_all()
        if dropped:
            logger.warning("write_queue.discarded", tasks=dropped)
        return dropped

    def shutdown(self, wait: bool = True, *, discard: bool = False) -> None:
        with self._lock:
            self._closed = True
        if discard:
            self.discard_pending()
        # Runners blocked on the gate must be able to exit.
        self._gate.set()
        self._executor.shutdown(wait=wait)

    @property
    def pending(self) -> int:
        with self._lock:
            return self._outstanding

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "pending": self._outstanding,
                "active_keys": len(self._queues),
                "completed": self._completed,
                "failed": self._failed,
                "paused": not self._gate.is_set(),
                "closed": self._closed,
            }


__all__ = [
    "WriteQueue",
]
