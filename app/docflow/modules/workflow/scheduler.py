"""
Deferred single-shot callbacks for auto-progression.

`after(delay_ms, fn)` is the whole contract. Scheduled work carries no
cancellation handle: a continuation that fires after its submission moved on
is rejected by the AutoProgressor's expected-stage check instead.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)


class Scheduler(Protocol):
    def after(self, delay_ms: int, fn: Callable[[], None]) -> None: ...


class ThreadScheduler:
    """Runs each callback on a daemon `threading.Timer`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._timers: set[threading.Timer] = set()
        self._closed = False

    def after(self, delay_ms: int, fn: Callable[[], None]) -> None:
        timer: threading.Timer

        def _run() -> None:
            with self._lock:
                self._timers.discard(timer)
            try:
                fn()
            except Exception:
                logger.exception("Scheduled callback failed")

        timer = threading.Timer(max(delay_ms, 0) / 1000.0, _run)
        timer.daemon = True
        with self._lock:
            if self._closed:
                logger.warning("Scheduler is shut down; dropping callback")
                return
            self._timers.add(timer)
        timer.start()

    def pending(self) -> int:
        with self._lock:
            return len(self._timers)

    def shutdown(self) -> None:
        with self._lock:
            self._closed = True
            timers = list(self._timers)
            self._timers.clear()
        for t in timers:
            t.cancel()


class ManualScheduler:
    """
    Queues callbacks until `run_pending()` is called.

    Delays are recorded but not waited on; callers decide when "the delay
    elapsed". Used by scripts and tests for deterministic chains.
    """

    def __init__(self) -> None:
        self._queue: deque[tuple[int, Callable[[], None]]] = deque()
        self._lock = threading.Lock()
        self.history: list[int] = []

    def after(self, delay_ms: int, fn: Callable[[], None]) -> None:
        with self._lock:
            self._queue.append((delay_ms, fn))
            self.history.append(delay_ms)

    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    def run_next(self) -> bool:
        with self._lock:
            if not self._queue:
                return False
            _, fn = self._queue.popleft()
        fn()
        return True

    def run_pending(self, limit: int = 100) -> int:
        """Drain the queue, including callbacks scheduled while draining."""
        ran = 0
        while ran < limit and self.run_next():
            ran += 1
        return ran

    def shutdown(self) -> None:
        with self._lock:
            self._queue.clear()


def scheduler_from_config(config: dict) -> ThreadScheduler | ManualScheduler:
    kind = (config.get("WORKFLOW_SCHEDULER") or "thread").strip().lower()
    if kind == "manual":
        return ManualScheduler()
    if kind != "thread":
        raise RuntimeError(f"Unsupported WORKFLOW_SCHEDULER: {kind!r} (expected 'thread' or 'manual').")
    return ThreadScheduler()
