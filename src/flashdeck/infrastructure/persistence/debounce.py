"""
Per-key debounced task scheduling.

Each key owns at most one pending task. Scheduling again for the same key
cancels the previous timer and starts a new one, so only the last callback
in a burst runs. `flush()` runs every pending callback immediately.
"""

import logging
import threading
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def thread_timer(delay: float, callback: Callable[[], None]) -> TimerHandle:
    """Default timer factory backed by a daemon `threading.Timer`."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class Debouncer:
    """
    Collapses bursts of scheduled work per key into a single deferred call.

    Args:
        delay: Seconds to wait after the last `schedule` for a key.
        timer_factory: Creates cancellable timers; injectable for tests.
    """

    def __init__(self, delay: float, timer_factory: TimerFactory | None = None):
        self.delay = delay
        self._timer_factory = timer_factory or thread_timer
        self._pending: dict[str, tuple[TimerHandle, Callable[[], None]]] = {}
        self._lock = threading.RLock()

    def schedule(self, key: str, callback: Callable[[], None]) -> None:
        with self._lock:
            self.cancel(key)
            timer = self._timer_factory(self.delay, lambda: self._fire(key, callback))
            self._pending[key] = (timer, callback)
            logger.debug(f"Scheduled debounced task for '{key}' in {self.delay:.3f}s")

    def cancel(self, key: str) -> bool:
        with self._lock:
            entry = self._pending.pop(key, None)
            if entry is None:
                return False
            entry[0].cancel()
            return True

    def flush(self) -> int:
        """Run every pending callback now. Returns how many ran."""
        with self._lock:
            entries = list(self._pending.items())
            self._pending.clear()
        for key, (timer, callback) in entries:
            timer.cancel()
            logger.debug(f"Flushing debounced task for '{key}'")
            callback()
        return len(entries)

    def cancel_all(self) -> None:
        with self._lock:
            for timer, _ in self._pending.values():
                timer.cancel()
            self._pending.clear()

    @property
    def pending_keys(self) -> list[str]:
        with self._lock:
            return list(self._pending)

    def _fire(self, key: str, callback: Callable[[], None]) -> None:
        with self._lock:
            entry = self._pending.get(key)
            # A newer schedule replaced this one; its own timer will run it.
            if entry is None or entry[1] is not callback:
                return
            del self._pending[key]
        callback()
