"""
Activity Monitor

Tracks the last moment an execution made observable progress. The monitor
is shared between the supervised execution (writer) and its heartbeat
supervisor (reader).

Writes never block: if the lock is held by a concurrent reader or writer
the update is dropped. A dropped update is harmless because activity
signals are frequent and the next one lands a moment later.
"""

import threading
import time
from collections.abc import Callable


class ActivityMonitor:
    """
    Last-activity timestamp guarded by a non-blocking lock.

    Args:
        clock: Monotonic time source, injectable for tests
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._last_activity = clock()

    def record_activity(self) -> None:
        if not self._lock.acquire(blocking=False):
            return
        try:
            now = self._clock()
            # Never move backwards, even with a misbehaving clock.
            if now > self._last_activity:
                self._last_activity = now
        finally:
            self._lock.release()

    def seconds_since_activity(self) -> float:
        """
        Seconds elapsed since the last recorded activity.

        Returns 0.0 when the lock is momentarily held by a writer, which
        can only delay a timeout by one poll interval.
        """
        if not self._lock.acquire(blocking=False):
            return 0.0
        try:
            return max(0.0, self._clock() - self._last_activity)
        finally:
            self._lock.release()

    def callback(self) -> Callable[[], None]:
        """Return a zero-argument callable recording activity."""
        return self.record_activity
