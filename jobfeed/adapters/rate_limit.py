"""Minimum-interval pacing for requests to one board platform."""

import threading
import time
from typing import Callable, Dict


class RateLimiter:
    """Enforces a minimum gap between requests sharing a key.

    One instance is shared by every adapter (and every worker thread); the
    key is the platform name, so concurrent workers never hit the same
    platform faster than ``min_interval`` apart.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._next_slot: Dict[str, float] = {}
        self._lock = threading.Lock()

    def acquire(self, key: str) -> float:
        """Block until a request for ``key`` may start.

        Returns:
            Seconds spent waiting
        """
        if self.min_interval == 0:
            return 0.0

        with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot.get(key, now))
            self._next_slot[key] = slot + self.min_interval
        wait = slot - now
        if wait > 0:
            self._sleep(wait)
        return wait
