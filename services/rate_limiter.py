import math
import threading
import time

# Waits are padded by 10% so we land just after the oldest call leaves the window.
SAFETY_MARGIN = 1.1
MIN_WAIT_SECONDS = 1.0


class RateLimiter:
    """
    Sliding-window limiter: at most `limit` calls in any `window` seconds.

    One instance is shared per process; every method takes the lock because
    timers and request threads both call in.
    """

    def __init__(self, limit=2, window=60.0, clock=time.time):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self.window = float(window)
        self._clock = clock
        self._calls = []
        self._lock = threading.Lock()

    def _prune(self, now):
        cutoff = now - self.window
        self._calls = [t for t in self._calls if t > cutoff]

    def try_acquire(self) -> bool:
        """Take a slot if one is free. The check and the record happen under one lock."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            if len(self._calls) >= self.limit:
                return False
            self._calls.append(now)
            return True

    def time_until_next_slot(self) -> float:
        """Seconds to wait before a call would be allowed; 0 if one is free now."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            if len(self._calls) < self.limit:
                return 0.0
            oldest = min(self._calls)
            remaining = self.window - (now - oldest)
            return max(MIN_WAIT_SECONDS, math.ceil(remaining * SAFETY_MARGIN * 1000) / 1000.0)

    def calls_in_window(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return len(self._calls)
