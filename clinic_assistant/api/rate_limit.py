"""Per-client request limiting for the chat endpoints.

Fixed one-minute windows kept in process memory.  Counts are not shared
between workers, which is acceptable for a single-instance deployment.
Only keys seen in the current window are kept; older ones are dropped
when the window rolls over.
"""

from __future__ import annotations

import threading
import time


class RateLimiter:
    def __init__(self, max_requests_per_minute: int):
        self.max_requests = max_requests_per_minute
        # key -> count within the current window
        self._counters: dict[str, int] = {}
        self._window: int | None = None
        self._lock = threading.Lock()

    def check_and_increment(self, key: str, now: float | None = None) -> bool:
        """Count a request for *key*; ``False`` once the window is full."""
        window = int((now if now is not None else time.time()) // 60)
        with self._lock:
            if self._window is None or window > self._window:
                self._counters.clear()
                self._window = window
            count = self._counters.get(key, 0)
            if count >= self.max_requests:
                return False
            self._counters[key] = count + 1
            return True

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._counters)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._window = None
