"""
Purpose: Minimum spacing between outbound feed requests.
Constraints: No network I/O; purely local tracking.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional


class RequestThrottle:
    """Serializes callers so consecutive requests start at least `min_interval` seconds apart.

    The last-request marker is shared by every call site using this instance and is
    read and advanced under one lock, so concurrent callers queue up rather than race.
    """

    def __init__(
        self,
        min_interval: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.min_interval = max(0.0, float(min_interval))
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_request: Optional[float] = None

    def wait(self) -> float:
        """Block until the next request may start; returns the time slept."""
        with self._lock:
            now = self._clock()
            waited = 0.0
            if self._last_request is not None:
                remaining = self.min_interval - (now - self._last_request)
                if remaining > 0:
                    self._sleep(remaining)
                    waited = remaining
                    now = self._clock()
            self._last_request = now
            return waited

    @property
    def last_request(self) -> Optional[float]:
        with self._lock:
            return self._last_request
