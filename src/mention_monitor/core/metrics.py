"""
Purpose: In-process pipeline counters with JSON-lines snapshots.
Constraints: No external services; file output only.
"""

from __future__ import annotations

import json
import threading
import time
from collections import defaultdict, deque
from pathlib import Path
from typing import Deque, Dict, Optional


class MetricsCollector:
    """Thread-safe counters, failure counts and rolling per-minute rates."""

    def __init__(self, window_seconds: int = 300):
        self.window_seconds = window_seconds
        self._lock = threading.Lock()
        self._started = time.time()
        self._totals: Dict[str, int] = defaultdict(int)
        self._failures: Dict[str, int] = defaultdict(int)
        self._durations: Dict[str, float] = {}
        self._events: Dict[str, Deque[float]] = defaultdict(deque)

    def record(self, name: str, success: bool = True, count: int = 1) -> None:
        if count <= 0:
            return
        now = time.time()
        with self._lock:
            self._totals[name] += count
            if not success:
                self._failures[name] += count
            events = self._events[name]
            events.extend([now] * count)
            self._trim(events, now)

    def record_failure(self, name: str) -> None:
        self.record(name, success=False)

    def record_duration(self, name: str, seconds: float) -> None:
        with self._lock:
            self._durations[name] = round(seconds, 3)

    def count(self, name: str) -> int:
        with self._lock:
            return self._totals.get(name, 0)

    def failures(self, name: str) -> int:
        with self._lock:
            return self._failures.get(name, 0)

    def snapshot(self) -> Dict[str, object]:
        now = time.time()
        with self._lock:
            return {
                "timestamp_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(now)),
                "uptime_seconds": int(now - self._started),
                "window_seconds": self.window_seconds,
                "totals": dict(self._totals),
                "failures": dict(self._failures),
                "last_durations": dict(self._durations),
                "rates_per_min": {name: self._rate(events, now) for name, events in self._events.items()},
            }

    def write_snapshot(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(self.snapshot()) + "\n")

    def _trim(self, events: Deque[float], now: float) -> None:
        cutoff = now - self.window_seconds
        while events and events[0] < cutoff:
            events.popleft()

    def _rate(self, events: Deque[float], now: float) -> float:
        self._trim(events, now)
        if self.window_seconds <= 0:
            return 0.0
        return round(len(events) * 60.0 / self.window_seconds, 3)


_GLOBAL_METRICS: Optional[MetricsCollector] = None
_GLOBAL_LOCK = threading.Lock()


def get_metrics() -> MetricsCollector:
    global _GLOBAL_METRICS
    with _GLOBAL_LOCK:
        if _GLOBAL_METRICS is None:
            _GLOBAL_METRICS = MetricsCollector()
        return _GLOBAL_METRICS
