"""
In-process metrics for the health endpoint.

Counters only go up; gauges track current values (active streams);
observations keep a count and a running sum per name.
"""

from __future__ import annotations

import threading


class MetricsRegistry:
    """Thread-safe counters, gauges and observations."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, float] = {
            "completions_total": 0.0,
            "streams_total": 0.0,
            "provider_errors_total": 0.0,
        }
        self._gauges: dict[str, float] = {"active_streams": 0.0}
        self._observations: dict[str, dict[str, float]] = {}

    def increment(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0.0) + amount

    def observe(self, name: str, value: float) -> None:
        """Record one observation (e.g. a duration in seconds)."""
        with self._lock:
            entry = self._observations.setdefault(name, {"count": 0.0, "sum": 0.0})
            entry["count"] += 1
            entry["sum"] += value

    def adjust_gauge(self, name: str, delta: float) -> None:
        """Move a gauge up or down by ``delta``."""
        with self._lock:
            self._gauges[name] = self._gauges.get(name, 0.0) + delta

    def snapshot(self) -> dict[str, dict]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "observations": {k: dict(v) for k, v in self._observations.items()},
            }


metrics = MetricsRegistry()
