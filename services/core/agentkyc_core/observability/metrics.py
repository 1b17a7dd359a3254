"""In-process metrics for AgentKYC services.

Counters track workflow outcomes (transitions, auto-review decisions, job
leases, swallowed audit failures). Gauges hold point-in-time values such as
job queue depth. Histograms keep raw samples, e.g. auto-review pass sizes.

Labelled series are keyed as ``name{label=value,...}`` with labels sorted.
"""

import threading
from typing import Any, Optional


def series_key(name: str, labels: Optional[dict[str, str]] = None) -> str:
    """Build the storage key of a labelled series.

    >>> series_key("transitions_total", {"outcome": "conflict"})
    'transitions_total{outcome=conflict}'
    """
    if not labels:
        return name
    label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
    return f"{name}{{{label_str}}}"


class MetricsCollector:
    """Thread-safe in-memory metrics store."""

    def __init__(self):
        self._lock = threading.RLock()
        self._counters: dict[str, float] = {}
        self._gauges: dict[str, float] = {}
        self._histograms: dict[str, list[float]] = {}

    def increment(
        self,
        name: str,
        value: float = 1.0,
        labels: Optional[dict[str, str]] = None,
    ) -> None:
        """Add ``value`` to a counter."""
        key = series_key(name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + value

    def set_gauge(
        self,
        name: str,
        value: float,
        labels: Optional[dict[str, str]] = None,
    ) -> None:
        key = series_key(name, labels)
        with self._lock:
            self._gauges[key] = value

    def record_histogram(
        self,
        name: str,
        value: float,
        labels: Optional[dict[str, str]] = None,
    ) -> None:
        key = series_key(name, labels)
        with self._lock:
            self._histograms.setdefault(key, []).append(value)

    def get(self, name: str, labels: Optional[dict[str, str]] = None) -> float:
        """Current value of a counter or gauge, 0 when never recorded."""
        key = series_key(name, labels)
        with self._lock:
            if key in self._counters:
                return self._counters[key]
            return self._gauges.get(key, 0)

    def get_histogram_stats(self, key: str) -> dict[str, float]:
        """Summary statistics for the histogram stored under ``key``.

        Args:
            key: Series key as built by ``series_key``.

        Returns:
            count, min, max, avg, and p50/p95 when samples exist.
        """
        with self._lock:
            values = sorted(self._histograms.get(key, []))

        if not values:
            return {"count": 0, "min": 0, "max": 0, "avg": 0}

        count = len(values)
        return {
            "count": count,
            "min": values[0],
            "max": values[-1],
            "avg": sum(values) / count,
            "p50": values[int(count * 0.5)],
            "p95": values[min(int(count * 0.95), count - 1)],
        }

    def get_all(self) -> dict[str, Any]:
        """Snapshot of every series."""
        with self._lock:
            return {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "histograms": {
                    key: self.get_histogram_stats(key) for key in self._histograms
                },
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()


# Global metrics collector instance
_collector = MetricsCollector()


def get_collector() -> MetricsCollector:
    """Get the process-wide metrics collector."""
    return _collector
