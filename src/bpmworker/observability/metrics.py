"""In-process worker metrics: task outcomes, lease activity and durations."""

from collections import deque
from threading import Lock
from typing import Any, Optional

# Samples kept per histogram for percentile estimates
SAMPLE_WINDOW = 512

TASK_OUTCOMES = ("fetched", "completed", "failed", "business_errors")


def metric_key(name: str, topic: Optional[str] = None) -> str:
    return f"{name}{{topic={topic}}}" if topic else name


class DurationHistogram:
    """Running totals plus a window of recent samples."""

    def __init__(self, window: int = SAMPLE_WINDOW):
        self.count = 0
        self.total = 0.0
        self.minimum: Optional[float] = None
        self.maximum: Optional[float] = None
        self.samples: deque[float] = deque(maxlen=window)

    def observe(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.minimum = value if self.minimum is None else min(self.minimum, value)
        self.maximum = value if self.maximum is None else max(self.maximum, value)
        self.samples.append(value)

    def percentile(self, fraction: float) -> Optional[float]:
        if not self.samples:
            return None
        ordered = sorted(self.samples)
        index = min(len(ordered) - 1, int(fraction * len(ordered)))
        return ordered[index]

    def snapshot(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "avg": self.total / self.count if self.count else 0.0,
            "min": self.minimum,
            "max": self.maximum,
            "p50": self.percentile(0.50),
            "p95": self.percentile(0.95),
        }


class MetricsRegistry:
    """
    Counters, gauges and duration histograms, optionally keyed by topic.

    Handlers run on the event loop while database listeners may fire from
    driver threads, so every update takes the registry lock.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self.counters: dict[str, float] = {}
        self.gauges: dict[str, float] = {}
        self.histograms: dict[str, DurationHistogram] = {}

    def inc_counter(self, name: str, topic: Optional[str] = None, amount: float = 1.0) -> None:
        key = metric_key(name, topic)
        with self._lock:
            self.counters[key] = self.counters.get(key, 0.0) + amount

    def add_gauge(self, name: str, amount: float) -> None:
        with self._lock:
            self.gauges[name] = self.gauges.get(name, 0.0) + amount

    def observe(self, name: str, value: float, topic: Optional[str] = None) -> None:
        key = metric_key(name, topic)
        with self._lock:
            histogram = self.histograms.get(key)
            if histogram is None:
                histogram = self.histograms[key] = DurationHistogram()
            histogram.observe(value)

    def counter_value(self, name: str, topic: Optional[str] = None) -> float:
        with self._lock:
            return self.counters.get(metric_key(name, topic), 0.0)

    def topic_summary(self, topic: str) -> dict[str, int]:
        """Task outcome counts for one topic."""
        with self._lock:
            return {
                outcome: int(self.counters.get(metric_key(f"tasks.{outcome}", topic), 0.0))
                for outcome in TASK_OUTCOMES
            }

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self.counters),
                "gauges": dict(self.gauges),
                "histograms": {key: h.snapshot() for key, h in self.histograms.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self.counters.clear()
            self.gauges.clear()
            self.histograms.clear()


metrics = MetricsRegistry()
