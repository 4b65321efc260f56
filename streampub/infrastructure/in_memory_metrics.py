"""In-memory metrics for the publish pipeline.

Default MetricsPort used when no backend is injected. Counters track acks,
errors per broker code and backpressure waits; the pending gauge mirrors the
window size; latency summaries keep a bounded sample so a long-running
publisher does not grow without limit.
"""

import time
from collections import defaultdict, deque
from contextlib import contextmanager
from typing import Any

from ..ports.metrics import MetricsPort

DEFAULT_SAMPLE_SIZE = 1024


class LatencySummary:
    """Running count/min/max/mean plus percentiles over the newest samples."""

    def __init__(self, sample_size: int = DEFAULT_SAMPLE_SIZE):
        self.count = 0
        self.total = 0.0
        self.min: float | None = None
        self.max: float | None = None
        self._samples: deque[float] = deque(maxlen=sample_size)

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.min = value if self.min is None else min(self.min, value)
        self.max = value if self.max is None else max(self.max, value)
        self._samples.append(value)

    @property
    def mean(self) -> float:
        if not self.count:
            return 0.0
        return self.total / self.count

    def percentile(self, p: float) -> float:
        """Nearest-rank percentile (0-100) over the retained samples."""
        if not self._samples:
            return 0.0
        ordered = sorted(self._samples)
        rank = min(int(len(ordered) * p / 100), len(ordered) - 1)
        return ordered[rank]

    def to_dict(self) -> dict[str, float]:
        return {
            "count": self.count,
            "mean": round(self.mean, 3),
            "min": round(self.min or 0.0, 3),
            "max": round(self.max or 0.0, 3),
            "p50": round(self.percentile(50), 3),
            "p95": round(self.percentile(95), 3),
            "p99": round(self.percentile(99), 3),
        }


class InMemoryMetrics(MetricsPort):
    """Process-local counters, gauges and latency summaries."""

    def __init__(self, sample_size: int = DEFAULT_SAMPLE_SIZE):
        self._sample_size = sample_size
        self._counters: dict[str, int] = defaultdict(int)
        self._gauges: dict[str, float] = {}
        self._latencies: dict[str, LatencySummary] = {}
        self._started = time.monotonic()

    def increment(self, name: str, value: int = 1) -> None:
        self._counters[name] += value

    def gauge(self, name: str, value: float) -> None:
        self._gauges[name] = value

    def record(self, name: str, value: float) -> None:
        summary = self._latencies.get(name)
        if summary is None:
            summary = self._latencies[name] = LatencySummary(self._sample_size)
        summary.add(value)

    @contextmanager
    def timer(self, name: str):
        # Recorded in milliseconds, also when the block raises
        started = time.perf_counter()
        try:
            yield
        finally:
            self.record(name, (time.perf_counter() - started) * 1000)

    def counter(self, name: str) -> int:
        return self._counters.get(name, 0)

    def counters_with_prefix(self, prefix: str) -> dict[str, int]:
        """Counters below ``prefix``, keyed by the remainder of their name.

        ``counters_with_prefix("publish.errors.")`` gives error counts per
        broker error code.
        """
        return {
            name[len(prefix) :]: value
            for name, value in self._counters.items()
            if name.startswith(prefix)
        }

    def gauge_value(self, name: str) -> float | None:
        return self._gauges.get(name)

    def latency(self, name: str) -> LatencySummary | None:
        return self._latencies.get(name)

    def get_all(self) -> dict[str, Any]:
        return {
            "uptime_seconds": round(time.monotonic() - self._started, 3),
            "counters": dict(self._counters),
            "gauges": dict(self._gauges),
            "summaries": {name: s.to_dict() for name, s in self._latencies.items()},
        }

    def reset(self) -> None:
        """Clear every metric. Uptime is not reset."""
        self._counters.clear()
        self._gauges.clear()
        self._latencies.clear()
