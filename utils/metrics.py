"""Counters, gauges and timing histograms emitted by evaluations and optimization runs."""
import json
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional


@dataclass
class Measurement:
    """One recorded value."""
    name: str
    value: float
    kind: str
    tags: Dict[str, str] = field(default_factory=dict)
    recorded_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def _percentile(sorted_values: List[float], fraction: float) -> float:
    """Nearest-rank percentile of an already sorted, non-empty list."""
    index = min(len(sorted_values) - 1, max(0, int(round(fraction * (len(sorted_values) - 1)))))
    return sorted_values[index]


class MetricsCollector:
    """
    In-process metrics sink.

    Counters accumulate and gauges keep their last value. Each histogram
    keeps its most recent ``max_retained`` observations, and the same number
    of raw measurements is kept for export. Counters cover everything since
    the last ``clear()``.
    """

    def __init__(self, max_retained: int = 1000):
        self.max_retained = max_retained
        self._measurements: List[Measurement] = []
        self._counters: Dict[str, int] = defaultdict(int)
        self._gauges: Dict[str, float] = {}
        self._histograms: Dict[str, List[float]] = defaultdict(list)

    def _keep(self, measurement: Measurement):
        self._measurements.append(measurement)
        overflow = len(self._measurements) - self.max_retained
        if overflow > 0:
            del self._measurements[:overflow]

    def increment(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        self._counters[name] += value
        self._keep(Measurement(name, float(value), "counter", tags or {}))

    def gauge(self, name: str, value: float, tags: Optional[Dict[str, str]] = None):
        self._gauges[name] = value
        self._keep(Measurement(name, float(value), "gauge", tags or {}))

    def histogram(self, name: str, value: float, tags: Optional[Dict[str, str]] = None):
        self._histograms[name].append(value)
        overflow = len(self._histograms[name]) - self.max_retained
        if overflow > 0:
            del self._histograms[name][:overflow]
        self._keep(Measurement(name, float(value), "histogram", tags or {}))

    @contextmanager
    def timer(self, name: str, tags: Optional[Dict[str, str]] = None) -> Iterator[None]:
        """Record the wall time of the enclosed block, in milliseconds, as a histogram."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.histogram(name, (time.perf_counter() - start) * 1000, tags=tags)

    def get_counter(self, name: str) -> int:
        return self._counters.get(name, 0)

    def get_gauge(self, name: str) -> Optional[float]:
        return self._gauges.get(name)

    def get_histogram_stats(self, name: str) -> Dict[str, float]:
        values = sorted(self._histograms.get(name, []))
        if not values:
            return {"count": 0}
        return {
            "count": len(values),
            "min": values[0],
            "max": values[-1],
            "mean": sum(values) / len(values),
            "p50": _percentile(values, 0.5),
            "p95": _percentile(values, 0.95),
        }

    def get_summary(self) -> Dict[str, object]:
        return {
            "counters": dict(self._counters),
            "gauges": dict(self._gauges),
            "histograms": {name: self.get_histogram_stats(name) for name in self._histograms},
            "retained_measurements": len(self._measurements),
        }

    def export(self, filepath: str) -> str:
        """Write the summary and retained measurements to ``filepath`` as JSON."""
        with open(filepath, 'w') as f:
            json.dump({
                "summary": self.get_summary(),
                "measurements": [asdict(m) for m in self._measurements],
            }, f, indent=2)
        return filepath

    def clear(self):
        self._measurements.clear()
        self._counters.clear()
        self._gauges.clear()
        self._histograms.clear()


_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get the process-wide metrics collector."""
    global _collector
    if _collector is None:
        _collector = MetricsCollector()
    return _collector
