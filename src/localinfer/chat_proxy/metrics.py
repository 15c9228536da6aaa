from __future__ import annotations

import time
from collections import Counter, deque
from dataclasses import dataclass
from typing import Deque, Dict, Optional, Sequence


@dataclass
class MetricSample:
    ts: float
    model: str
    engine: str
    status: int
    ttfb_ms: Optional[float]  # None when no byte ever reached the caller
    bytes_out: int
    duration_ms: float

    @property
    def failed(self) -> bool:
        return self.status >= 400


def _percentile(ordered: Sequence[float], fraction: float) -> Optional[float]:
    if not ordered:
        return None
    return ordered[int(fraction * (len(ordered) - 1))]


def _mean(values: Sequence[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


class MetricsAggregator:
    """Lifetime request counters plus a rolling window of recent samples."""

    def __init__(self, capacity: int = 500):
        self.capacity = capacity
        self.samples: Deque[MetricSample] = deque(maxlen=capacity)
        self.start_ts = time.time()
        self.totals: Counter[str] = Counter()
        self.failures: Counter[str] = Counter()
        self.by_model: Counter[str] = Counter()

    def add(self, sample: MetricSample) -> None:
        self.samples.append(sample)
        self.totals[sample.engine] += 1
        self.by_model[sample.model] += 1
        if sample.failed:
            self.failures[sample.engine] += 1

    def _rolling(self) -> Dict[str, object]:
        window = list(self.samples)
        if not window:
            return {"count": 0}
        ttfbs = sorted(s.ttfb_ms for s in window if s.ttfb_ms is not None)
        return {
            "count": len(window),
            "avg_ttfb_ms": _mean(ttfbs),
            "p95_ttfb_ms": _percentile(ttfbs, 0.95),
            "avg_duration_ms": _mean([s.duration_ms for s in window]),
            "total_bytes_out": sum(s.bytes_out for s in window),
        }

    def summary(self) -> dict:
        return {
            "schema_version": 1,
            "uptime_seconds": time.time() - self.start_ts,
            "requests_by_engine": {
                engine: {
                    "total_requests": total,
                    "failed_requests": self.failures[engine],
                }
                for engine, total in self.totals.items()
            },
            "requests_by_model": dict(self.by_model),
            "rolling": self._rolling(),
        }
