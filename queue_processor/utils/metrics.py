"""In-process metric aggregation behind the ``/metrics`` endpoint.

Processors report timings through the processor context, which both logs
a ``metric`` event and records the sample here.  Each metric name keeps
a running count, sum, min, max and the most recent sample with its tags.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class MetricSeries:
    count: int = 0
    total: float = 0.0
    minimum: float | None = None
    maximum: float | None = None
    last_value: float | None = None
    last_tags: dict[str, Any] = field(default_factory=dict)
    last_recorded_at: str | None = None

    def add(self, value: float, tags: dict[str, Any]) -> None:
        self.count += 1
        self.total += value
        self.minimum = value if self.minimum is None else min(self.minimum, value)
        self.maximum = value if self.maximum is None else max(self.maximum, value)
        self.last_value = value
        self.last_tags = dict(tags)
        self.last_recorded_at = datetime.now(tz=timezone.utc).isoformat()

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "sum": self.total,
            "avg": self.total / self.count if self.count else 0.0,
            "min": self.minimum,
            "max": self.maximum,
            "last": self.last_value,
            "lastTags": self.last_tags,
            "lastRecordedAt": self.last_recorded_at,
        }


class MetricsRecorder:
    """Thread-safe registry of :class:`MetricSeries` keyed by metric name."""

    def __init__(self) -> None:
        self._series: dict[str, MetricSeries] = {}
        self._lock = threading.Lock()

    def record(self, name: str, value: float, tags: dict[str, Any] | None = None) -> None:
        with self._lock:
            self._series.setdefault(name, MetricSeries()).add(float(value), tags or {})

    def get(self, name: str) -> MetricSeries | None:
        with self._lock:
            return self._series.get(name)

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {name: series.to_dict() for name, series in sorted(self._series.items())}

    def reset(self) -> None:
        with self._lock:
            self._series.clear()
