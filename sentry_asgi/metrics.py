from __future__ import annotations

from dataclasses import asdict, dataclass
from threading import Lock
from typing import Any


@dataclass
class _LatencyAgg:
    count: int = 0
    sum_ms: float = 0.0
    max_ms: float = 0.0

    def observe(self, elapsed_ms: float) -> None:
        self.count += 1
        self.sum_ms += float(elapsed_ms)
        if elapsed_ms > self.max_ms:
            self.max_ms = float(elapsed_ms)


class InMemoryMetrics:
    """Thread-safe, process-local counters for recovered faults (resets on restart)."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.faults_recovered_total: int = 0
        self.events_reported_total: int = 0
        self.faults_reraised_total: int = 0
        self.flushes_total: int = 0
        self.flush_ms = _LatencyAgg()

    def observe_fault(self, event_id: str | None) -> None:
        with self._lock:
            self.faults_recovered_total += 1
            if event_id is not None:
                self.events_reported_total += 1

    def observe_reraise(self) -> None:
        with self._lock:
            self.faults_reraised_total += 1

    def observe_flush(self, elapsed_ms: float) -> None:
        with self._lock:
            self.flushes_total += 1
            self.flush_ms.observe(elapsed_ms)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": {
                    "faults_recovered_total": self.faults_recovered_total,
                    "events_reported_total": self.events_reported_total,
                    "faults_reraised_total": self.faults_reraised_total,
                    "flushes_total": self.flushes_total,
                },
                "latency_ms": {
                    "flush_ms": asdict(self.flush_ms),
                },
            }

    def reset(self) -> None:
        with self._lock:
            self.faults_recovered_total = 0
            self.events_reported_total = 0
            self.faults_reraised_total = 0
            self.flushes_total = 0
            self.flush_ms = _LatencyAgg()


_METRICS: InMemoryMetrics | None = None


def get_metrics() -> InMemoryMetrics:
    global _METRICS
    if _METRICS is None:
        _METRICS = InMemoryMetrics()
    return _METRICS


def reset_metrics() -> None:
    """Reset counters/aggregates (used by tests)."""

    get_metrics().reset()
