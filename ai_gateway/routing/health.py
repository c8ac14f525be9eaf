"""
AI Gateway - Health Tracking

Rolling per-provider health statistics:
- Bounded windows of recent latencies and outcomes (oldest evicted first)
- Consecutive failure streak
- Health score in [0, 1]

Health Score calculation:
    success_rate * 0.6 + (1 - min(avg_latency / latency_cap, 1)) * 0.4

A provider with no recorded outcomes scores a neutral 0.5, so new
providers are neither preferred nor starved.
"""

import statistics
import time
from collections import deque
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from ..core.config import HealthConfig


@dataclass
class LatencyStats:
    """Latency statistics."""
    avg_ms: float = 0.0
    min_ms: float = 0.0
    max_ms: float = 0.0
    p50_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0
    sample_count: int = 0


@dataclass
class HealthSnapshot:
    """Point-in-time health snapshot."""
    provider: str
    timestamp: float
    is_healthy: bool
    score: float
    success_rate: Optional[float]
    latency_stats: LatencyStats
    total_requests: int
    consecutive_failures: int
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["score"] = round(self.score, 4)
        if self.success_rate is not None:
            result["success_rate"] = round(self.success_rate, 4)
        return result


def percentile(data: List[float], p: float) -> float:
    """Linear-interpolated percentile of already sorted data."""
    if not data:
        return 0.0
    k = (len(data) - 1) * p / 100
    f = int(k)
    c = f + 1 if f + 1 < len(data) else f
    return data[f] + (data[c] - data[f]) * (k - f)


class HealthRecord:
    """
    Rolling statistics for a single provider.

    All mutation happens under the record's own lock, so parallel requests
    to the same provider cannot corrupt the windows.
    """

    def __init__(self, provider_id: str, window_size: int = 100):
        self.provider_id = provider_id
        self._lock = Lock()
        self.latencies: deque = deque(maxlen=window_size)
        self.outcomes: deque = deque(maxlen=window_size)
        self.consecutive_failures = 0
        self.total_requests = 0
        self.last_error: Optional[str] = None

    def record(self, success: bool, latency_ms: float, error: Optional[str] = None):
        with self._lock:
            self.total_requests += 1
            self.outcomes.append(bool(success))
            if latency_ms is not None:
                self.latencies.append(max(0.0, float(latency_ms)))
            if success:
                self.consecutive_failures = 0
            else:
                self.consecutive_failures += 1
                if error:
                    self.last_error = error

    def read(self):
        """Consistent copy of the windows and streak."""
        with self._lock:
            return list(self.latencies), list(self.outcomes), self.consecutive_failures


class HealthTracker:
    """
    Tracks health for every registered provider, keyed by provider id.

    record_outcome() never raises; an unknown provider gets a record on
    first use.
    """

    def __init__(
        self,
        config: Optional[HealthConfig] = None,
        clock: Callable[[], float] = time.time
    ):
        self.config = config or HealthConfig()
        self._clock = clock
        self._records: Dict[str, HealthRecord] = {}
        self._lock = Lock()

    def _get_record(self, provider_id: str) -> HealthRecord:
        with self._lock:
            record = self._records.get(provider_id)
            if record is None:
                record = HealthRecord(provider_id, self.config.window_size)
                self._records[provider_id] = record
            return record

    def register(self, provider_id: str):
        """Start tracking a provider with a fresh record."""
        with self._lock:
            self._records[provider_id] = HealthRecord(provider_id, self.config.window_size)

    def remove(self, provider_id: str):
        """Discard a provider's history."""
        with self._lock:
            self._records.pop(provider_id, None)

    def record_outcome(
        self,
        provider_id: str,
        success: bool,
        latency_ms: float,
        error: Optional[str] = None
    ):
        """Record the outcome of one upstream attempt."""
        self._get_record(provider_id).record(success, latency_ms, error)

    def _score(self, latencies: List[float], outcomes: List[bool]) -> float:
        if not outcomes:
            return self.config.neutral_score

        success_rate = sum(outcomes) / len(outcomes)
        if latencies:
            avg_latency = statistics.mean(latencies)
            latency_factor = 1 - min(avg_latency / self.config.latency_cap_ms, 1.0)
        else:
            latency_factor = 1.0

        return (
            success_rate * self.config.success_weight +
            latency_factor * self.config.latency_weight
        )

    def get_score(self, provider_id: str) -> float:
        """Health score in [0, 1]."""
        latencies, outcomes, _ = self._get_record(provider_id).read()
        return self._score(latencies, outcomes)

    def is_healthy(self, provider_id: str) -> bool:
        """False once the failure streak reaches the unhealthy threshold."""
        _, _, consecutive_failures = self._get_record(provider_id).read()
        return consecutive_failures < self.config.unhealthy_threshold

    def average_latency(self, provider_id: str) -> Optional[float]:
        """Mean latency over the window, None when nothing was recorded."""
        latencies, _, _ = self._get_record(provider_id).read()
        if not latencies:
            return None
        return statistics.mean(latencies)

    def request_count(self, provider_id: str) -> int:
        with self._lock:
            record = self._records.get(provider_id)
        return record.total_requests if record else 0

    def snapshot(self, provider_id: str) -> HealthSnapshot:
        """Get current health snapshot."""
        record = self._get_record(provider_id)
        latencies, outcomes, consecutive_failures = record.read()

        if latencies:
            ordered = sorted(latencies)
            latency_stats = LatencyStats(
                avg_ms=round(statistics.mean(latencies), 2),
                min_ms=ordered[0],
                max_ms=ordered[-1],
                p50_ms=round(percentile(ordered, 50), 2),
                p95_ms=round(percentile(ordered, 95), 2),
                p99_ms=round(percentile(ordered, 99), 2),
                sample_count=len(ordered),
            )
        else:
            latency_stats = LatencyStats()

        return HealthSnapshot(
            provider=provider_id,
            timestamp=self._clock(),
            is_healthy=consecutive_failures < self.config.unhealthy_threshold,
            score=self._score(latencies, outcomes),
            success_rate=(sum(outcomes) / len(outcomes)) if outcomes else None,
            latency_stats=latency_stats,
            total_requests=record.total_requests,
            consecutive_failures=consecutive_failures,
            last_error=record.last_error,
        )

    def get_ranked_providers(self) -> List[tuple]:
        """
        Get providers ranked by health score.

        Returns:
            List of (provider_id, score) tuples, best first, ties by id
        """
        with self._lock:
            provider_ids = list(self._records.keys())
        rankings = [(pid, self.get_score(pid)) for pid in provider_ids]
        rankings.sort(key=lambda x: (-x[1], x[0]))
        return rankings
