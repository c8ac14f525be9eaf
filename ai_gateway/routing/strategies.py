"""
AI Gateway - Routing Strategies

Provider selection strategies:
- ROUND_ROBIN: cycle a shared cursor over the candidates
- WEIGHTED_ROUND_ROBIN: cycle over candidates repeated by weight
- LEAST_CONNECTIONS: fewest in-flight requests
- LEAST_LATENCY: lowest average latency
- HEALTH_AWARE: highest health score (default)
- COST_BASED: cheapest provider that is healthy enough

Candidates arrive already filtered (capabilities, circuit state) and in
stable registration order. Every strategy is deterministic; ties are
broken by lexical provider id.
"""

from abc import ABC, abstractmethod
from threading import Lock
from typing import Dict, List, Optional

from ..core.config import RoutingConfig
from ..core.models import Provider, RoutingStrategy
from .health import HealthTracker


class ConnectionTracker:
    """
    In-flight request counts per provider.

    Usage:
        with connections.track("openai-main"):
            await client.call(...)
    """

    def __init__(self):
        self._counts: Dict[str, int] = {}
        self._lock = Lock()

    def increment(self, provider_id: str):
        with self._lock:
            self._counts[provider_id] = self._counts.get(provider_id, 0) + 1

    def decrement(self, provider_id: str):
        with self._lock:
            current = self._counts.get(provider_id, 0)
            self._counts[provider_id] = max(0, current - 1)

    def get(self, provider_id: str) -> int:
        with self._lock:
            return self._counts.get(provider_id, 0)

    def remove(self, provider_id: str):
        with self._lock:
            self._counts.pop(provider_id, None)

    def track(self, provider_id: str) -> "_InFlight":
        return _InFlight(self, provider_id)


class _InFlight:
    """Context manager incrementing on entry and decrementing on exit."""

    def __init__(self, tracker: ConnectionTracker, provider_id: str):
        self.tracker = tracker
        self.provider_id = provider_id

    def __enter__(self):
        self.tracker.increment(self.provider_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.tracker.decrement(self.provider_id)


class BaseStrategy(ABC):
    """Base class for routing strategies."""

    name: RoutingStrategy

    @abstractmethod
    def select(self, candidates: List[Provider]) -> Optional[Provider]:
        """
        Pick one provider from a non-empty, pre-filtered candidate list.

        Returns None only when candidates is empty.
        """
        pass


class RoundRobinStrategy(BaseStrategy):
    """Cycles a shared cursor over the candidate list."""

    name = RoutingStrategy.ROUND_ROBIN

    def __init__(self):
        self._cursor = 0
        self._lock = Lock()

    def _next_index(self, size: int) -> int:
        with self._lock:
            index = self._cursor % size
            self._cursor += 1
            return index

    def _expand(self, candidates: List[Provider]) -> List[Provider]:
        return candidates

    def select(self, candidates: List[Provider]) -> Optional[Provider]:
        ring = self._expand(candidates)
        if not ring:
            return None
        return ring[self._next_index(len(ring))]


class WeightedRoundRobinStrategy(RoundRobinStrategy):
    """Round robin over the candidates repeated `weight` times each."""

    name = RoutingStrategy.WEIGHTED_ROUND_ROBIN

    def _expand(self, candidates: List[Provider]) -> List[Provider]:
        ring = []
        for provider in candidates:
            ring.extend([provider] * provider.weight)
        return ring


class LeastConnectionsStrategy(BaseStrategy):
    """Fewest in-flight requests wins."""

    name = RoutingStrategy.LEAST_CONNECTIONS

    def __init__(self, connections: ConnectionTracker):
        self.connections = connections

    def select(self, candidates: List[Provider]) -> Optional[Provider]:
        if not candidates:
            return None
        return min(candidates, key=lambda p: (self.connections.get(p.id), p.id))


class LeastLatencyStrategy(BaseStrategy):
    """
    Lowest average latency wins.

    Providers without latency data are assumed to sit at
    unknown_latency_ms, so they get tried without jumping the queue.
    """

    name = RoutingStrategy.LEAST_LATENCY

    def __init__(self, health: HealthTracker, unknown_latency_ms: float = 500.0):
        self.health = health
        self.unknown_latency_ms = unknown_latency_ms

    def _latency(self, provider: Provider) -> float:
        latency = self.health.average_latency(provider.id)
        return self.unknown_latency_ms if latency is None else latency

    def select(self, candidates: List[Provider]) -> Optional[Provider]:
        if not candidates:
            return None
        return min(candidates, key=lambda p: (self._latency(p), p.id))


class HealthAwareStrategy(BaseStrategy):
    """Highest health score wins."""

    name = RoutingStrategy.HEALTH_AWARE

    def __init__(self, health: HealthTracker):
        self.health = health

    def select(self, candidates: List[Provider]) -> Optional[Provider]:
        if not candidates:
            return None
        return min(candidates, key=lambda p: (-self.health.get_score(p.id), p.id))


class CostBasedStrategy(BaseStrategy):
    """
    Cheapest provider among those scoring at least min_health_score.

    When nobody is healthy enough, defers to health-aware selection.
    """

    name = RoutingStrategy.COST_BASED

    def __init__(self, health: HealthTracker, min_health_score: float = 0.5):
        self.health = health
        self.min_health_score = min_health_score
        self._fallback = HealthAwareStrategy(health)

    def select(self, candidates: List[Provider]) -> Optional[Provider]:
        eligible = [
            p for p in candidates
            if self.health.get_score(p.id) >= self.min_health_score
        ]
        if not eligible:
            return self._fallback.select(candidates)
        return min(eligible, key=lambda p: (p.cost_per_unit, p.id))


def get_strategy(
    strategy: RoutingStrategy,
    health: HealthTracker,
    connections: Optional[ConnectionTracker] = None,
    config: Optional[RoutingConfig] = None
) -> BaseStrategy:
    """Create a strategy instance by name."""
    config = config or RoutingConfig()
    strategy = RoutingStrategy(strategy)

    if strategy == RoutingStrategy.ROUND_ROBIN:
        return RoundRobinStrategy()
    if strategy == RoutingStrategy.WEIGHTED_ROUND_ROBIN:
        return WeightedRoundRobinStrategy()
    if strategy == RoutingStrategy.LEAST_CONNECTIONS:
        return LeastConnectionsStrategy(connections or ConnectionTracker())
    if strategy == RoutingStrategy.LEAST_LATENCY:
        return LeastLatencyStrategy(health, config.unknown_latency_ms)
    if strategy == RoutingStrategy.COST_BASED:
        return CostBasedStrategy(health, config.min_health_score)
    return HealthAwareStrategy(health)
