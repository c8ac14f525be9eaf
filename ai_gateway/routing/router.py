"""
AI Gateway - Router

Selects the provider for one attempt:
1. Keep providers whose capabilities cover the request's requirements
2. Keep providers whose circuit breaker would admit a request
3. Apply the configured strategy
4. Ask the chosen provider's breaker for admission; if a concurrent
   request took the half-open trial first, drop it and pick again

Also owns the outcome bookkeeping that feeds selection: health records,
circuit breakers and in-flight counters, all keyed by provider id.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from ..core.config import RoutingConfig
from ..core.models import CanonicalRequest, Provider, RoutingStrategy
from ..observability.logging import get_logger
from ..observability.metrics import MetricsCollector
from .circuit_breaker import CircuitBreakerRegistry
from .health import HealthTracker
from .strategies import BaseStrategy, ConnectionTracker, get_strategy

logger = get_logger(__name__)


@dataclass
class RoutingDecision:
    """Outcome of one selection pass."""
    provider: Optional[Provider]
    strategy: str
    capable: List[str] = field(default_factory=list)
    circuit_blocked: List[str] = field(default_factory=list)

    @property
    def all_blocked_by_circuit(self) -> bool:
        """Capable providers existed but every breaker refused them."""
        return self.provider is None and bool(self.capable) and (
            set(self.capable) <= set(self.circuit_blocked)
        )


class Router:
    """
    Provider selector.

    Passed explicitly to the gateway; holds its own strategy cursor and
    per-provider state, so several gateways can coexist in one process.
    """

    def __init__(
        self,
        health: Optional[HealthTracker] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
        strategy: Union[BaseStrategy, RoutingStrategy, str] = RoutingStrategy.HEALTH_AWARE,
        connections: Optional[ConnectionTracker] = None,
        config: Optional[RoutingConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config or RoutingConfig()
        self.health = health or HealthTracker()
        self.breakers = breakers or CircuitBreakerRegistry()
        self.connections = connections or ConnectionTracker()
        self.metrics = metrics

        if isinstance(strategy, BaseStrategy):
            self.strategy = strategy
        else:
            self.strategy = get_strategy(
                RoutingStrategy(strategy), self.health, self.connections, self.config
            )

    @property
    def strategy_name(self) -> str:
        return self.strategy.name.value

    # ============================================================
    # Provider lifecycle
    # ============================================================

    def register(self, provider_id: str):
        """Start fresh health and circuit state for a provider."""
        self.health.register(provider_id)
        self.breakers.register(provider_id)
        if self.metrics:
            self.metrics.set_circuit_breaker_state(provider_id, "closed")

    def remove(self, provider_id: str):
        """Discard all state kept for a provider."""
        self.health.remove(provider_id)
        self.breakers.remove(provider_id)
        self.connections.remove(provider_id)
        if self.metrics:
            self.metrics.remove_provider(provider_id)

    # ============================================================
    # Selection
    # ============================================================

    def route(
        self,
        request: CanonicalRequest,
        candidates: Sequence[Provider]
    ) -> RoutingDecision:
        """Run one selection pass and report why it ended the way it did."""
        capable = [p for p in candidates if p.supports(request.required_capabilities)]
        decision = RoutingDecision(
            provider=None,
            strategy=self.strategy_name,
            capable=[p.id for p in capable],
        )

        available = []
        for provider in capable:
            if self.breakers.is_available(provider.id):
                available.append(provider)
            else:
                decision.circuit_blocked.append(provider.id)

        while available:
            chosen = self.strategy.select(available)
            if chosen is None:
                break
            if self.breakers.allow(chosen.id):
                decision.provider = chosen
                if self.metrics:
                    self.metrics.record_routing_decision(self.strategy_name, chosen.id)
                logger.debug(
                    "Provider selected",
                    provider=chosen.id,
                    strategy=self.strategy_name,
                    candidates=len(capable),
                )
                return decision
            available = [p for p in available if p.id != chosen.id]
            decision.circuit_blocked.append(chosen.id)

        logger.info(
            "No provider available",
            strategy=self.strategy_name,
            capable=decision.capable,
            circuit_blocked=decision.circuit_blocked,
        )
        return decision

    def select_provider(
        self,
        request: CanonicalRequest,
        candidates: Sequence[Provider]
    ) -> Optional[Provider]:
        """Pick a provider for the request, or None if nothing survives filtering."""
        return self.route(request, candidates).provider

    # ============================================================
    # Outcome bookkeeping
    # ============================================================

    def record_success(self, provider_id: str, latency_ms: float):
        """Record a successful request across all tracking systems."""
        self.breakers.report_result(provider_id, True)
        self.health.record_outcome(provider_id, True, latency_ms)

    def record_failure(self, provider_id: str, latency_ms: float, error: Optional[str] = None):
        """Record a failed request across all tracking systems."""
        self.breakers.report_result(provider_id, False)
        self.health.record_outcome(provider_id, False, latency_ms, error)

    def release(self, provider_id: str):
        """Return admission that was never used for an upstream call."""
        self.breakers.release(provider_id)

    def track(self, provider_id: str):
        """In-flight counter context for one upstream call."""
        return self.connections.track(provider_id)

    # ============================================================
    # Introspection
    # ============================================================

    def get_stats(self, provider_ids: Sequence[str]) -> Dict[str, Dict[str, Any]]:
        """Per-provider routing statistics."""
        result = {}
        for provider_id in provider_ids:
            snapshot = self.health.snapshot(provider_id)
            result[provider_id] = {
                "health": snapshot.to_dict(),
                "circuit_state": self.breakers.get_state(provider_id).value,
                "request_count": snapshot.total_requests,
                "in_flight": self.connections.get(provider_id),
            }
        return result
