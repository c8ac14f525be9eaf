"""
AI Gateway - Routing Module

Provider selection with:
- Sliding-window health tracking
- Per-provider circuit breakers
- Pluggable selection strategies
- Bounded fallback across providers with backoff
"""

from .router import Router, RoutingDecision
from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
    CircuitStats,
)
from .strategies import (
    BaseStrategy,
    ConnectionTracker,
    CostBasedStrategy,
    HealthAwareStrategy,
    LeastConnectionsStrategy,
    LeastLatencyStrategy,
    RoundRobinStrategy,
    WeightedRoundRobinStrategy,
    get_strategy,
)
from .fallback import (
    AttemptResult,
    ExecutionPhase,
    FallbackExecutor,
    calculate_backoff,
)
from .health import (
    HealthRecord,
    HealthSnapshot,
    HealthTracker,
    LatencyStats,
)

__all__ = [
    # Router
    "Router",
    "RoutingDecision",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "CircuitStats",
    # Strategies
    "BaseStrategy",
    "ConnectionTracker",
    "CostBasedStrategy",
    "HealthAwareStrategy",
    "LeastConnectionsStrategy",
    "LeastLatencyStrategy",
    "RoundRobinStrategy",
    "WeightedRoundRobinStrategy",
    "get_strategy",
    # Fallback
    "AttemptResult",
    "ExecutionPhase",
    "FallbackExecutor",
    "calculate_backoff",
    # Health
    "HealthRecord",
    "HealthSnapshot",
    "HealthTracker",
    "LatencyStats",
]
