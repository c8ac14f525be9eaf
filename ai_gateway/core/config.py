"""
AI Gateway - Configuration

Tunable thresholds for every component, read from the environment.

All values have defaults, so an empty environment yields a working
gateway. Invalid values fail at startup with ValueError.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .models import RoutingStrategy


def _is_truthy(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.lower() in ("1", "true", "yes", "on")


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass
class HealthConfig:
    """Health scoring parameters."""
    window_size: int = 100
    unhealthy_threshold: int = 3
    latency_cap_ms: float = 5000.0
    success_weight: float = 0.6
    latency_weight: float = 0.4
    neutral_score: float = 0.5


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker thresholds."""
    failure_threshold: int = 5
    evaluation_window_seconds: float = 60.0
    recovery_timeout_seconds: float = 60.0


@dataclass
class RateLimitConfig:
    """Per-caller admission window."""
    limit: int = 60
    window_seconds: float = 60.0


@dataclass
class RetryConfig:
    """Backoff between fallback attempts."""
    base_delay: float = 1.0
    max_delay: float = 30.0
    retry_on_transform_failure: bool = False


@dataclass
class RoutingConfig:
    """Router behavior."""
    strategy: RoutingStrategy = RoutingStrategy.HEALTH_AWARE
    min_health_score: float = 0.5
    unknown_latency_ms: float = 500.0


@dataclass
class GatewayConfig:
    """Complete gateway configuration."""
    health: HealthConfig = field(default_factory=HealthConfig)
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    default_max_attempts: int = 3
    random_seed: Optional[int] = None

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Reject values no component could work with."""
        if self.circuit_breaker.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.circuit_breaker.evaluation_window_seconds <= 0:
            raise ValueError("evaluation_window_seconds must be > 0")
        if self.circuit_breaker.recovery_timeout_seconds < 0:
            raise ValueError("recovery_timeout_seconds must be >= 0")
        if self.health.unhealthy_threshold < 1:
            raise ValueError("unhealthy_threshold must be >= 1")
        if self.health.latency_cap_ms <= 0:
            raise ValueError("latency_cap_ms must be > 0")
        if self.health.window_size < 1:
            raise ValueError("window_size must be >= 1")
        if self.rate_limit.limit < 0:
            raise ValueError("rate limit must be >= 0")
        if self.rate_limit.window_seconds <= 0:
            raise ValueError("rate limit window must be > 0")
        if self.retry.base_delay < 0 or self.retry.max_delay < 0:
            raise ValueError("backoff delays must be >= 0")
        if self.default_max_attempts < 1:
            raise ValueError("default_max_attempts must be >= 1")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "GatewayConfig":
        """
        Build configuration from environment variables.

        Variables:
            GATEWAY_ROUTING_STRATEGY, GATEWAY_MIN_HEALTH_SCORE,
            GATEWAY_FAILURE_THRESHOLD, GATEWAY_EVALUATION_WINDOW,
            GATEWAY_RECOVERY_TIMEOUT, GATEWAY_UNHEALTHY_THRESHOLD,
            GATEWAY_LATENCY_CAP_MS, GATEWAY_RATE_LIMIT,
            GATEWAY_RATE_WINDOW_SECONDS, GATEWAY_BASE_DELAY,
            GATEWAY_MAX_DELAY, GATEWAY_RETRY_TRANSFORM_FAILURES,
            GATEWAY_MAX_ATTEMPTS, GATEWAY_RANDOM_SEED
        """
        env = os.environ if env is None else env
        strategy_name = env.get("GATEWAY_ROUTING_STRATEGY", RoutingStrategy.HEALTH_AWARE.value)
        try:
            strategy = RoutingStrategy(strategy_name.lower().strip())
        except ValueError:
            valid = ", ".join(s.value for s in RoutingStrategy)
            raise ValueError(f"Invalid GATEWAY_ROUTING_STRATEGY. Use one of: {valid}")

        seed = env.get("GATEWAY_RANDOM_SEED")

        return cls(
            health=HealthConfig(
                unhealthy_threshold=_env_int(env, "GATEWAY_UNHEALTHY_THRESHOLD", 3),
                latency_cap_ms=_env_float(env, "GATEWAY_LATENCY_CAP_MS", 5000.0),
            ),
            circuit_breaker=CircuitBreakerConfig(
                failure_threshold=_env_int(env, "GATEWAY_FAILURE_THRESHOLD", 5),
                evaluation_window_seconds=_env_float(env, "GATEWAY_EVALUATION_WINDOW", 60.0),
                recovery_timeout_seconds=_env_float(env, "GATEWAY_RECOVERY_TIMEOUT", 60.0),
            ),
            rate_limit=RateLimitConfig(
                limit=_env_int(env, "GATEWAY_RATE_LIMIT", 60),
                window_seconds=_env_float(env, "GATEWAY_RATE_WINDOW_SECONDS", 60.0),
            ),
            retry=RetryConfig(
                base_delay=_env_float(env, "GATEWAY_BASE_DELAY", 1.0),
                max_delay=_env_float(env, "GATEWAY_MAX_DELAY", 30.0),
                retry_on_transform_failure=_is_truthy(env.get("GATEWAY_RETRY_TRANSFORM_FAILURES")),
            ),
            routing=RoutingConfig(
                strategy=strategy,
                min_health_score=_env_float(env, "GATEWAY_MIN_HEALTH_SCORE", 0.5),
            ),
            default_max_attempts=_env_int(env, "GATEWAY_MAX_ATTEMPTS", 3),
            random_seed=int(seed) if seed else None,
        )


def load_provider_definitions(env: Optional[Mapping[str, str]] = None) -> List[Dict[str, Any]]:
    """
    Read provider definitions from GATEWAY_PROVIDERS.

    Expected JSON list, e.g.:
        [{"id": "openai-main", "api_format": "openai", "weight": 2,
          "cost_per_unit": 0.5, "capabilities": ["chat"],
          "base_url": "https://api.openai.com/v1", "api_key_env": "OPENAI_API_KEY"}]
    """
    env = os.environ if env is None else env
    raw = env.get("GATEWAY_PROVIDERS", "").strip()
    if not raw:
        return []
    try:
        definitions = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"GATEWAY_PROVIDERS is not valid JSON: {e}")
    if not isinstance(definitions, list):
        raise ValueError("GATEWAY_PROVIDERS must be a JSON list")
    return definitions


def use_stub_clients(env: Optional[Mapping[str, str]] = None) -> bool:
    """Check if upstream calls should go to in-process stubs."""
    env = os.environ if env is None else env
    return _is_truthy(env.get("GATEWAY_USE_STUB_CLIENTS"))
