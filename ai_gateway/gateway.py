"""
AI Gateway - Gateway Facade

Single entry point for callers:
1. Validate the request
2. Admit it against the caller's rate limit
3. Hand it to the fallback executor with a snapshot of the provider pool
4. Record metrics and return a CanonicalResponse

execute() never raises for foreseeable failures; rate limiting, open
circuits and upstream errors all come back as error_kind on the response.
Provider registration errors do raise, immediately.
"""

import random
import threading
import time
from contextlib import nullcontext
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from .adapters.transformer import RequestTransformer
from .api.models import ExecuteRequestModel
from .clients.base import UpstreamClient
from .core.config import GatewayConfig
from .core.errors import (
    ErrorKind,
    InvalidRequestError,
    ProviderConfigError,
    ProviderNotFoundError,
)
from .core.models import CanonicalRequest, CanonicalResponse, Provider, generate_request_id
from .observability.logging import get_logger, log_context
from .observability.metrics import MetricsCollector
from .observability.tracing import TracingManager
from .routing.circuit_breaker import CircuitBreakerRegistry, CircuitState
from .routing.fallback import FallbackExecutor
from .routing.health import HealthTracker
from .routing.router import Router
from .routing.strategies import ConnectionTracker
from .usage.limits import RateLimiter

logger = get_logger(__name__)

RawRequest = Union[CanonicalRequest, ExecuteRequestModel, Dict[str, Any]]


class Gateway:
    """
    Owns the provider registry and drives requests through the pipeline.

    Usage:
        gateway = create_gateway(GatewayConfig())
        gateway.register_provider(Provider("openai-main", capabilities={"chat"}), client)
        response = await gateway.execute({
            "caller_identity": "team-a",
            "payload": {"messages": [{"role": "user", "content": "Hi"}]},
        })
    """

    def __init__(
        self,
        router: Router,
        executor: FallbackExecutor,
        rate_limiter: RateLimiter,
        config: Optional[GatewayConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        tracing: Optional[TracingManager] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.router = router
        self.executor = executor
        self.rate_limiter = rate_limiter
        self.config = config or GatewayConfig()
        self.metrics = metrics
        self.tracing = tracing
        self._clock = clock

        # Insertion order is the stable order round robin walks
        self._providers: Dict[str, Provider] = {}
        self._clients: Dict[str, UpstreamClient] = {}
        self._lock = threading.Lock()

    # ============================================================
    # Provider registry
    # ============================================================

    def register_provider(self, provider: Provider, client: UpstreamClient):
        """Add a provider with fresh health and a closed circuit."""
        if not isinstance(provider, Provider):
            raise ProviderConfigError(f"Expected a Provider, got {type(provider).__name__}")
        if client is None:
            raise ProviderConfigError("An upstream client is required", param="client", provider=provider.id)

        with self._lock:
            if provider.id in self._providers:
                raise ProviderConfigError(
                    f"Provider '{provider.id}' is already registered",
                    param="id",
                    provider=provider.id,
                )
            self._providers[provider.id] = provider
            self._clients[provider.id] = client

        self.router.register(provider.id)
        logger.info(
            "Provider registered",
            provider=provider.id,
            api_format=provider.api_format.value,
            weight=provider.weight,
            capabilities=sorted(provider.capabilities),
        )

    def deregister_provider(self, provider_id: str) -> UpstreamClient:
        """
        Remove a provider and discard its health and circuit state.

        Returns the provider's client so the caller can close it. Requests
        already running keep the snapshot they started with.
        """
        with self._lock:
            if provider_id not in self._providers:
                raise ProviderNotFoundError(provider_id)
            del self._providers[provider_id]
            client = self._clients.pop(provider_id)

        self.router.remove(provider_id)
        logger.info("Provider deregistered", provider=provider_id)
        return client

    def list_providers(self) -> List[Provider]:
        with self._lock:
            return list(self._providers.values())

    def get_provider(self, provider_id: str) -> Provider:
        with self._lock:
            provider = self._providers.get(provider_id)
        if provider is None:
            raise ProviderNotFoundError(provider_id)
        return provider

    def _snapshot(self) -> Tuple[List[Provider], Dict[str, UpstreamClient]]:
        with self._lock:
            return list(self._providers.values()), dict(self._clients)

    # ============================================================
    # Execution
    # ============================================================

    def _to_canonical(self, raw: RawRequest) -> CanonicalRequest:
        if isinstance(raw, CanonicalRequest):
            return raw

        if isinstance(raw, ExecuteRequestModel):
            return raw.to_canonical(self.config.default_max_attempts)

        if not isinstance(raw, dict):
            raise InvalidRequestError(
                f"Request must be a CanonicalRequest or an object, got {type(raw).__name__}"
            )

        request_id = raw.get("request_id") if isinstance(raw.get("request_id"), str) else ""
        try:
            model = ExecuteRequestModel.model_validate(raw)
        except ValidationError as e:
            first = e.errors()[0]
            param = ".".join(str(part) for part in first.get("loc", ()))
            raise InvalidRequestError(
                f"{param}: {first.get('msg', 'invalid value')}" if param else str(e),
                param=param,
                request_id=request_id,
            )
        return model.to_canonical(self.config.default_max_attempts)

    async def execute(self, raw_request: RawRequest) -> CanonicalResponse:
        """Run one request through admission, routing and fallback."""
        started = self._clock()

        try:
            request = self._to_canonical(raw_request)
        except InvalidRequestError as e:
            logger.info("Request rejected by validation", error=str(e), param=e.error.param)
            response = CanonicalResponse.failure(
                ErrorKind.INVALID_REQUEST,
                str(e),
                request_id=e.error.request_id or generate_request_id(),
            )
            self._record(response, started)
            return response

        with log_context(request_id=request.request_id, caller_identity=request.caller_identity):
            span_cm = self.tracing.request_span(request) if self.tracing else nullcontext()

            with span_cm as span:
                admission = self.rate_limiter.check(request.caller_identity)
                if not admission.allowed:
                    if self.metrics:
                        self.metrics.record_rate_limit_hit()
                    logger.info(
                        "Request rate limited",
                        limit=admission.limit,
                        retry_after=round(admission.retry_after or 0.0, 3),
                    )
                    response = CanonicalResponse.failure(
                        ErrorKind.RATE_LIMITED,
                        f"Rate limit of {admission.limit} requests per "
                        f"{self.rate_limiter.config.window_seconds:g}s exceeded",
                        request_id=request.request_id,
                    )
                else:
                    providers, clients = self._snapshot()
                    response = await self.executor.execute(request, providers, clients)

                if span is not None:
                    self.tracing.finish_request(span, response)

            self._record(response, started)
            logger.info(
                "Request completed",
                success=response.success,
                provider=response.provider_id,
                attempt_count=response.attempt_count,
                error_kind=response.error_kind.value if response.error_kind else None,
                latency_ms=round(response.latency_ms, 2),
            )

        return response

    def _record(self, response: CanonicalResponse, started: float):
        if self.metrics is None:
            return
        self.metrics.record_request(
            outcome="success" if response.success else "failure",
            error_kind=response.error_kind.value if response.error_kind else None,
            duration_seconds=self._clock() - started,
        )

    # ============================================================
    # Introspection / lifecycle
    # ============================================================

    def snapshot_metrics(self) -> Dict[str, Any]:
        """Per-provider health, circuit state, request count and in-flight calls."""
        with self._lock:
            provider_ids = list(self._providers)
        return {"per_provider": self.router.get_stats(provider_ids)}

    async def close(self):
        """Close every registered upstream client."""
        with self._lock:
            clients = list(self._clients.values())
        for client in clients:
            await client.close()


def create_gateway(
    config: Optional[GatewayConfig] = None,
    metrics: Optional[MetricsCollector] = None,
    tracing: Optional[TracingManager] = None,
    clock: Optional[Callable[[], float]] = None,
    sleep: Optional[Callable[[float], Any]] = None,
    rng: Optional[random.Random] = None,
    transformer: Optional[RequestTransformer] = None,
) -> Gateway:
    """
    Wire a gateway from configuration.

    Every component is built here and passed down explicitly, so several
    gateways (for example one per test) never share state.

    Args:
        config: Gateway configuration, defaults to GatewayConfig()
        metrics: Prometheus collector, None disables metrics
        tracing: Tracing manager, None disables spans
        clock: Monotonic clock for breakers, rate limiting and latency
        sleep: Coroutine function used for backoff
        rng: Jitter source, defaults to random.Random(config.random_seed)
        transformer: Request/response transformer
    """
    config = config or GatewayConfig()

    def on_state_change(provider_id: str, old: CircuitState, new: CircuitState):
        if metrics:
            metrics.set_circuit_breaker_state(provider_id, new)

    monotonic = clock or time.monotonic

    health = HealthTracker(config.health)
    breakers = CircuitBreakerRegistry(
        config.circuit_breaker,
        clock=monotonic,
        on_state_change=on_state_change,
    )
    router = Router(
        health=health,
        breakers=breakers,
        strategy=config.routing.strategy,
        connections=ConnectionTracker(),
        config=config.routing,
        metrics=metrics,
    )

    executor_kwargs: Dict[str, Any] = {}
    if sleep is not None:
        executor_kwargs["sleep"] = sleep
    if clock is not None:
        executor_kwargs["clock"] = clock

    executor = FallbackExecutor(
        router,
        transformer=transformer or RequestTransformer(),
        config=config.retry,
        rng=rng or random.Random(config.random_seed),
        metrics=metrics,
        tracing=tracing,
        **executor_kwargs,
    )
    rate_limiter = RateLimiter(config.rate_limit, clock=monotonic)

    logger.info(
        "Gateway created",
        strategy=config.routing.strategy.value,
        rate_limit=config.rate_limit.limit,
        failure_threshold=config.circuit_breaker.failure_threshold,
    )

    return Gateway(
        router,
        executor,
        rate_limiter,
        config=config,
        metrics=metrics,
        tracing=tracing,
        clock=clock or time.perf_counter,
    )
