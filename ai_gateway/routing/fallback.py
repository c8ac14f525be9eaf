"""
AI Gateway - Fallback Executor

Runs one canonical request against the provider pool:

    attempting -> succeeded
               -> retrying (backoff) -> falling_back (next provider) -> attempting
               -> failed (non-retryable error, returned immediately)
               -> exhausted (attempt budget or providers used up)

Rules:
- A provider that failed once is not tried again for the same request
- Only retryable errors lead to another attempt
- At most max_attempts upstream attempts per request
- Backoff between attempts: min(base * 2**attempt + jitter, max), jitter in [0, 1)

Sleep, clock and jitter source are injected so tests never wait on wall time.
"""

import asyncio
import random
import time
from contextlib import nullcontext
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set

from ..adapters.transformer import RequestTransformer
from ..clients.base import UpstreamClient
from ..core.config import RetryConfig
from ..core.errors import (
    ErrorKind,
    GatewayException,
    TransformError,
    UpstreamTimeoutError,
    classify_error,
)
from ..core.models import AttemptOutcome, CanonicalRequest, CanonicalResponse, Provider
from ..observability.logging import get_logger
from ..observability.metrics import MetricsCollector
from ..observability.tracing import TracingManager
from .router import Router, RoutingDecision

logger = get_logger(__name__)


class ExecutionPhase(str, Enum):
    """Request phases while the executor works through providers."""
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    FALLING_BACK = "falling_back"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    EXHAUSTED = "exhausted"


@dataclass
class AttemptResult:
    """One attempt plus what the executor needs to decide the next step."""
    outcome: AttemptOutcome
    payload: Optional[Dict[str, Any]] = None
    retryable: bool = False


def calculate_backoff(
    attempt: int,
    base_delay: float,
    max_delay: float,
    rng: random.Random
) -> float:
    """Exponential backoff with jitter in [0, 1), capped at max_delay."""
    return min(base_delay * (2 ** attempt) + rng.random(), max_delay)


class FallbackExecutor:
    """
    Bounded retry loop over the router.

    Usage:
        executor = FallbackExecutor(router, RequestTransformer(), sleep=fake_sleep)
        response = await executor.execute(request, providers, clients)
    """

    def __init__(
        self,
        router: Router,
        transformer: Optional[RequestTransformer] = None,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.perf_counter,
        metrics: Optional[MetricsCollector] = None,
        tracing: Optional[TracingManager] = None,
    ):
        self.router = router
        self.transformer = transformer or RequestTransformer()
        self.config = config or RetryConfig()
        self.sleep = sleep
        self.rng = rng or random.Random()
        self.clock = clock
        self.metrics = metrics
        self.tracing = tracing

    def _elapsed_ms(self, started: float) -> float:
        return (self.clock() - started) * 1000

    async def execute(
        self,
        request: CanonicalRequest,
        providers: Sequence[Provider],
        clients: Mapping[str, UpstreamClient]
    ) -> CanonicalResponse:
        """Run the request until success, a non-retryable failure or exhaustion."""
        started = self.clock()
        attempt = 0
        tried: Set[str] = set()
        attempts: List[AttemptOutcome] = []
        first_decision: Optional[RoutingDecision] = None
        phase = ExecutionPhase.ATTEMPTING

        while attempt < request.max_attempts:
            candidates = [p for p in providers if p.id not in tried]
            decision = self.router.route(request, candidates)
            if first_decision is None:
                first_decision = decision
            provider = decision.provider
            if provider is None:
                break

            if phase != ExecutionPhase.ATTEMPTING:
                phase = ExecutionPhase.FALLING_BACK
                logger.debug("Falling back", provider=provider.id, attempt=attempt)

            result = await self._attempt(request, provider, clients[provider.id], attempt)
            attempts.append(result.outcome)

            if result.outcome.success:
                phase = ExecutionPhase.SUCCEEDED
                return CanonicalResponse(
                    success=True,
                    request_id=request.request_id,
                    payload=result.payload,
                    provider_id=provider.id,
                    latency_ms=self._elapsed_ms(started),
                    attempt_count=attempt + 1,
                    attempts=attempts,
                )

            if not result.retryable:
                phase = ExecutionPhase.FAILED
                logger.info(
                    "Non-retryable failure",
                    provider=provider.id,
                    error_kind=result.outcome.error_kind.value,
                    attempt=attempt + 1,
                    phase=phase.value,
                )
                return CanonicalResponse.failure(
                    result.outcome.error_kind,
                    result.outcome.error_message or result.outcome.error_kind.value,
                    request_id=request.request_id,
                    attempt_count=attempt + 1,
                    attempts=attempts,
                    provider_id=provider.id,
                    latency_ms=self._elapsed_ms(started),
                )

            tried.add(provider.id)
            attempt += 1

            # Back off only when another provider is left to try
            if attempt < request.max_attempts and any(p.id not in tried for p in providers):
                if self.metrics:
                    self.metrics.record_fallback(provider.id, result.outcome.error_kind.value)
                phase = ExecutionPhase.RETRYING
                delay = calculate_backoff(
                    attempt, self.config.base_delay, self.config.max_delay, self.rng
                )
                logger.warning(
                    "Attempt failed, retrying on another provider",
                    provider=provider.id,
                    error_kind=result.outcome.error_kind.value,
                    attempt=attempt,
                    max_attempts=request.max_attempts,
                    backoff_seconds=round(delay, 3),
                )
                await self.sleep(delay)

        latency_ms = self._elapsed_ms(started)

        if not attempts:
            if first_decision is not None and first_decision.all_blocked_by_circuit:
                kind = ErrorKind.CIRCUIT_OPEN
                message = "All capable providers have an open circuit"
            else:
                kind = ErrorKind.NO_PROVIDER_AVAILABLE
                required = sorted(request.required_capabilities)
                message = f"No registered provider supports {required}" if required else "No providers registered"
            return CanonicalResponse.failure(
                kind,
                message,
                request_id=request.request_id,
                attempt_count=0,
                latency_ms=latency_ms,
            )

        phase = ExecutionPhase.EXHAUSTED
        last = attempts[-1]
        logger.warning(
            "All attempts failed",
            attempt_count=attempt,
            providers_tried=[a.provider_id for a in attempts],
            phase=phase.value,
        )
        return CanonicalResponse.failure(
            ErrorKind.EXHAUSTED,
            f"{attempt} attempt(s) failed; last error from {last.provider_id}: {last.error_message}",
            request_id=request.request_id,
            attempt_count=attempt,
            attempts=attempts,
            provider_id=last.provider_id,
            latency_ms=latency_ms,
        )

    # ============================================================
    # Single attempt
    # ============================================================

    async def _attempt(
        self,
        request: CanonicalRequest,
        provider: Provider,
        client: UpstreamClient,
        attempt: int
    ) -> AttemptResult:
        """
        Transform, dispatch and normalize once.

        The provider's breaker admission was consumed by the router; it is
        returned unused when the request cannot even be shaped for it.
        """
        try:
            body = self.transformer.to_upstream_format(request, provider)
        except TransformError as e:
            self.router.release(provider.id)
            return AttemptResult(
                outcome=AttemptOutcome(
                    provider_id=provider.id,
                    success=False,
                    latency_ms=0.0,
                    error_kind=ErrorKind.TRANSFORM_FAILURE,
                    error_message=str(e),
                ),
                retryable=self._transform_retryable(e),
            )

        span_cm = self.tracing.attempt_span(provider.id, attempt) if self.tracing else nullcontext()
        in_flight = self.metrics.track_in_flight(provider.id) if self.metrics else nullcontext()
        started = self.clock()

        with span_cm as span:
            try:
                with self.router.track(provider.id), in_flight:
                    raw = await self._dispatch(client, body, request.timeout_ms)
                payload = self.transformer.from_upstream_format(raw, provider)
            except asyncio.CancelledError:
                self.router.release(provider.id)
                raise
            except Exception as e:
                latency_ms = self._elapsed_ms(started)
                kind, retryable = classify_error(e, provider.id)
                if isinstance(e, TransformError):
                    retryable = self._transform_retryable(e)
                if not isinstance(e, GatewayException):
                    logger.exception(
                        "Unexpected upstream exception",
                        provider=provider.id,
                        error_type=type(e).__name__,
                    )

                self.router.record_failure(provider.id, latency_ms, str(e))
                if self.metrics:
                    self.metrics.record_attempt(provider.id, False, latency_ms / 1000, kind.value)
                if span is not None:
                    self.tracing.record_error(span, kind.value, str(e))

                return AttemptResult(
                    outcome=AttemptOutcome(
                        provider_id=provider.id,
                        success=False,
                        latency_ms=latency_ms,
                        error_kind=kind,
                        error_message=str(e),
                    ),
                    retryable=retryable,
                )

        latency_ms = self._elapsed_ms(started)
        self.router.record_success(provider.id, latency_ms)
        if self.metrics:
            self.metrics.record_attempt(provider.id, True, latency_ms / 1000)

        return AttemptResult(
            outcome=AttemptOutcome(provider_id=provider.id, success=True, latency_ms=latency_ms),
            payload=payload,
        )

    async def _dispatch(
        self,
        client: UpstreamClient,
        body: Dict[str, Any],
        timeout_ms: Optional[int]
    ) -> Dict[str, Any]:
        if not timeout_ms:
            return await client.call(body, None)
        try:
            return await asyncio.wait_for(client.call(body, timeout_ms), timeout_ms / 1000)
        except asyncio.TimeoutError:
            raise UpstreamTimeoutError(client.provider_id, timeout_ms)

    def _transform_retryable(self, error: TransformError) -> bool:
        return error.retryable or self.config.retry_on_transform_failure
