"""
AI Gateway - Pytest Configuration

Configures:
- Integration test markers (skip by default)
- Fake clocks and recording sleep so no test waits on wall time
- Provider fixtures and scripted stub clients
- Isolated Prometheus registries
"""

import os
import random
from typing import List, Optional

import pytest
from prometheus_client import CollectorRegistry

from ai_gateway.clients.stub_client import StubUpstreamClient
from ai_gateway.core.config import (
    CircuitBreakerConfig,
    GatewayConfig,
    RateLimitConfig,
    RetryConfig,
)
from ai_gateway.core.models import CanonicalRequest, Provider
from ai_gateway.gateway import Gateway, create_gateway
from ai_gateway.observability.metrics import MetricsCollector


# ============================================================
# Environment Configuration
# ============================================================

def _is_truthy(value: Optional[str]) -> bool:
    """Check if environment variable is truthy."""
    if value is None:
        return False
    return value.lower() in ("1", "true", "yes", "on")


RUN_INTEGRATION = _is_truthy(os.getenv("RUN_INTEGRATION"))


# ============================================================
# Pytest Markers
# ============================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires RUN_INTEGRATION=1)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless RUN_INTEGRATION=1."""
    skip_integration = pytest.mark.skip(
        reason="Integration test - set RUN_INTEGRATION=1 to run"
    )
    for item in items:
        if "integration" in item.keywords and not RUN_INTEGRATION:
            item.add_marker(skip_integration)


# ============================================================
# Time
# ============================================================

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records delays and returns at once."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.delays: List[float] = []
        self.clock = clock

    async def __call__(self, seconds: float):
        self.delays.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


# ============================================================
# Providers / requests
# ============================================================

def make_request(
    caller: str = "caller-1",
    content: str = "Hello",
    capabilities=(),
    max_attempts: int = 3,
    deadline_ms: int = 0,
) -> CanonicalRequest:
    return CanonicalRequest(
        task_type="chat",
        payload={"messages": [{"role": "user", "content": content}]},
        caller_identity=caller,
        required_capabilities=frozenset(capabilities),
        max_attempts=max_attempts,
        deadline_ms=deadline_ms,
    )


@pytest.fixture
def provider_a():
    return Provider("A", capabilities=frozenset({"chat"}))


@pytest.fixture
def provider_b():
    return Provider("B", capabilities=frozenset({"chat"}))


@pytest.fixture
def provider_c():
    return Provider("C", capabilities=frozenset({"chat", "vision"}))


@pytest.fixture
def mock_openai_response():
    """Standard OpenAI chat response."""
    return {
        "id": "chatcmpl-test123",
        "object": "chat.completion",
        "created": 1234567890,
        "model": "gpt-4o",
        "choices": [
            {
                "index": 0,
                "message": {
                    "role": "assistant",
                    "content": "Hello! I'm a mock response."
                },
                "finish_reason": "stop"
            }
        ],
        "usage": {
            "prompt_tokens": 10,
            "completion_tokens": 8,
            "total_tokens": 18
        }
    }


@pytest.fixture
def mock_anthropic_response():
    """Standard Anthropic messages response."""
    return {
        "id": "msg-test123",
        "type": "message",
        "role": "assistant",
        "content": [
            {
                "type": "text",
                "text": "Hello! I'm a mock Claude response."
            }
        ],
        "model": "claude-3-5-sonnet-20241022",
        "stop_reason": "end_turn",
        "usage": {
            "input_tokens": 10,
            "output_tokens": 8
        }
    }


@pytest.fixture
def mock_google_response():
    """Standard Gemini generateContent response."""
    return {
        "candidates": [
            {
                "content": {
                    "role": "model",
                    "parts": [{"text": "Hello! I'm a mock Gemini response."}]
                },
                "finishReason": "STOP"
            }
        ],
        "usageMetadata": {
            "promptTokenCount": 10,
            "candidatesTokenCount": 8,
            "totalTokenCount": 18
        },
        "modelVersion": "gemini-1.5-pro"
    }


# ============================================================
# Metrics
# ============================================================

@pytest.fixture
def registry():
    """Fresh Prometheus registry per test."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    return MetricsCollector(registry)


# ============================================================
# Gateway
# ============================================================

def build_gateway(
    clock: FakeClock,
    sleep: RecordingSleep,
    metrics: Optional[MetricsCollector] = None,
    rate_limit: int = 1000,
    failure_threshold: int = 5,
    recovery_timeout: float = 60.0,
    **config_kwargs,
) -> Gateway:
    config = GatewayConfig(
        circuit_breaker=CircuitBreakerConfig(
            failure_threshold=failure_threshold,
            recovery_timeout_seconds=recovery_timeout,
        ),
        rate_limit=RateLimitConfig(limit=rate_limit, window_seconds=60.0),
        retry=RetryConfig(base_delay=1.0, max_delay=30.0),
        **config_kwargs,
    )
    return create_gateway(
        config,
        metrics=metrics,
        clock=clock,
        sleep=sleep,
        rng=random.Random(42),
    )


@pytest.fixture
def gateway(clock, recording_sleep, metrics):
    return build_gateway(clock, recording_sleep, metrics)


def register_stub(gateway: Gateway, provider: Provider, script=None, **kwargs) -> StubUpstreamClient:
    client = StubUpstreamClient(provider, script=script, **kwargs)
    gateway.register_provider(provider, client)
    return client
