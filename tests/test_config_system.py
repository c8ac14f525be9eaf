"""
AI Gateway - Configuration Tests

Verifies:
- Defaults and environment overrides
- Validation of invalid values
- Provider definitions and client construction for the server
"""

import json

import pytest

from ai_gateway.api.models import ProviderRegistrationModel
from ai_gateway.clients.http_client import HttpUpstreamClient
from ai_gateway.clients.stub_client import StubUpstreamClient
from ai_gateway.core.config import (
    CircuitBreakerConfig,
    GatewayConfig,
    RateLimitConfig,
    load_provider_definitions,
    use_stub_clients,
)
from ai_gateway.core.models import RoutingStrategy
from ai_gateway.gateway import create_gateway
from ai_gateway.server import build_client, register_from_env


class TestGatewayConfig:
    """Test GatewayConfig construction."""

    def test_defaults(self):
        config = GatewayConfig.from_env({})

        assert config.routing.strategy == RoutingStrategy.HEALTH_AWARE
        assert config.routing.min_health_score == 0.5
        assert config.circuit_breaker.failure_threshold == 5
        assert config.circuit_breaker.evaluation_window_seconds == 60.0
        assert config.circuit_breaker.recovery_timeout_seconds == 60.0
        assert config.health.unhealthy_threshold == 3
        assert config.health.latency_cap_ms == 5000.0
        assert config.rate_limit.limit == 60
        assert config.retry.base_delay == 1.0
        assert config.retry.max_delay == 30.0
        assert config.retry.retry_on_transform_failure is False
        assert config.default_max_attempts == 3
        assert config.random_seed is None

    def test_environment_overrides(self):
        config = GatewayConfig.from_env({
            "GATEWAY_ROUTING_STRATEGY": " Round_Robin ",
            "GATEWAY_FAILURE_THRESHOLD": "2",
            "GATEWAY_RECOVERY_TIMEOUT": "15.5",
            "GATEWAY_RATE_LIMIT": "100",
            "GATEWAY_RATE_WINDOW_SECONDS": "30",
            "GATEWAY_RETRY_TRANSFORM_FAILURES": "yes",
            "GATEWAY_MAX_ATTEMPTS": "5",
            "GATEWAY_RANDOM_SEED": "42",
        })

        assert config.routing.strategy == RoutingStrategy.ROUND_ROBIN
        assert config.circuit_breaker.failure_threshold == 2
        assert config.circuit_breaker.recovery_timeout_seconds == 15.5
        assert config.rate_limit.limit == 100
        assert config.rate_limit.window_seconds == 30.0
        assert config.retry.retry_on_transform_failure is True
        assert config.default_max_attempts == 5
        assert config.random_seed == 42

    def test_blank_values_use_defaults(self):
        config = GatewayConfig.from_env({"GATEWAY_RATE_LIMIT": "  "})
        assert config.rate_limit.limit == 60

    @pytest.mark.parametrize("env,fragment", [
        ({"GATEWAY_ROUTING_STRATEGY": "random"}, "GATEWAY_ROUTING_STRATEGY"),
        ({"GATEWAY_FAILURE_THRESHOLD": "many"}, "GATEWAY_FAILURE_THRESHOLD"),
        ({"GATEWAY_BASE_DELAY": "soon"}, "GATEWAY_BASE_DELAY"),
        ({"GATEWAY_FAILURE_THRESHOLD": "0"}, "failure_threshold"),
        ({"GATEWAY_RATE_WINDOW_SECONDS": "0"}, "window"),
        ({"GATEWAY_MAX_ATTEMPTS": "0"}, "default_max_attempts"),
    ])
    def test_invalid_values(self, env, fragment):
        with pytest.raises(ValueError) as exc_info:
            GatewayConfig.from_env(env)
        assert fragment in str(exc_info.value)

    def test_direct_construction_is_validated(self):
        with pytest.raises(ValueError):
            GatewayConfig(circuit_breaker=CircuitBreakerConfig(failure_threshold=0))
        with pytest.raises(ValueError):
            GatewayConfig(rate_limit=RateLimitConfig(limit=-1))

    def test_seed_makes_jitter_reproducible(self):
        first = create_gateway(GatewayConfig(random_seed=7))
        second = create_gateway(GatewayConfig(random_seed=7))
        assert first.executor.rng.random() == second.executor.rng.random()


class TestProviderDefinitions:
    """Test GATEWAY_PROVIDERS parsing."""

    def test_empty(self):
        assert load_provider_definitions({}) == []
        assert load_provider_definitions({"GATEWAY_PROVIDERS": "  "}) == []

    def test_list(self):
        definitions = [{"id": "a"}, {"id": "b", "api_format": "anthropic"}]
        assert load_provider_definitions({"GATEWAY_PROVIDERS": json.dumps(definitions)}) == definitions

    def test_not_a_list(self):
        with pytest.raises(ValueError, match="JSON list"):
            load_provider_definitions({"GATEWAY_PROVIDERS": '{"id": "a"}'})

    def test_invalid_json(self):
        with pytest.raises(ValueError, match="not valid JSON"):
            load_provider_definitions({"GATEWAY_PROVIDERS": "[{"})

    @pytest.mark.parametrize("value,expected", [
        ("true", True), ("1", True), ("ON", True), ("false", False), ("", False),
    ])
    def test_use_stub_clients(self, value, expected):
        assert use_stub_clients({"GATEWAY_USE_STUB_CLIENTS": value}) is expected

    def test_use_stub_clients_unset(self):
        assert use_stub_clients({}) is False


class TestServerWiring:
    """Test client construction for registered providers."""

    def test_stub_client(self):
        registration = ProviderRegistrationModel(id="a")
        client = build_client(registration, registration.to_provider(), use_stub=True)
        assert isinstance(client, StubUpstreamClient)

    @pytest.mark.asyncio
    async def test_http_client_reads_key_from_env(self, monkeypatch):
        monkeypatch.setenv("TEST_PROVIDER_KEY", "sk-from-env")
        registration = ProviderRegistrationModel(
            id="a",
            api_key_env="TEST_PROVIDER_KEY",
            base_url="http://localhost:9000/v1",
            timeout_seconds=5,
        )

        client = build_client(registration, registration.to_provider(), use_stub=False)
        try:
            assert isinstance(client, HttpUpstreamClient)
            assert client.api_key == "sk-from-env"
            assert client.base_url == "http://localhost:9000/v1"
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_register_from_env(self, monkeypatch):
        providers = [
            {"id": "openai-main", "capabilities": ["chat"]},
            {"id": "claude", "api_format": "anthropic", "weight": 2},
        ]
        monkeypatch.setenv("GATEWAY_PROVIDERS", json.dumps(providers))
        monkeypatch.setenv("GATEWAY_USE_STUB_CLIENTS", "true")
        gateway = create_gateway(GatewayConfig())

        register_from_env(gateway)

        assert [p.id for p in gateway.list_providers()] == ["openai-main", "claude"]
        assert gateway.get_provider("claude").weight == 2
        response = await gateway.execute({
            "caller_identity": "c",
            "payload": {"messages": [{"role": "user", "content": "hi"}]},
            "required_capabilities": ["chat"],
        })
        assert response.provider_id == "openai-main"
