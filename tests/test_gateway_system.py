"""
AI Gateway - Gateway Facade Tests

Verifies:
- Provider registration and deregistration
- Request validation and admission
- Metrics snapshot shape
- Client lifecycle
"""

import json
from unittest.mock import AsyncMock

import pytest

from ai_gateway.api.models import ExecuteRequestModel
from ai_gateway.clients.base import UpstreamClient
from ai_gateway.clients.stub_client import StubUpstreamClient
from ai_gateway.core.errors import ErrorKind, ProviderConfigError, ProviderNotFoundError, UpstreamError
from ai_gateway.core.models import Provider
from ai_gateway.routing.circuit_breaker import CircuitState

from conftest import build_gateway, make_request, register_stub


# ============================================================
# Registration
# ============================================================

class TestProviderRegistry:
    """Test provider registration."""

    def test_register_and_list(self, gateway, provider_a, provider_b):
        register_stub(gateway, provider_a)
        register_stub(gateway, provider_b)

        assert [p.id for p in gateway.list_providers()] == ["A", "B"]
        assert gateway.get_provider("B") is provider_b

    def test_duplicate_id_rejected(self, gateway, provider_a):
        register_stub(gateway, provider_a)

        with pytest.raises(ProviderConfigError) as exc_info:
            register_stub(gateway, Provider("A", weight=3))
        assert exc_info.value.error.param == "id"
        assert gateway.get_provider("A").weight == 1

    def test_missing_client_rejected(self, gateway, provider_a):
        with pytest.raises(ProviderConfigError):
            gateway.register_provider(provider_a, None)
        assert gateway.list_providers() == []

    def test_non_provider_rejected(self, gateway, provider_a):
        with pytest.raises(ProviderConfigError):
            gateway.register_provider({"id": "A"}, StubUpstreamClient(provider_a))

    @pytest.mark.parametrize("kwargs", [
        {"id": ""},
        {"id": "A", "weight": 0},
        {"id": "A", "weight": 1.5},
        {"id": "A", "cost_per_unit": -1},
        {"id": "A", "api_format": "cohere"},
    ])
    def test_invalid_provider_definitions(self, kwargs):
        with pytest.raises(ProviderConfigError):
            Provider(**kwargs)

    def test_deregister_unknown(self, gateway):
        with pytest.raises(ProviderNotFoundError):
            gateway.deregister_provider("ghost")

    def test_get_unknown(self, gateway):
        with pytest.raises(ProviderNotFoundError):
            gateway.get_provider("ghost")

    @pytest.mark.asyncio
    async def test_reregistration_starts_fresh(self, clock, recording_sleep, provider_a):
        gateway = build_gateway(clock, recording_sleep, failure_threshold=1)
        register_stub(gateway, provider_a, script=[UpstreamError("A", 500)])
        await gateway.execute(make_request())
        assert gateway.router.breakers.get_state("A") == CircuitState.OPEN

        gateway.deregister_provider("A")
        register_stub(gateway, provider_a)

        stats = gateway.snapshot_metrics()["per_provider"]["A"]
        assert stats["circuit_state"] == "closed"
        assert stats["request_count"] == 0
        assert stats["health"]["score"] == 0.5

        response = await gateway.execute(make_request())
        assert response.success is True

    @pytest.mark.asyncio
    async def test_deregistered_provider_not_routed(self, gateway, provider_a, provider_b):
        client_a = register_stub(gateway, provider_a)
        register_stub(gateway, provider_b)

        returned = gateway.deregister_provider("A")
        response = await gateway.execute(make_request())

        assert returned is client_a
        assert response.provider_id == "B"
        assert client_a.call_count == 0


# ============================================================
# Execution entry points
# ============================================================

class TestExecute:
    """Test the execute() entry point."""

    @pytest.mark.asyncio
    async def test_dict_request(self, gateway, provider_a):
        register_stub(gateway, provider_a)

        response = await gateway.execute({
            "caller_identity": "team-a",
            "payload": {"messages": [{"role": "user", "content": "Hi"}]},
            "request_id": "req_custom",
        })

        assert response.success is True
        assert response.request_id == "req_custom"
        assert response.payload["content"] == "[A] Hi"
        assert response.payload["finish_reason"] == "stop"

    @pytest.mark.asyncio
    async def test_pydantic_model_request(self, gateway, provider_a):
        register_stub(gateway, provider_a)
        model = ExecuteRequestModel(
            caller_identity="team-a",
            payload={"messages": [{"role": "user", "content": "Hi"}]},
        )

        response = await gateway.execute(model)

        assert response.success is True
        assert response.request_id.startswith("req_")

    @pytest.mark.asyncio
    async def test_default_max_attempts_from_config(self, clock, recording_sleep, provider_a, provider_b, provider_c):
        gateway = build_gateway(clock, recording_sleep, default_max_attempts=2)
        for p in (provider_a, provider_b, provider_c):
            register_stub(gateway, p, script=[UpstreamError(p.id, 503)])

        response = await gateway.execute({
            "caller_identity": "team-a",
            "payload": {"messages": [{"role": "user", "content": "Hi"}]},
        })

        assert response.error_kind == ErrorKind.EXHAUSTED
        assert response.attempt_count == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw,param", [
        ({"payload": {"messages": [{"role": "user", "content": "x"}]}}, "caller_identity"),
        ({"caller_identity": "c", "payload": {"messages": []}}, "payload"),
        ({"caller_identity": "c", "payload": {"messages": [{"role": "user", "content": "x"}]}, "max_attempts": 0}, "max_attempts"),
        ({"caller_identity": "c", "payload": {"messages": [{"role": "user", "content": "x"}]}, "deadline_ms": -5}, "deadline_ms"),
        ({"caller_identity": "c", "payload": {"messages": [{"role": "user", "content": "x"}]}, "surprise": 1}, "surprise"),
    ])
    async def test_invalid_dict_requests(self, gateway, provider_a, raw, param):
        client = register_stub(gateway, provider_a)

        response = await gateway.execute(raw)

        assert response.success is False
        assert response.error_kind == ErrorKind.INVALID_REQUEST
        assert param in response.error_message
        assert response.attempt_count == 0
        assert client.call_count == 0

    @pytest.mark.asyncio
    async def test_non_object_request(self, gateway):
        response = await gateway.execute(["not", "a", "request"])
        assert response.error_kind == ErrorKind.INVALID_REQUEST

    @pytest.mark.asyncio
    async def test_rate_limited(self, clock, recording_sleep, provider_a):
        gateway = build_gateway(clock, recording_sleep, rate_limit=2)
        client = register_stub(gateway, provider_a)

        results = [await gateway.execute(make_request(caller="team-a")) for _ in range(3)]

        assert [r.success for r in results] == [True, True, False]
        assert results[2].error_kind == ErrorKind.RATE_LIMITED
        assert results[2].attempt_count == 0
        assert client.call_count == 2

        other = await gateway.execute(make_request(caller="team-b"))
        assert other.success is True

    @pytest.mark.asyncio
    async def test_rate_limit_window_reopens(self, clock, recording_sleep, provider_a):
        gateway = build_gateway(clock, recording_sleep, rate_limit=1)
        register_stub(gateway, provider_a)

        assert (await gateway.execute(make_request())).success is True
        assert (await gateway.execute(make_request())).error_kind == ErrorKind.RATE_LIMITED

        clock.advance(60)
        assert (await gateway.execute(make_request())).success is True

    @pytest.mark.asyncio
    async def test_response_serializes(self, gateway, provider_a):
        register_stub(gateway, provider_a, script=[UpstreamError("A", 503)])

        response = await gateway.execute(make_request())
        body = json.loads(json.dumps(response.to_dict()))

        assert body["success"] is False
        assert body["error_kind"] == "exhausted"
        assert body["attempts"][0]["error_kind"] == "upstream_retryable"


# ============================================================
# Snapshot / lifecycle
# ============================================================

class TestSnapshotAndLifecycle:
    """Test introspection and shutdown."""

    @pytest.mark.asyncio
    async def test_snapshot_shape(self, gateway, provider_a, provider_b):
        register_stub(gateway, provider_a, script=[UpstreamError("A", 503)])
        register_stub(gateway, provider_b)

        await gateway.execute(make_request())
        snapshot = gateway.snapshot_metrics()

        json.dumps(snapshot)
        assert set(snapshot["per_provider"]) == {"A", "B"}

        a = snapshot["per_provider"]["A"]
        assert a["request_count"] == 1
        assert a["in_flight"] == 0
        assert a["circuit_state"] == "closed"
        assert a["health"]["consecutive_failures"] == 1
        assert a["health"]["success_rate"] == 0.0

        b = snapshot["per_provider"]["B"]
        assert b["health"]["success_rate"] == 1.0
        assert b["health"]["latency_stats"]["sample_count"] == 1

    @pytest.mark.asyncio
    async def test_close_closes_clients(self, gateway, provider_a, provider_b):
        clients = [register_stub(gateway, provider_a), register_stub(gateway, provider_b)]

        await gateway.close()

        assert all(c.closed for c in clients)

    @pytest.mark.asyncio
    async def test_any_upstream_client_is_accepted(self, gateway, provider_a, mock_openai_response):
        client = AsyncMock(spec=UpstreamClient)
        client.provider_id = "A"
        client.call.return_value = mock_openai_response
        gateway.register_provider(provider_a, client)

        response = await gateway.execute(make_request(content="hi"))
        await gateway.close()

        assert response.success is True
        body, timeout_ms = client.call.await_args.args
        assert body["messages"] == [{"role": "user", "content": "hi"}]
        assert timeout_ms is None
        client.close.assert_awaited_once()


# ============================================================
# Stub client
# ============================================================

class TestStubClient:
    """Test the scripted stub upstream."""

    @pytest.mark.asyncio
    async def test_script_then_echo(self, provider_a):
        client = StubUpstreamClient(provider_a, script=[UpstreamError("A", 503)])
        client.push({"choices": [], "scripted": True})
        body = {"messages": [{"role": "user", "content": "hi"}]}

        with pytest.raises(UpstreamError):
            await client.call(body)
        assert (await client.call(body))["scripted"] is True
        echo = await client.call(body)

        assert echo["choices"][0]["message"]["content"] == "[A] hi"
        assert client.call_count == 3

    @pytest.mark.asyncio
    async def test_echo_matches_provider_format(self):
        anthropic = StubUpstreamClient(Provider("an", api_format="anthropic"))
        google = StubUpstreamClient(Provider("gg", api_format="google", model="gemini-1.5-pro"))

        a = await anthropic.call({"messages": [{"role": "user", "content": "hi"}]})
        g = await google.call({"contents": [{"role": "user", "parts": [{"text": "hi"}]}]})

        assert a["content"][0]["text"] == "[an] hi"
        assert g["candidates"][0]["content"]["parts"][0]["text"] == "[gg] hi"
        assert g["modelVersion"] == "gemini-1.5-pro"
