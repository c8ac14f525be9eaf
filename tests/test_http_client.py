"""
AI Gateway - HTTP Client Tests

Exercises HttpUpstreamClient against httpx.MockTransport, so no request
leaves the process.
"""

import json

import httpx
import pytest

from ai_gateway.clients.http_client import HttpUpstreamClient
from ai_gateway.core.config import GatewayConfig
from ai_gateway.core.errors import (
    ProviderConfigError,
    TransformError,
    UpstreamConnectionError,
    UpstreamError,
    UpstreamRateLimitedError,
    UpstreamRejectedError,
    UpstreamTimeoutError,
)
from ai_gateway.core.models import ApiFormat, Provider
from ai_gateway.gateway import create_gateway

from conftest import RecordingSleep, make_request


class Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, response: httpx.Response = None, error: Exception = None):
        self.response = response
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response


def _client(provider, handler, api_key="sk-test", base_url=None):
    return HttpUpstreamClient(
        provider,
        api_key=api_key,
        base_url=base_url,
        transport=httpx.MockTransport(handler),
    )


class TestRequestShape:
    """Endpoint paths and auth headers per format."""

    @pytest.mark.asyncio
    async def test_openai(self, mock_openai_response):
        recorder = Recorder(httpx.Response(200, json=mock_openai_response))
        client = _client(Provider("oa"), recorder)

        data = await client.call({"messages": [{"role": "user", "content": "hi"}]})
        await client.close()

        request = recorder.requests[0]
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["authorization"] == "Bearer sk-test"
        assert json.loads(request.content) == {"messages": [{"role": "user", "content": "hi"}]}
        assert data == mock_openai_response

    @pytest.mark.asyncio
    async def test_anthropic(self, mock_anthropic_response):
        recorder = Recorder(httpx.Response(200, json=mock_anthropic_response))
        client = _client(Provider("an", api_format=ApiFormat.ANTHROPIC), recorder)

        await client.call({"messages": [], "max_tokens": 10})
        await client.close()

        request = recorder.requests[0]
        assert request.url.path == "/v1/messages"
        assert request.headers["x-api-key"] == "sk-test"
        assert request.headers["anthropic-version"] == "2023-06-01"
        assert "authorization" not in request.headers

    @pytest.mark.asyncio
    async def test_google(self, mock_google_response):
        recorder = Recorder(httpx.Response(200, json=mock_google_response))
        provider = Provider("gg", api_format=ApiFormat.GOOGLE, model="gemini-1.5-pro")
        client = _client(provider, recorder)

        await client.call({"contents": []})
        await client.close()

        request = recorder.requests[0]
        assert request.url.path == "/v1beta/models/gemini-1.5-pro:generateContent"
        assert request.headers["x-goog-api-key"] == "sk-test"
        assert "key" not in request.url.params

    @pytest.mark.asyncio
    async def test_custom_base_url(self, mock_openai_response):
        recorder = Recorder(httpx.Response(200, json=mock_openai_response))
        client = _client(Provider("local"), recorder, base_url="http://localhost:8080/v1")

        await client.call({"messages": []})
        await client.close()

        assert str(recorder.requests[0].url) == "http://localhost:8080/v1/chat/completions"

    def test_google_requires_model(self):
        with pytest.raises(ProviderConfigError):
            HttpUpstreamClient(Provider("gg", api_format=ApiFormat.GOOGLE))


class TestFailureMapping:
    """Upstream failures become gateway errors."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code,expected", [
        (500, UpstreamError),
        (503, UpstreamError),
        (429, UpstreamRateLimitedError),
        (408, UpstreamTimeoutError),
        (400, UpstreamRejectedError),
        (401, UpstreamRejectedError),
    ])
    async def test_status_codes(self, status_code, expected):
        recorder = Recorder(httpx.Response(status_code, json={"error": {"message": "nope"}}))
        client = _client(Provider("oa"), recorder)

        with pytest.raises(expected) as exc_info:
            await client.call({"messages": []})
        await client.close()

        assert exc_info.value.error.provider == "oa"

    @pytest.mark.asyncio
    async def test_transport_timeout(self):
        client = _client(Provider("oa"), Recorder(error=httpx.ReadTimeout("slow")))

        with pytest.raises(UpstreamTimeoutError):
            await client.call({"messages": []}, timeout_ms=50)
        await client.close()

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        client = _client(Provider("oa"), Recorder(error=httpx.ConnectError("refused")))

        with pytest.raises(UpstreamConnectionError) as exc_info:
            await client.call({"messages": []})
        await client.close()

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        client = _client(Provider("oa"), Recorder(httpx.Response(200, text="<html>oops</html>")))

        with pytest.raises(TransformError) as exc_info:
            await client.call({"messages": []})
        await client.close()

        assert exc_info.value.error.code == "response_transform_failed"


class TestCredentialHygiene:
    """API keys never surface in errors, logs or responses."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [400, 503])
    async def test_non_json_error_keeps_key_out(self, status_code, caplog):
        provider = Provider("gg", api_format=ApiFormat.GOOGLE, model="gemini-1.5-pro")
        client = _client(provider, Recorder(httpx.Response(status_code, text="Bad Request")), api_key="SECRET-KEY-123")

        with caplog.at_level("DEBUG"):
            with pytest.raises((UpstreamError, UpstreamRejectedError)) as exc_info:
                await client.call({"contents": []})
        await client.close()

        assert "SECRET-KEY-123" not in str(exc_info.value)
        assert "SECRET-KEY-123" not in json.dumps(exc_info.value.error.to_dict())
        assert "SECRET-KEY-123" not in caplog.text
        assert all("SECRET-KEY-123" not in str(vars(r)) for r in caplog.records)

    @pytest.mark.asyncio
    async def test_exhausted_response_keeps_key_out(self):
        gateway = create_gateway(GatewayConfig(), sleep=RecordingSleep())
        provider = Provider("gg", api_format=ApiFormat.GOOGLE, model="gemini-1.5-pro")
        gateway.register_provider(
            provider,
            _client(provider, Recorder(httpx.Response(503, text="down")), api_key="SECRET-KEY-123"),
        )

        response = await gateway.execute(make_request())
        await gateway.close()

        assert response.success is False
        assert "SECRET-KEY-123" not in json.dumps(response.to_dict())
