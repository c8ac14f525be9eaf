"""
AI Gateway - HTTP Upstream Client

httpx-based client speaking each provider's REST endpoint. Endpoint paths
and auth headers depend on the provider's api_format; the body has already
been shaped by the transformer.
"""

from typing import Any, Dict, Optional

import httpx

from ..core.errors import ProviderConfigError, TransformError, handle_http_error
from ..core.models import ApiFormat, Provider
from ..observability.logging import TimedOperation, get_logger
from .base import UpstreamClient

logger = get_logger(__name__)


DEFAULT_BASE_URLS = {
    ApiFormat.OPENAI: "https://api.openai.com/v1",
    ApiFormat.ANTHROPIC: "https://api.anthropic.com",
    ApiFormat.GOOGLE: "https://generativelanguage.googleapis.com/v1beta",
}

ANTHROPIC_API_VERSION = "2023-06-01"


class HttpUpstreamClient(UpstreamClient):
    """Calls a provider over HTTP and maps failures to the error taxonomy."""

    def __init__(
        self,
        provider: Provider,
        api_key: str = "",
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.provider = provider
        self.provider_id = provider.id
        self.api_key = api_key
        self.base_url = base_url or DEFAULT_BASE_URLS[provider.api_format]

        if provider.api_format == ApiFormat.GOOGLE and not provider.model:
            raise ProviderConfigError(
                "Google providers need a model, it is part of the endpoint path",
                param="model",
                provider=provider.id,
            )

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=timeout,
            transport=transport,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        fmt = self.provider.api_format
        if fmt == ApiFormat.OPENAI:
            headers["Authorization"] = f"Bearer {self.api_key}"
        elif fmt == ApiFormat.ANTHROPIC:
            headers["x-api-key"] = self.api_key
            headers["anthropic-version"] = ANTHROPIC_API_VERSION
        elif fmt == ApiFormat.GOOGLE:
            headers["x-goog-api-key"] = self.api_key
        return headers

    def _path(self) -> str:
        fmt = self.provider.api_format
        if fmt == ApiFormat.OPENAI:
            return "/chat/completions"
        if fmt == ApiFormat.ANTHROPIC:
            return "/v1/messages"
        return f"/models/{self.provider.model}:generateContent"

    async def call(self, payload: Dict[str, Any], timeout_ms: Optional[int] = None) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"json": payload}
        if timeout_ms:
            kwargs["timeout"] = timeout_ms / 1000.0

        with TimedOperation("upstream_call", logger, extra={"provider": self.provider_id}):
            try:
                response = await self.client.post(self._path(), **kwargs)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPError as e:
                raise handle_http_error(e, self.provider_id)
            except ValueError:
                raise TransformError(
                    self.provider_id,
                    "Upstream returned a non-JSON body",
                    direction="response",
                )

    async def close(self):
        await self.client.aclose()
