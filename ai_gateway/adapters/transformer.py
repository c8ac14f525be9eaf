"""
AI Gateway - Request/Response Transformer

Routes canonical payloads through the adapter for a provider's wire format.
"""

from typing import Any, Dict, Optional

from ..core.errors import TransformError
from ..core.models import ApiFormat, CanonicalRequest, Provider
from ..observability.logging import get_logger
from .anthropic_adapter import AnthropicAdapter
from .base import BaseAdapter
from .google_adapter import GoogleAdapter
from .openai_adapter import OpenAIAdapter

logger = get_logger(__name__)

# Shape errors an adapter can trip over while walking an unexpected body
_SHAPE_ERRORS = (KeyError, TypeError, IndexError, AttributeError, ValueError)


class RequestTransformer:
    """
    Pure canonical <-> upstream conversion.

    Every failure surfaces as TransformError so the executor can classify
    it as transform_failure.
    """

    def __init__(self, adapters: Optional[Dict[ApiFormat, BaseAdapter]] = None):
        self._adapters: Dict[ApiFormat, BaseAdapter] = adapters or {
            ApiFormat.OPENAI: OpenAIAdapter(),
            ApiFormat.ANTHROPIC: AnthropicAdapter(),
            ApiFormat.GOOGLE: GoogleAdapter(),
        }

    def get_adapter(self, provider: Provider, direction: str) -> BaseAdapter:
        adapter = self._adapters.get(provider.api_format)
        if adapter is None:
            raise TransformError(
                provider.id,
                f"No adapter for api_format '{provider.api_format.value}'",
                direction=direction,
            )
        return adapter

    def to_upstream_format(self, request: CanonicalRequest, provider: Provider) -> Dict[str, Any]:
        """Build the provider request body for a canonical request."""
        adapter = self.get_adapter(provider, "request")
        try:
            return adapter.build_request(request.payload, provider)
        except TransformError as e:
            e.error.request_id = request.request_id
            raise
        except _SHAPE_ERRORS as e:
            raise TransformError(
                provider.id,
                f"Malformed payload: {type(e).__name__}: {e}",
                direction="request",
                request_id=request.request_id,
            ) from e

    def from_upstream_format(self, raw: Any, provider: Provider) -> Dict[str, Any]:
        """Normalize a provider response body into the canonical output."""
        if not isinstance(raw, dict):
            raise TransformError(
                provider.id,
                f"Upstream response must be an object, got {type(raw).__name__}",
                direction="response",
            )

        adapter = self.get_adapter(provider, "response")
        try:
            return adapter.parse_response(raw, provider)
        except TransformError:
            raise
        except _SHAPE_ERRORS as e:
            logger.warning(
                "Unexpected upstream response shape",
                provider=provider.id,
                error=str(e),
            )
            raise TransformError(
                provider.id,
                f"Unexpected response shape: {type(e).__name__}: {e}",
                direction="response",
            ) from e
