"""
AI Gateway - Provider Adapter Base

Abstract base class for wire-format adapters.

Adapters are pure: they convert the canonical chat payload into a
provider's request body and convert that provider's response body back.
They never perform I/O. Any shape they cannot handle raises
TransformError.

Canonical payload:
    {"messages": [{"role": "system" | "user" | "assistant", "content": str}],
     "max_tokens": int (optional), "temperature": float (optional),
     "model": str (optional, overrides the provider's default model)}

Canonical output:
    {"content": str, "finish_reason": str, "model": str | None,
     "provider": str, "usage": {"prompt_tokens", "completion_tokens", "total_tokens"}}
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from ..core.errors import TransformError
from ..core.models import ApiFormat, FinishReason, Provider, Role, Usage


class BaseAdapter(ABC):
    """
    Abstract base class for provider wire formats.

    Each format implements:
    - build_request: canonical payload -> provider request body
    - parse_response: provider response body -> canonical output
    """

    api_format: ApiFormat

    @abstractmethod
    def build_request(self, payload: Dict[str, Any], provider: Provider) -> Dict[str, Any]:
        pass

    @abstractmethod
    def parse_response(self, data: Dict[str, Any], provider: Provider) -> Dict[str, Any]:
        pass

    # ============================================================
    # Helper methods for subclasses
    # ============================================================

    def _request_error(self, provider: Provider, message: str) -> TransformError:
        return TransformError(provider.id, message, direction="request")

    def _response_error(self, provider: Provider, message: str) -> TransformError:
        return TransformError(provider.id, message, direction="response")

    def _validate_messages(
        self,
        payload: Dict[str, Any],
        provider: Provider
    ) -> List[Dict[str, str]]:
        """Check the canonical message list and return normalized copies."""
        if not isinstance(payload, dict):
            raise self._request_error(provider, "payload must be an object")

        messages = payload.get("messages")
        if not isinstance(messages, list) or not messages:
            raise self._request_error(provider, "payload.messages must be a non-empty list")

        roles = {r.value for r in Role}
        result = []
        for i, msg in enumerate(messages):
            if not isinstance(msg, dict):
                raise self._request_error(provider, f"messages[{i}] must be an object")
            role = msg.get("role")
            content = msg.get("content")
            if role not in roles:
                raise self._request_error(provider, f"messages[{i}].role {role!r} is not supported")
            if not isinstance(content, str):
                raise self._request_error(provider, f"messages[{i}].content must be a string")
            result.append({"role": role, "content": content})
        return result

    def _generation_options(
        self,
        payload: Dict[str, Any],
        provider: Provider
    ) -> Tuple[Optional[int], Optional[float]]:
        max_tokens = payload.get("max_tokens")
        if max_tokens is not None:
            if isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0:
                raise self._request_error(provider, "max_tokens must be a positive integer")

        temperature = payload.get("temperature")
        if temperature is not None:
            if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
                raise self._request_error(provider, "temperature must be a number")
            temperature = float(temperature)

        return max_tokens, temperature

    def _model_name(self, payload: Dict[str, Any], provider: Provider) -> Optional[str]:
        model = payload.get("model") or provider.model
        if model is not None and not isinstance(model, str):
            raise self._request_error(provider, "model must be a string")
        return model

    def _output(
        self,
        provider: Provider,
        content: str,
        finish_reason: FinishReason,
        usage: Usage,
        model: Optional[str]
    ) -> Dict[str, Any]:
        return {
            "content": content,
            "finish_reason": finish_reason.value,
            "model": model,
            "provider": provider.id,
            "usage": usage.to_dict(),
        }
