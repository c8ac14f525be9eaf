"""
AI Gateway - OpenAI Format Adapter

Chat Completions wire format (also spoken by many OpenAI-compatible
providers).
"""

from typing import Any, Dict

from ..core.models import ApiFormat, FinishReason, Provider, Usage
from .base import BaseAdapter


class OpenAIAdapter(BaseAdapter):
    """Adapter for the OpenAI chat completions format."""

    api_format = ApiFormat.OPENAI

    FINISH_REASONS = {
        "stop": FinishReason.STOP,
        "length": FinishReason.LENGTH,
        "tool_calls": FinishReason.TOOL_CALLS,
        "content_filter": FinishReason.CONTENT_FILTER,
    }

    def build_request(self, payload: Dict[str, Any], provider: Provider) -> Dict[str, Any]:
        messages = self._validate_messages(payload, provider)
        max_tokens, temperature = self._generation_options(payload, provider)

        body: Dict[str, Any] = {"messages": messages}

        model = self._model_name(payload, provider)
        if model:
            body["model"] = model
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
        if temperature is not None:
            body["temperature"] = temperature

        return body

    def parse_response(self, data: Dict[str, Any], provider: Provider) -> Dict[str, Any]:
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise self._response_error(provider, "response has no choices")

        choice = choices[0]
        message = choice.get("message")
        if not isinstance(message, dict):
            raise self._response_error(provider, "choices[0].message missing")

        content = message.get("content") or ""
        if not isinstance(content, str):
            raise self._response_error(provider, "choices[0].message.content is not text")

        finish_reason = self.FINISH_REASONS.get(choice.get("finish_reason") or "stop", FinishReason.STOP)

        usage_data = data.get("usage") or {}
        usage = Usage(
            prompt_tokens=int(usage_data.get("prompt_tokens", 0)),
            completion_tokens=int(usage_data.get("completion_tokens", 0)),
            total_tokens=int(usage_data.get("total_tokens", 0)),
        )

        return self._output(provider, content, finish_reason, usage, data.get("model"))
