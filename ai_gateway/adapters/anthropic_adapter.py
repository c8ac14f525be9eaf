"""
AI Gateway - Anthropic Format Adapter

Messages API wire format: the system prompt travels separately from the
conversation and max_tokens is mandatory.
"""

from typing import Any, Dict, List, Optional, Tuple

from ..core.models import ApiFormat, FinishReason, Provider, Role, Usage
from .base import BaseAdapter


class AnthropicAdapter(BaseAdapter):
    """Adapter for the Anthropic messages format."""

    api_format = ApiFormat.ANTHROPIC

    # Anthropic requires max_tokens on every request
    DEFAULT_MAX_TOKENS = 4096

    FINISH_REASONS = {
        "end_turn": FinishReason.STOP,
        "max_tokens": FinishReason.LENGTH,
        "tool_use": FinishReason.TOOL_CALLS,
        "stop_sequence": FinishReason.STOP,
    }

    def build_request(self, payload: Dict[str, Any], provider: Provider) -> Dict[str, Any]:
        messages = self._validate_messages(payload, provider)
        max_tokens, temperature = self._generation_options(payload, provider)

        system_content, conversation = self._extract_system_message(messages)
        if not conversation:
            raise self._request_error(provider, "at least one user or assistant message is required")

        body: Dict[str, Any] = {
            "messages": conversation,
            "max_tokens": max_tokens or self.DEFAULT_MAX_TOKENS,
        }

        model = self._model_name(payload, provider)
        if model:
            body["model"] = model
        if system_content:
            body["system"] = system_content
        if temperature is not None:
            body["temperature"] = temperature

        return body

    def _extract_system_message(
        self,
        messages: List[Dict[str, str]]
    ) -> Tuple[Optional[str], List[Dict[str, str]]]:
        """Split system messages from the conversation; several are joined."""
        system_parts = []
        conversation = []
        for msg in messages:
            if msg["role"] == Role.SYSTEM.value:
                system_parts.append(msg["content"])
            else:
                conversation.append(msg)
        return ("\n\n".join(system_parts) or None), conversation

    def parse_response(self, data: Dict[str, Any], provider: Provider) -> Dict[str, Any]:
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise self._response_error(provider, "response content must be a list of blocks")

        text = ""
        has_tool_use = False
        for block in blocks:
            if not isinstance(block, dict):
                raise self._response_error(provider, "content block is not an object")
            if block.get("type") == "text":
                text += block.get("text", "")
            elif block.get("type") == "tool_use":
                has_tool_use = True

        finish_reason = self.FINISH_REASONS.get(data.get("stop_reason") or "end_turn", FinishReason.STOP)
        if has_tool_use:
            finish_reason = FinishReason.TOOL_CALLS

        usage_data = data.get("usage") or {}
        usage = Usage(
            prompt_tokens=int(usage_data.get("input_tokens", 0)),
            completion_tokens=int(usage_data.get("output_tokens", 0)),
        )

        return self._output(provider, text, finish_reason, usage, data.get("model"))
