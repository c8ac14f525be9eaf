"""
AI Gateway - Google Gemini Format Adapter

generateContent wire format: "model" role instead of "assistant",
content split into parts, generation options under generationConfig.
The model name is part of the URL, not the body, so a request cannot
switch a Google provider to another model.
"""

from typing import Any, Dict, List, Optional

from ..core.models import ApiFormat, FinishReason, Provider, Role, Usage
from .base import BaseAdapter


class GoogleAdapter(BaseAdapter):
    """Adapter for the Gemini generateContent format."""

    api_format = ApiFormat.GOOGLE

    FINISH_REASONS = {
        "STOP": FinishReason.STOP,
        "MAX_TOKENS": FinishReason.LENGTH,
        "SAFETY": FinishReason.CONTENT_FILTER,
        "RECITATION": FinishReason.CONTENT_FILTER,
    }

    def build_request(self, payload: Dict[str, Any], provider: Provider) -> Dict[str, Any]:
        messages = self._validate_messages(payload, provider)
        max_tokens, temperature = self._generation_options(payload, provider)

        model = self._model_name(payload, provider)
        if model != provider.model:
            raise self._request_error(
                provider, f"model {model!r} differs from the provider's configured model {provider.model!r}"
            )

        contents = self._convert_messages(messages)
        if not contents:
            raise self._request_error(provider, "at least one user or assistant message is required")

        body: Dict[str, Any] = {"contents": contents}

        generation_config: Dict[str, Any] = {}
        if temperature is not None:
            generation_config["temperature"] = temperature
        if max_tokens is not None:
            generation_config["maxOutputTokens"] = max_tokens
        if generation_config:
            body["generationConfig"] = generation_config

        system_instruction = self._extract_system_instruction(messages)
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        return body

    def _extract_system_instruction(self, messages: List[Dict[str, str]]) -> Optional[str]:
        parts = [m["content"] for m in messages if m["role"] == Role.SYSTEM.value]
        return "\n\n".join(parts) or None

    def _convert_messages(self, messages: List[Dict[str, str]]) -> List[Dict[str, Any]]:
        result = []
        for msg in messages:
            if msg["role"] == Role.SYSTEM.value:
                continue
            role = "user" if msg["role"] == Role.USER.value else "model"
            result.append({"role": role, "parts": [{"text": msg["content"]}]})
        return result

    def parse_response(self, data: Dict[str, Any], provider: Provider) -> Dict[str, Any]:
        candidates = data.get("candidates")
        usage_metadata = data.get("usageMetadata") or {}
        usage = Usage(
            prompt_tokens=int(usage_metadata.get("promptTokenCount", 0)),
            completion_tokens=int(usage_metadata.get("candidatesTokenCount", 0)),
            total_tokens=int(usage_metadata.get("totalTokenCount", 0)),
        )
        model = data.get("modelVersion") or provider.model

        if candidates is None or candidates == []:
            # Prompt was blocked before generation
            if (data.get("promptFeedback") or {}).get("blockReason"):
                return self._output(provider, "", FinishReason.CONTENT_FILTER, usage, model)
            raise self._response_error(provider, "response has no candidates")

        if not isinstance(candidates, list) or not isinstance(candidates[0], dict):
            raise self._response_error(provider, "candidates must be a list of objects")

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        if not isinstance(parts, list):
            raise self._response_error(provider, "candidate content parts must be a list")

        text = ""
        has_function_call = False
        for part in parts:
            if "text" in part:
                text += part["text"]
            elif "functionCall" in part:
                has_function_call = True

        finish_reason = self.FINISH_REASONS.get(candidate.get("finishReason", "STOP"), FinishReason.STOP)
        if has_function_call:
            finish_reason = FinishReason.TOOL_CALLS

        return self._output(provider, text, finish_reason, usage, model)
