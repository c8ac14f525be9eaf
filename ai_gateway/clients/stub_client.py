"""
AI Gateway - Stub Upstream Client

In-process client for tests and local mode. Plays back a script of
responses and exceptions, then falls back to a deterministic echo reply
in the provider's own wire format.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence, Union

from ..core.models import ApiFormat, Provider
from .base import UpstreamClient

ScriptItem = Union[Dict[str, Any], BaseException]


class StubUpstreamClient(UpstreamClient):
    """
    Scripted upstream.

    Usage:
        client = StubUpstreamClient(provider, script=[UpstreamError("p", 503), {...}])
        await client.call(body)   # raises UpstreamError
        await client.call(body)   # returns {...}
        await client.call(body)   # echo reply
    """

    def __init__(
        self,
        provider: Provider,
        script: Optional[Sequence[ScriptItem]] = None,
        delay: float = 0.0,
        hang: bool = False,
    ):
        self.provider = provider
        self.provider_id = provider.id
        self.script: List[ScriptItem] = list(script or [])
        self.delay = delay
        self.hang = hang
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def push(self, *items: ScriptItem):
        """Append more scripted results."""
        self.script.extend(items)

    async def call(self, payload: Dict[str, Any], timeout_ms: Optional[int] = None) -> Dict[str, Any]:
        self.calls.append(payload)

        if self.hang:
            # Only a caller-side timeout ends this
            await asyncio.Event().wait()
        if self.delay:
            await asyncio.sleep(self.delay)

        if self.script:
            item = self.script.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item

        return self.default_response(payload)

    async def close(self):
        self.closed = True

    # ============================================================
    # Default replies
    # ============================================================

    def _reply_text(self, payload: Dict[str, Any]) -> str:
        last = ""
        for msg in payload.get("messages") or payload.get("contents") or []:
            if "content" in msg and isinstance(msg["content"], str):
                last = msg["content"]
            elif "parts" in msg:
                last = "".join(p.get("text", "") for p in msg["parts"])
        return f"[{self.provider_id}] {last}"

    def default_response(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Echo reply shaped like the provider's real response."""
        text = self._reply_text(payload)
        model = payload.get("model") or self.provider.model or "stub-model"
        prompt_tokens = len(text.split())
        completion_tokens = len(text.split())

        fmt = self.provider.api_format
        if fmt == ApiFormat.ANTHROPIC:
            return {
                "type": "message",
                "role": "assistant",
                "model": model,
                "content": [{"type": "text", "text": text}],
                "stop_reason": "end_turn",
                "usage": {"input_tokens": prompt_tokens, "output_tokens": completion_tokens},
            }
        if fmt == ApiFormat.GOOGLE:
            return {
                "candidates": [{
                    "content": {"role": "model", "parts": [{"text": text}]},
                    "finishReason": "STOP",
                }],
                "usageMetadata": {
                    "promptTokenCount": prompt_tokens,
                    "candidatesTokenCount": completion_tokens,
                    "totalTokenCount": prompt_tokens + completion_tokens,
                },
                "modelVersion": model,
            }
        return {
            "object": "chat.completion",
            "model": model,
            "choices": [{
                "index": 0,
                "message": {"role": "assistant", "content": text},
                "finish_reason": "stop",
            }],
            "usage": {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
        }
