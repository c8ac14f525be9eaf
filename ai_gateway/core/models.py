"""
AI Gateway - Core Data Models

Canonical request/response shapes and the provider definition shared by
every component.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from .errors import ErrorKind, ProviderConfigError


# ============================================================
# Enums
# ============================================================

class ApiFormat(str, Enum):
    """Wire formats the transformer knows how to speak."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"


class RoutingStrategy(str, Enum):
    """Provider selection strategies."""
    ROUND_ROBIN = "round_robin"
    WEIGHTED_ROUND_ROBIN = "weighted_round_robin"
    LEAST_CONNECTIONS = "least_connections"
    LEAST_LATENCY = "least_latency"
    HEALTH_AWARE = "health_aware"
    COST_BASED = "cost_based"


class Role(str, Enum):
    """Message roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class FinishReason(str, Enum):
    """Completion finish reasons."""
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"
    ERROR = "error"


# ============================================================
# Provider
# ============================================================

def _frozen(values: Optional[Iterable[str]]) -> FrozenSet[str]:
    if values is None:
        return frozenset()
    if isinstance(values, str):
        return frozenset([values])
    return frozenset(values)


@dataclass(frozen=True)
class Provider:
    """
    An upstream AI provider the gateway can route to.

    Validated on construction so a bad definition fails at registration
    time instead of surfacing later as a routing error.
    """
    id: str
    weight: int = 1
    cost_per_unit: float = 0.0
    capabilities: FrozenSet[str] = field(default_factory=frozenset)
    api_format: ApiFormat = ApiFormat.OPENAI
    model: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id.strip():
            raise ProviderConfigError("Provider id must be a non-empty string", param="id")
        if isinstance(self.weight, bool) or not isinstance(self.weight, int) or self.weight <= 0:
            raise ProviderConfigError(
                f"Provider weight must be a positive integer, got {self.weight!r}",
                param="weight",
                provider=self.id,
            )
        if self.cost_per_unit is None or self.cost_per_unit < 0:
            raise ProviderConfigError(
                f"Provider cost_per_unit must be >= 0, got {self.cost_per_unit!r}",
                param="cost_per_unit",
                provider=self.id,
            )
        object.__setattr__(self, "capabilities", _frozen(self.capabilities))
        try:
            object.__setattr__(self, "api_format", ApiFormat(self.api_format))
        except ValueError:
            raise ProviderConfigError(
                f"Unknown api_format {self.api_format!r}",
                param="api_format",
                provider=self.id,
            )

    def supports(self, required: Iterable[str]) -> bool:
        """Check the provider covers every required capability."""
        return self.capabilities.issuperset(required)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "weight": self.weight,
            "cost_per_unit": self.cost_per_unit,
            "capabilities": sorted(self.capabilities),
            "api_format": self.api_format.value,
            "model": self.model,
        }


# ============================================================
# Request / Response
# ============================================================

def generate_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:24]}"


@dataclass
class CanonicalRequest:
    """
    Provider-independent request.

    The payload is chat shaped:
        {"messages": [{"role": "user", "content": "Hi"}],
         "max_tokens": 256, "temperature": 0.2, "model": "optional-override"}
    """
    task_type: str
    payload: Dict[str, Any]
    caller_identity: str
    required_capabilities: FrozenSet[str] = field(default_factory=frozenset)
    max_attempts: int = 3
    deadline_ms: int = 0
    request_id: str = field(default_factory=generate_request_id)

    def __post_init__(self):
        self.required_capabilities = _frozen(self.required_capabilities)
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.deadline_ms < 0:
            raise ValueError("deadline_ms must be >= 0")

    @property
    def timeout_ms(self) -> Optional[int]:
        """Per-attempt timeout, None when no deadline was set."""
        return self.deadline_ms or None


@dataclass
class Usage:
    """Token usage information."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __post_init__(self):
        if self.total_tokens == 0:
            self.total_tokens = self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class AttemptOutcome:
    """Result of a single upstream attempt."""
    provider_id: str
    success: bool
    latency_ms: float
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "provider_id": self.provider_id,
            "success": self.success,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.error_kind is not None:
            result["error_kind"] = self.error_kind.value
        if self.error_message:
            result["error_message"] = self.error_message
        return result


@dataclass
class CanonicalResponse:
    """Provider-independent response. Always returned, never raised."""
    success: bool
    request_id: str = ""
    payload: Optional[Dict[str, Any]] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    provider_id: Optional[str] = None
    latency_ms: float = 0.0
    attempt_count: int = 0
    attempts: List[AttemptOutcome] = field(default_factory=list)

    @classmethod
    def failure(
        cls,
        error_kind: ErrorKind,
        message: str,
        request_id: str = "",
        attempt_count: int = 0,
        attempts: Optional[List[AttemptOutcome]] = None,
        provider_id: Optional[str] = None,
        latency_ms: float = 0.0,
    ) -> "CanonicalResponse":
        return cls(
            success=False,
            request_id=request_id,
            error_kind=error_kind,
            error_message=message,
            provider_id=provider_id,
            latency_ms=latency_ms,
            attempt_count=attempt_count,
            attempts=list(attempts or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "request_id": self.request_id,
            "payload": self.payload,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error_message": self.error_message,
            "provider_id": self.provider_id,
            "latency_ms": round(self.latency_ms, 2),
            "attempt_count": self.attempt_count,
            "attempts": [a.to_dict() for a in self.attempts],
        }
