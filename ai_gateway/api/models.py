"""
AI Gateway - API Request Models

Pydantic models for validating external input before it becomes a
CanonicalRequest or a Provider.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.models import ApiFormat, CanonicalRequest, Provider, generate_request_id


# ============================================================
# Execute
# ============================================================

class ExecuteRequestModel(BaseModel):
    """Body of POST /v1/execute, and the dict form of Gateway.execute."""
    model_config = ConfigDict(extra="forbid")

    task_type: str = Field(default="chat", min_length=1, max_length=64)
    payload: Dict[str, Any]
    caller_identity: str = Field(..., min_length=1, max_length=255)
    required_capabilities: List[str] = Field(default_factory=list)
    max_attempts: Optional[int] = Field(default=None, ge=1, le=20)
    deadline_ms: int = Field(default=0, ge=0)
    request_id: Optional[str] = Field(default=None, min_length=1, max_length=128)

    @field_validator("payload")
    @classmethod
    def validate_payload(cls, v):
        """Require a non-empty message list; the adapters check the rest."""
        messages = v.get("messages")
        if not isinstance(messages, list) or not messages:
            raise ValueError("payload.messages must be a non-empty list")
        return v

    @field_validator("required_capabilities")
    @classmethod
    def validate_capabilities(cls, v):
        if any(not c for c in v):
            raise ValueError("capability tags cannot be empty")
        return v

    def to_canonical(self, default_max_attempts: int = 3) -> CanonicalRequest:
        return CanonicalRequest(
            task_type=self.task_type,
            payload=self.payload,
            caller_identity=self.caller_identity,
            required_capabilities=frozenset(self.required_capabilities),
            max_attempts=self.max_attempts or default_max_attempts,
            deadline_ms=self.deadline_ms,
            request_id=self.request_id or generate_request_id(),
        )


# ============================================================
# Provider registration
# ============================================================

class ProviderRegistrationModel(BaseModel):
    """Body of POST /v1/providers, and one entry of GATEWAY_PROVIDERS."""
    id: str = Field(..., min_length=1, max_length=128, pattern=r"^[A-Za-z0-9_.:-]+$")
    weight: int = Field(default=1, ge=1, le=1000)
    cost_per_unit: float = Field(default=0.0, ge=0)
    capabilities: List[str] = Field(default_factory=list)
    api_format: ApiFormat = ApiFormat.OPENAI
    model: Optional[str] = None

    # HTTP client settings, ignored for stub clients
    base_url: Optional[str] = None
    api_key_env: Optional[str] = None
    timeout_seconds: float = Field(default=60.0, gt=0)

    def to_provider(self) -> Provider:
        return Provider(
            id=self.id,
            weight=self.weight,
            cost_per_unit=self.cost_per_unit,
            capabilities=frozenset(self.capabilities),
            api_format=self.api_format,
            model=self.model,
        )
