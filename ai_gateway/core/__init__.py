"""
AI Gateway Core Module

Canonical data model, error taxonomy and configuration.
"""

from .errors import (
    ErrorDetails,
    ErrorKind,
    ErrorType,
    GatewayException,
    InfraError,
    SemanticError,
    UpstreamTimeoutError,
    UpstreamConnectionError,
    UpstreamError,
    UpstreamRateLimitedError,
    UpstreamRejectedError,
    RateLimitedError,
    TransformError,
    InvalidRequestError,
    ProviderConfigError,
    ProviderNotFoundError,
    classify_error,
    handle_http_error,
)
from .models import (
    ApiFormat,
    AttemptOutcome,
    CanonicalRequest,
    CanonicalResponse,
    FinishReason,
    Provider,
    Role,
    RoutingStrategy,
    Usage,
)
from .config import GatewayConfig

__all__ = [
    # Errors
    "ErrorDetails",
    "ErrorKind",
    "ErrorType",
    "GatewayException",
    "InfraError",
    "SemanticError",
    "UpstreamTimeoutError",
    "UpstreamConnectionError",
    "UpstreamError",
    "UpstreamRateLimitedError",
    "UpstreamRejectedError",
    "RateLimitedError",
    "TransformError",
    "InvalidRequestError",
    "ProviderConfigError",
    "ProviderNotFoundError",
    "classify_error",
    "handle_http_error",
    # Models
    "ApiFormat",
    "AttemptOutcome",
    "CanonicalRequest",
    "CanonicalResponse",
    "FinishReason",
    "Provider",
    "Role",
    "RoutingStrategy",
    "Usage",
    # Config
    "GatewayConfig",
]
