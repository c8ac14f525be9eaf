"""
AI Gateway - Error Definitions

Error taxonomy with infra vs semantic classification.

Infra errors are provider or network faults: another provider (or a later
attempt) may succeed, so they are retryable. Semantic errors mean the
request itself is wrong and retrying elsewhere will not help.

Every error carries an ErrorKind, which is what callers finally see in
CanonicalResponse.error_kind.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import httpx


class ErrorType(str, Enum):
    """Error classification."""
    INFRA = "infra_error"
    SEMANTIC = "semantic_error"


class ErrorKind(str, Enum):
    """Failure kinds surfaced on a CanonicalResponse."""
    RATE_LIMITED = "rate_limited"
    CIRCUIT_OPEN = "circuit_open"
    NO_PROVIDER_AVAILABLE = "no_provider_available"
    TIMEOUT = "timeout"
    TRANSFORM_FAILURE = "transform_failure"
    UPSTREAM_RETRYABLE = "upstream_retryable"
    UPSTREAM_NON_RETRYABLE = "upstream_non_retryable"
    EXHAUSTED = "exhausted"
    INVALID_REQUEST = "invalid_request"


@dataclass
class ErrorDetails:
    """Full error information for API response."""
    # Core fields (always present)
    code: str
    message: str
    type: ErrorType
    kind: ErrorKind

    # Context fields
    provider: Optional[str] = None
    param: Optional[str] = None
    request_id: str = ""

    # Recovery fields
    retryable: bool = False
    retry_after: Optional[int] = None

    # Debug fields
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "code": self.code,
            "message": self.message,
            "type": self.type.value,
            "kind": self.kind.value,
            "request_id": self.request_id,
            "retryable": self.retryable,
        }

        if self.provider:
            result["provider"] = self.provider
        if self.param:
            result["param"] = self.param
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        if self.details:
            result["details"] = self.details

        return {"error": result}


class GatewayException(Exception):
    """Base exception for all gateway errors."""

    def __init__(self, error: ErrorDetails, status_code: int = 500):
        self.error = error
        self.status_code = status_code
        super().__init__(error.message)

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind

    @property
    def retryable(self) -> bool:
        return self.error.retryable


# ============================================================
# Infra Errors (Retryable)
# ============================================================

class InfraError(GatewayException):
    """Base class for infrastructure errors."""
    pass


class UpstreamTimeoutError(InfraError):
    """Provider did not respond within the attempt deadline."""

    def __init__(self, provider: str, timeout_ms: Optional[int] = None, request_id: str = ""):
        if timeout_ms:
            message = f"{provider} did not respond within {timeout_ms}ms"
        else:
            message = f"{provider} did not respond in time"
        super().__init__(
            ErrorDetails(
                code="upstream_timeout",
                message=message,
                type=ErrorType.INFRA,
                kind=ErrorKind.TIMEOUT,
                provider=provider,
                request_id=request_id,
                retryable=True,
                details={"timeout_ms": timeout_ms} if timeout_ms else {}
            ),
            status_code=504
        )


class UpstreamConnectionError(InfraError):
    """Could not reach the provider at all."""

    def __init__(self, provider: str, message: str = "", request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="upstream_unreachable",
                message=message or f"Failed to connect to {provider}",
                type=ErrorType.INFRA,
                kind=ErrorKind.UPSTREAM_RETRYABLE,
                provider=provider,
                request_id=request_id,
                retryable=True,
                retry_after=5
            ),
            status_code=502
        )


class UpstreamError(InfraError):
    """Provider returned a server-side error."""

    def __init__(
        self,
        provider: str,
        status_code: int,
        message: str = "",
        request_id: str = ""
    ):
        code_map = {
            500: "upstream_500",
            502: "upstream_502",
            503: "upstream_503",
            504: "upstream_504",
        }
        super().__init__(
            ErrorDetails(
                code=code_map.get(status_code, "upstream_error"),
                message=message or f"{provider} returned error {status_code}",
                type=ErrorType.INFRA,
                kind=ErrorKind.UPSTREAM_RETRYABLE,
                provider=provider,
                request_id=request_id,
                retryable=True,
                retry_after=30,
                details={"upstream_status": status_code}
            ),
            status_code=502
        )


class UpstreamRateLimitedError(InfraError):
    """Provider throttled us; another provider may still have capacity."""

    def __init__(self, provider: str, retry_after: int = 60, request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="upstream_rate_limited",
                message=f"{provider} rate limit exceeded. Retry after {retry_after} seconds.",
                type=ErrorType.INFRA,
                kind=ErrorKind.UPSTREAM_RETRYABLE,
                provider=provider,
                request_id=request_id,
                retryable=True,
                retry_after=retry_after
            ),
            status_code=502
        )


class RateLimitedError(InfraError):
    """Caller exceeded its admission window."""

    def __init__(self, caller_identity: str, retry_after: int = 1, request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="rate_limited",
                message=f"Rate limit exceeded for '{caller_identity}'. Retry after {retry_after} seconds.",
                type=ErrorType.INFRA,
                kind=ErrorKind.RATE_LIMITED,
                request_id=request_id,
                retryable=False,
                retry_after=retry_after
            ),
            status_code=429
        )


# ============================================================
# Semantic Errors (Not Retryable)
# ============================================================

class SemanticError(GatewayException):
    """Base class for semantic errors (client must fix request)."""
    pass


class UpstreamRejectedError(SemanticError):
    """Provider rejected the request (bad input, auth, content policy)."""

    def __init__(
        self,
        provider: str,
        status_code: int,
        message: str = "",
        code: str = "upstream_rejected",
        request_id: str = ""
    ):
        super().__init__(
            ErrorDetails(
                code=code,
                message=message or f"{provider} rejected the request ({status_code})",
                type=ErrorType.SEMANTIC,
                kind=ErrorKind.UPSTREAM_NON_RETRYABLE,
                provider=provider,
                request_id=request_id,
                retryable=False,
                details={"upstream_status": status_code}
            ),
            status_code=400 if status_code < 500 else 502
        )


class TransformError(SemanticError):
    """Payload could not be converted to or from a provider format."""

    def __init__(
        self,
        provider: str,
        message: str,
        direction: str = "request",
        retryable: bool = False,
        request_id: str = ""
    ):
        super().__init__(
            ErrorDetails(
                code=f"{direction}_transform_failed",
                message=message,
                type=ErrorType.SEMANTIC,
                kind=ErrorKind.TRANSFORM_FAILURE,
                provider=provider,
                request_id=request_id,
                retryable=retryable,
                details={"direction": direction}
            ),
            status_code=400 if direction == "request" else 502
        )


class InvalidRequestError(SemanticError):
    """Request validation failed."""

    def __init__(self, message: str, param: str = "", request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="invalid_request",
                message=message,
                type=ErrorType.SEMANTIC,
                kind=ErrorKind.INVALID_REQUEST,
                param=param or None,
                request_id=request_id,
                retryable=False
            ),
            status_code=400
        )


class ProviderConfigError(SemanticError):
    """Provider definition is invalid. Raised at registration, never per request."""

    def __init__(self, message: str, param: str = "", provider: str = ""):
        super().__init__(
            ErrorDetails(
                code="invalid_provider",
                message=message,
                type=ErrorType.SEMANTIC,
                kind=ErrorKind.INVALID_REQUEST,
                provider=provider or None,
                param=param or None,
                retryable=False
            ),
            status_code=400
        )


class ProviderNotFoundError(SemanticError):
    """No provider registered under this id."""

    def __init__(self, provider: str):
        super().__init__(
            ErrorDetails(
                code="provider_not_found",
                message=f"Provider '{provider}' is not registered",
                type=ErrorType.SEMANTIC,
                kind=ErrorKind.INVALID_REQUEST,
                provider=provider,
                retryable=False
            ),
            status_code=404
        )


# ============================================================
# Classification
# ============================================================

def handle_http_error(
    error: Exception,
    provider: str,
    request_id: str = ""
) -> GatewayException:
    """
    Map an httpx exception to a gateway error.

    Mapping:
    - Timeouts -> UpstreamTimeoutError (retryable)
    - Connection failures -> UpstreamConnectionError (retryable)
    - 5xx -> UpstreamError (retryable)
    - 429 -> UpstreamRateLimitedError (retryable)
    - 408 -> UpstreamTimeoutError (retryable)
    - other 4xx -> UpstreamRejectedError (not retryable)
    - anything else -> InfraError (retryable)
    """
    if isinstance(error, GatewayException):
        return error

    if isinstance(error, httpx.TimeoutException):
        return UpstreamTimeoutError(provider, request_id=request_id)

    if isinstance(error, (httpx.ConnectError, httpx.NetworkError)):
        return UpstreamConnectionError(provider, str(error), request_id)

    if isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
        # str(error) embeds the request URL, which may carry credentials
        status_line = f"{provider} returned {status_code} {error.response.reason_phrase}".rstrip()

        try:
            error_data = error.response.json()
            error_info = error_data.get("error", {})
            if isinstance(error_info, dict):
                message = str(error_info.get("message") or status_line)
                error_code = str(error_info.get("code") or error_info.get("type") or "")
            else:
                message = str(error_info)
                error_code = ""
        except ValueError:
            message = status_line
            error_code = ""

        if status_code == 429:
            retry_after = 60
            if "retry-after" in error.response.headers:
                try:
                    retry_after = int(error.response.headers["retry-after"])
                except ValueError:
                    pass
            return UpstreamRateLimitedError(provider, retry_after, request_id)

        if status_code == 408:
            return UpstreamTimeoutError(provider, request_id=request_id)

        if status_code >= 500:
            return UpstreamError(provider, status_code, message, request_id)

        if status_code in (401, 403):
            code = "provider_auth_error"
        elif "content" in message.lower() and ("policy" in message.lower() or "filter" in message.lower()):
            code = "content_filtered"
        elif status_code == 404:
            code = "model_not_found"
        else:
            code = error_code or "upstream_rejected"
        return UpstreamRejectedError(provider, status_code, message, code, request_id)

    return InfraError(
        ErrorDetails(
            code="unknown_error",
            message=str(error) or error.__class__.__name__,
            type=ErrorType.INFRA,
            kind=ErrorKind.UPSTREAM_RETRYABLE,
            provider=provider,
            request_id=request_id,
            retryable=True
        ),
        status_code=500
    )


def classify_error(error: Exception, provider: str = "") -> Tuple[ErrorKind, bool]:
    """
    Classify any exception raised during an attempt.

    Returns:
        (error_kind, retryable)
    """
    if isinstance(error, GatewayException):
        return error.kind, error.retryable

    if isinstance(error, TimeoutError):
        return ErrorKind.TIMEOUT, True

    mapped = handle_http_error(error, provider)
    return mapped.kind, mapped.retryable
