"""
AI Gateway - API Dependencies

Shared dependencies for FastAPI routes.
"""

from typing import Callable

from fastapi import Request

from ..core.errors import ErrorDetails, ErrorKind, ErrorType, InfraError
from ..gateway import Gateway


def _not_ready(what: str) -> InfraError:
    return InfraError(
        ErrorDetails(
            code="service_unavailable",
            message=f"{what} not initialized. Server may be starting up.",
            type=ErrorType.INFRA,
            kind=ErrorKind.NO_PROVIDER_AVAILABLE,
            retryable=True,
            retry_after=5
        ),
        status_code=503
    )


def get_gateway(request: Request) -> Gateway:
    """Gateway instance built by the server lifespan."""
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise _not_ready("Gateway")
    return gateway


def get_client_factory(request: Request) -> Callable:
    """Builds an UpstreamClient for a registration body."""
    factory = getattr(request.app.state, "client_factory", None)
    if factory is None:
        raise _not_ready("Client factory")
    return factory
