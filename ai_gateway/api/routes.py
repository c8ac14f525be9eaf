"""
AI Gateway - HTTP Routes

Endpoints:
- POST   /v1/execute            Run a canonical request
- GET    /v1/metrics/snapshot   Per-provider health and circuit state
- GET    /v1/providers          List registered providers
- POST   /v1/providers          Register a provider
- DELETE /v1/providers/{id}     Deregister a provider
"""

import math
from typing import Any, Callable, Dict

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from ..core.errors import ErrorKind, RateLimitedError
from ..gateway import Gateway
from ..observability.logging import get_logger
from .dependencies import get_client_factory, get_gateway
from .models import ProviderRegistrationModel

logger = get_logger(__name__)

router = APIRouter(prefix="/v1", tags=["gateway"])


# HTTP status for each failure kind of a CanonicalResponse
STATUS_BY_ERROR_KIND = {
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.CIRCUIT_OPEN: 503,
    ErrorKind.NO_PROVIDER_AVAILABLE: 503,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.TRANSFORM_FAILURE: 502,
    ErrorKind.UPSTREAM_RETRYABLE: 502,
    ErrorKind.UPSTREAM_NON_RETRYABLE: 502,
    ErrorKind.EXHAUSTED: 502,
}


@router.post("/execute")
async def execute(
    body: Dict[str, Any] = Body(...),
    gateway: Gateway = Depends(get_gateway),
):
    """Execute a request with routing, fallback and rate limiting."""
    response = await gateway.execute(body)

    if response.error_kind == ErrorKind.RATE_LIMITED:
        retry_after = gateway.rate_limiter.retry_after(body.get("caller_identity", ""))
        raise RateLimitedError(
            body.get("caller_identity", ""),
            retry_after=max(1, math.ceil(retry_after)),
            request_id=response.request_id,
        )

    status_code = 200 if response.success else STATUS_BY_ERROR_KIND.get(response.error_kind, 500)
    headers = {"X-Request-Id": response.request_id}
    if response.provider_id:
        headers["X-Provider"] = response.provider_id

    return JSONResponse(status_code=status_code, content=response.to_dict(), headers=headers)


@router.get("/metrics/snapshot")
async def metrics_snapshot(gateway: Gateway = Depends(get_gateway)):
    """Per-provider routing statistics."""
    return gateway.snapshot_metrics()


@router.get("/providers")
async def list_providers(gateway: Gateway = Depends(get_gateway)):
    return {
        "object": "list",
        "data": [p.to_dict() for p in gateway.list_providers()],
    }


@router.post("/providers", status_code=201)
async def register_provider(
    registration: ProviderRegistrationModel,
    gateway: Gateway = Depends(get_gateway),
    client_factory: Callable = Depends(get_client_factory),
):
    """Register a provider; it starts with neutral health and a closed circuit."""
    provider = registration.to_provider()
    client = client_factory(registration, provider)
    try:
        gateway.register_provider(provider, client)
    except Exception:
        await client.close()
        raise
    return provider.to_dict()


@router.delete("/providers/{provider_id}")
async def deregister_provider(
    provider_id: str,
    gateway: Gateway = Depends(get_gateway),
):
    """Deregister a provider and discard its state."""
    client = gateway.deregister_provider(provider_id)
    await client.close()
    return {"id": provider_id, "deleted": True}
