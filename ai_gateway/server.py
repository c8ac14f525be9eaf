"""
AI Gateway - Main API Server

FastAPI application around a Gateway instance.

Startup builds the gateway from environment variables:
- GATEWAY_* settings (see GatewayConfig.from_env)
- GATEWAY_PROVIDERS: JSON list of providers to register at startup
- GATEWAY_USE_STUB_CLIENTS=true: answer from in-process stubs instead of
  calling real provider APIs (local development)

Endpoints beyond the /v1 routes:
- GET /health   Liveness plus per-provider circuit state
- GET /ready    503 until at least one provider can take traffic
- GET /metrics  Prometheus scrape endpoint
"""

import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import __version__
from .api.models import ProviderRegistrationModel
from .api.routes import router as gateway_router
from .clients.base import UpstreamClient
from .clients.http_client import HttpUpstreamClient
from .clients.stub_client import StubUpstreamClient
from .core.config import GatewayConfig, load_provider_definitions, use_stub_clients
from .core.errors import GatewayException
from .core.models import Provider, generate_request_id
from .gateway import Gateway, create_gateway
from .observability import (
    get_logger,
    metrics_endpoint,
    setup_logging,
    setup_metrics,
    setup_tracing,
)
from .routing.circuit_breaker import CircuitState

logger = get_logger(__name__)


# ============================================================
# Client construction
# ============================================================

def build_client(
    registration: ProviderRegistrationModel,
    provider: Provider,
    use_stub: Optional[bool] = None,
) -> UpstreamClient:
    """Create the upstream client for a provider definition."""
    if use_stub is None:
        use_stub = use_stub_clients()
    if use_stub:
        return StubUpstreamClient(provider)

    api_key = os.getenv(registration.api_key_env, "") if registration.api_key_env else ""
    if registration.api_key_env and not api_key:
        logger.warning(
            "API key environment variable is empty",
            provider=provider.id,
            api_key_env=registration.api_key_env,
        )
    return HttpUpstreamClient(
        provider,
        api_key=api_key,
        base_url=registration.base_url,
        timeout=registration.timeout_seconds,
    )


def register_from_env(gateway: Gateway):
    """Register every provider listed in GATEWAY_PROVIDERS."""
    for definition in load_provider_definitions():
        registration = ProviderRegistrationModel.model_validate(definition)
        provider = registration.to_provider()
        gateway.register_provider(provider, build_client(registration, provider))


# ============================================================
# Application factory
# ============================================================

def create_app(gateway: Optional[Gateway] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        gateway: Pre-built gateway (tests); when None the lifespan builds
                 one from the environment
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(
            level=os.getenv("LOG_LEVEL", "INFO"),
            json_output=os.getenv("LOG_FORMAT", "json").lower() == "json",
        )

        if app.state.gateway is None:
            config = GatewayConfig.from_env()
            app.state.gateway = create_gateway(
                config,
                metrics=setup_metrics(),
                tracing=setup_tracing(service_version=__version__),
            )
            register_from_env(app.state.gateway)
        app.state.client_factory = build_client

        logger.info(
            "AI gateway ready",
            providers=[p.id for p in app.state.gateway.list_providers()],
            stub_clients=use_stub_clients(),
        )

        yield

        await app.state.gateway.close()
        if app.state.gateway.tracing is not None:
            app.state.gateway.tracing.shutdown()
        logger.info("AI gateway stopped")

    app = FastAPI(
        title="AI Gateway",
        description="Health-aware routing, circuit breaking, rate limiting and fallback across AI providers",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.gateway = gateway
    app.state.client_factory = build_client

    app.include_router(gateway_router)

    # ============================================================
    # Core endpoints
    # ============================================================

    @app.get("/health")
    async def health_check(request: Request):
        """Liveness plus per-provider circuit state."""
        gw: Gateway = request.app.state.gateway
        snapshot = gw.snapshot_metrics()["per_provider"] if gw else {}
        open_circuits = [
            pid for pid, stats in snapshot.items()
            if stats["circuit_state"] == CircuitState.OPEN.value
        ]
        return {
            "status": "degraded" if open_circuits else "healthy",
            "version": __version__,
            "providers": {
                pid: {
                    "circuit_state": stats["circuit_state"],
                    "healthy": stats["health"]["is_healthy"],
                    "score": stats["health"]["score"],
                }
                for pid, stats in snapshot.items()
            },
        }

    @app.get("/ready")
    async def readiness_check(request: Request):
        """Ready once at least one provider's circuit would admit a request."""
        gw: Gateway = request.app.state.gateway
        if gw is None:
            return JSONResponse(status_code=503, content={"status": "not_ready", "reason": "Gateway not initialized"})

        available = [p.id for p in gw.list_providers() if gw.router.breakers.is_available(p.id)]
        if not available:
            return JSONResponse(
                status_code=503,
                content={"status": "not_ready", "reason": "No provider available"},
            )
        return {"status": "ready", "available_providers": available}

    @app.get("/metrics")
    async def prometheus_metrics(request: Request):
        """Prometheus metrics in text format."""
        gw: Gateway = request.app.state.gateway
        return metrics_endpoint(gw.metrics if gw is not None else None)

    # ============================================================
    # Error handlers
    # ============================================================

    @app.exception_handler(GatewayException)
    async def gateway_exception_handler(request: Request, exc: GatewayException):
        """Handle all canonical gateway errors."""
        if not exc.error.request_id:
            exc.error.request_id = generate_request_id()

        headers = {
            "X-Request-Id": exc.error.request_id,
            "X-Error-Type": exc.error.type.value,
            "X-Error-Code": exc.error.code,
        }
        if exc.error.retry_after:
            headers["Retry-After"] = str(exc.error.retry_after)
        if exc.error.provider:
            headers["X-Provider"] = exc.error.provider

        return JSONResponse(
            status_code=exc.status_code,
            content=exc.error.to_dict(),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Report body validation failures in the gateway error shape."""
        request_id = generate_request_id()
        first = exc.errors()[0] if exc.errors() else {}
        param = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        return JSONResponse(
            status_code=400,
            content={
                "error": {
                    "code": "invalid_request",
                    "message": first.get("msg", "Invalid request body"),
                    "type": "semantic_error",
                    "kind": "invalid_request",
                    "param": param or None,
                    "request_id": request_id,
                    "retryable": False,
                }
            },
            headers={"X-Request-Id": request_id},
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle standard HTTP exceptions."""
        request_id = generate_request_id()
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "code": "http_error",
                    "message": str(exc.detail),
                    "type": "semantic_error" if exc.status_code < 500 else "infra_error",
                    "request_id": request_id,
                    "retryable": exc.status_code >= 500,
                }
            },
            headers={"X-Request-Id": request_id},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        request_id = generate_request_id()
        logger.exception("Unhandled error", path=request.url.path, request_id=request_id)
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": "internal_error",
                    "message": "An unexpected error occurred",
                    "type": "infra_error",
                    "request_id": request_id,
                    "retryable": True,
                }
            },
            headers={"X-Request-Id": request_id},
        )

    return app


app = create_app()


# ============================================================
# Run server
# ============================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "ai_gateway.server:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
