"""
AI Gateway - API Layer

Request models shared by the HTTP routes and Gateway.execute. Routes live
in ai_gateway.api.routes and are mounted by the server.
"""

from .models import (
    ExecuteRequestModel,
    ProviderRegistrationModel,
)

__all__ = [
    "ExecuteRequestModel",
    "ProviderRegistrationModel",
]
