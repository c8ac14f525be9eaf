"""
AI Gateway - Upstream Clients
"""

from .base import UpstreamClient
from .http_client import HttpUpstreamClient
from .stub_client import StubUpstreamClient

__all__ = [
    "UpstreamClient",
    "HttpUpstreamClient",
    "StubUpstreamClient",
]
