"""
AI Gateway - Upstream Client Base

The only I/O seam of the gateway: one client per registered provider,
taking an already-transformed payload and returning the provider's raw
response body.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class UpstreamClient(ABC):
    """
    Abstract upstream client.

    Implementations raise GatewayException subclasses (or httpx errors,
    which classify_error maps) on failure.
    """

    provider_id: str

    @abstractmethod
    async def call(self, payload: Dict[str, Any], timeout_ms: Optional[int] = None) -> Dict[str, Any]:
        """
        Send one request upstream.

        Args:
            payload: Provider-format request body
            timeout_ms: Per-attempt deadline, None for the client default

        Returns:
            Provider-format response body
        """
        pass

    async def close(self):
        """Release any held connections."""
        pass
