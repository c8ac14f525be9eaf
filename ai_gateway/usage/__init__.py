"""
AI Gateway - Usage Module

Per-caller admission control over a sliding time window.
"""

from .limits import (
    RateLimiter,
    RateLimitResult,
    RateLimitWindow,
)

__all__ = [
    "RateLimiter",
    "RateLimitResult",
    "RateLimitWindow",
]
