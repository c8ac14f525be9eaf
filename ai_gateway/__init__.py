"""
AI Gateway - Provider-Aware Request Gateway

Routes canonical AI requests across multiple upstream providers with
health-aware selection, circuit breaking, per-caller rate limiting and
automatic fallback.
"""

__version__ = "1.0.0"
__author__ = "AI Gateway"
