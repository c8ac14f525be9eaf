"""
AI Gateway - Rate Limiting

Sliding-window admission control per caller identity.

Each identity owns a window of admission timestamps. A request is admitted
when, after dropping timestamps older than the window, fewer than `limit`
remain. Rejected requests leave the window untouched, so a caller that is
being throttled does not extend its own penalty.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Dict, Optional

from ..core.config import RateLimitConfig


@dataclass
class RateLimitWindow:
    """Admission timestamps for one caller identity."""
    limit: int
    window_seconds: float
    timestamps: deque = field(default_factory=deque)
    lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def purge(self, now: float):
        """Drop timestamps at or before now - window (must hold lock)."""
        cutoff = now - self.window_seconds
        while self.timestamps and self.timestamps[0] <= cutoff:
            self.timestamps.popleft()


@dataclass
class RateLimitResult:
    """Outcome of an admission check."""
    allowed: bool
    limit: int
    remaining: int
    retry_after: Optional[float] = None


class RateLimiter:
    """
    Per-identity sliding window rate limiter.

    Check-and-append runs under the identity's lock, so two concurrent
    callers cannot both take the last free slot.
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._windows: Dict[str, RateLimitWindow] = {}
        self._overrides: Dict[str, int] = {}
        self._lock = Lock()

    def _get_window(self, caller_identity: str) -> RateLimitWindow:
        with self._lock:
            window = self._windows.get(caller_identity)
            if window is None:
                window = RateLimitWindow(
                    limit=self._overrides.get(caller_identity, self.config.limit),
                    window_seconds=self.config.window_seconds,
                )
                self._windows[caller_identity] = window
            return window

    def set_limit(self, caller_identity: str, limit: int):
        """Override the limit for one identity."""
        if limit < 0:
            raise ValueError("limit must be >= 0")
        with self._lock:
            self._overrides[caller_identity] = limit
            window = self._windows.get(caller_identity)
        if window is not None:
            with window.lock:
                window.limit = limit

    def check(self, caller_identity: str) -> RateLimitResult:
        """Admit or reject one request, with header data for the response."""
        while True:
            window = self._get_window(caller_identity)
            with window.lock:
                # evict_idle() may have dropped this window meanwhile
                if self._windows.get(caller_identity) is window:
                    return self._admit(window)

    def _admit(self, window: RateLimitWindow) -> RateLimitResult:
        """Check-and-append for one window (must hold window.lock)."""
        now = self._clock()
        window.purge(now)

        if len(window.timestamps) + 1 <= window.limit:
            window.timestamps.append(now)
            return RateLimitResult(
                allowed=True,
                limit=window.limit,
                remaining=window.limit - len(window.timestamps),
            )

        retry_after = None
        if window.timestamps:
            retry_after = max(0.0, window.timestamps[0] + window.window_seconds - now)
        return RateLimitResult(
            allowed=False,
            limit=window.limit,
            remaining=0,
            retry_after=retry_after if retry_after is not None else window.window_seconds,
        )

    def try_acquire(self, caller_identity: str) -> bool:
        """Admit a request for this identity if its window has room."""
        return self.check(caller_identity).allowed

    def remaining(self, caller_identity: str) -> int:
        window = self._get_window(caller_identity)
        with window.lock:
            window.purge(self._clock())
            return max(0, window.limit - len(window.timestamps))

    def retry_after(self, caller_identity: str) -> float:
        """Seconds until the oldest admission leaves the window (0 if room now)."""
        window = self._get_window(caller_identity)
        with window.lock:
            now = self._clock()
            window.purge(now)
            if len(window.timestamps) < window.limit:
                return 0.0
            if not window.timestamps:
                return window.window_seconds
            return max(0.0, window.timestamps[0] + window.window_seconds - now)

    def evict_idle(self) -> int:
        """Drop windows with no retained timestamps. Returns how many were dropped."""
        now = self._clock()
        with self._lock:
            evicted = 0
            for identity in list(self._windows.keys()):
                window = self._windows[identity]
                with window.lock:
                    window.purge(now)
                    if not window.timestamps:
                        del self._windows[identity]
                        evicted += 1
            return evicted

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            tracked = len(self._windows)
        return {
            "limit": self.config.limit,
            "window_seconds": self.config.window_seconds,
            "tracked_identities": tracked,
        }
