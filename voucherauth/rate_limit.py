"""
Rate limiting for the voucher relay.

Sliding window rate limiting with per-key tracking.
"""

import time
import threading
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    remaining: int
    reset_at: float
    retry_after: Optional[float] = None


class RateLimiter:
    """
    Sliding window rate limiter.

    Thread-safe; each key keeps a deque of hit times inside the window.
    """

    def __init__(self, rpm: int, window_seconds: int = 60, clock: Callable[[], float] = time.time):
        """
        Args:
            rpm: Maximum requests per window
            window_seconds: Window size in seconds (default 60)
            clock: Time source, seconds as float
        """
        self._limit = max(1, rpm)
        self._window = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        return self.check(key).allowed

    def check(self, key: str) -> RateLimitResult:
        """Record a hit for `key` if the window has room."""
        now = self._clock()
        window_start = now - self._window

        with self._lock:
            q = self._hits[key]
            while q and q[0] <= window_start:
                q.popleft()

            reset_at = (q[0] + self._window) if q else (now + self._window)

            if len(q) >= self._limit:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=reset_at,
                    retry_after=max(0.0, q[0] + self._window - now),
                )

            q.append(now)
            return RateLimitResult(
                allowed=True,
                remaining=self._limit - len(q),
                reset_at=reset_at,
            )

    def reset(self, key: Optional[str] = None) -> None:
        """Reset one key, or every key when `key` is None."""
        with self._lock:
            if key:
                self._hits.pop(key, None)
            else:
                self._hits.clear()
