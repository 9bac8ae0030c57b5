"""
RateLimiter - Fixed-window request counter per endpoint.

The first request of a window opens it with count=1; later requests in the
same window increment the count until max_requests is reached, after which
requests are rejected until the window rolls over. Bursts straddling a window
boundary can reach twice the nominal rate.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger


@dataclass
class RateWindow:
    """Request count for one endpoint inside the current window."""

    count: int
    window_start: float
    window_seconds: int

    def is_expired(self, now: float) -> bool:
        return now >= self.window_start + self.window_seconds


class RateLimiter:
    """
    Per-endpoint fixed-window rate limiter.

    Usage:
        limiter = RateLimiter(max_requests=30, window_seconds=60)

        if not await limiter.check_and_increment("cases"):
            raise RateLimitError("Rate limit exceeded", endpoint="cases")
    """

    def __init__(
        self,
        max_requests: int = 30,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.time,
        on_reject: Callable[[str, str, dict[str, Any]], None] | None = None,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._on_reject = on_reject
        self._windows: dict[str, RateWindow] = {}
        self._lock = asyncio.Lock()

    async def check_and_increment(self, endpoint: str) -> bool:
        """Count a request against the endpoint. False when the window is full."""
        async with self._lock:
            now = self._clock()
            window = self._windows.get(endpoint)

            if window is None or window.is_expired(now):
                self._windows[endpoint] = RateWindow(
                    count=1, window_start=now, window_seconds=self.window_seconds
                )
                return True

            if window.count >= self.max_requests:
                logger.warning(
                    f"Rate limit exceeded for '{endpoint}' "
                    f"({window.count}/{self.max_requests} in {self.window_seconds}s)"
                )
                if self._on_reject:
                    self._on_reject(
                        endpoint, "Rate limit exceeded", {"count": window.count}
                    )
                return False

            window.count += 1
            return True

    def get_status(self, endpoint: str) -> dict[str, Any]:
        """Current window state for an endpoint."""
        window = self._windows.get(endpoint)
        now = self._clock()
        if window is None or window.is_expired(now):
            return {
                "endpoint": endpoint,
                "count": 0,
                "max_requests": self.max_requests,
                "resets_in": 0.0,
            }
        return {
            "endpoint": endpoint,
            "count": window.count,
            "max_requests": self.max_requests,
            "resets_in": max(0.0, window.window_start + window.window_seconds - now),
        }

    def reset(self, endpoint: str | None = None) -> None:
        """Drop window state for one endpoint, or all of them."""
        if endpoint is None:
            self._windows.clear()
        else:
            self._windows.pop(endpoint, None)
