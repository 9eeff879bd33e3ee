"""
Provides an adaptive rate limiter to avoid 429 "Too Many Requests" errors from the package index.
"""

import asyncio
import logging
import time

log = logging.getLogger(__name__)


class AdaptiveRateLimiter:
    """
    Spaces out index requests and slows down when the index pushes back.

    Each HTTP 429 halves the request rate (down to `min_calls_per_second`);
    after `recovery_after` quiet seconds the rate creeps back up towards
    `max_calls_per_second`.
    """

    def __init__(
        self,
        initial_calls_per_second: float = 20.0,
        max_calls_per_second: float = 40.0,
        min_calls_per_second: float = 1.0,
        recovery_after: float = 60.0,
    ):
        self._rate = initial_calls_per_second
        self._max_rate = max_calls_per_second
        self._min_rate = min_calls_per_second
        self._recovery_after = recovery_after
        self._last_call_time = 0.0
        self._last_429_time = 0.0
        self._lock = asyncio.Lock()

    @property
    def rate(self) -> float:
        """Current allowed calls per second."""
        return self._rate

    async def on_429(self, retry_after: float | None = None) -> None:
        """
        Called when the index answers 429. Halves the rate and honours Retry-After.
        """
        async with self._lock:
            self._rate = max(self._min_rate, self._rate * 0.5)
            self._last_429_time = time.monotonic()
            if retry_after:
                # Push the next permitted call past the server's requested pause
                self._last_call_time = time.monotonic() + retry_after
            log.warning(
                f"[yellow]Package index is rate limiting. "
                f"New rate: {self._rate:.1f} requests/s[/yellow]"
            )

    async def acquire(self) -> None:
        """Waits until the next request is allowed to start."""
        async with self._lock:
            now = time.monotonic()
            if (
                self._last_429_time
                and now - self._last_429_time > self._recovery_after
            ):
                self._rate = min(self._max_rate, self._rate * 1.1)

            wait = self._last_call_time + 1.0 / self._rate - now
            if wait > 0:
                await asyncio.sleep(wait)

            self._last_call_time = time.monotonic()
