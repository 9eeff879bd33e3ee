"""
Circuit breaker that stops hammering the package index while it is failing.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Optional

from setup_db.exceptions import RemoteFetchError, SetupDbError

log = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"  # index considered down, requests rejected
    HALF_OPEN = "half_open"  # probing whether the index came back


class CircuitBreakerError(SetupDbError):
    """Raised instead of sending a request while the circuit is open."""


def is_transient(exc: BaseException) -> bool:
    """
    Whether a failure says something about the health of the index.

    A definitive HTTP answer such as 404 means the index is up and the
    package is simply missing, so it must not count towards opening the circuit.
    """
    if isinstance(exc, RemoteFetchError):
        return exc.status is None or exc.status == 429 or exc.status >= 500
    return isinstance(exc, (OSError, asyncio.TimeoutError))


class CircuitBreaker:
    """
    Guards index requests: `async with breaker: ...`.

    After `failure_threshold` transient failures in a row the circuit opens
    and every request fails fast with CircuitBreakerError. Once
    `recovery_timeout` seconds have passed, requests are let through again
    on trial; `success_threshold` successful trials close the circuit, a
    single failed one reopens it.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30,
        success_threshold: int = 1,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._trial_successes = 0
        self._opened_at: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    def _transition(self, new_state: CircuitState) -> None:
        self._state = new_state
        self._consecutive_failures = 0
        self._trial_successes = 0
        if new_state is CircuitState.OPEN:
            self._opened_at = time.monotonic()

    async def __aenter__(self):
        async with self._lock:
            if self._state is CircuitState.OPEN:
                paused = time.monotonic() - (self._opened_at or 0.0)
                if paused < self.recovery_timeout:
                    raise CircuitBreakerError(
                        "Package index is failing repeatedly; requests are "
                        f"paused for {self.recovery_timeout - paused:.0f} more seconds."
                    )
                log.info(
                    f"[yellow]Retrying the package index after a {paused:.0f}s "
                    f"pause[/yellow]"
                )
                self._transition(CircuitState.HALF_OPEN)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        # A cancelled request tells nothing about the index
        if exc_type is not None and issubclass(exc_type, asyncio.CancelledError):
            return
        failed = exc_val is not None and is_transient(exc_val)
        async with self._lock:
            if failed:
                self._record_failure()
            else:
                self._record_success()

    def _record_success(self) -> None:
        self._consecutive_failures = 0
        if self._state is not CircuitState.HALF_OPEN:
            return
        self._trial_successes += 1
        if self._trial_successes >= self.success_threshold:
            log.info("[green]✓ Package index reachable again.[/green]")
            self._transition(CircuitState.CLOSED)

    def _record_failure(self) -> None:
        if self._state is CircuitState.HALF_OPEN:
            log.warning(
                "[yellow]Package index still failing. Pausing requests again.[/yellow]"
            )
            self._transition(CircuitState.OPEN)
            return
        self._consecutive_failures += 1
        if (
            self._state is CircuitState.CLOSED
            and self._consecutive_failures >= self.failure_threshold
        ):
            log.error(
                f"[red]✗ {self._consecutive_failures} consecutive index failures. "
                f"Requests blocked for {self.recovery_timeout}s.[/red]"
            )
            self._transition(CircuitState.OPEN)
