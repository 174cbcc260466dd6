"""Circuit breaker guarding calls to external event consumers."""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from agentruntime.utils.time import utc_now

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # calls pass through
    OPEN = "open"  # calls short-circuit to the fallback
    HALF_OPEN = "half_open"  # one probe call allowed


class CircuitBreakerOpen(Exception):
    """Raised when the circuit is open and no fallback was given."""

    def __init__(self, name: str, retry_after: int):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker open for {name}, retry after {retry_after}s")


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker.

    State transitions:
    - CLOSED → OPEN: after ``failure_threshold`` consecutive failures
    - OPEN → HALF_OPEN: once ``reset_timeout_seconds`` have elapsed
    - HALF_OPEN → CLOSED: when the probe call succeeds
    - HALF_OPEN → OPEN: when the probe call fails
    """

    def __init__(self, name: str, failure_threshold: int = 5, reset_timeout_seconds: int = 60):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout_seconds = reset_timeout_seconds
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at: Optional[datetime] = None
        self._probe_in_flight = False
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    async def call(
        self,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        fallback: Optional[Callable[..., Awaitable[Any]]] = None,
        **kwargs: Any,
    ) -> Any:
        """Run ``func`` through the breaker, or ``fallback`` while it is open."""
        async with self._lock:
            if self._state == CircuitState.OPEN and self._reset_due():
                self._state = CircuitState.HALF_OPEN
                self._probe_in_flight = False
                logger.info(f"Circuit {self.name} entering half-open state")

            rejected = self._state == CircuitState.OPEN or (
                self._state == CircuitState.HALF_OPEN and self._probe_in_flight
            )
            probing = not rejected and self._state == CircuitState.HALF_OPEN
            if probing:
                self._probe_in_flight = True

        if rejected:
            if fallback is not None:
                return await fallback(*args, **kwargs)
            raise CircuitBreakerOpen(self.name, self._seconds_until_reset())

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            await self._record_failure(e)
            raise
        else:
            await self._record_success()
            return result
        finally:
            # A cancelled trial call must not block the next one.
            if probing:
                self._probe_in_flight = False

    async def reset(self) -> None:
        """Force the circuit closed."""
        async with self._lock:
            self._close()
            logger.info(f"Circuit {self.name} manually reset")

    async def _record_success(self) -> None:
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                logger.info(f"Circuit {self.name} closed after recovery")
            self._close()

    async def _record_failure(self, error: Exception) -> None:
        async with self._lock:
            self._failures += 1
            logger.warning(
                f"Circuit {self.name} failure ({self._failures}/"
                f"{self.failure_threshold}): {error}"
            )
            if self._state == CircuitState.HALF_OPEN or self._failures >= self.failure_threshold:
                self._state = CircuitState.OPEN
                self._opened_at = utc_now()
                self._probe_in_flight = False
                logger.error(f"Circuit {self.name} opened after {self._failures} failures")

    def _close(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = None
        self._probe_in_flight = False

    def _reset_due(self) -> bool:
        if self._opened_at is None:
            return True
        return (utc_now() - self._opened_at).total_seconds() >= self.reset_timeout_seconds

    def _seconds_until_reset(self) -> int:
        if self._opened_at is None:
            return 0
        elapsed = (utc_now() - self._opened_at).total_seconds()
        return int(max(0, self.reset_timeout_seconds - elapsed))
