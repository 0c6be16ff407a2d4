"""
Circuit Breaker - fail fast while the backing store is unhealthy.

Pattern: Circuit Breaker
- CLOSED: calls go through to the store
- OPEN: calls fail immediately with StoreUnavailable
- HALF_OPEN: the recovery window has passed; the next call is a probe

Only failures the breaker is told to count (transport errors, timeouts,
5xx answers) trip it; a 4xx answer is the caller's problem, not the store's.
"""

import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from experience_discovery.core.exceptions import StoreUnavailable
from experience_discovery.observability.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(StoreUnavailable):
    """Raised instead of calling the store while the circuit is open."""

    def __init__(self, circuit_name: str) -> None:
        super().__init__(f"Circuit '{circuit_name}' is open; the experience store is not being called")
        self.circuit_name = circuit_name


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker for async calls.

    Example:
        >>> cb = CircuitBreaker(failure_threshold=5, recovery_timeout_seconds=30, name="store")
        >>> page = await cb.call(client.post, "/rpc/search_experiences", json=body)
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout_seconds: float = 30.0,
        name: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._recovery_timeout_seconds = recovery_timeout_seconds
        self._name = name or "circuit"
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> CircuitState:
        """Current state; an OPEN circuit past its recovery timeout reads as HALF_OPEN."""
        if self._state == CircuitState.OPEN and self._should_attempt_recovery():
            self._state = CircuitState.HALF_OPEN
            logger.info("circuit_half_open", circuit=self._name)
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def _should_attempt_recovery(self) -> bool:
        if self._last_failure_time is None:
            return False
        return self._clock() - self._last_failure_time >= self._recovery_timeout_seconds

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self._clock()
        if self._failure_count >= self._failure_threshold or self._state == CircuitState.HALF_OPEN:
            if self._state != CircuitState.OPEN:
                logger.warning("circuit_opened", circuit=self._name, failures=self._failure_count)
            self._state = CircuitState.OPEN

    def record_success(self) -> None:
        self._failure_count = 0
        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.CLOSED
            logger.info("circuit_closed", circuit=self._name)

    async def call(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        counts_as_failure: Callable[[Exception], bool] = lambda e: True,
        **kwargs: Any,
    ) -> T:
        """
        Call ``func`` through the breaker.

        Args:
            func: Async callable.
            counts_as_failure: Decides whether a raised exception trips the breaker.

        Raises:
            CircuitOpenError: The circuit is open.
            Exception: Whatever ``func`` raised.
        """
        if self.state == CircuitState.OPEN:
            raise CircuitOpenError(self._name)

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            if counts_as_failure(e):
                self.record_failure()
            raise
        self.record_success()
        return result
