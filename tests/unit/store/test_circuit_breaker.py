"""
Unit tests for experience_discovery/store/circuit_breaker.py.

Circuit breaker states:
- CLOSED: Normal operation, requests pass through
- OPEN: Circuit tripped, requests fail fast
- HALF_OPEN: Recovery window elapsed, next request is a probe
"""

import pytest


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


async def _fail():
    raise ConnectionError("down")


async def _ok():
    return "ok"


class TestCircuitBreaker:

    def test_starts_closed(self):
        from experience_discovery.store.circuit_breaker import CircuitBreaker, CircuitState

        assert CircuitBreaker().state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        from experience_discovery.store.circuit_breaker import CircuitBreaker, CircuitState

        breaker = CircuitBreaker(failure_threshold=3)
        for _ in range(3):
            with pytest.raises(ConnectionError):
                await breaker.call(_fail)

        assert breaker.state == CircuitState.OPEN
        assert breaker.failure_count == 3

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast_with_store_unavailable(self):
        from experience_discovery.core.exceptions import StoreUnavailable
        from experience_discovery.store.circuit_breaker import CircuitBreaker

        breaker = CircuitBreaker(failure_threshold=1, name="store")
        with pytest.raises(ConnectionError):
            await breaker.call(_fail)

        with pytest.raises(StoreUnavailable, match="store"):
            await breaker.call(_ok)

    @pytest.mark.asyncio
    async def test_half_open_after_recovery_timeout_then_closes(self):
        from experience_discovery.store.circuit_breaker import CircuitBreaker, CircuitState

        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout_seconds=10, clock=clock)
        with pytest.raises(ConnectionError):
            await breaker.call(_fail)

        clock.now = 10.0
        assert breaker.state == CircuitState.HALF_OPEN
        assert await breaker.call(_ok) == "ok"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_failed_probe_reopens(self):
        from experience_discovery.store.circuit_breaker import CircuitBreaker, CircuitState

        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=5, recovery_timeout_seconds=10, clock=clock)
        for _ in range(5):
            with pytest.raises(ConnectionError):
                await breaker.call(_fail)

        clock.now = 11.0
        assert breaker.state == CircuitState.HALF_OPEN
        with pytest.raises(ConnectionError):
            await breaker.call(_fail)

        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self):
        from experience_discovery.store.circuit_breaker import CircuitBreaker

        breaker = CircuitBreaker(failure_threshold=3)
        with pytest.raises(ConnectionError):
            await breaker.call(_fail)
        await breaker.call(_ok)

        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_uncounted_failures_are_ignored(self):
        from experience_discovery.store.circuit_breaker import CircuitBreaker

        breaker = CircuitBreaker(failure_threshold=1)
        with pytest.raises(ConnectionError):
            await breaker.call(_fail, counts_as_failure=lambda e: False)

        assert breaker.failure_count == 0
