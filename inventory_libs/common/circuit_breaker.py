"""Circuit breaker for calls to the external vector index.

A breaker that keeps failing short-circuits further calls for a recovery
window, so an index outage costs one fast ``CircuitBreakerError`` per search
instead of one full timeout per search. Callers treat the error like any
other live-path failure.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, Union

import structlog

logger = structlog.get_logger("circuit_breaker")


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerError(Exception):
    """Circuit breaker is open."""
    pass


class CircuitBreaker:
    """Async circuit breaker.

    Parameters
    - failure_threshold: Consecutive failures before opening
    - recovery_timeout: Seconds to stay open before a HALF_OPEN probe
    - expected_exception: Exception type(s) counted as failures
    - name: Identifier for logs
    - clock: Monotonic time source (injectable for tests)
    - on_state_change: Called with ``(name, new_state)`` on every transition
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        expected_exception: Union[Type[BaseException], Tuple[Type[BaseException], ...]] = Exception,
        name: str = "circuit_breaker",
        clock: Callable[[], float] = time.monotonic,
        on_state_change: Optional[Callable[[str, CircuitBreakerState], None]] = None,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self.name = name
        self._clock = clock
        self._on_state_change = on_state_change

        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = CircuitBreakerState.CLOSED
        self._lock = asyncio.Lock()

    async def call(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """Await ``func(*args, **kwargs)`` under breaker protection."""
        async with self._lock:
            if self.state == CircuitBreakerState.OPEN:
                if self._should_attempt_reset():
                    self._set_state(CircuitBreakerState.HALF_OPEN)
                    logger.info("Circuit breaker transitioning to HALF_OPEN", name=self.name)
                else:
                    raise CircuitBreakerError(f"Circuit breaker {self.name} is open")

        try:
            result = await func(*args, **kwargs)
        except self.expected_exception:
            await self._on_failure()
            raise

        await self._on_success()
        return result

    def _set_state(self, state: CircuitBreakerState) -> None:
        self.state = state
        if self._on_state_change is not None:
            self._on_state_change(self.name, state)

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return True
        return (self._clock() - self.last_failure_time) >= self.recovery_timeout

    async def _on_success(self) -> None:
        async with self._lock:
            if self.state == CircuitBreakerState.HALF_OPEN:
                self._set_state(CircuitBreakerState.CLOSED)
                logger.info("Circuit breaker reset to CLOSED", name=self.name)
            self.failure_count = 0

    async def _on_failure(self) -> None:
        async with self._lock:
            self.failure_count += 1
            self.last_failure_time = self._clock()

            if self.state == CircuitBreakerState.HALF_OPEN or self.failure_count >= self.failure_threshold:
                self._set_state(CircuitBreakerState.OPEN)
                logger.warning(
                    "Circuit breaker opened",
                    name=self.name,
                    failure_count=self.failure_count,
                    threshold=self.failure_threshold
                )

    def get_stats(self) -> dict:
        """Get circuit breaker statistics."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout,
        }
