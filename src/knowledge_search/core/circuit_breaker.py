"""Circuit breaker and retry wrappers for provider calls."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Generic, TypeVar

from knowledge_search.core.base import ErrorCode, ServiceErrorDetails
from knowledge_search.core.errors import RateLimitError, ServiceError, TimeoutError, TransportError
from knowledge_search.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, rejecting calls
    HALF_OPEN = "half_open"  # Probing for recovery


class CircuitBreaker(Generic[T]):
    """
    Circuit breaker for a single upstream provider.

    - CLOSED: calls go through
    - OPEN: calls are rejected immediately with ServiceError
    - HALF_OPEN: a limited number of probe calls decide whether to close

    Only exceptions listed in ``expected_exception_types`` count as failures;
    anything else propagates without affecting the state.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        expected_exception_types: tuple[type[Exception], ...] = (Exception,),
        success_threshold: int = 2,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            name: Name of the circuit (for logging)
            failure_threshold: Consecutive failures before opening
            recovery_timeout: Seconds to wait before probing
            expected_exception_types: Exceptions that count as failures
            success_threshold: Probe successes needed to close again
            clock: Monotonic time source
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception_types = expected_exception_types
        self.success_threshold = success_threshold
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: float | None = None
        self.last_exception: Exception | None = None

    def should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return False
        return self._clock() - self.last_failure_time >= self.recovery_timeout

    def _record_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                logger.info(f"Circuit breaker '{self.name}' closing after recovery")
                self.state = CircuitState.CLOSED
                self.failure_count = 0
                self.success_count = 0
                self.last_exception = None
        elif self.state == CircuitState.CLOSED:
            self.failure_count = 0

    def _record_failure(self, exception: Exception) -> None:
        self.last_failure_time = self._clock()
        self.last_exception = exception

        if self.state == CircuitState.HALF_OPEN:
            logger.warning(f"Circuit breaker '{self.name}' reopening after half-open failure")
            self.state = CircuitState.OPEN
            self.failure_count = 1
            self.success_count = 0
        elif self.state == CircuitState.CLOSED:
            self.failure_count += 1
            if self.failure_count >= self.failure_threshold:
                logger.error(
                    f"Circuit breaker '{self.name}' opening after {self.failure_count} failures",
                    last_exception=str(exception),
                )
                self.state = CircuitState.OPEN

    def _check_state(self) -> None:
        if self.state == CircuitState.OPEN and self.should_attempt_reset():
            logger.info(f"Circuit breaker '{self.name}' attempting reset (half-open)")
            self.state = CircuitState.HALF_OPEN
            self.success_count = 0

    def _open_error(self, operation: str) -> ServiceError:
        error_msg = f"Circuit breaker '{self.name}' is open"
        if self.last_exception:
            error_msg += f" (last error: {self.last_exception})"
        return ServiceError(
            message=error_msg,
            code=ErrorCode.CIRCUIT_OPEN,
            details=ServiceErrorDetails(
                source="circuit_breaker",
                operation=operation,
                service_name=self.name,
                status_code=503,
            ),
        )

    async def call_async(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """
        Call an async function through the circuit breaker.

        Raises:
            ServiceError: If the circuit is open
            Original exception: If the call fails
        """
        self._check_state()
        if self.state == CircuitState.OPEN:
            raise self._open_error("call_async")

        try:
            result = await func(*args, **kwargs)
        except self.expected_exception_types as e:
            self._record_failure(e)
            raise
        self._record_success()
        return result

    def get_state(self) -> dict[str, Any]:
        """Current breaker state for health reporting."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "last_failure_time": self.last_failure_time,
            "last_exception": str(self.last_exception) if self.last_exception else None,
        }


class RetryWithCircuitBreaker:
    """
    Retries transient failures with exponential backoff, behind a circuit breaker.

    A RateLimitError carrying ``retry_after`` waits that long instead of the
    computed backoff, capped at ``max_delay``.
    """

    def __init__(
        self,
        circuit_breaker: CircuitBreaker,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        backoff_factor: float = 2.0,
        max_delay: float = 60.0,
        retryable_exceptions: tuple[type[Exception], ...] = (
            RateLimitError,
            TimeoutError,
            TransportError,
        ),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            circuit_breaker: Circuit breaker to use
            max_retries: Total attempts, including the first one
            initial_delay: Delay before the second attempt, in seconds
            backoff_factor: Multiplier applied after each failed attempt
            max_delay: Upper bound for any single delay
            retryable_exceptions: Exceptions that trigger another attempt
            sleep: Awaitable sleep, replaceable in tests
        """
        self.circuit_breaker = circuit_breaker
        self.max_retries = max(1, max_retries)
        self.initial_delay = initial_delay
        self.backoff_factor = backoff_factor
        self.max_delay = max_delay
        self.retryable_exceptions = retryable_exceptions
        self._sleep = sleep

    def _delay_for(self, attempt: int, error: Exception) -> float:
        if isinstance(error, RateLimitError) and error.retry_after:
            return min(float(error.retry_after), self.max_delay)
        return min(self.initial_delay * (self.backoff_factor ** (attempt - 1)), self.max_delay)

    async def call_async(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """
        Call an async function with retries and circuit breaker.

        Raises:
            ServiceError: If the circuit is open
            Last exception encountered after all retries
        """
        for attempt in range(1, self.max_retries + 1):
            try:
                return await self.circuit_breaker.call_async(func, *args, **kwargs)
            except self.retryable_exceptions as e:
                if attempt >= self.max_retries or self.circuit_breaker.state == CircuitState.OPEN:
                    raise
                delay = self._delay_for(attempt, e)
                logger.warning(
                    f"Retrying {self.circuit_breaker.name} after {type(e).__name__}",
                    extra={"attempt": attempt, "delay_seconds": delay},
                )
                await self._sleep(delay)

        # Unreachable: the loop either returns or raises
        raise self.circuit_breaker._open_error("call_async")
