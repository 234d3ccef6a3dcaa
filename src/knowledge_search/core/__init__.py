from .base import ApplicationError, ErrorCode, ErrorDetails, ErrorLevel, ServiceErrorDetails
from .circuit_breaker import CircuitBreaker, CircuitState, RetryWithCircuitBreaker

__all__ = [
    "ApplicationError",
    "CircuitBreaker",
    "CircuitState",
    "ErrorCode",
    "ErrorDetails",
    "ErrorLevel",
    "RetryWithCircuitBreaker",
    "ServiceErrorDetails",
]
