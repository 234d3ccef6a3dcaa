"""Specific error types for the knowledge search pipeline."""

from typing import Any

from .base import (
    ApplicationError,
    ErrorCode,
    ErrorDetails,
    ErrorLevel,
    RateLimitErrorDetails,
    ServiceErrorDetails,
    ValidationErrorDetails,
)


class ServiceError(ApplicationError):
    """Error from external service calls."""

    def __init__(
        self,
        message: str,
        details: ServiceErrorDetails | None = None,
        code: ErrorCode = ErrorCode.SERVICE_UNAVAILABLE,
    ):
        super().__init__(
            message=message,
            code=code,
            level=ErrorLevel.ERROR,
            details=details
            or ServiceErrorDetails(source="service", operation="external_call", service_name="unknown"),
        )


class ProviderError(ServiceError):
    """A provider answered with a non-success status."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        detail: Any = None,
        details: ServiceErrorDetails | None = None,
    ):
        self.status = status
        self.detail = detail
        super().__init__(
            message=message,
            details=details
            or ServiceErrorDetails(
                source="provider",
                operation="request",
                service_name="unknown",
                status_code=status,
            ),
            code=ErrorCode.PROVIDER_ERROR,
        )


class TransportError(ServiceError):
    """The provider could not be reached or the connection dropped."""

    def __init__(self, message: str, details: ServiceErrorDetails | None = None):
        super().__init__(message=message, details=details, code=ErrorCode.TRANSPORT_ERROR)


class ParseError(ServiceError):
    """A provider response was missing fields or had the wrong shape."""

    def __init__(self, message: str, details: ServiceErrorDetails | None = None):
        super().__init__(message=message, details=details, code=ErrorCode.PROVIDER_RESPONSE_INVALID)


class AuthenticationError(ApplicationError):
    """Authentication-related errors."""

    def __init__(self, message: str, details: ErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.AUTHENTICATION_FAILED,
            level=ErrorLevel.ERROR,
            details=details,
        )


class ProcessingError(ApplicationError):
    """General processing errors."""

    def __init__(self, message: str, details: ErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.PROCESSING_FAILED,
            level=ErrorLevel.ERROR,
            details=details,
        )


class RateLimitError(ApplicationError):
    """Rate limiting errors, raised for local denials and provider 429s alike."""

    def __init__(
        self,
        message: str,
        retry_after: int | None = None,
        details: ErrorDetails | None = None,
    ):
        self.retry_after = retry_after
        super().__init__(
            message=message,
            code=ErrorCode.RATE_LIMITED,
            level=ErrorLevel.WARNING,
            details=details,
        )

    @classmethod
    def for_actor(
        cls, actor_id: str, operation: str, limit: int, window_seconds: int, retry_after: int
    ) -> "RateLimitError":
        return cls(
            message=f"Rate limit exceeded for {operation}, retry in {retry_after}s",
            retry_after=retry_after,
            details=RateLimitErrorDetails(
                source="rate_limiter",
                operation=operation,
                actor_id=actor_id,
                limit=limit,
                window_seconds=window_seconds,
                retry_after=retry_after,
            ),
        )


class TimeoutError(ApplicationError):  # noqa: A001
    """Timeout errors."""

    def __init__(self, message: str, details: ErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.TIMEOUT,
            level=ErrorLevel.ERROR,
            details=details,
        )


class NotEmbeddedError(ApplicationError):
    """The entry has no stored vectors for the active embedding model."""

    def __init__(self, entry_id: str, model_name: str | None = None):
        self.entry_id = entry_id
        super().__init__(
            message=f"Entry {entry_id} has no embeddings",
            code=ErrorCode.NOT_EMBEDDED,
            level=ErrorLevel.INFO,
            details={
                "source": "search",
                "operation": "similar_entries",
                "entry_id": entry_id,
                "model_name": model_name,
            },
        )


class InvalidQueryError(ApplicationError):
    """Rejected query text or search options."""

    def __init__(self, message: str, field: str | None = None, actual_value: Any = None):
        super().__init__(
            message=message,
            code=ErrorCode.INVALID_QUERY,
            level=ErrorLevel.WARNING,
            details=ValidationErrorDetails(
                source="search",
                operation="validate_query",
                field=field,
                actual_value=actual_value,
            ),
        )
