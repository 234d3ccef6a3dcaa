"""Shared Voyage AI client construction and error mapping."""

import voyageai
import voyageai.error as voyage_error

from knowledge_search.core.base import AIServiceErrorDetails, ApplicationError
from knowledge_search.core.errors import (
    AuthenticationError,
    ParseError,
    ProviderError,
    RateLimitError,
    TimeoutError,
    TransportError,
)

SERVICE_NAME = "Voyage AI"


def create_voyage_client(api_key: str, timeout: float | None = None) -> voyageai.AsyncClient:
    """Async client with the SDK's own retries off; callers retry through the circuit breaker."""
    return voyageai.AsyncClient(api_key=api_key, max_retries=0, timeout=timeout)


def _details(
    operation: str,
    endpoint: str,
    model: str | None,
    batch_size: int | None,
    status_code: int | None = None,
) -> AIServiceErrorDetails:
    return AIServiceErrorDetails(
        source="voyage",
        operation=operation,
        service_name=SERVICE_NAME,
        endpoint=endpoint,
        status_code=status_code,
        model_name=model,
        batch_size=batch_size,
    )


def map_voyage_error(
    e: Exception,
    operation: str,
    endpoint: str,
    model: str | None = None,
    batch_size: int | None = None,
) -> ApplicationError:
    """Translate a voyageai SDK exception into the application error taxonomy."""
    status = getattr(e, "http_status", None)

    if isinstance(e, voyage_error.RateLimitError) or status == 429:
        retry_after = None
        headers = getattr(e, "headers", None) or {}
        raw_retry = headers.get("retry-after") if hasattr(headers, "get") else None
        if raw_retry and str(raw_retry).isdigit():
            retry_after = int(raw_retry)
        return RateLimitError(
            message=f"{SERVICE_NAME} rate limit exceeded",
            retry_after=retry_after,
            details=_details(operation, endpoint, model, batch_size, 429),
        )
    if isinstance(e, voyage_error.AuthenticationError) or status == 401:
        return AuthenticationError(
            message=f"Authentication failed for {SERVICE_NAME}",
            details=_details(operation, endpoint, model, batch_size, 401),
        )
    if isinstance(e, voyage_error.Timeout):
        return TimeoutError(
            message=f"{SERVICE_NAME} request timed out",
            details=_details(operation, endpoint, model, batch_size),
        )
    if isinstance(e, voyage_error.APIConnectionError | voyage_error.ServiceUnavailableError):
        return TransportError(
            message=f"Could not reach {SERVICE_NAME}: {e!s}",
            details=_details(operation, endpoint, model, batch_size, status),
        )
    if isinstance(e, voyage_error.VoyageError):
        return ProviderError(
            message=f"{SERVICE_NAME} returned an error: {e!s}",
            status=status,
            detail=getattr(e, "user_message", None) or str(e),
            details=_details(operation, endpoint, model, batch_size, status),
        )
    if isinstance(e, KeyError | AttributeError | TypeError | ValueError):
        return ParseError(
            message=f"Unexpected {SERVICE_NAME} response: {e!s}",
            details=_details(operation, endpoint, model, batch_size),
        )
    return TransportError(
        message=f"{SERVICE_NAME} call failed: {e!s}",
        details=_details(operation, endpoint, model, batch_size, status),
    )
