"""HTTP error handlers for application errors."""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .base import ApplicationError, ErrorCode, ErrorLevel
from .error_context import ErrorContext, ErrorContextManager
from .errors import RateLimitError
from .logging import get_logger

logger = get_logger(__name__)

STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.INVALID_QUERY: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INVALID_REQUEST: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INVALID_INPUT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.NOT_EMBEDDED: status.HTTP_404_NOT_FOUND,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


def status_for(error: ApplicationError) -> int:
    """Client errors map to 4xx; everything else is an upstream failure."""
    return STATUS_BY_CODE.get(error.code, status.HTTP_502_BAD_GATEWAY)


class ErrorHandler:
    """Turns captured errors into response bodies."""

    def _format_response(self, error_context: ErrorContext, level: ErrorLevel) -> dict[str, Any]:
        response: dict[str, Any] = {
            "error": str(error_context.error),
            "error_code": ErrorCode.PROCESSING_FAILED.value,
            "level": level.value,
            "trace_id": error_context.trace_id,
            "timestamp": error_context.timestamp.isoformat(),
        }
        if isinstance(error_context.error, ApplicationError):
            response["error_code"] = error_context.error.code.value
            response["details"] = error_context.error.details.model_dump(mode="json")
        return response

    async def handle_application_error(self, request: Request, error: ApplicationError) -> JSONResponse:
        async with ErrorContextManager(error, path=request.url.path) as error_context:
            status_code = status_for(error)
            body = self._format_response(error_context, error.level)

        logger.log(
            error.level.to_logging_level(),
            f"Request failed: {error.message}",
            extra={"status_code": status_code, **error_context.to_dict()},
        )

        headers = None
        if isinstance(error, RateLimitError) and error.retry_after:
            headers = {"Retry-After": str(error.retry_after)}
        return JSONResponse(status_code=status_code, content=body, headers=headers)


def register_exception_handlers(app: FastAPI, handler: ErrorHandler | None = None) -> None:
    handler = handler or ErrorHandler()
    app.add_exception_handler(ApplicationError, handler.handle_application_error)  # type: ignore[arg-type]
