"""Global exception handlers for the bookmarks API.

Provides consistent error responses across all endpoints with correlation ID tracking.
"""

import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError as PydanticValidationError

from bookmarks_sync.api.exceptions import APIException, ErrorCode, ErrorType
from bookmarks_sync.api.models.responses import error_response, make_error
from bookmarks_sync.domain.exceptions import ObjectStoreError

logger = logging.getLogger(__name__)


def _correlation_id(request: Request) -> str | None:
    return getattr(request.state, "correlation_id", None)


def _debug_enabled(request: Request) -> bool:
    cfg = getattr(request.app.state, "config", None)
    return cfg is not None and cfg.runtime.log_level == "DEBUG"


async def api_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle custom API exceptions."""
    if not isinstance(exc, APIException):
        raise exc

    correlation_id = _correlation_id(request)

    logger.error(
        f"API error: {exc.error_code.value} - {exc.message}",
        exc_info=False,
        extra={
            "correlation_id": correlation_id,
            "error_code": exc.error_code.value,
            "error_type": exc.error_type.value,
            "status_code": exc.status_code,
            "retryable": exc.retryable,
            "path": request.url.path,
        },
    )

    detail = make_error(
        code=exc.error_code,
        message=exc.message,
        error_type=exc.error_type,
        retryable=exc.retryable,
        details=exc.details or None,
        retry_after=exc.retry_after,
    )
    headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(detail, correlation_id=correlation_id),
        headers=headers,
    )


async def validation_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle request and Pydantic validation errors."""
    if not isinstance(exc, (RequestValidationError, PydanticValidationError)):
        raise exc

    correlation_id = _correlation_id(request)

    formatted_errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    logger.warning(
        "request_validation_failed",
        extra={
            "correlation_id": correlation_id,
            "errors": formatted_errors,
            "path": request.url.path,
        },
    )

    detail = make_error(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        error_type=ErrorType.VALIDATION,
        retryable=False,
        details={"fields": formatted_errors},
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_response(detail, correlation_id=correlation_id),
    )


async def storage_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle durable store failures that escaped the service layer."""
    correlation_id = _correlation_id(request)

    logger.error(
        f"Storage error: {exc}",
        exc_info=True,
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "key": getattr(exc, "key", None),
        },
    )

    detail = make_error(
        code=ErrorCode.STORAGE_ERROR,
        message="Bookmark storage temporarily unavailable",
        error_type=ErrorType.INTERNAL,
        retryable=True,
    )

    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=error_response(detail, correlation_id=correlation_id),
    )


async def global_exception_handler(request: Request, exc: Exception) -> Response:
    """Catch-all handler for unexpected exceptions."""
    correlation_id = _correlation_id(request)

    logger.error(
        f"Unhandled exception: {exc}",
        exc_info=True,
        extra={"correlation_id": correlation_id, "path": request.url.path},
    )

    # Exception text is only exposed when debugging.
    message = str(exc) if _debug_enabled(request) else "An internal server error occurred"

    detail = make_error(
        code=ErrorCode.INTERNAL_ERROR,
        message=message,
        error_type=ErrorType.INTERNAL,
        retryable=False,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response(detail, correlation_id=correlation_id),
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, validation_exception_handler)
    app.add_exception_handler(ObjectStoreError, storage_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
