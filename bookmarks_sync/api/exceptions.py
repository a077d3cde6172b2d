"""Custom exceptions and error codes for the bookmarks API.

Every subclass maps onto the JSON error envelope rendered by the handlers in
``bookmarks_sync.api.error_handlers``.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes for API responses."""

    # Client errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    CONFLICT = "CONFLICT"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    EXTERNAL_API_ERROR = "EXTERNAL_API_ERROR"
    PROCESSING_ERROR = "PROCESSING_ERROR"

    # Configuration errors
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


class ErrorType(str, Enum):
    """Categories of errors for client handling."""

    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    RATE_LIMIT = "rate_limit"
    EXTERNAL_SERVICE = "external_service"
    INTERNAL = "internal"
    CONFIGURATION = "configuration"


_ERROR_TYPE_MAP: dict[ErrorCode, ErrorType] = {
    ErrorCode.VALIDATION_ERROR: ErrorType.VALIDATION,
    ErrorCode.UNAUTHORIZED: ErrorType.AUTHENTICATION,
    ErrorCode.CONFLICT: ErrorType.CONFLICT,
    ErrorCode.RATE_LIMIT_EXCEEDED: ErrorType.RATE_LIMIT,
    ErrorCode.INTERNAL_ERROR: ErrorType.INTERNAL,
    ErrorCode.STORAGE_ERROR: ErrorType.INTERNAL,
    ErrorCode.EXTERNAL_API_ERROR: ErrorType.EXTERNAL_SERVICE,
    ErrorCode.PROCESSING_ERROR: ErrorType.INTERNAL,
    ErrorCode.CONFIGURATION_ERROR: ErrorType.CONFIGURATION,
}

_RETRYABLE_CODES: set[ErrorCode] = {
    ErrorCode.RATE_LIMIT_EXCEEDED,
    ErrorCode.CONFLICT,
    ErrorCode.STORAGE_ERROR,
    ErrorCode.EXTERNAL_API_ERROR,
}


class APIException(Exception):
    """Base exception for all API errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
        error_type: ErrorType | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        self.error_type = error_type or _ERROR_TYPE_MAP.get(error_code, ErrorType.INTERNAL)
        self.retryable = retryable if retryable is not None else (error_code in _RETRYABLE_CODES)
        self.retry_after = retry_after


class AuthenticationError(APIException):
    """Raised when the bearer token is missing or wrong."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code=ErrorCode.UNAUTHORIZED,
            status_code=401,
        )


class RefreshInProgressError(APIException):
    """Raised when another instance holds the refresh lock."""

    def __init__(self, message: str = "A bookmarks refresh is already running"):
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFLICT,
            status_code=409,
        )


class RateLimitExceededError(APIException):
    """Raised when rate limit is exceeded."""

    def __init__(self, retry_after_seconds: int | None = None):
        message = "Rate limit exceeded"
        if retry_after_seconds:
            message += f". Try again in {retry_after_seconds} seconds"

        details = {}
        if retry_after_seconds:
            details["retry_after_seconds"] = retry_after_seconds

        super().__init__(
            message=message,
            error_code=ErrorCode.RATE_LIMIT_EXCEEDED,
            status_code=429,
            details=details,
            retry_after=retry_after_seconds,
        )


class ExternalAPIError(APIException):
    """Raised when external API calls fail."""

    def __init__(self, service_name: str, message: str | None = None):
        full_message = f"{service_name} API error"
        if message:
            full_message += f": {message}"

        super().__init__(
            message=full_message,
            error_code=ErrorCode.EXTERNAL_API_ERROR,
            status_code=502,
            details={"service": service_name},
        )


class ProcessingError(APIException):
    """Raised when request processing fails."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.PROCESSING_ERROR,
            status_code=500,
            details=details,
        )


class ConfigurationError(APIException):
    """Raised when server configuration needed by an endpoint is missing (503)."""

    def __init__(self, message: str, config_key: str | None = None):
        details = {"config_key": config_key} if config_key else {}
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            status_code=503,
            details=details,
            retryable=False,
        )
