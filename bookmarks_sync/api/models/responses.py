"""
Pydantic models for API responses.
"""

from __future__ import annotations

import os
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from bookmarks_sync.api.context import correlation_id_ctx
from bookmarks_sync.api.exceptions import ErrorCode, ErrorType
from bookmarks_sync.core.time_utils import UTC

APP_VERSION = os.getenv("APP_VERSION", "1.0.0")


class PaginationInfo(BaseModel):
    """Page-number pagination metadata."""

    model_config = ConfigDict(populate_by_name=True)

    page: int
    limit: int
    total: int
    total_pages: int = Field(alias="totalPages")
    has_next: bool = Field(alias="hasNext")
    has_prev: bool = Field(alias="hasPrev")


class MetaInfo(BaseModel):
    """Metadata for all API responses.

    Endpoints may attach extra keys (``dataVersion``, ``lastRefreshed``, ``filter``).
    """

    model_config = ConfigDict(extra="allow")

    correlation_id: str = ""
    timestamp: str = Field(
        default_factory=lambda: datetime.now(UTC).isoformat().replace("+00:00", "Z")
    )
    version: str = APP_VERSION
    pagination: PaginationInfo | None = None


class ErrorDetail(BaseModel):
    """Error details aligned to API error envelope."""

    model_config = ConfigDict(populate_by_name=True)

    code: str
    error_type: str = Field(
        default=ErrorType.INTERNAL.value,
        validation_alias=AliasChoices("error_type", "errorType"),
        serialization_alias="errorType",
    )
    message: str
    retryable: bool = False
    details: dict[str, Any] | None = None
    correlation_id: str = ""
    retry_after: int | None = None


class SuccessResponse(BaseModel):
    success: bool = True
    data: Any
    meta: MetaInfo = Field(default_factory=MetaInfo)


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail
    meta: MetaInfo = Field(default_factory=MetaInfo)


def _coerce_pagination(pagination: BaseModel | dict[str, Any] | None) -> PaginationInfo | None:
    if pagination is None:
        return None
    if isinstance(pagination, PaginationInfo):
        return pagination
    if isinstance(pagination, BaseModel):
        return PaginationInfo.model_validate(pagination.model_dump(by_alias=True))
    return PaginationInfo.model_validate(pagination)


def build_meta(
    *,
    correlation_id: str | None = None,
    pagination: BaseModel | dict[str, Any] | None = None,
    version: str | None = None,
    **extra: Any,
) -> MetaInfo:
    """Construct meta with sensible defaults and context-aware correlation ID."""
    corr = correlation_id or correlation_id_ctx.get() or ""
    return MetaInfo(
        correlation_id=corr,
        pagination=_coerce_pagination(pagination),
        version=version or APP_VERSION,
        **extra,
    )


def success_response(
    data: Any,
    *,
    correlation_id: str | None = None,
    pagination: BaseModel | dict[str, Any] | None = None,
    version: str | None = None,
    **meta_extra: Any,
) -> dict[str, Any]:
    """Helper to build a standardized success response."""
    payload = data.model_dump(by_alias=True) if isinstance(data, BaseModel) else data
    meta = build_meta(
        correlation_id=correlation_id, pagination=pagination, version=version, **meta_extra
    )
    return SuccessResponse(data=payload, meta=meta).model_dump(by_alias=True)


def make_error(
    code: str | ErrorCode,
    message: str,
    *,
    error_type: str | ErrorType | None = None,
    retryable: bool | None = None,
    details: dict[str, Any] | None = None,
    retry_after: int | None = None,
) -> ErrorDetail:
    """
    Create an ErrorDetail with proper typing and defaults.

    Args:
        code: Error code (use ErrorCode enum for standard codes)
        message: Human-readable error message
        error_type: Error category (inferred from the code when omitted)
        retryable: Whether client should retry (inferred when omitted)
        details: Additional error context
        retry_after: Seconds to wait before retry (for rate limits)
    """
    code_str = code.value if isinstance(code, ErrorCode) else code

    if error_type is None:
        if code_str == ErrorCode.UNAUTHORIZED.value:
            error_type = ErrorType.AUTHENTICATION
        elif code_str.startswith("VALIDATION"):
            error_type = ErrorType.VALIDATION
        elif code_str.startswith("RATE_LIMIT"):
            error_type = ErrorType.RATE_LIMIT
        elif code_str.startswith("EXTERNAL_"):
            error_type = ErrorType.EXTERNAL_SERVICE
        else:
            error_type = ErrorType.INTERNAL

    error_type_str = error_type.value if isinstance(error_type, ErrorType) else error_type

    if retryable is None:
        retryable = error_type_str in (
            ErrorType.RATE_LIMIT.value,
            ErrorType.EXTERNAL_SERVICE.value,
        )

    return ErrorDetail(
        code=code_str,
        error_type=error_type_str,
        message=message,
        retryable=retryable,
        details=details,
        retry_after=retry_after,
    )


def error_response(
    detail: ErrorDetail,
    *,
    correlation_id: str | None = None,
    version: str | None = None,
) -> dict[str, Any]:
    """Helper to build a standardized error response."""
    corr = correlation_id or correlation_id_ctx.get() or ""
    if not detail.correlation_id:
        detail = detail.model_copy(update={"correlation_id": corr})
    meta = build_meta(correlation_id=corr, version=version)
    return ErrorResponse(error=detail, meta=meta).model_dump(by_alias=True)
