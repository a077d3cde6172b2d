"""FastAPI middleware for request processing."""

from collections.abc import Callable

from fastapi import Request

from bookmarks_sync.api.context import correlation_id_ctx
from bookmarks_sync.core.logging_utils import generate_correlation_id, get_logger

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


async def correlation_id_middleware(request: Request, call_next: Callable):
    """
    Add correlation ID to all requests for tracing.

    Checks for X-Correlation-ID header, generates one if missing.
    """
    correlation_id = request.headers.get(CORRELATION_HEADER)

    if not correlation_id:
        correlation_id = f"api-{generate_correlation_id()}"

    request.state.correlation_id = correlation_id
    token = correlation_id_ctx.set(correlation_id)

    try:
        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
    finally:
        correlation_id_ctx.reset(token)
