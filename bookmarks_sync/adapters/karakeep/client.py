"""Karakeep API client."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING, TypeVar

import httpx

from bookmarks_sync.adapters.karakeep.models import KarakeepBookmark, KarakeepBookmarkList
from bookmarks_sync.domain.exceptions import BookmarkSourceError, BookmarkSourceRetryableError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from typing import Self

logger = logging.getLogger(__name__)

T = TypeVar("T")

# HTTP status codes that should trigger a retry
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 30.0  # seconds
DEFAULT_JITTER = 0.1  # 10% jitter


class KarakeepClientError(BookmarkSourceError):
    """Base exception for Karakeep client errors."""


def _is_retryable_error(exc: Exception) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, (httpx.ConnectError, httpx.TimeoutException)):
        return True
    return isinstance(exc, BookmarkSourceRetryableError)


def _calculate_delay(attempt: int, base_delay: float, max_delay: float, jitter: float) -> float:
    """Calculate delay with exponential backoff and jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        jitter: Jitter factor (0.1 = 10% random variation)

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (2**attempt), max_delay)
    return delay + delay * jitter * random.random()


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = DEFAULT_JITTER,
    operation_name: str = "operation",
) -> T:
    """Execute an async function with exponential backoff retry.

    Non-retryable errors propagate unchanged on the first failure.

    Raises:
        KarakeepClientError: If all retries are exhausted
    """
    for attempt in range(max_retries + 1):
        try:
            return await func()
        except Exception as e:
            if not _is_retryable_error(e):
                raise

            if attempt == max_retries:
                logger.error(
                    "karakeep_retry_exhausted",
                    extra={
                        "operation": operation_name,
                        "attempts": attempt + 1,
                        "error": str(e),
                    },
                )
                msg = f"{operation_name} failed after {attempt + 1} attempts: {e}"
                raise KarakeepClientError(msg) from e

            delay = _calculate_delay(attempt, base_delay, max_delay, jitter)
            logger.warning(
                "karakeep_retry_attempt",
                extra={
                    "operation": operation_name,
                    "attempt": attempt + 1,
                    "max_retries": max_retries,
                    "delay_seconds": round(delay, 2),
                    "error": str(e),
                },
            )
            await asyncio.sleep(delay)

    msg = f"{operation_name} failed"
    raise KarakeepClientError(msg)


class KarakeepClient:
    """Async HTTP client for the Karakeep list API."""

    DEFAULT_TIMEOUTS: dict[str, float] = {
        "get_list_bookmarks": 30.0,
        "health_check": 10.0,
    }

    def __init__(
        self,
        api_url: str,
        api_key: str,
        timeout: float = 30.0,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_BASE_DELAY,
        retry_max_delay: float = DEFAULT_MAX_DELAY,
        endpoint_timeouts: dict[str, float] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Karakeep client.

        Args:
            api_url: Base URL for Karakeep API (e.g., http://localhost:3000/api/v1)
            api_key: API key for authentication
            timeout: Default request timeout in seconds
            max_retries: Maximum number of retry attempts for transient failures
            retry_base_delay: Base delay between retries in seconds
            retry_max_delay: Maximum delay between retries in seconds
            endpoint_timeouts: Custom per-endpoint timeouts (overrides defaults)
            transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
        """
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self.endpoint_timeouts = {**self.DEFAULT_TIMEOUTS}
        if endpoint_timeouts:
            self.endpoint_timeouts.update(endpoint_timeouts)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def get_timeout(self, endpoint: str) -> float:
        return self.endpoint_timeouts.get(endpoint, self.timeout)

    async def __aenter__(self) -> Self:
        self._client = httpx.AsyncClient(
            base_url=self.api_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Accept": "application/json",
            },
            timeout=self.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "Client not initialized. Use async context manager."
            raise KarakeepClientError(msg)
        return self._client

    async def _with_retry(self, func: Callable[[], Awaitable[T]], operation_name: str) -> T:
        return await retry_with_backoff(
            func,
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            operation_name=operation_name,
        )

    async def get_list_bookmarks(
        self, list_id: str, limit: int = 100, cursor: str | None = None
    ) -> KarakeepBookmarkList:
        """Get one page of bookmarks from a list.

        Args:
            list_id: Karakeep list identifier
            limit: Maximum number of bookmarks to return
            cursor: Pagination cursor for next page
        """
        params: dict[str, str | int] = {"limit": limit}
        if cursor:
            params["cursor"] = cursor

        timeout = self.get_timeout("get_list_bookmarks")

        async def _fetch() -> KarakeepBookmarkList:
            response = await self.client.get(
                f"/lists/{list_id}/bookmarks", params=params, timeout=timeout
            )
            response.raise_for_status()
            return KarakeepBookmarkList.model_validate(response.json())

        return await self._with_retry(_fetch, "get_list_bookmarks")

    async def get_all_list_bookmarks(
        self, list_id: str, *, page_limit: int = 100, max_items: int | None = None
    ) -> list[KarakeepBookmark]:
        """Follow ``nextCursor`` until the listing is exhausted (or ``max_items`` reached)."""
        all_bookmarks: list[KarakeepBookmark] = []
        cursor: str | None = None
        seen_cursors: set[str] = set()
        pages = 0

        while True:
            result = await self.get_list_bookmarks(list_id, limit=page_limit, cursor=cursor)
            pages += 1
            all_bookmarks.extend(result.bookmarks)

            if max_items and len(all_bookmarks) >= max_items:
                all_bookmarks = all_bookmarks[:max_items]
                break
            if not result.next_cursor:
                break
            if result.next_cursor in seen_cursors:
                logger.warning(
                    "karakeep_cursor_repeated",
                    extra={"list_id": list_id, "cursor": result.next_cursor},
                )
                break
            seen_cursors.add(result.next_cursor)
            cursor = result.next_cursor

        logger.info(
            "karakeep_fetched_all_bookmarks",
            extra={"list_id": list_id, "count": len(all_bookmarks), "pages": pages},
        )
        return all_bookmarks

    async def health_check(self, list_id: str) -> bool:
        try:
            await self.get_list_bookmarks(list_id, limit=1)
            return True
        except (httpx.HTTPError, BookmarkSourceError) as e:
            logger.warning("karakeep_health_check_failed", extra={"error": str(e)})
            return False
