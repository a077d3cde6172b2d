"""Fixed-window rate limiting for outgoing enrichment calls and API endpoints.

Counters live in memory and, when an object store is supplied, are written
through to ``json/rate-limit{sfx}/{store}/{context}.json`` so a restart does not
reset quotas.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from bookmarks_sync.core.time_utils import now_ms
from bookmarks_sync.domain.exceptions import ObjectStoreError
from bookmarks_sync.infrastructure.storage.base import ObjectStore
from bookmarks_sync.infrastructure.storage.paths import BookmarkPaths

logger = logging.getLogger(__name__)

API_ENDPOINT_STORE_NAME = "apiEndpoints"
OPENGRAPH_FETCH_STORE_NAME = "outgoingOpenGraph"
LOGO_FETCH_STORE_NAME = "outgoingLogos"
OPENGRAPH_FETCH_CONTEXT_ID = "global"


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_ms: int

    def validate(self) -> None:
        if self.max_requests <= 0:
            msg = f"Invalid maxRequests: {self.max_requests}. Must be greater than 0."
            raise ValueError(msg)
        if self.window_ms <= 0:
            msg = f"Invalid windowMs: {self.window_ms}. Must be greater than 0."
            raise ValueError(msg)


DEFAULT_API_ENDPOINT_LIMIT_CONFIG = RateLimitConfig(max_requests=5, window_ms=60_000)
DEFAULT_OPENGRAPH_FETCH_LIMIT_CONFIG = RateLimitConfig(max_requests=10, window_ms=1_000)


@dataclass
class RateLimitRecord:
    count: int
    reset_at: int

    def to_wire(self) -> dict[str, int]:
        return {"count": self.count, "resetAt": self.reset_at}

    @classmethod
    def from_wire(cls, data: Any) -> RateLimitRecord | None:
        if not isinstance(data, dict):
            return None
        try:
            return cls(count=int(data["count"]), reset_at=int(data["resetAt"]))
        except (KeyError, TypeError, ValueError):
            return None


class RateLimiter:
    """Per-(store, context) counters with a fixed window."""

    def __init__(
        self,
        store: ObjectStore | None = None,
        *,
        paths: BookmarkPaths | None = None,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._paths = paths or BookmarkPaths()
        self._clock = clock
        self._sleep = sleep
        self._records: dict[tuple[str, str], RateLimitRecord] = {}
        self._loaded: set[tuple[str, str]] = set()
        self._lock = asyncio.Lock()

    async def _load(self, slot: tuple[str, str]) -> None:
        if self._store is None or slot in self._loaded:
            return
        self._loaded.add(slot)
        try:
            raw = await self._store.read_json(self._paths.rate_limit(*slot))
        except ObjectStoreError as exc:
            logger.warning(
                "rate_limit_load_failed",
                extra={"store_name": slot[0], "context_id": slot[1], "error": str(exc)},
            )
            return
        record = RateLimitRecord.from_wire(raw)
        if record is not None and slot not in self._records:
            self._records[slot] = record

    async def _persist(self, slot: tuple[str, str], record: RateLimitRecord) -> None:
        if self._store is None:
            return
        try:
            await self._store.write_json(self._paths.rate_limit(*slot), record.to_wire())
        except ObjectStoreError as exc:
            logger.warning(
                "rate_limit_persist_failed",
                extra={"store_name": slot[0], "context_id": slot[1], "error": str(exc)},
            )

    async def is_operation_allowed(
        self, store_name: str, context_id: str, config: RateLimitConfig
    ) -> bool:
        """Count one operation against the window; ``False`` once the window is full."""
        config.validate()
        slot = (store_name, context_id)
        async with self._lock:
            await self._load(slot)
            now = self._clock()
            record = self._records.get(slot)
            if record is None or now >= record.reset_at:
                record = RateLimitRecord(count=1, reset_at=now + config.window_ms)
            elif record.count >= config.max_requests:
                logger.debug(
                    "rate_limit_exceeded",
                    extra={
                        "store_name": store_name,
                        "context_id": context_id,
                        "max_requests": config.max_requests,
                        "retry_after_ms": record.reset_at - now,
                    },
                )
                return False
            else:
                record = RateLimitRecord(count=record.count + 1, reset_at=record.reset_at)
            self._records[slot] = record
            await self._persist(slot, record)
            return True

    def retry_after_ms(self, store_name: str, context_id: str) -> int:
        record = self._records.get((store_name, context_id))
        if record is None:
            return 0
        return max(0, record.reset_at - self._clock())

    async def wait_for_permit(
        self,
        store_name: str,
        context_id: str,
        config: RateLimitConfig,
        poll_interval_ms: int = 100,
        *,
        timeout_ms: int | None = None,
    ) -> None:
        """Block until an operation is allowed.

        Sleeps until the current window resets rather than polling at a fixed
        rate. Raises ``TimeoutError`` when ``timeout_ms`` elapses first.
        """
        config.validate()
        started = self._clock()
        while not await self.is_operation_allowed(store_name, context_id, config):
            if timeout_ms is not None and self._clock() - started >= timeout_ms:
                msg = f"Timed out waiting for rate limit permit on {store_name}/{context_id}"
                raise TimeoutError(msg)
            wait_ms = max(poll_interval_ms, self.retry_after_ms(store_name, context_id))
            await self._sleep(wait_ms / 1000)

    async def reset(self, store_name: str, context_id: str | None = None) -> None:
        async with self._lock:
            for slot in [s for s in self._records if s[0] == store_name]:
                if context_id is None or slot[1] == context_id:
                    self._records.pop(slot, None)
                    if self._store is not None:
                        try:
                            await self._store.delete_object(self._paths.rate_limit(*slot))
                        except ObjectStoreError as exc:
                            logger.warning(
                                "rate_limit_reset_failed",
                                extra={"store_name": slot[0], "context_id": slot[1], "error": str(exc)},
                            )
        logger.info("rate_limit_reset", extra={"store_name": store_name, "context_id": context_id})

    def cleanup_expired(self) -> int:
        """Drop in-memory counters whose window has passed.

        A pruned slot is reloaded from the store on its next use.
        """
        now = self._clock()
        expired = [slot for slot, record in self._records.items() if now >= record.reset_at]
        for slot in expired:
            del self._records[slot]
            self._loaded.discard(slot)
        if expired:
            logger.debug("rate_limiter_cleanup", extra={"slots_cleaned": len(expired)})
        return len(expired)
