"""TTL-based advisory lock stored as a sentinel object in the durable store.

The acquire path is read-then-write with a read-back check, not an atomic
put-if-absent. It keeps this application's own refresh jobs from overlapping.
It is not safe against arbitrary concurrent writers. The TTL bounds how long a
crashed holder can block others.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from bookmarks_sync.core.time_utils import now_ms
from bookmarks_sync.domain.exceptions import ObjectStoreError
from bookmarks_sync.infrastructure.storage.base import ObjectStore

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL_MS = 5 * 60 * 1000


class LockEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    instance_id: str = Field(alias="instanceId")
    acquired_at: int = Field(alias="acquiredAt")
    ttl_ms: int = Field(default=DEFAULT_LOCK_TTL_MS, alias="ttlMs")

    def is_expired(self, now: int) -> bool:
        return now - self.acquired_at > self.ttl_ms

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def default_instance_id() -> str:
    return f"instance-{os.getpid()}-{now_ms()}"


class DistributedLock:
    """Advisory refresh lock with holder identity and TTL."""

    def __init__(
        self,
        store: ObjectStore,
        *,
        lock_key: str,
        ttl_ms: int = DEFAULT_LOCK_TTL_MS,
        instance_id: str | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._key = lock_key
        self._ttl_ms = ttl_ms
        self._clock = clock
        self.instance_id = instance_id or default_instance_id()
        self._held: LockEntry | None = None

    @property
    def key(self) -> str:
        return self._key

    @property
    def ttl_ms(self) -> int:
        return self._ttl_ms

    @property
    def is_held(self) -> bool:
        return self._held is not None

    async def read_entry(self) -> LockEntry | None:
        """Return the stored lock entry; unreadable entries are treated as absent."""
        raw = await self._store.read_json(self._key)
        if raw is None:
            return None
        try:
            return LockEntry.model_validate(raw)
        except ValidationError:
            logger.warning("lock_entry_malformed", extra={"lock_key": self._key})
            return None

    async def acquire(self, ttl_ms: int | None = None) -> bool:
        """Try to take the lock.

        Returns ``False`` when another holder's entry is still within its TTL,
        or when a concurrent writer won the race between write and read-back.
        Store failures propagate as ``ObjectStoreError``.
        """
        ttl = ttl_ms or self._ttl_ms
        now = self._clock()
        existing = await self.read_entry()

        if existing is not None:
            if not existing.is_expired(now):
                logger.info(
                    "lock_held_elsewhere",
                    extra={
                        "lock_key": self._key,
                        "holder": existing.instance_id,
                        "age_ms": now - existing.acquired_at,
                    },
                )
                return False
            logger.warning(
                "lock_expired_reclaiming",
                extra={
                    "lock_key": self._key,
                    "holder": existing.instance_id,
                    "age_ms": now - existing.acquired_at,
                },
            )
            try:
                await self._store.delete_object(self._key)
            except ObjectStoreError as exc:
                logger.warning(
                    "lock_expired_delete_failed", extra={"lock_key": self._key, "error": str(exc)}
                )

        entry = LockEntry(instance_id=self.instance_id, acquired_at=now, ttl_ms=ttl)
        await self._store.write_json(self._key, entry.to_wire())

        confirmed = await self.read_entry()
        if (
            confirmed is None
            or confirmed.instance_id != entry.instance_id
            or confirmed.acquired_at != entry.acquired_at
        ):
            logger.info(
                "lock_race_lost",
                extra={
                    "lock_key": self._key,
                    "holder": confirmed.instance_id if confirmed else None,
                },
            )
            return False

        self._held = entry
        logger.info(
            "lock_acquired",
            extra={"lock_key": self._key, "instance_id": self.instance_id, "ttl_ms": ttl},
        )
        return True

    async def release(self, *, force: bool = False) -> None:
        """Delete the lock when we hold it (or ``force``). Never raises."""
        try:
            existing = await self.read_entry()
            if existing is None:
                return
            if not force and existing.instance_id != self.instance_id:
                logger.warning(
                    "lock_release_skipped_not_owner",
                    extra={"lock_key": self._key, "holder": existing.instance_id},
                )
                return
            await self._store.delete_object(self._key)
            logger.info(
                "lock_released",
                extra={"lock_key": self._key, "instance_id": self.instance_id, "forced": force},
            )
        except ObjectStoreError as exc:
            logger.error("lock_release_failed", extra={"lock_key": self._key, "error": str(exc)})
        finally:
            self._held = None

    async def cleanup_stale(self) -> bool:
        """Delete an expired lock left behind by a crashed holder."""
        existing = await self.read_entry()
        if existing is None or not existing.is_expired(self._clock()):
            return False
        await self._store.delete_object(self._key)
        logger.info(
            "lock_stale_cleaned",
            extra={"lock_key": self._key, "holder": existing.instance_id},
        )
        return True
