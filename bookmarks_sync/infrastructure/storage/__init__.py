"""Durable object store adapters."""

from __future__ import annotations

import logging

from bookmarks_sync.config import StorageConfig

from .base import ObjectStore
from .memory import MemoryObjectStore
from .paths import BookmarkPaths

logger = logging.getLogger(__name__)


def build_object_store(cfg: StorageConfig) -> ObjectStore:
    """Select the S3 adapter when a bucket is configured, else the in-memory store."""
    if cfg.use_s3:
        from .s3 import S3ObjectStore

        logger.info(
            "object_store_selected",
            extra={"backend": "s3", "bucket": cfg.bucket, "endpoint": cfg.endpoint},
        )
        return S3ObjectStore.from_config(cfg)
    logger.info("object_store_selected", extra={"backend": "memory"})
    return MemoryObjectStore()


__all__ = ["BookmarkPaths", "MemoryObjectStore", "ObjectStore", "build_object_store"]
