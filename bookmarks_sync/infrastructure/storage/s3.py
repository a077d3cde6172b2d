"""S3-compatible object store backed by boto3.

boto3 is synchronous, so every call runs in a worker thread via
``asyncio.to_thread`` to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from bookmarks_sync.config import StorageConfig
from bookmarks_sync.domain.exceptions import ObjectStoreError
from bookmarks_sync.infrastructure.storage.base import JSON_CONTENT_TYPE, decode_json, encode_json

logger = logging.getLogger(__name__)

_MISSING_CODES = frozenset({"NoSuchKey", "NotFound", "404"})


def _error_code(exc: ClientError) -> str:
    return str((exc.response or {}).get("Error", {}).get("Code", ""))


def build_s3_client(cfg: StorageConfig) -> Any:
    kwargs: dict[str, Any] = {
        "region_name": cfg.region,
        "config": Config(
            s3={"addressing_style": "path"},
            retries={"max_attempts": 3, "mode": "standard"},
        ),
    }
    if cfg.endpoint:
        kwargs["endpoint_url"] = cfg.endpoint
    if cfg.access_key_id and cfg.secret_access_key:
        kwargs["aws_access_key_id"] = cfg.access_key_id
        kwargs["aws_secret_access_key"] = cfg.secret_access_key
    return boto3.client("s3", **kwargs)


class S3ObjectStore:
    def __init__(self, bucket: str, client: Any) -> None:
        if not bucket:
            msg = "S3 bucket name is required"
            raise ValueError(msg)
        self._bucket = bucket
        self._client = client

    @classmethod
    def from_config(cls, cfg: StorageConfig) -> S3ObjectStore:
        return cls(cfg.bucket, build_s3_client(cfg))

    @property
    def bucket(self) -> str:
        return self._bucket

    # Synchronous primitives (run in threads)

    def _get_bytes(self, key: str) -> bytes | None:
        try:
            obj = self._client.get_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                return None
            raise
        return obj["Body"].read()

    def _put_bytes(self, key: str, data: bytes, content_type: str | None) -> None:
        extra: dict[str, Any] = {}
        if content_type:
            extra["ContentType"] = content_type
        self._client.put_object(Bucket=self._bucket, Key=key, Body=data, **extra)

    def _delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            # Some S3-compatible gateways report NoSuchKey on delete.
            if _error_code(exc) in _MISSING_CODES:
                return
            raise

    def _list_keys(self, prefix: str) -> list[str]:
        paginator = self._client.get_paginator("list_objects_v2")
        keys: list[str] = []
        for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
            for obj in page.get("Contents") or []:
                key = obj.get("Key")
                if isinstance(key, str) and key:
                    keys.append(key)
        return keys

    async def _run(self, operation: str, key: str, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except (ClientError, BotoCoreError) as exc:
            logger.warning(
                "object_store_operation_failed",
                extra={"operation": operation, "key": key, "bucket": self._bucket, "error": str(exc)},
            )
            msg = f"S3 {operation} failed for {key}: {exc}"
            raise ObjectStoreError(msg, key=key, operation=operation) from exc

    # ObjectStore interface

    async def read_json(self, key: str) -> Any | None:
        raw = await self._run("read_json", key, self._get_bytes, key)
        if raw is None:
            return None
        return decode_json(key, raw)

    async def write_json(self, key: str, value: Any) -> None:
        payload = encode_json(key, value)
        await self._run("write_json", key, self._put_bytes, key, payload, JSON_CONTENT_TYPE)

    async def read_bytes(self, key: str) -> bytes | None:
        return await self._run("read_bytes", key, self._get_bytes, key)

    async def write_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        await self._run("write_bytes", key, self._put_bytes, key, data, content_type)

    async def delete_object(self, key: str) -> None:
        await self._run("delete_object", key, self._delete, key)

    async def list_objects(self, prefix: str) -> list[str]:
        return await self._run("list_objects", prefix, self._list_keys, prefix)
