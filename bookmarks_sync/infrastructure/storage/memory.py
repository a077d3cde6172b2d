"""Process-local object store used for development and tests."""

from __future__ import annotations

import asyncio
from typing import Any

from bookmarks_sync.infrastructure.storage.base import JSON_CONTENT_TYPE, decode_json, encode_json


class MemoryObjectStore:
    """Dict-backed ``ObjectStore``.

    Values are stored encoded, so callers never share mutable state with the
    store. ``operations`` records ``(operation, key)`` pairs in call order.
    """

    def __init__(self) -> None:
        self._objects: dict[str, tuple[bytes, str | None]] = {}
        self._lock = asyncio.Lock()
        self.operations: list[tuple[str, str]] = []

    async def _get(self, operation: str, key: str) -> bytes | None:
        async with self._lock:
            self.operations.append((operation, key))
            entry = self._objects.get(key)
        return entry[0] if entry else None

    async def _put(self, operation: str, key: str, data: bytes, content_type: str | None) -> None:
        async with self._lock:
            self.operations.append((operation, key))
            self._objects[key] = (bytes(data), content_type)

    async def read_json(self, key: str) -> Any | None:
        raw = await self._get("read_json", key)
        if raw is None:
            return None
        return decode_json(key, raw)

    async def write_json(self, key: str, value: Any) -> None:
        await self._put("write_json", key, encode_json(key, value), JSON_CONTENT_TYPE)

    async def read_bytes(self, key: str) -> bytes | None:
        return await self._get("read_bytes", key)

    async def write_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        await self._put("write_bytes", key, data, content_type)

    async def delete_object(self, key: str) -> None:
        async with self._lock:
            self.operations.append(("delete_object", key))
            self._objects.pop(key, None)

    async def list_objects(self, prefix: str) -> list[str]:
        async with self._lock:
            self.operations.append(("list_objects", prefix))
            return sorted(key for key in self._objects if key.startswith(prefix))

    # Inspection helpers for tests and the CLI.

    def keys(self) -> list[str]:
        return sorted(self._objects)

    def content_type(self, key: str) -> str | None:
        entry = self._objects.get(key)
        return entry[1] if entry else None

    def count(self, operation: str, key: str | None = None) -> int:
        return sum(1 for op, k in self.operations if op == operation and (key is None or k == key))
