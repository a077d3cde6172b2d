"""Durable object store port.

Keys are namespaced, slash-separated paths. Reads of missing keys return
``None``; every other failure surfaces as ``ObjectStoreError``.
"""

from __future__ import annotations

import json
from typing import Any, Protocol, runtime_checkable

from bookmarks_sync.domain.exceptions import CorruptDataError, ObjectStoreError

JSON_CONTENT_TYPE = "application/json"


@runtime_checkable
class ObjectStore(Protocol):
    async def read_json(self, key: str) -> Any | None: ...

    async def write_json(self, key: str, value: Any) -> None: ...

    async def read_bytes(self, key: str) -> bytes | None: ...

    async def write_bytes(
        self, key: str, data: bytes, *, content_type: str | None = None
    ) -> None: ...

    async def delete_object(self, key: str) -> None: ...

    async def list_objects(self, prefix: str) -> list[str]: ...


def encode_json(key: str, value: Any) -> bytes:
    try:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as exc:
        msg = f"Value for {key} is not JSON serializable: {exc}"
        raise ObjectStoreError(msg, key=key, operation="write_json") from exc


def decode_json(key: str, raw: bytes) -> Any:
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        msg = f"Object {key} does not contain valid JSON: {exc}"
        raise CorruptDataError(msg, key=key, operation="read_json") from exc
