"""Copy remote images into the durable store under content-addressed keys."""

from __future__ import annotations

import hashlib
import logging
import mimetypes
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx

from bookmarks_sync.adapters.opengraph.fetcher import browser_headers, normalize_etag
from bookmarks_sync.domain.exceptions import ObjectStoreError
from bookmarks_sync.infrastructure.storage.base import ObjectStore
from bookmarks_sync.infrastructure.storage.paths import BookmarkPaths

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/svg+xml": ".svg",
    "image/x-icon": ".ico",
    "image/vnd.microsoft.icon": ".ico",
    "image/avif": ".avif",
}


@dataclass(frozen=True)
class PersistedImage:
    key: str
    url: str
    etag: str | None = None
    newly_persisted: bool = True


def image_key(source_url: str, directory: str, content_type: str | None = None) -> str:
    digest = hashlib.sha256(source_url.encode("utf-8")).hexdigest()[:32]
    ext = _EXTENSIONS.get((content_type or "").split(";")[0].strip().lower())
    if ext is None:
        ext = mimetypes.guess_extension((content_type or "").split(";")[0].strip()) or ""
    name = f"{digest}{ext}"
    return BookmarkPaths.logo(name) if directory == "logos" else BookmarkPaths.opengraph_image(name)


class ImagePersister:
    def __init__(
        self,
        store: ObjectStore,
        client: httpx.AsyncClient,
        *,
        cdn_url: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._store = store
        self._client = client
        self._cdn_url = cdn_url.rstrip("/") if cdn_url else None
        self._timeout = timeout

    def public_url(self, key: str) -> str:
        return f"{self._cdn_url}/{key}" if self._cdn_url else key

    def is_persisted_url(self, url: str | None) -> bool:
        if not url:
            return False
        if self._cdn_url and url.startswith(self._cdn_url):
            return True
        return url.startswith(("images/opengraph/", "images/logos/"))

    async def persist(
        self,
        source_url: str,
        *,
        directory: str = "opengraph",
        permit: Callable[[], Awaitable[bool]] | None = None,
    ) -> PersistedImage | None:
        """Download ``source_url`` and store it; ``None`` when the image is unusable.

        ``permit`` is awaited before the download; a ``False`` answer skips it.
        """
        prefix = image_key(source_url, directory).rsplit(".", 1)[0]
        try:
            existing = await self._store.list_objects(prefix)
        except ObjectStoreError as exc:
            logger.warning("image_lookup_failed", extra={"url": source_url, "error": str(exc)})
            existing = []
        if existing:
            return PersistedImage(key=existing[0], url=self.public_url(existing[0]), newly_persisted=False)

        if permit is not None and not await permit():
            logger.debug("image_download_rate_limited", extra={"url": source_url})
            return None

        try:
            response = await self._client.get(
                source_url,
                headers=browser_headers("image/*,*/*;q=0.8"),
                timeout=self._timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as exc:
            logger.info("image_download_failed", extra={"url": source_url, "error": str(exc)})
            return None

        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        if response.status_code != 200 or not response.content or not content_type.startswith("image/"):
            logger.info(
                "image_download_rejected",
                extra={"url": source_url, "status": response.status_code, "content_type": content_type},
            )
            return None

        key = image_key(source_url, directory, content_type)
        try:
            await self._store.write_bytes(key, response.content, content_type=content_type)
        except ObjectStoreError as exc:
            logger.warning("image_persist_failed", extra={"url": source_url, "key": key, "error": str(exc)})
            return None

        logger.debug("image_persisted", extra={"url": source_url, "key": key, "bytes": len(response.content)})
        return PersistedImage(
            key=key, url=self.public_url(key), etag=normalize_etag(response.headers.get("etag"))
        )
