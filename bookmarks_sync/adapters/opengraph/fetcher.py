"""OpenGraph page fetcher."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass

import httpx

from bookmarks_sync.adapters.opengraph.parser import OpenGraphMetadata, cut_to_head, parse_opengraph
from bookmarks_sync.domain.exceptions import EnrichmentError

logger = logging.getLogger(__name__)

_USER_AGENTS = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Safari/605.1.15",
)


def browser_headers(accept: str = "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8") -> dict[str, str]:
    return {
        "User-Agent": random.choice(_USER_AGENTS),
        "Accept": accept,
        "Accept-Language": "en-US,en;q=0.9",
    }


def normalize_etag(value: str | None) -> str | None:
    """Strip the weak ``W/`` prefix and quotes so weak and strong tags compare equal."""
    if not value:
        return None
    tag = value.strip()
    if tag.upper().startswith("W/"):
        tag = tag[2:]
    return tag.strip('"') or None


@dataclass
class OpenGraphResult:
    url: str
    final_url: str
    metadata: OpenGraphMetadata
    truncated: bool = False


class OpenGraphFetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        timeout: float = 7.0,
        max_html_bytes: int = 5 * 1024 * 1024,
        partial_html_bytes: int = 512 * 1024,
    ) -> None:
        self._client = client
        self._timeout = timeout
        self._max_html_bytes = max_html_bytes
        self._partial_html_bytes = partial_html_bytes

    async def _read_html(self, url: str) -> tuple[str, str, bool]:
        chunks: list[bytes] = []
        size = 0
        truncated = False
        async with self._client.stream(
            "GET", url, headers=browser_headers(), timeout=self._timeout, follow_redirects=True
        ) as response:
            if response.status_code >= 400:
                msg = f"HTTP {response.status_code} fetching {url}"
                raise EnrichmentError(msg, details={"url": url, "status_code": response.status_code})
            content_type = response.headers.get("content-type", "")
            if content_type and "html" not in content_type.lower():
                msg = f"Unsupported content type {content_type} for {url}"
                raise EnrichmentError(msg, details={"url": url, "content_type": content_type})
            async for chunk in response.aiter_bytes():
                chunks.append(chunk)
                size += len(chunk)
                if size > self._max_html_bytes:
                    truncated = True
                    break
            encoding = response.encoding or "utf-8"
            final_url = str(response.url)
        html = b"".join(chunks).decode(encoding, errors="replace")
        return html, final_url, truncated

    async def fetch(self, url: str) -> OpenGraphResult:
        """Fetch and parse ``url``.

        Raises:
            EnrichmentError: on HTTP errors, timeouts or non-HTML responses.
        """
        try:
            html, final_url, truncated = await self._read_html(url)
        except httpx.TimeoutException as exc:
            msg = f"Timed out after {self._timeout}s fetching {url}"
            raise EnrichmentError(msg, details={"url": url}) from exc
        except httpx.HTTPError as exc:
            msg = f"Request failed for {url}: {exc}"
            raise EnrichmentError(msg, details={"url": url}) from exc

        if truncated:
            html = cut_to_head(html, self._partial_html_bytes)
            logger.debug("opengraph_html_truncated", extra={"url": url, "kept_chars": len(html)})

        metadata = parse_opengraph(html, final_url)
        return OpenGraphResult(url=url, final_url=final_url, metadata=metadata, truncated=truncated)

    async def get_etag(self, url: str) -> str | None:
        """Normalized ETag from a HEAD request.

        Raises:
            EnrichmentError: when the HEAD request fails.
        """
        try:
            response = await self._client.head(
                url, headers=browser_headers("*/*"), timeout=self._timeout, follow_redirects=True
            )
        except httpx.HTTPError as exc:
            msg = f"HEAD failed for {url}: {exc}"
            raise EnrichmentError(msg, details={"url": url}) from exc
        if response.status_code >= 400:
            msg = f"HTTP {response.status_code} on HEAD {url}"
            raise EnrichmentError(msg, details={"url": url, "status_code": response.status_code})
        return normalize_etag(response.headers.get("etag"))
