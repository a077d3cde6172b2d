"""Favicon/logo discovery for bookmark domains."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

import httpx

from bookmarks_sync.adapters.opengraph.fetcher import browser_headers

logger = logging.getLogger(__name__)

LOGO_SOURCES: dict[str, Callable[[str], str]] = {
    "google": lambda domain: f"https://www.google.com/s2/favicons?domain={domain}&sz=256",
    "duckduckgo": lambda domain: f"https://icons.duckduckgo.com/ip3/{domain}.ico",
}


@dataclass(frozen=True)
class LogoResult:
    url: str
    source: str


class LogoFetcher:
    """Tries page-declared icons first, then public favicon services."""

    def __init__(self, client: httpx.AsyncClient, *, timeout: float = 7.0) -> None:
        self._client = client
        self._timeout = timeout

    def candidates(self, domain: str, page_icons: Sequence[str] = ()) -> list[tuple[str, str]]:
        found = [("page", icon) for icon in page_icons]
        found.extend((source, build(domain)) for source, build in LOGO_SOURCES.items())
        return found

    async def _is_image(self, url: str) -> bool:
        try:
            response = await self._client.get(
                url,
                headers=browser_headers("image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8"),
                timeout=self._timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as exc:
            logger.debug("logo_candidate_failed", extra={"url": url, "error": str(exc)})
            return False
        content_type = response.headers.get("content-type", "").lower()
        return response.status_code == 200 and bool(response.content) and (
            content_type.startswith("image/") or "icon" in content_type
        )

    async def find_logo(
        self,
        domain: str,
        page_icons: Sequence[str] = (),
        *,
        permit: Callable[[], Awaitable[bool]] | None = None,
    ) -> LogoResult | None:
        """First candidate that answers with an image.

        ``permit`` is awaited before every candidate request; a ``False``
        answer ends the lookup.
        """
        if not domain:
            return None
        for source, url in self.candidates(domain, page_icons):
            if permit is not None and not await permit():
                logger.debug("logo_lookup_rate_limited", extra={"domain": domain})
                return None
            if await self._is_image(url):
                logger.debug("logo_found", extra={"domain": domain, "source": source})
                return LogoResult(url=url, source=source)
        logger.debug("logo_not_found", extra={"domain": domain})
        return None
