"""Tests for OpenGraph head parsing, page fetching and logo discovery."""

from __future__ import annotations

import unittest

import httpx

from bookmarks_sync.adapters.opengraph.fetcher import OpenGraphFetcher, normalize_etag
from bookmarks_sync.adapters.opengraph.logos import LogoFetcher
from bookmarks_sync.adapters.opengraph.parser import (
    cut_to_head,
    parse_opengraph,
    truncate_html,
)
from bookmarks_sync.domain.exceptions import EnrichmentError

PAGE = """<!doctype html>
<html><head>
<title>  Fallback   Title </title>
<meta property="og:title" content="OG Title">
<meta property="og:title" content="Second OG Title">
<meta name="description" content="Plain description">
<meta property="og:image" content="/images/cover.png">
<link rel="icon" href="//cdn.example.com/favicon.ico">
<link rel="canonical" href="https://example.com/canonical">
</head>
<body><meta property="og:description" content="ignored after body"></body></html>
"""


class TestParseOpenGraph(unittest.TestCase):
    def test_extracts_head_metadata(self):
        metadata = parse_opengraph(PAGE, "https://example.com/posts/1")

        assert metadata.title == "OG Title"
        assert metadata.description == "Plain description"
        assert metadata.image == "https://example.com/images/cover.png"
        assert metadata.url == "https://example.com/canonical"
        assert metadata.favicon == "https://cdn.example.com/favicon.ico"

    def test_title_tag_fallback(self):
        html = "<html><head><title>  Just a   title </title></head></html>"
        metadata = parse_opengraph(html, "https://example.com")
        assert metadata.title == "Just a title"
        assert metadata.image is None

    def test_twitter_fallbacks(self):
        html = (
            '<head><meta name="twitter:title" content="T">'
            '<meta name="twitter:image" content="https://img.example/t.png"></head>'
        )
        metadata = parse_opengraph(html, "https://example.com")
        assert metadata.title == "T"
        assert metadata.image == "https://img.example/t.png"

    def test_empty_document(self):
        assert parse_opengraph("", "https://example.com").is_empty


class TestTruncation(unittest.TestCase):
    def test_small_documents_unchanged(self):
        assert truncate_html(PAGE, max_bytes=10_000, partial_bytes=10) == PAGE

    def test_large_document_cut_at_head(self):
        cut = truncate_html(PAGE, max_bytes=10, partial_bytes=5)
        assert cut.endswith("</head>")
        assert "<body>" not in cut

    def test_headless_document_keeps_prefix(self):
        assert cut_to_head("x" * 100, 10) == "x" * 10


class TestNormalizeEtag(unittest.TestCase):
    def test_weak_and_strong_compare_equal(self):
        assert normalize_etag('W/"abc"') == normalize_etag('"abc"') == "abc"

    def test_blank(self):
        assert normalize_etag(None) is None
        assert normalize_etag('""') is None


# ---------------------------------------------------------------------------
# OpenGraphFetcher
# ---------------------------------------------------------------------------


class TestOpenGraphFetcher(unittest.IsolatedAsyncioTestCase):
    async def _fetch(self, handler, url="https://example.com/posts/1", **kwargs):
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await OpenGraphFetcher(client, **kwargs).fetch(url)

    async def test_fetch_parses_page(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert "Mozilla" in request.headers["User-Agent"]
            return httpx.Response(200, text=PAGE, headers={"content-type": "text/html"})

        result = await self._fetch(handler)

        assert result.metadata.title == "OG Title"
        assert result.final_url == "https://example.com/posts/1"
        assert not result.truncated

    async def test_http_error_raises_enrichment_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, text="missing")

        with self.assertRaises(EnrichmentError) as ctx:
            await self._fetch(handler)
        assert ctx.exception.details["status_code"] == 404

    async def test_non_html_rejected(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"%PDF", headers={"content-type": "application/pdf"})

        with self.assertRaises(EnrichmentError):
            await self._fetch(handler)

    async def test_transport_error_wrapped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with self.assertRaises(EnrichmentError):
            await self._fetch(handler)

    async def test_oversized_body_truncated_to_head(self):
        body = PAGE.replace("</body>", "<p>" + "x" * 5000 + "</p></body>")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text=body, headers={"content-type": "text/html"})

        result = await self._fetch(handler, max_html_bytes=100, partial_html_bytes=50)

        assert result.truncated

    async def test_get_etag(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "HEAD"
            return httpx.Response(200, headers={"etag": 'W/"v1"'})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            assert await OpenGraphFetcher(client).get_etag("https://img.example/a.png") == "v1"


# ---------------------------------------------------------------------------
# LogoFetcher
# ---------------------------------------------------------------------------


class TestLogoFetcher(unittest.IsolatedAsyncioTestCase):
    async def test_page_icon_preferred(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            logo = await LogoFetcher(client).find_logo(
                "example.com", ["https://example.com/icon.png"]
            )

        assert logo is not None
        assert logo.source == "page"
        assert logo.url == "https://example.com/icon.png"

    async def test_falls_back_to_favicon_service(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "example.com":
                return httpx.Response(404)
            return httpx.Response(200, content=b"ico", headers={"content-type": "image/x-icon"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            logo = await LogoFetcher(client).find_logo(
                "example.com", ["https://example.com/missing.ico"]
            )

        assert logo is not None
        assert logo.source == "google"

    async def test_no_logo_found(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>", headers={"content-type": "text/html"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            assert await LogoFetcher(client).find_logo("example.com") is None

    async def test_blank_domain(self):
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))) as client:
            assert await LogoFetcher(client).find_logo("") is None

    async def test_each_candidate_needs_a_permit(self):
        """Lookup stops at the first refused permit without requesting further candidates."""
        requested: list[str] = []
        permits = iter([True])

        async def permit() -> bool:
            return next(permits, False)

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            logo = await LogoFetcher(client).find_logo(
                "example.com", ["https://example.com/missing.ico"], permit=permit
            )

        assert logo is None
        assert requested == ["https://example.com/missing.ico"]

    async def test_refused_permit_sends_nothing(self):
        requested: list[str] = []

        async def deny() -> bool:
            return False

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, content=b"ico", headers={"content-type": "image/x-icon"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            assert await LogoFetcher(client).find_logo("example.com", permit=deny) is None

        assert requested == []
