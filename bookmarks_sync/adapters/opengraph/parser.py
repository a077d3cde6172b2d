"""Streaming ``<head>`` metadata parser.

Only the document head is inspected; parsing stops at ``</head>`` or the
first ``<body>`` tag so large pages cost little.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from html.parser import HTMLParser
from urllib.parse import urljoin

_ICON_RELS = ("icon", "shortcut icon", "apple-touch-icon", "apple-touch-icon-precomposed")


@dataclass
class OpenGraphMetadata:
    title: str | None = None
    description: str | None = None
    image: str | None = None
    url: str | None = None
    site_name: str | None = None
    icons: list[str] = field(default_factory=list)

    @property
    def favicon(self) -> str | None:
        return self.icons[0] if self.icons else None

    @property
    def is_empty(self) -> bool:
        return not (self.title or self.description or self.image)


class _HeadParser(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.meta: dict[str, str] = {}
        self.links: list[tuple[str, str]] = []
        self.title_parts: list[str] = []
        self.done = False
        self._in_title = False

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if self.done:
            return
        if tag == "body":
            self.done = True
            return
        values = {name.lower(): (value or "").strip() for name, value in attrs}
        if tag == "meta":
            key = (values.get("property") or values.get("name") or "").lower()
            content = values.get("content")
            # First occurrence wins, matching how crawlers read duplicate tags.
            if key and content and key not in self.meta:
                self.meta[key] = content
        elif tag == "link":
            rel = values.get("rel", "").lower()
            href = values.get("href")
            if rel and href:
                self.links.append((rel, href))
        elif tag == "title":
            self._in_title = True

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        self.handle_starttag(tag, attrs)

    def handle_endtag(self, tag: str) -> None:
        if tag == "head":
            self.done = True
        elif tag == "title":
            self._in_title = False

    def handle_data(self, data: str) -> None:
        if self._in_title and not self.done:
            self.title_parts.append(data)


def cut_to_head(html: str, partial_bytes: int) -> str:
    """Keep the document up to ``</head>``, else only the first ``partial_bytes`` characters."""
    head_end = html.lower().find("</head>")
    if head_end > 0:
        return html[: head_end + len("</head>")]
    return html[:partial_bytes]


def truncate_html(html: str, *, max_bytes: int, partial_bytes: int) -> str:
    """Cut documents larger than ``max_bytes``; smaller ones are returned unchanged."""
    if len(html.encode("utf-8", errors="ignore")) <= max_bytes:
        return html
    return cut_to_head(html, partial_bytes)


def parse_opengraph(html: str, base_url: str) -> OpenGraphMetadata:
    parser = _HeadParser()
    parser.feed(html)
    parser.close()
    meta = parser.meta

    def first(*keys: str) -> str | None:
        for key in keys:
            if meta.get(key):
                return meta[key]
        return None

    def absolute(value: str | None) -> str | None:
        if not value:
            return None
        if value.startswith("//"):
            return f"https:{value}"
        return urljoin(base_url, value)

    title = first("og:title", "twitter:title") or " ".join("".join(parser.title_parts).split())
    canonical = next((href for rel, href in parser.links if rel == "canonical"), None)
    icons = [
        url
        for rel, href in parser.links
        if rel in _ICON_RELS and (url := absolute(href))
    ]

    return OpenGraphMetadata(
        title=title or None,
        description=first("og:description", "twitter:description", "description"),
        image=absolute(
            first("og:image", "og:image:url", "og:image:secure_url", "twitter:image", "twitter:image:src")
        ),
        url=absolute(first("og:url") or canonical),
        site_name=first("og:site_name", "application-name"),
        icons=icons,
    )
