from __future__ import annotations

import math
import re
from html import unescape
from html.parser import HTMLParser

_BLANK_LINE_RE = re.compile(r"\n{3,}")
_WORD_RE = re.compile(r"\b[\w'-]+\b", re.UNICODE)

WORDS_PER_MINUTE = 200


class _TextExtractor(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._buf: list[str] = []
        self._skip_depth = 0  # script/style/noscript

    def handle_starttag(self, tag: str, attrs):
        if tag in ("script", "style", "noscript"):
            self._skip_depth += 1
        elif self._skip_depth == 0:
            if tag == "br":
                self._buf.append("\n")
            elif tag in ("p", "div", "section", "article", "li", "h1", "h2", "h3", "h4"):
                self._buf.append("\n\n")

    def handle_endtag(self, tag: str) -> None:
        if tag in ("script", "style", "noscript") and self._skip_depth > 0:
            self._skip_depth -= 1

    def handle_data(self, data: str) -> None:
        if self._skip_depth == 0:
            text = data.strip()
            if text:
                self._buf.append(text + " ")

    def get_text(self) -> str:
        text = unescape("".join(self._buf))
        return _BLANK_LINE_RE.sub("\n\n", text).strip()


def html_to_text(html: str | None) -> str:
    """Strip markup from stored article HTML, dropping scripts and styles."""
    if not html:
        return ""
    parser = _TextExtractor()
    parser.feed(html)
    parser.close()
    return parser.get_text()


def count_words(text: str | None) -> int:
    if not text:
        return 0
    return len(_WORD_RE.findall(text))


def estimate_reading_time(word_count: int) -> int:
    """Minutes to read ``word_count`` words; zero words reads in zero minutes."""
    if word_count <= 0:
        return 0
    return max(1, math.ceil(word_count / WORDS_PER_MINUTE))
