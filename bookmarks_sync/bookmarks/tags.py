from __future__ import annotations

import re
from typing import Any

_AMPERSAND_RE = re.compile(r"\s*&\s*")
_WHITESPACE_RE = re.compile(r"\s+")
_UNSAFE_RE = re.compile(r"[^a-z0-9-]")
_DASHES_RE = re.compile(r"-{2,}")


def tag_to_slug(tag: str) -> str:
    """URL-safe slug for a tag name: ``"Machine Learning & AI"`` -> ``"machine-learning-and-ai"``."""
    slug = _AMPERSAND_RE.sub(" and ", tag.strip().lower())
    slug = _WHITESPACE_RE.sub("-", slug)
    slug = _UNSAFE_RE.sub("", slug)
    return _DASHES_RE.sub("-", slug).strip("-")


def normalize_bookmark_tag(tag: Any) -> dict[str, Any]:
    """Coerce a string or partial tag object into ``{id, name, slug, color}``."""
    if isinstance(tag, str):
        return {"id": tag, "name": tag, "slug": tag_to_slug(tag), "color": None}
    if not isinstance(tag, dict):
        tag = {
            "id": getattr(tag, "id", None),
            "name": getattr(tag, "name", None),
            "slug": getattr(tag, "slug", None),
            "color": getattr(tag, "color", None),
        }
    name = str(tag.get("name") or "")
    return {
        "id": str(tag.get("id") or name),
        "name": name,
        "slug": str(tag.get("slug") or tag_to_slug(name)),
        "color": tag.get("color"),
    }


def tag_matches(tag_name: str, tag_slug: str, query: str) -> bool:
    """Case-insensitive match of ``query`` against a tag's name or slug."""
    needle = query.strip().lower()
    if not needle:
        return False
    return needle in (tag_name.lower(), tag_slug.lower()) or tag_to_slug(query) == tag_slug
