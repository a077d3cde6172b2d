"""Bookmark data model and the durable documents derived from it.

Field names are snake_case in Python and camelCase on the wire; every model
accepts either form and serializes with aliases via ``to_wire()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from bookmarks_sync.bookmarks.tags import normalize_bookmark_tag

PLACEHOLDER_TITLE = "Untitled Bookmark"
PLACEHOLDER_DESCRIPTION = "No description available."


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class BookmarkTag(_WireModel):
    id: str
    name: str
    slug: str
    color: str | None = None


class BookmarkContent(_WireModel):
    type: str | None = None
    url: str = ""
    title: str | None = None
    description: str | None = None
    image_url: str | None = Field(default=None, alias="imageUrl")
    image_asset_id: str | None = Field(default=None, alias="imageAssetId")
    screenshot_asset_id: str | None = Field(default=None, alias="screenshotAssetId")
    favicon: str | None = None
    author: str | None = None
    publisher: str | None = None
    date_published: str | None = Field(default=None, alias="datePublished")


class Bookmark(_WireModel):
    id: str
    url: str = ""
    title: str = PLACEHOLDER_TITLE
    description: str = PLACEHOLDER_DESCRIPTION
    tags: list[BookmarkTag] = Field(default_factory=list)

    date_bookmarked: str | None = Field(default=None, alias="dateBookmarked")
    created_at: str | None = Field(default=None, alias="createdAt")
    modified_at: str | None = Field(default=None, alias="modifiedAt")
    source_updated_at: str | None = Field(default=None, alias="sourceUpdatedAt")

    og_image: str | None = Field(default=None, alias="ogImage")
    og_title: str | None = Field(default=None, alias="ogTitle")
    og_description: str | None = Field(default=None, alias="ogDescription")
    og_fetched_at: str | None = Field(default=None, alias="ogFetchedAt")
    og_image_etag: str | None = Field(default=None, alias="ogImageEtag")
    logo_url: str | None = Field(default=None, alias="logoUrl")
    content: BookmarkContent | None = None

    domain: str | None = None
    summary: str | None = None
    note: str | None = None
    word_count: int | None = Field(default=None, alias="wordCount")
    reading_time: int | None = Field(default=None, alias="readingTime")
    archived: bool = False
    is_favorite: bool = Field(default=False, alias="isFavorite")

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> list[dict[str, Any]]:
        if not value:
            return []
        tags = [normalize_bookmark_tag(tag) for tag in value]
        return [tag for tag in tags if tag["name"]]

    @field_validator("title", "description", mode="before")
    @classmethod
    def _blank_to_placeholder(cls, value: Any, info: ValidationInfo) -> str:
        text = str(value).strip() if value is not None else ""
        if text:
            return text
        return PLACEHOLDER_TITLE if info.field_name == "title" else PLACEHOLDER_DESCRIPTION

    @property
    def tag_names(self) -> list[str]:
        return [tag.name for tag in self.tags]

    @property
    def tag_slugs(self) -> list[str]:
        return [tag.slug for tag in self.tags]

    @property
    def hostname(self) -> str:
        if self.domain:
            return self.domain
        try:
            host = urlparse(self.url).hostname or ""
        except ValueError:
            return ""
        return host.removeprefix("www.")

    def has_placeholder_title(self) -> bool:
        return self.title == PLACEHOLDER_TITLE

    def has_placeholder_description(self) -> bool:
        return self.description == PLACEHOLDER_DESCRIPTION


def bookmarks_to_wire(bookmarks: list[Bookmark]) -> list[dict[str, Any]]:
    return [bookmark.to_wire() for bookmark in bookmarks]


def bookmarks_from_wire(rows: Any) -> list[Bookmark]:
    """Parse a stored dataset; a non-list payload reads as empty."""
    if not isinstance(rows, list):
        return []
    return [Bookmark.model_validate(row) for row in rows if isinstance(row, dict)]


class BookmarksIndex(_WireModel):
    count: int = 0
    total_pages: int = Field(default=0, alias="totalPages")
    page_size: int = Field(default=24, alias="pageSize")
    last_modified: str | None = Field(default=None, alias="lastModified")
    last_fetched_at: int | None = Field(default=None, alias="lastFetchedAt")
    last_attempted_at: int | None = Field(default=None, alias="lastAttemptedAt")
    checksum: str | None = None
    change_detected: bool = Field(default=False, alias="changeDetected")


class TagIndex(_WireModel):
    tag: str
    count: int = 0
    total_pages: int = Field(default=0, alias="totalPages")
    page_size: int = Field(default=24, alias="pageSize")
    last_modified: str | None = Field(default=None, alias="lastModified")
    last_fetched_at: int | None = Field(default=None, alias="lastFetchedAt")


class Heartbeat(_WireModel):
    run_at: int = Field(alias="runAt")
    instance_id: str = Field(alias="instanceId")
    phase: str
    processed: int | None = None
    total: int | None = None


class LastRun(_WireModel):
    run_at: int = Field(alias="runAt")
    success: bool
    change_detected: bool = Field(default=False, alias="changeDetected")
    trigger: str = "manual"
    count: int | None = None
    error: str | None = None
    used_fallback: bool = Field(default=False, alias="usedFallback")


@dataclass
class TagBookmarksResult:
    bookmarks: list[Bookmark] = field(default_factory=list)
    total_count: int = 0
    total_pages: int = 0
    current_page: int = 1
    from_cache: bool = False
