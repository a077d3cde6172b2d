"""Pydantic models for the Karakeep list API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class KarakeepTag(BaseModel):
    id: str = ""
    name: str
    attached_by: str | None = Field(default=None, alias="attachedBy")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class KarakeepContent(BaseModel):
    type: str = "link"
    url: str | None = None
    title: str | None = None
    description: str | None = None
    image_url: str | None = Field(default=None, alias="imageUrl")
    image_asset_id: str | None = Field(default=None, alias="imageAssetId")
    screenshot_asset_id: str | None = Field(default=None, alias="screenshotAssetId")
    favicon: str | None = None
    html_content: str | None = Field(default=None, alias="htmlContent")
    author: str | None = None
    publisher: str | None = None
    date_published: str | None = Field(default=None, alias="datePublished")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class KarakeepBookmark(BaseModel):
    """Karakeep bookmark as returned by ``/lists/{id}/bookmarks``."""

    id: str
    created_at: str | None = Field(default=None, alias="createdAt")
    modified_at: str | None = Field(default=None, alias="modifiedAt")
    title: str | None = None
    archived: bool = False
    favourited: bool = False
    note: str | None = None
    summary: str | None = None
    tags: list[KarakeepTag] = Field(default_factory=list)
    content: KarakeepContent = Field(default_factory=KarakeepContent)

    model_config = {"populate_by_name": True, "extra": "ignore"}


class KarakeepBookmarkList(BaseModel):
    """One page of a cursor-paginated listing."""

    bookmarks: list[KarakeepBookmark] = Field(default_factory=list)
    next_cursor: str | None = Field(default=None, alias="nextCursor")

    model_config = {"populate_by_name": True, "extra": "ignore"}
