"""Durable key layout.

Every key carries the environment suffix so production, development and test
data can share one bucket.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BookmarkPaths:
    suffix: str = ""
    root: str = "json/bookmarks"

    @classmethod
    def for_environment(cls, env_suffix: str) -> BookmarkPaths:
        return cls(suffix=env_suffix)

    @property
    def dataset(self) -> str:
        return f"{self.root}/bookmarks{self.suffix}.json"

    @property
    def index(self) -> str:
        return f"{self.root}/index{self.suffix}.json"

    @property
    def lock(self) -> str:
        return f"{self.root}/refresh-lock{self.suffix}.json"

    @property
    def heartbeat(self) -> str:
        return f"{self.root}/heartbeat{self.suffix}.json"

    @property
    def last_run(self) -> str:
        return f"{self.root}/last-run{self.suffix}.json"

    @property
    def pages_prefix(self) -> str:
        return f"{self.root}/pages{self.suffix}/"

    def page(self, page_number: int) -> str:
        return f"{self.pages_prefix}page-{page_number}.json"

    @property
    def tags_prefix(self) -> str:
        return f"{self.root}/tags{self.suffix}/"

    def tag_index(self, tag_slug: str) -> str:
        return f"{self.tags_prefix}{tag_slug}/index.json"

    def tag_page(self, tag_slug: str, page_number: int) -> str:
        return f"{self.tags_prefix}{tag_slug}/page-{page_number}.json"

    def rate_limit(self, store_name: str, context_id: str) -> str:
        return f"json/rate-limit{self.suffix}/{store_name}/{context_id}.json"

    @staticmethod
    def opengraph_image(name: str) -> str:
        return f"images/opengraph/{name}"

    @staticmethod
    def logo(name: str) -> str:
        return f"images/logos/{name}"

    @staticmethod
    def page_number_from_key(key: str) -> int | None:
        """Extract ``n`` from ``.../page-{n}.json``; ``None`` for other keys."""
        name = key.rsplit("/", 1)[-1]
        if not (name.startswith("page-") and name.endswith(".json")):
            return None
        digits = name[len("page-") : -len(".json")]
        return int(digits) if digits.isdigit() else None
