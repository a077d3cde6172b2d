"""Tests for page slicing, pagination metadata and tag grouping."""

from __future__ import annotations

import unittest

from bookmarks_sync.bookmarks.pagination import (
    build_bookmarks_index,
    build_page_slices,
    build_paginated_section_lines,
    build_tag_index,
    calculate_pagination_meta,
    group_by_tag,
    paginate_rows,
    select_top_tags,
    total_pages_for,
)
from tests.conftest import make_bookmark, make_bookmarks

# ---------------------------------------------------------------------------
# paginate_rows / calculate_pagination_meta
# ---------------------------------------------------------------------------


class TestPaginateRows(unittest.TestCase):
    def test_slices_requested_page(self):
        rows = list(range(1, 26))
        assert paginate_rows(rows, 1, 10) == list(range(1, 11))
        assert paginate_rows(rows, 3, 10) == [21, 22, 23, 24, 25]

    def test_out_of_range_pages_are_empty(self):
        assert paginate_rows([1, 2, 3], 2, 10) == []
        assert paginate_rows([1, 2, 3], 0, 10) == []
        assert paginate_rows([1, 2, 3], -1, 10) == []

    def test_rejects_non_positive_page_size(self):
        with self.assertRaises(ValueError):
            paginate_rows([1], 1, 0)


class TestPaginationMeta(unittest.TestCase):
    def test_middle_page(self):
        meta = calculate_pagination_meta("bookmarks", 50, 2, 20)
        assert meta.total_pages == 3
        assert meta.page == 2
        assert meta.has_more and meta.has_prev
        assert meta.start_index == 20

    def test_page_clamped_to_last(self):
        meta = calculate_pagination_meta("bookmarks", 50, 99, 20)
        assert meta.page == 3
        assert not meta.has_more

    def test_page_clamped_to_first(self):
        meta = calculate_pagination_meta("bookmarks", 50, -4, 20)
        assert meta.page == 1
        assert not meta.has_prev

    def test_empty_collection(self):
        """An empty collection reports zero pages and sits on page 1."""
        meta = calculate_pagination_meta("bookmarks", 0, 3, 20)
        assert meta.total_pages == 0
        assert meta.page == 1
        assert not meta.has_more and not meta.has_prev

    def test_to_dict_uses_wire_names(self):
        meta = calculate_pagination_meta("bookmarks", 1000, 1, 100)
        assert meta.to_dict() == {
            "page": 1,
            "limit": 100,
            "total": 1000,
            "totalPages": 10,
            "hasNext": True,
            "hasPrev": False,
        }

    def test_total_pages_for(self):
        assert total_pages_for(0, 24) == 0
        assert total_pages_for(24, 24) == 1
        assert total_pages_for(25, 24) == 2


# ---------------------------------------------------------------------------
# Rendering of an already-sliced page
# ---------------------------------------------------------------------------


class TestSectionLines(unittest.TestCase):
    def test_second_page_renders_all_rows(self):
        """Rows of a later page are rendered in full and numbered from the page offset."""
        rows = list(range(1, 24))
        meta = calculate_pagination_meta("Items", len(rows), 2, 10)
        page_rows = paginate_rows(rows, meta.page, 10)

        lines = build_paginated_section_lines(page_rows, meta, format_row=lambda r: f"item {r}")

        assert lines[0] == "Items (page 2 of 3, 23 total)"
        assert lines[1] == "11. item 11"
        assert lines[10] == "20. item 20"
        assert "Previous page: 1" in lines
        assert "Next page: 3" in lines

    def test_empty_page(self):
        meta = calculate_pagination_meta("Items", 0, 1, 10)
        lines = build_paginated_section_lines([], meta)
        assert lines == ["Items (page 1 of 1, 0 total)", "(no entries)"]


# ---------------------------------------------------------------------------
# Persisted page layout
# ---------------------------------------------------------------------------


class TestPageSlices(unittest.TestCase):
    def test_slices_cover_collection_in_order(self):
        bookmarks = make_bookmarks(5)
        pages = build_page_slices(bookmarks, 2)
        assert [[b.id for b in page] for page in pages] == [
            ["bm-1", "bm-2"],
            ["bm-3", "bm-4"],
            ["bm-5"],
        ]

    def test_empty_collection_has_no_pages(self):
        assert build_page_slices([], 24) == []

    def test_build_index(self):
        index = build_bookmarks_index(
            make_bookmarks(5),
            page_size=2,
            checksum="abc",
            change_detected=True,
            fetched_at=123,
            attempted_at=456,
        )
        assert index.count == 5
        assert index.total_pages == 3
        assert index.last_fetched_at == 123
        assert index.last_attempted_at == 456
        assert index.to_wire()["changeDetected"] is True


class TestTagGrouping(unittest.TestCase):
    def test_group_by_tag_keeps_collection_order(self):
        bookmarks = [
            make_bookmark("a", tags=["Python", "Web"]),
            make_bookmark("b", tags=["Web"]),
            make_bookmark("c", tags=["Python"]),
        ]
        buckets = group_by_tag(bookmarks)
        assert [b.id for b in buckets["python"].bookmarks] == ["a", "c"]
        assert [b.id for b in buckets["web"].bookmarks] == ["a", "b"]

    def test_duplicate_tags_count_once(self):
        buckets = group_by_tag([make_bookmark("a", tags=["Python", "python"])])
        assert len(buckets["python"].bookmarks) == 1

    def test_select_top_tags_by_frequency_then_slug(self):
        bookmarks = [
            make_bookmark("a", tags=["Rust", "Go"]),
            make_bookmark("b", tags=["Rust", "Go"]),
            make_bookmark("c", tags=["Rust", "Zig"]),
        ]
        top = select_top_tags(group_by_tag(bookmarks), 2)
        assert [bucket.slug for bucket in top] == ["rust", "go"]
        assert select_top_tags(group_by_tag(bookmarks), 0) == []

    def test_build_tag_index(self):
        bucket = group_by_tag(make_bookmarks(3, tags=["Data"]))["data"]
        index = build_tag_index(bucket, page_size=2, fetched_at=10)
        assert index.tag == "Data"
        assert index.count == 3
        assert index.total_pages == 2
