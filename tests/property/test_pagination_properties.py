"""Property-based tests for pagination and change detection.

Uses Hypothesis to verify:
- Pages partition the collection in order
- Metadata always lands on a valid page
- Checksums ignore collection order
"""

from __future__ import annotations

import pytest

hypothesis = pytest.importorskip("hypothesis")
from hypothesis import given, settings, strategies as st

from bookmarks_sync.bookmarks.hashing import calculate_bookmarks_checksum
from bookmarks_sync.bookmarks.pagination import (
    build_page_slices,
    calculate_pagination_meta,
    paginate_rows,
    total_pages_for,
)
from tests.conftest import make_bookmarks

rows_strategy = st.lists(st.integers(), min_size=0, max_size=200)
page_size_strategy = st.integers(min_value=1, max_value=50)


class TestPaginationProperties:
    @given(rows=rows_strategy, page_size=page_size_strategy)
    @settings(max_examples=200, deadline=None)
    def test_pages_partition_rows(self, rows: list[int], page_size: int) -> None:
        """Concatenating every page reproduces the collection exactly."""
        total_pages = total_pages_for(len(rows), page_size)
        pages = [paginate_rows(rows, page, page_size) for page in range(1, total_pages + 1)]

        assert [row for page in pages for row in page] == rows
        assert all(0 < len(page) <= page_size for page in pages)
        assert all(len(page) == page_size for page in pages[:-1])
        assert paginate_rows(rows, total_pages + 1, page_size) == []

    @given(
        total=st.integers(min_value=0, max_value=10_000),
        page=st.integers(min_value=-100, max_value=1_000),
        page_size=page_size_strategy,
    )
    @settings(max_examples=300, deadline=None)
    def test_meta_page_is_clamped(self, total: int, page: int, page_size: int) -> None:
        meta = calculate_pagination_meta("items", total, page, page_size)

        assert 1 <= meta.page <= max(1, meta.total_pages)
        assert meta.has_more == (meta.page < meta.total_pages)
        assert meta.has_prev == (meta.page > 1)
        assert meta.total_pages * page_size >= total
        assert (meta.total_pages - 1) * page_size < total or total == 0

    @given(count=st.integers(min_value=0, max_value=60), page_size=page_size_strategy)
    @settings(max_examples=100, deadline=None)
    def test_page_slices_match_paginate(self, count: int, page_size: int) -> None:
        bookmarks = make_bookmarks(count)
        slices = build_page_slices(bookmarks, page_size)

        assert len(slices) == total_pages_for(count, page_size)
        for number, rows in enumerate(slices, start=1):
            assert rows == paginate_rows(bookmarks, number, page_size)


class TestChecksumProperties:
    @given(order=st.permutations(list(range(8))))
    @settings(max_examples=50, deadline=None)
    def test_checksum_ignores_order(self, order: list[int]) -> None:
        bookmarks = make_bookmarks(8)
        shuffled = [bookmarks[i] for i in order]

        assert calculate_bookmarks_checksum(shuffled) == calculate_bookmarks_checksum(bookmarks)
