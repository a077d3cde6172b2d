"""Operator commands for the bookmark pipeline.

Usage:
    python -m bookmarks_sync.cli.bookmarks refresh [--force]
    python -m bookmarks_sync.cli.bookmarks status
    python -m bookmarks_sync.cli.bookmarks inventory [--page N] [--page-size N]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence

from bookmarks_sync.bookmarks.models import Bookmark
from bookmarks_sync.bookmarks.pagination import (
    build_paginated_section_lines,
    calculate_pagination_meta,
    paginate_rows,
)
from bookmarks_sync.config import AppConfig, load_config
from bookmarks_sync.core.logging_utils import setup_json_logging
from bookmarks_sync.di.container import BookmarksContainer, build_bookmarks_container


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bookmarks-sync",
        description="Refresh, inspect and list the cached bookmark collection.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL for this run",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    refresh = commands.add_parser("refresh", help="Run one refresh cycle to completion")
    refresh.add_argument(
        "--force",
        action="store_true",
        help="Ignore freshness and the unchanged-checksum short-circuit",
    )

    commands.add_parser("status", help="Print index, heartbeat, last run and lock state")

    inventory = commands.add_parser("inventory", help="List stored bookmarks page by page")
    inventory.add_argument("--page", type=int, default=1, help="Page to print (default: 1)")
    inventory.add_argument(
        "--page-size", type=int, default=None, help="Rows per page (default: BOOKMARKS_PER_PAGE)"
    )
    return parser


def format_bookmark_row(bookmark: Bookmark) -> str:
    tags = f" [{', '.join(bookmark.tag_names)}]" if bookmark.tags else ""
    return f"{bookmark.title} - {bookmark.url or '(no url)'}{tags}"


async def run_refresh(container: BookmarksContainer, *, force: bool) -> int:
    result = await container.service.refresh(force=force, trigger="cli")
    print(
        json.dumps(
            {
                "status": result.status.value,
                "count": result.count,
                "changed": result.changed,
                "reason": result.reason,
                "usedFallback": result.used_fallback,
                "durationMs": result.duration_ms,
                "enrichment": result.enrichment,
            },
            indent=2,
        )
    )
    await container.background.drain(timeout=60)
    return 0 if result.success else 1


async def run_status(container: BookmarksContainer) -> int:
    status = await container.service.status(detailed=True)
    index = await container.service.repository.read_index()
    status["index"] = index.to_wire() if index else None
    print(json.dumps(status, indent=2, default=str))
    return 0


async def run_inventory(container: BookmarksContainer, *, page: int, page_size: int | None) -> int:
    size = page_size or container.cfg.sync.page_size
    if size <= 0:
        print("Error: --page-size must be greater than 0", file=sys.stderr)
        return 2
    bookmarks = await container.service.get_bookmarks(skip_external_fetch=True)
    meta = calculate_pagination_meta("Bookmarks", len(bookmarks), page, size)
    rows = paginate_rows(bookmarks, meta.page, size)
    for line in build_paginated_section_lines(rows, meta, format_row=format_bookmark_row):
        print(line)
    return 0


async def _run(args: argparse.Namespace, cfg: AppConfig) -> int:
    container = build_bookmarks_container(cfg, enrich=args.command == "refresh")
    try:
        if args.command == "refresh":
            return await run_refresh(container, force=args.force)
        if args.command == "status":
            return await run_status(container)
        return await run_inventory(container, page=args.page, page_size=args.page_size)
    finally:
        await container.aclose()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = load_config()
    except RuntimeError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    setup_json_logging(args.log_level or cfg.runtime.log_level, log_file=cfg.runtime.log_file)
    return asyncio.run(_run(args, cfg))


if __name__ == "__main__":
    sys.exit(main())
