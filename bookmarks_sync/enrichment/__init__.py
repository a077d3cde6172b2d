"""Bookmark enrichment (OpenGraph metadata, logos, images)."""
