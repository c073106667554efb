#!/usr/bin/env python3
"""
chapter_manager.py
--------------------
Manages Chapter rows and their page images.

Chapters are keyed by (comic, chapter number). The comic is addressed by
slug at the boundary and resolved to its id here; a chapter whose comic is
missing raises ParentNotFoundError so the caller can skip it.

Usage:
    chapters = ChapterManager(session, logger)

    comic_id = chapters.require_comic("solo-leveling")
    chapter_id, created = chapters.upsert({"comic_id": comic_id, "chapter_number": 12.0, ...})
    chapters.replace_images(chapter_id, pages)
"""
from typing import Any, Dict, Optional, Sequence, Tuple

from seedbank.core.exceptions import ParentNotFoundError
from seedbank.database.decorators import handle_db_errors, log_database_operation
from seedbank.database.models import Chapter, ChapterImage, Comic
from .base_manager import BaseManager


class ChapterManager(BaseManager):
    """Natural-key persistence for chapters."""

    @handle_db_errors
    def require_comic(self, comic_slug: str) -> int:
        """
        Id of the parent comic.

        Raises:
            ParentNotFoundError: If no comic has this slug
        """
        comic_id = self._find_id(Comic, {"slug": comic_slug})
        if comic_id is None:
            raise ParentNotFoundError(f"Comic not found for chapter: {comic_slug}")
        return comic_id

    @handle_db_errors
    def get_by_key(self, comic_slug: str, chapter_number: float) -> Optional[Chapter]:
        """Chapter by (comic slug, number), or None."""
        return (
            self.session.query(Chapter)
            .join(Comic, Chapter.comic_id == Comic.id)
            .filter(Comic.slug == comic_slug, Chapter.chapter_number == chapter_number)
            .first()
        )

    @handle_db_errors
    @log_database_operation("upsert_chapter")
    def upsert(self, values: Dict[str, Any]) -> Tuple[int, bool]:
        """
        Insert or update a chapter keyed by (comic_id, chapter_number).

        Args:
            values: Column values including 'comic_id' and 'chapter_number'

        Returns:
            Tuple of (chapter id, created)
        """
        return self._upsert(Chapter, values, ["comic_id", "chapter_number"])

    @handle_db_errors
    def replace_images(self, chapter_id: int, image_urls: Sequence[str]) -> int:
        """
        Replace the page images of a chapter; pages are numbered from 1.

        Returns:
            Number of pages stored
        """
        rows = [
            {"image_url": url, "page_number": page}
            for page, url in enumerate(image_urls, start=1)
        ]
        return self._replace_children(ChapterImage, "chapter_id", chapter_id, rows)

    @handle_db_errors
    def count(self, comic_id: Optional[int] = None) -> int:
        if comic_id is None:
            return self._count(Chapter)
        return self._count(Chapter, comic_id=comic_id)
