#!/usr/bin/env python3
"""
comic_manager.py
--------------------
Manages Comic rows and the rows they own: gallery images and genre links.

Comics are keyed by slug. An upsert overwrites every scalar column;
images and genre links are replaced wholesale so the stored lists always
mirror the latest source.

Usage:
    comics = ComicManager(session, logger)

    comic_id, created = comics.upsert({"slug": "solo-leveling", "title": ..., ...})
    comics.replace_images(comic_id, ["/comics/solo-leveling/ab12.webp", ...])
    comics.replace_genres(comic_id, [genre_id, ...])
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple

from seedbank.core.validators import DataValidator
from seedbank.database.decorators import handle_db_errors, log_database_operation
from seedbank.database.models import Comic, ComicImage, comic_genres
from .base_manager import BaseManager


class ComicManager(BaseManager):
    """Natural-key persistence for comics."""

    @handle_db_errors
    def get_by_key(self, slug: str) -> Optional[Comic]:
        """Comic with this slug, or None."""
        return self._get_by_field(Comic, "slug", DataValidator.normalize_string(slug))

    @handle_db_errors
    @log_database_operation("upsert_comic")
    def upsert(self, values: Dict[str, Any]) -> Tuple[int, bool]:
        """
        Insert or update a comic keyed by slug.

        Args:
            values: Column values; must contain 'slug', 'title' and 'image'

        Returns:
            Tuple of (comic id, created)
        """
        return self._upsert(Comic, values, ["slug"])

    @handle_db_errors
    def replace_images(self, comic_id: int, image_urls: Sequence[str]) -> int:
        """
        Replace the gallery images of a comic, preserving order.

        Returns:
            Number of images stored
        """
        rows = [
            {"image_url": url, "image_order": order}
            for order, url in enumerate(image_urls)
        ]
        return self._replace_children(ComicImage, "comic_id", comic_id, rows)

    @handle_db_errors
    def replace_genres(self, comic_id: int, genre_ids: Sequence[int]) -> int:
        """
        Replace the genre links of a comic. Duplicate ids are ignored.

        Returns:
            Number of links stored
        """
        unique_ids: List[int] = list(dict.fromkeys(genre_ids))
        rows = [{"genre_id": genre_id} for genre_id in unique_ids]
        return self._replace_children(comic_genres, "comic_id", comic_id, rows)

    @handle_db_errors
    def count(self) -> int:
        return self._count(Comic)
