"""
Database Models Package
------------------------

SQLAlchemy ORM models for the Seedbank database.

- base: Base class and timestamp mixin
- associations: Many-to-many relationship tables
- enums: Enumeration types
- entities: Author, Artist, ComicType, Genre
- content: Comic, ComicImage, Chapter, ChapterImage
- users: User

Usage:
    from seedbank.database.models import Comic, Chapter, Genre
"""
# Base classes
from .base import Base, TimestampMixin

# Enumerations
from .enums import ComicStatus, UserRole

# Association tables
from .associations import comic_genres

# Reference entities
from .entities import Artist, Author, ComicType, Genre

# Content
from .content import Chapter, ChapterImage, Comic, ComicImage

# Users
from .users import User

__all__ = [
    "Base",
    "TimestampMixin",
    "ComicStatus",
    "UserRole",
    "comic_genres",
    "Artist",
    "Author",
    "ComicType",
    "Genre",
    "Chapter",
    "ChapterImage",
    "Comic",
    "ComicImage",
    "User",
]
