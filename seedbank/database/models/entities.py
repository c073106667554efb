"""
Reference Entities
------------------

Lookup tables shared between comics: authors, artists, comic types and
genres. Every row is identified by a unique display name; lookups are
case-insensitive (see ReferenceManager), the first casing seen is stored.

Classes:
    - Author
    - Artist
    - ComicType
    - Genre
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from datetime import datetime
from typing import TYPE_CHECKING, List

# --- Third party ---
from sqlalchemy import CheckConstraint, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

# --- Local imports ---
from .associations import comic_genres
from .base import Base, utcnow

if TYPE_CHECKING:
    from .content import Comic


class Author(Base):
    """
    Comic author.

    Attributes:
        id: Primary key
        name: Display name (unique)
        created_at: Insertion time

    Relationships:
        comics: One-to-many with Comic
    """

    __tablename__ = "authors"
    __table_args__ = (CheckConstraint("name != ''", name="ck_author_non_empty_name"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    comics: Mapped[List["Comic"]] = relationship("Comic", back_populates="author")

    def __repr__(self) -> str:
        return f"<Author(id={self.id}, name={self.name!r})>"


class Artist(Base):
    """Comic artist; same shape as Author."""

    __tablename__ = "artists"
    __table_args__ = (CheckConstraint("name != ''", name="ck_artist_non_empty_name"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    comics: Mapped[List["Comic"]] = relationship("Comic", back_populates="artist")

    def __repr__(self) -> str:
        return f"<Artist(id={self.id}, name={self.name!r})>"


class ComicType(Base):
    """Comic format (Manhwa, Manga, Manhua, ...)."""

    __tablename__ = "comic_types"
    __table_args__ = (CheckConstraint("name != ''", name="ck_type_non_empty_name"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    comics: Mapped[List["Comic"]] = relationship("Comic", back_populates="comic_type")

    def __repr__(self) -> str:
        return f"<ComicType(id={self.id}, name={self.name!r})>"


class Genre(Base):
    """
    Genre label.

    Relationships:
        comics: Many-to-many with Comic via comic_genres
    """

    __tablename__ = "genres"
    __table_args__ = (CheckConstraint("name != ''", name="ck_genre_non_empty_name"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    comics: Mapped[List["Comic"]] = relationship(
        "Comic", secondary=comic_genres, back_populates="genres"
    )

    def __repr__(self) -> str:
        return f"<Genre(id={self.id}, name={self.name!r})>"
