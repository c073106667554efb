"""
Content Models
--------------

Comics, chapters and their ordered image lists.

Classes:
    - Comic: A comic series, natural key ``slug``
    - ComicImage: Ordered gallery image of a comic
    - Chapter: A chapter, natural key ``(comic_id, chapter_number)``
    - ChapterImage: Ordered page image of a chapter

Image rows are owned by their parent and replaced wholesale on every
upsert (delete-then-reinsert), so ordering always mirrors the source.
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from datetime import datetime
from typing import List, Optional

# --- Third party ---
from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

# --- Local imports ---
from .associations import comic_genres
from .base import Base, TimestampMixin
from .entities import Artist, Author, ComicType, Genre
from .enums import ComicStatus


class Comic(TimestampMixin, Base):
    """
    A comic series.

    Attributes:
        id: Primary key
        title: Display title
        slug: Natural key (unique)
        description: Synopsis
        status: Publication status
        rating: Average rating, 0..10
        serialization: Publisher/serialization venue
        url: Source page URL
        image: Cover image public path
        publication_date: Last publication/update date reported by the source
        author_id / artist_id / type_id: Reference entity FKs

    Relationships:
        author, artist, comic_type: Many-to-one
        genres: Many-to-many with Genre
        images: One-to-many with ComicImage (ordered)
        chapters: One-to-many with Chapter
    """

    __tablename__ = "comics"
    __table_args__ = (
        CheckConstraint("slug != ''", name="ck_comic_non_empty_slug"),
        CheckConstraint("rating >= 0 AND rating <= 10", name="ck_comic_rating_range"),
    )

    # ---- Primary fields ----
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    slug: Mapped[str] = mapped_column(String(500), unique=True, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[ComicStatus] = mapped_column(
        SQLEnum(ComicStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=ComicStatus.ONGOING,
    )
    rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    serialization: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    image: Mapped[str] = mapped_column(String(1000), nullable=False)
    publication_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # ---- Foreign keys ----
    author_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("authors.id", ondelete="SET NULL"), nullable=True, index=True
    )
    artist_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("artists.id", ondelete="SET NULL"), nullable=True, index=True
    )
    type_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("comic_types.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # ---- Relationships ----
    author: Mapped[Optional[Author]] = relationship("Author", back_populates="comics")
    artist: Mapped[Optional[Artist]] = relationship("Artist", back_populates="comics")
    comic_type: Mapped[Optional[ComicType]] = relationship("ComicType", back_populates="comics")
    genres: Mapped[List[Genre]] = relationship(
        "Genre", secondary=comic_genres, back_populates="comics"
    )
    images: Mapped[List["ComicImage"]] = relationship(
        "ComicImage",
        back_populates="comic",
        cascade="all, delete-orphan",
        order_by="ComicImage.image_order",
    )
    chapters: Mapped[List["Chapter"]] = relationship(
        "Chapter",
        back_populates="comic",
        cascade="all, delete-orphan",
        order_by="Chapter.chapter_number",
    )

    def __repr__(self) -> str:
        return f"<Comic(id={self.id}, slug={self.slug!r})>"


class ComicImage(Base):
    """Gallery image of a comic, position given by ``image_order``."""

    __tablename__ = "comic_images"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    comic_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("comics.id", ondelete="CASCADE"), nullable=False, index=True
    )
    image_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    image_order: Mapped[int] = mapped_column(Integer, nullable=False)

    comic: Mapped[Comic] = relationship("Comic", back_populates="images")

    def __repr__(self) -> str:
        return f"<ComicImage(comic_id={self.comic_id}, order={self.image_order})>"


class Chapter(TimestampMixin, Base):
    """
    A chapter of a comic.

    Attributes:
        id: Primary key
        comic_id: Parent comic
        title: Display title
        slug: Chapter slug (derived from title when missing)
        chapter_number: Number within the comic (12, 12.5, ...)
        release_date: Release date reported by the source
        views: View count
        url: Source page URL

    Relationships:
        comic: Many-to-one with Comic
        images: One-to-many with ChapterImage (ordered)
    """

    __tablename__ = "chapters"
    __table_args__ = (
        UniqueConstraint("comic_id", "chapter_number", name="uq_chapter_comic_number"),
        CheckConstraint("chapter_number >= 0", name="ck_chapter_number_positive"),
    )

    # ---- Primary fields ----
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    comic_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("comics.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    slug: Mapped[str] = mapped_column(String(500), nullable=False)
    chapter_number: Mapped[float] = mapped_column(Float, nullable=False)
    release_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    # ---- Relationships ----
    comic: Mapped[Comic] = relationship("Comic", back_populates="chapters")
    images: Mapped[List["ChapterImage"]] = relationship(
        "ChapterImage",
        back_populates="chapter",
        cascade="all, delete-orphan",
        order_by="ChapterImage.page_number",
    )

    def __repr__(self) -> str:
        return f"<Chapter(id={self.id}, comic_id={self.comic_id}, number={self.chapter_number})>"


class ChapterImage(Base):
    """Page image of a chapter, position given by ``page_number``."""

    __tablename__ = "chapter_images"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    chapter_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("chapters.id", ondelete="CASCADE"), nullable=False, index=True
    )
    image_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    page_number: Mapped[int] = mapped_column(Integer, nullable=False)

    chapter: Mapped[Chapter] = relationship("Chapter", back_populates="images")

    def __repr__(self) -> str:
        return f"<ChapterImage(chapter_id={self.chapter_id}, page={self.page_number})>"
