"""
Association Tables
-------------------

Many-to-many relationship tables for the Seedbank database.

These are pure association tables with no additional metadata.
"""
# --- Third party imports ---
from sqlalchemy import Column, ForeignKey, Integer, Table

# --- Local imports ---
from .base import Base

comic_genres = Table(
    "comic_genres",
    Base.metadata,
    Column(
        "comic_id",
        Integer,
        ForeignKey("comics.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("genre_id", Integer, ForeignKey("genres.id", ondelete="CASCADE"), primary_key=True),
)
