"""
Enumeration Types
------------------

Enum classes for the Seedbank database models.

Enums:
    - ComicStatus: Publication status of a comic
    - UserRole: Account role of a user
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from enum import Enum
from typing import List, Optional


class ComicStatus(str, Enum):
    """
    Publication status of a comic.

    Anything a source reports outside this set is stored as ONGOING.
    """

    ONGOING = "Ongoing"
    COMPLETED = "Completed"
    HIATUS = "Hiatus"
    DROPPED = "Dropped"
    SEASON_END = "Season End"
    COMING_SOON = "Coming Soon"

    @classmethod
    def choices(cls) -> List[str]:
        """Get all available status choices."""
        return [status.value for status in cls]

    @classmethod
    def from_raw(cls, value: Optional[str]) -> "ComicStatus":
        """
        Case-insensitive lookup with ONGOING fallback.

        Examples:
            >>> ComicStatus.from_raw("completed")
            <ComicStatus.COMPLETED: 'Completed'>
            >>> ComicStatus.from_raw("on break")
            <ComicStatus.ONGOING: 'Ongoing'>
        """
        if value:
            wanted = " ".join(str(value).split()).lower()
            for status in cls:
                if status.value.lower() == wanted:
                    return status
        return cls.ONGOING


class UserRole(str, Enum):
    """Account role of a user."""

    USER = "user"
    ADMIN = "admin"
    MODERATOR = "moderator"

    @classmethod
    def choices(cls) -> List[str]:
        """Get all available role choices."""
        return [role.value for role in cls]
