"""
Entity managers for the Seedbank database.

Each manager wraps one session and exposes natural-key operations for a
family of tables.
"""
from .base_manager import BaseManager
from .chapter_manager import ChapterManager
from .comic_manager import ComicManager
from .reference_manager import REFERENCE_MODELS, ReferenceManager
from .user_manager import UserManager, hash_password, verify_password

__all__ = [
    "BaseManager",
    "ChapterManager",
    "ComicManager",
    "REFERENCE_MODELS",
    "ReferenceManager",
    "UserManager",
    "hash_password",
    "verify_password",
]
