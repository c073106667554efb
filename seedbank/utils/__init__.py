"""
Utilities package for Seedbank.

- fs: Source discovery, hashing and atomic writes
- slugify: Natural-key slugs for comics and chapters
- locks: Per-key locks for worker threads
"""
from .fs import (
    atomic_write_bytes,
    atomic_write_json,
    find_source_files,
    get_content_hash,
)
from .locks import KeyedLocks
from .slugify import slugify

__all__ = [
    "atomic_write_bytes",
    "atomic_write_json",
    "find_source_files",
    "get_content_hash",
    "KeyedLocks",
    "slugify",
]
