#!/usr/bin/env python3
"""
entity_resolver.py
------------------
Find-or-create resolution of the lookup entities shared between comics.

The ReferenceResolver turns free-text author, artist, type and genre names
into database ids, creating rows on first sight and remembering them for
the rest of the run.

Key Features:
    - Case/whitespace-insensitive cache keys, original casing stored
    - Placeholder names ("", "_", "n/a", ...) map to "Unknown <Kind>"
    - Per-key locks: concurrent first sightings of one name insert once
    - Each resolution commits in its own short session, so a rollback on a
      unique-constraint race never discards a record's pending work
    - Transient lock errors retried through execute_with_retry

Resolution Flow:
    1. Normalize the raw name
    2. Check the in-process cache
    3. Look the name up in the database (case-insensitive)
    4. Insert; on a unique conflict look it up once more
    5. Cache the id

Usage:
    resolver = ReferenceResolver(db, logger)
    author_id = resolver.resolve("author", " jane   DOE ")
    genre_ids = resolver.resolve_many("genre", ["Action", "action", "Drama"])
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

# --- Local imports ---
from seedbank.core.exceptions import (
    DatabaseError,
    FatalPersistenceError,
    ReferenceResolutionError,
    ValidationError,
)
from seedbank.core.logging_manager import SeedbankLogger, safe_logger
from seedbank.core.validators import DataValidator
from seedbank.database.decorators import execute_with_retry
from seedbank.database.manager import SeedbankDB
from seedbank.database.managers import REFERENCE_MODELS, ReferenceManager
from seedbank.utils.locks import KeyedLocks

REFERENCE_KINDS: Tuple[str, ...] = tuple(REFERENCE_MODELS)


@dataclass
class ResolverStats:
    """
    Cache statistics of one run.

    Attributes:
        hits: Resolutions answered from the cache
        misses: Resolutions that went to the database
        created: Rows inserted
    """

    hits: int = 0
    misses: int = 0
    created: int = 0

    def summary(self) -> str:
        return f"{self.hits} cache hits, {self.misses} lookups, {self.created} created"


def placeholder_name(kind: str) -> str:
    """
    Sentinel name used for missing references.

    Examples:
        >>> placeholder_name("author")
        'Unknown Author'
    """
    return f"Unknown {kind.capitalize()}"


def normalize_reference(kind: str, raw_name: Optional[str]) -> Tuple[str, str]:
    """
    Display name and cache key of a raw reference name.

    Examples:
        >>> normalize_reference("author", "  Jane   Doe ")
        ('Jane Doe', 'jane doe')
        >>> normalize_reference("artist", "_")
        ('Unknown Artist', 'unknown artist')
    """
    if raw_name is None or DataValidator.is_placeholder(raw_name):
        display = placeholder_name(kind)
    else:
        display = DataValidator.normalize_string(raw_name) or placeholder_name(kind)
    return display, display.lower()


class ReferenceResolver:
    """
    Per-run cache in front of the reference tables.

    Attributes:
        db: Database manager (sessions are opened per resolution)
        logger: Optional logger
        retry_attempts: Attempts for transient persistence errors
        retry_base_delay: First backoff delay in seconds
    """

    def __init__(
        self,
        db: SeedbankDB,
        logger: Optional[SeedbankLogger] = None,
        retry_attempts: int = 3,
        retry_base_delay: float = 0.5,
    ) -> None:
        self.db = db
        self.logger = logger
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay

        self._cache: Dict[Tuple[str, str], int] = {}
        self._lock = threading.Lock()
        self._key_locks = KeyedLocks()
        self._stats = ResolverStats()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def resolve(self, kind: str, raw_name: Optional[str]) -> int:
        """
        Id of the reference entity named ``raw_name``.

        Args:
            kind: 'author', 'artist', 'type' or 'genre'
            raw_name: Name as found in the source (may be empty/placeholder)

        Returns:
            Primary key of the entity

        Raises:
            ReferenceResolutionError: If the entity can be neither found nor created
            FatalPersistenceError: If the database is unreachable
        """
        if kind not in REFERENCE_KINDS:
            raise ReferenceResolutionError(
                f"Unknown reference kind '{kind}', expected one of {list(REFERENCE_KINDS)}"
            )

        display, key = normalize_reference(kind, raw_name)
        cache_key = (kind, key)

        cached = self._cached(cache_key)
        if cached is not None:
            return cached

        with self._key_locks.hold(cache_key):
            cached = self._cached(cache_key)
            if cached is not None:
                return cached

            with self._lock:
                self._stats.misses += 1

            try:
                entity_id, created = execute_with_retry(
                    lambda: self._find_or_create(kind, display),
                    max_attempts=self.retry_attempts,
                    base_delay=self.retry_base_delay,
                    logger=self.logger,
                )
            except FatalPersistenceError:
                raise
            except (DatabaseError, ValidationError) as e:
                safe_logger(self.logger).log_error(e, {"kind": kind, "name": display})
                raise ReferenceResolutionError(
                    f"Could not resolve {kind} '{display}': {e}"
                ) from e

            with self._lock:
                self._cache[cache_key] = entity_id
                if created:
                    self._stats.created += 1

            if created:
                safe_logger(self.logger).log_debug(
                    f"Created {kind}", {"name": display, "id": entity_id}
                )
            return entity_id

    def resolve_many(self, kind: str, raw_names: Iterable[Optional[str]]) -> List[int]:
        """
        Resolve several names, preserving first-seen order without duplicates.

        Names that normalize to the same key resolve once.
        """
        ids: List[int] = []
        for raw_name in raw_names:
            entity_id = self.resolve(kind, raw_name)
            if entity_id not in ids:
                ids.append(entity_id)
        return ids

    def stats(self) -> ResolverStats:
        """Snapshot of the cache statistics."""
        with self._lock:
            return ResolverStats(self._stats.hits, self._stats.misses, self._stats.created)

    def clear(self) -> None:
        """Forget every cached id."""
        with self._lock:
            self._cache.clear()
            self._stats = ResolverStats()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _cached(self, cache_key: Tuple[str, str]) -> Optional[int]:
        with self._lock:
            entity_id = self._cache.get(cache_key)
            if entity_id is not None:
                self._stats.hits += 1
            return entity_id

    def _find_or_create(self, kind: str, display: str) -> Tuple[int, bool]:
        with self.db.session_scope() as session:
            entity, created = ReferenceManager(session, self.logger).get_or_create(kind, display)
            return entity.id, created
