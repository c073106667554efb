#!/usr/bin/env python3
"""
reference_manager.py
--------------------
Manages the lookup entities shared between comics: authors, artists,
comic types and genres.

All four tables have the same shape (unique ``name``), so one manager
serves them, dispatching on a kind string. Lookups are case-insensitive;
the first casing inserted is the one stored.

Usage:
    refs = ReferenceManager(session, logger)

    author, created = refs.get_or_create("author", "Jane Doe")
    same = refs.get_by_name("author", "  JANE   doe ")
"""
from typing import Dict, Optional, Tuple, Type, Union

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from seedbank.core.exceptions import DatabaseError, ValidationError
from seedbank.core.validators import DataValidator
from seedbank.database.decorators import handle_db_errors, log_database_operation
from seedbank.database.models import Artist, Author, ComicType, Genre
from .base_manager import BaseManager

ReferenceEntity = Union[Author, Artist, ComicType, Genre]

REFERENCE_MODELS: Dict[str, Type[ReferenceEntity]] = {
    "author": Author,
    "artist": Artist,
    "type": ComicType,
    "genre": Genre,
}


class ReferenceManager(BaseManager):
    """Find-or-create access to the four reference tables."""

    @staticmethod
    def model_for(kind: str) -> Type[ReferenceEntity]:
        """
        Model class of a reference kind.

        Raises:
            ValidationError: For unknown kinds
        """
        try:
            return REFERENCE_MODELS[kind]
        except KeyError:
            raise ValidationError(
                f"Unknown reference kind '{kind}', expected one of {sorted(REFERENCE_MODELS)}"
            ) from None

    @handle_db_errors
    def get_by_name(self, kind: str, name: str) -> Optional[ReferenceEntity]:
        """
        Case-insensitive lookup by name.

        Args:
            kind: 'author', 'artist', 'type' or 'genre'
            name: Name as found in the source

        Returns:
            Entity if found, None otherwise
        """
        model = self.model_for(kind)
        key = DataValidator.normalize_key(name)
        if not key:
            return None
        return (
            self.session.query(model)
            .filter(func.lower(model.name) == key)
            .order_by(model.id)
            .first()
        )

    @handle_db_errors
    @log_database_operation("get_or_create_reference")
    def get_or_create(self, kind: str, name: str) -> Tuple[ReferenceEntity, bool]:
        """
        Return the entity named ``name``, inserting it if needed.

        On a unique violation (another worker inserted the same name) the
        session is rolled back and the lookup is repeated once; it is never
        looped.

        Args:
            kind: Reference kind
            name: Display name, already normalized by the caller

        Returns:
            Tuple of (entity, created); created is False when the row already
            existed, including when another worker inserted it first

        Raises:
            ValidationError: If the name is empty
            DatabaseError: If the entity can be neither found nor created
        """
        model = self.model_for(kind)
        display = DataValidator.normalize_string(name)
        if not display:
            raise ValidationError(f"Empty {kind} name")

        existing = self.get_by_name(kind, display)
        if existing is not None:
            return existing, False

        try:
            entity = model(name=display)
            self.session.add(entity)
            self.session.flush()
            return entity, True
        except IntegrityError:
            self.session.rollback()
            existing = self.get_by_name(kind, display)
            if existing is not None:
                return existing, False
            raise DatabaseError(
                f"Failed to create {model.__name__} '{display}' even after handling race condition"
            )

    @handle_db_errors
    def count(self, kind: str) -> int:
        """Number of entities of a kind."""
        return self._count(self.model_for(kind))
