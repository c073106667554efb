#!/usr/bin/env python3
"""
base_manager.py
--------------------
Base manager providing common persistence operations and utilities.
All entity managers inherit from this class.

Key Features:
    - Natural-key upsert: atomic INSERT .. ON CONFLICT DO UPDATE on SQLite
      and PostgreSQL, find-then-insert/update elsewhere
    - Delete-then-reinsert replacement of owned child rows
    - Generic lookup and count helpers

Usage:
    Subclass BaseManager for each entity type and implement the natural-key
    operations (get_by_key, upsert, replace_* ...):

    class ComicManager(BaseManager):
        def upsert(self, values: Dict[str, Any]) -> Tuple[int, bool]:
            return self._upsert(Comic, values, ["slug"])
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from abc import ABC
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple, Type, TypeVar

# --- Third party imports ---
from sqlalchemy import delete, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Mapped, Session

# --- Local imports ---
from seedbank.core.exceptions import DatabaseError
from seedbank.core.logging_manager import SeedbankLogger, safe_logger
from seedbank.database.models.base import utcnow

# Dialects offering INSERT .. ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class HasId(Protocol):
    """Protocol for objects that have an id attribute."""

    id: Mapped[int]


T = TypeVar("T", bound=HasId)


class BaseManager(ABC):
    """
    Abstract base manager providing common persistence operations.

    Attributes:
        session: SQLAlchemy session for database operations
        logger: Optional logger for operation tracking
    """

    def __init__(self, session: Session, logger: Optional[SeedbankLogger] = None):
        """
        Initialize the base manager.

        Args:
            session: SQLAlchemy session
            logger: Optional logger for operation tracking
        """
        self.session = session
        self.logger = logger

    # -------------------------------------------------------------------------
    # Core Helper Methods
    # -------------------------------------------------------------------------

    @property
    def dialect_name(self) -> str:
        """Name of the bound database dialect ('sqlite', 'postgresql', ...)."""
        return self.session.get_bind().dialect.name

    def _find_id(self, model_class: Type[T], key_fields: Dict[str, Any]) -> Optional[int]:
        """Primary key of the row matching key_fields, or None."""
        stmt = select(model_class.id).filter_by(**key_fields)
        return self.session.execute(stmt).scalar_one_or_none()

    def _upsert(
        self,
        model_class: Type[T],
        values: Dict[str, Any],
        conflict_fields: Sequence[str],
        update_fields: Optional[Iterable[str]] = None,
    ) -> Tuple[int, bool]:
        """
        Insert a row or update the row sharing its natural key.

        Args:
            model_class: ORM model class
            values: Column values for the insert
            conflict_fields: Columns forming the natural key (unique constraint)
            update_fields: Columns overwritten on conflict (default: every
                column in values except the key)

        Returns:
            Tuple of (row id, created) where created is False for updates

        Notes:
            Whether the row existed is read before the write. A concurrent
            insert of the same key between the two statements is reported
            as "created" by both writers; the stored row is still single.
        """
        key_fields = {name: values[name] for name in conflict_fields}
        if update_fields is None:
            update_fields = [name for name in values if name not in conflict_fields]
        update_fields = list(update_fields)

        existing_id = self._find_id(model_class, key_fields)
        now = utcnow()
        insert_values = {"created_at": now, "updated_at": now, **values}
        if not hasattr(model_class, "updated_at"):
            insert_values.pop("created_at")
            insert_values.pop("updated_at")

        dialect_insert = _UPSERT_INSERTS.get(self.dialect_name)
        if dialect_insert is not None:
            stmt = dialect_insert(model_class).values(**insert_values)
            set_ = {name: stmt.excluded[name] for name in update_fields}
            if hasattr(model_class, "updated_at"):
                set_["updated_at"] = stmt.excluded["updated_at"]
            if set_:
                stmt = stmt.on_conflict_do_update(index_elements=list(conflict_fields), set_=set_)
            else:
                stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict_fields))
            self.session.execute(stmt)
        elif existing_id is None:
            self.session.execute(insert(model_class).values(**insert_values))
        else:
            obj = self.session.get(model_class, existing_id)
            for name in update_fields:
                setattr(obj, name, values[name])
            if hasattr(model_class, "updated_at"):
                obj.updated_at = now

        self.session.flush()
        row_id = self._find_id(model_class, key_fields)
        if row_id is None:
            raise DatabaseError(
                f"{model_class.__name__} upsert did not produce a row for {key_fields}"
            )

        safe_logger(self.logger).log_debug(
            f"{model_class.__name__} {'created' if existing_id is None else 'updated'}",
            {"key": key_fields, "id": row_id},
        )
        return row_id, existing_id is None

    def _replace_children(
        self,
        model_class: type,
        parent_field: str,
        parent_id: int,
        rows: List[Dict[str, Any]],
    ) -> int:
        """
        Replace every child row of a parent (delete-then-reinsert).

        Args:
            model_class: Child model or association Table
            parent_field: Column holding the parent id
            parent_id: Parent primary key
            rows: Column values of the new children (without the parent id)

        Returns:
            Number of rows inserted
        """
        table = getattr(model_class, "__table__", model_class)
        self.session.execute(delete(table).where(table.c[parent_field] == parent_id))
        if rows:
            self.session.execute(
                insert(table), [{parent_field: parent_id, **row} for row in rows]
            )
        return len(rows)

    # -------------------------------------------------------------------------
    # Generic Lookup Helpers
    # -------------------------------------------------------------------------

    def _get_by_field(self, model_class: Type[T], field_name: str, value: Any) -> Optional[T]:
        """
        Get entity by a specific field value.

        Args:
            model_class: ORM model class
            field_name: Field name to filter by
            value: Value to look up

        Returns:
            Entity if found, None otherwise
        """
        if value is None:
            return None
        return self.session.query(model_class).filter_by(**{field_name: value}).first()

    def _count(self, model_class: Type[T], **filters: Any) -> int:
        """
        Count entities with optional filtering.

        Args:
            model_class: ORM model class
            **filters: Additional filter conditions

        Returns:
            Count of matching entities
        """
        query = self.session.query(model_class)
        if filters:
            query = query.filter_by(**filters)
        return query.count()
