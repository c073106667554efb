"""
Seedbank persistence layer.

- manager: SeedbankDB engine/session owner
- decorators: logging, error translation and retry helpers
- models: SQLAlchemy ORM models
- managers: natural-key entity managers
"""
from .decorators import classify_db_error, execute_with_retry
from .manager import SeedbankDB

__all__ = ["SeedbankDB", "classify_db_error", "execute_with_retry"]
