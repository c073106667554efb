#!/usr/bin/env python3
"""
manager.py
--------------------
Database manager for the Seedbank import pipeline.

Provides the SeedbankDB class owning the SQLAlchemy engine and session
factory. Handles:
    - Engine and sessionmaker setup (SQLite by default, any SQLAlchemy URL)
    - Transactional session scopes with logging
    - Schema creation
    - Connectivity checks that fail fast with FatalPersistenceError

Worker threads each open their own session through ``session_scope``; the
engine's pool is shared. SQLite connections are created with a busy
timeout and ``check_same_thread=False`` so they can be pooled across
threads, and foreign keys are switched on per connection.

Usage:
    db = SeedbankDB("sqlite:///data/seedbank.db", logger=logger)
    db.initialize_schema()
    with db.session_scope() as session:
        ComicManager(session, db.logger).upsert(values)
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, Optional

# --- Third party ---
from sqlalchemy import Engine, create_engine, event, inspect, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

# --- Local imports ---
from seedbank.core.exceptions import FatalPersistenceError
from seedbank.core.logging_manager import SeedbankLogger, safe_logger
from .decorators import classify_db_error, handle_db_errors, log_database_operation
from .models import Base

SQLITE_BUSY_TIMEOUT = 30


class SeedbankDB:
    """
    Engine and session owner for the Seedbank database.

    Attributes:
        database_url: SQLAlchemy URL
        engine: SQLAlchemy engine instance
        SessionLocal: SQLAlchemy session factory
        logger: Optional logger
    """

    # ---- Initialization ----
    def __init__(
        self,
        database_url: str,
        logger: Optional[SeedbankLogger] = None,
        pool_size: int = 5,
    ) -> None:
        """
        Initialize database engine and session factory.

        Args:
            database_url: SQLAlchemy URL (e.g. "sqlite:///data/seedbank.db")
            logger: Optional logger
            pool_size: Connections kept for worker threads (non-SQLite)
        """
        self.database_url = database_url
        self.logger = logger
        self.pool_size = pool_size
        self._setup_engine()

    @property
    def is_sqlite(self) -> bool:
        return self.engine.dialect.name == "sqlite"

    def exists(self) -> bool:
        """False only for a SQLite file that has not been created yet."""
        url = make_url(self.database_url)
        if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
            return True
        return Path(url.database).expanduser().exists()

    def _setup_engine(self) -> None:
        """Initialize database engine and session factory."""
        log = safe_logger(self.logger)
        try:
            url = make_url(self.database_url)
            log.log_operation("database_init_start", {"url": url.render_as_string(hide_password=True)})

            engine_kwargs: Dict[str, object] = {"echo": False, "pool_pre_ping": True}

            if url.get_backend_name() == "sqlite":
                if url.database and url.database != ":memory:":
                    Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
                engine_kwargs["connect_args"] = {
                    "timeout": SQLITE_BUSY_TIMEOUT,
                    "check_same_thread": False,
                }
            else:
                engine_kwargs["pool_size"] = self.pool_size
                engine_kwargs["max_overflow"] = self.pool_size

            self.engine: Engine = create_engine(url, **engine_kwargs)

            if self.engine.dialect.name == "sqlite":
                event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

            self.SessionLocal: sessionmaker = sessionmaker(
                bind=self.engine,
                autoflush=True,
                expire_on_commit=False,
            )

            log.log_operation("database_init_complete", {"success": True})

        except Exception as e:
            log.log_error(e, {"operation": "database_init"})
            raise FatalPersistenceError(f"Database initialization failed: {e}") from e

    # ---- Session Management ----
    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Provide a transactional scope around operations with logging.

        Commits on success, rolls back on any exception and re-raises it.
        SQLAlchemy errors escaping the block (including the commit) are
        classified into the project hierarchy.

        Usage:
            with db.session_scope() as session:
                ComicManager(session).upsert(values)
        """
        log = safe_logger(self.logger)
        session = self.get_session()
        session_id = datetime.now().strftime("%Y%m%d_%H%M%S_%f")

        log.log_debug("session_start", {"session_id": session_id})

        try:
            yield session
            session.commit()
            log.log_debug("session_commit", {"session_id": session_id})

        except SQLAlchemyError as e:
            session.rollback()
            log.log_debug("session_rollback", {"session_id": session_id, "error": str(e)})
            raise classify_db_error(e) from e
        except Exception as e:
            session.rollback()
            log.log_debug("session_rollback", {"session_id": session_id, "error": str(e)})
            raise
        finally:
            session.close()
            log.log_debug("session_close", {"session_id": session_id})

    def get_session(self) -> Session:
        """Create and return a new SQLAlchemy session."""
        return self.SessionLocal()

    # ---- Schema ----
    @handle_db_errors
    @log_database_operation("initialize_schema")
    def initialize_schema(self) -> None:
        """Create every missing table from the ORM models."""
        Base.metadata.create_all(bind=self.engine)

    def table_names(self) -> list:
        """Names of the tables present in the database."""
        return inspect(self.engine).get_table_names()

    @log_database_operation("check_connection")
    def check_connection(self) -> None:
        """
        Open a connection and run a trivial query.

        Raises:
            FatalPersistenceError: If the database cannot be reached
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            error = classify_db_error(e)
            if isinstance(error, FatalPersistenceError):
                raise error from e
            raise FatalPersistenceError(f"Database unavailable: {e}") from e

    def dispose(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()

    def __repr__(self) -> str:
        return f"<SeedbankDB(url={make_url(self.database_url).render_as_string(hide_password=True)!r})>"


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


