#!/usr/bin/env python3
"""
exceptions.py
--------------------
Custom exception classes for the Seedbank project.

This module defines the hierarchy of exceptions used throughout the import
pipeline. Each class maps to one handling policy at the record boundary:
skip the record, retry the call, fall back to a placeholder, or abort the run.

Exception Hierarchy:
    Exception (built-in)
    └── SeedbankError - Base for all project errors
        ├── ConfigError - Invalid or inconsistent configuration
        ├── SourceLoadError - Unreadable or malformed source file
        ├── ValidationError - Data validation failures
        │   └── RecordValidationError - One raw record failed its schema
        ├── ReferenceResolutionError - Lookup entity could not be found/created
        ├── ParentNotFoundError - Required parent row is missing
        ├── DatabaseError - Base for persistence errors
        │   ├── TransientPersistenceError - Retryable (locks, serialization)
        │   └── FatalPersistenceError - Connection/auth failures, abort run
        └── AssetError - Base for asset errors (never fatal)
            ├── AssetFetchError - Network fetch failed
            └── AssetWriteError - Storing the asset failed

Usage:
    from seedbank.core.exceptions import DatabaseError, ValidationError

    try:
        manager.upsert(record)
    except TransientPersistenceError:
        ...  # retried by execute_with_retry
    except DatabaseError as e:
        logger.log_error(e)
"""
from __future__ import annotations

from typing import Optional


class SeedbankError(Exception):
    """Base exception for all Seedbank errors."""

    pass


class ConfigError(SeedbankError):
    """
    Exception for invalid configuration.

    Raised when configuration values are out of range or inconsistent:
    - Concurrency outside the allowed bounds
    - Unreadable YAML configuration file
    - Unknown record kinds

    Examples:
        >>> raise ConfigError("concurrency must be between 1 and 16, got 40")
    """

    pass


class SourceLoadError(SeedbankError):
    """
    Exception for source files that cannot be read or decoded.

    The loader logs these and moves on to the next file.

    Examples:
        >>> raise SourceLoadError("comics.json: Expecting value: line 1 column 1")
    """

    pass


class ValidationError(SeedbankError):
    """
    Exception for data validation failures.

    Raised when input data fails validation checks:
    - Missing required fields
    - Type mismatches
    - Malformed nested structures

    Examples:
        >>> raise ValidationError("Missing required field: 'email'")
    """

    pass


class RecordValidationError(ValidationError):
    """
    Validation failure for a single raw record.

    Carries the dotted path of the offending field so the caller can report
    exactly what was wrong without parsing the message.

    Attributes:
        field: Dotted field path (e.g. "comic.slug", "images[2].url")
        message: Human readable description
        kind: Record kind being validated, when known

    Examples:
        >>> err = RecordValidationError("email", "not a valid email address")
        >>> str(err)
        'email: not a valid email address'
    """

    def __init__(self, field: str, message: str, kind: Optional[str] = None) -> None:
        self.field = field
        self.message = message
        self.kind = kind
        super().__init__(f"{field}: {message}")


class ReferenceResolutionError(SeedbankError):
    """
    Exception for lookup entities (author, artist, type, genre) that could
    be neither found nor created.

    Records depending on the reference are skipped.

    Examples:
        >>> raise ReferenceResolutionError("Could not resolve author 'Jane Doe'")
    """

    pass


class ParentNotFoundError(SeedbankError):
    """
    Exception for child records whose parent row does not exist.

    A chapter whose comic has not been imported is skipped, not errored.

    Examples:
        >>> raise ParentNotFoundError("Comic not found for chapter: solo-leveling")
    """

    pass


class DatabaseError(SeedbankError):
    """
    Base exception for database-related errors.

    Raised when database operations fail due to query errors, integrity
    violations, or other database problems. Catch this to handle any
    database error, or catch the subclasses for retry/abort decisions.

    Examples:
        >>> raise DatabaseError("Data integrity violation: NOT NULL constraint failed")
    """

    pass


class TransientPersistenceError(DatabaseError):
    """
    Retryable persistence failure.

    Raised for lock contention, busy databases, deadlocks and serialization
    conflicts. The retry utility backs off exponentially and gives up after
    a bounded number of attempts.

    Examples:
        >>> raise TransientPersistenceError("database is locked")
    """

    pass


class FatalPersistenceError(DatabaseError):
    """
    Non-recoverable persistence failure.

    Raised when the database is unreachable, the file cannot be opened or
    authentication fails. Aborts the entire run instead of failing records
    one by one.

    Examples:
        >>> raise FatalPersistenceError("unable to open database file")
    """

    pass


class AssetError(SeedbankError):
    """Base exception for asset materialization failures."""

    pass


class AssetFetchError(AssetError):
    """
    Exception for remote asset downloads that fail.

    Covers connection errors, timeouts, non-2xx responses and oversized
    payloads. Never fatal: the deduplicator falls back to a placeholder.

    Examples:
        >>> raise AssetFetchError("404 Not Found: https://cdn.example.com/01.webp")
    """

    pass


class AssetWriteError(AssetError):
    """
    Exception for assets that could not be written to storage.

    Examples:
        >>> raise AssetWriteError("Permission denied: public/comics/covers")
    """

    pass
