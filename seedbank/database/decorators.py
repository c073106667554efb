#!/usr/bin/env python3
"""
decorators.py
--------------------
Shared decorators and retry helpers for database operations.

- log_database_operation: timing + structured log lines around manager calls
- handle_db_errors: translate SQLAlchemy errors into the project hierarchy
- classify_db_error: decide transient / fatal / plain for one error
- execute_with_retry: the single retry utility for transient failures
"""
from __future__ import annotations

import time
from datetime import datetime
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)

from seedbank.core.exceptions import (
    DatabaseError,
    FatalPersistenceError,
    SeedbankError,
    TransientPersistenceError,
)
from seedbank.core.logging_manager import SeedbankLogger, safe_logger

T = TypeVar("T")

_TRANSIENT_MARKERS = (
    "locked",
    "busy",
    "deadlock",
    "could not serialize",
    "serialization failure",
    "lock timeout",
)
_FATAL_MARKERS = (
    "unable to open database",
    "could not connect",
    "connection refused",
    "authentication failed",
    "password authentication",
    "access denied",
    "no such host",
    "server closed the connection",
    "readonly database",
    "disk i/o error",
)


def log_database_operation(operation_name: str):
    """
    Decorator to log database operations with timing and context.

    Args:
        operation_name: Name of the operation being logged

    Returns:
        Decorator function
    """

    def decorator(function: Callable) -> Callable:
        @wraps(function)
        def wrapper(self, *args, **kwargs):
            start_time = datetime.now()
            operation_id = f"{operation_name}_{start_time.strftime('%Y%m%d_%H%M%S_%f')}"
            logger = getattr(self, "logger", None)

            if logger:
                logger.log_debug(
                    f"Starting {operation_name}",
                    {
                        "operation_id": operation_id,
                        "args_count": len(args),
                        "kwargs_keys": list(kwargs.keys()),
                    },
                )

            try:
                result = function(self, *args, **kwargs)

                duration = (datetime.now() - start_time).total_seconds()
                if logger:
                    logger.log_operation(
                        f"{operation_name}_completed",
                        {
                            "operation_id": operation_id,
                            "duration_seconds": duration,
                            "success": True,
                        },
                    )

                return result

            except Exception as e:
                duration = (datetime.now() - start_time).total_seconds()
                if logger:
                    logger.log_error(
                        e,
                        {
                            "operation": operation_name,
                            "operation_id": operation_id,
                            "duration_seconds": duration,
                        },
                    )
                raise

        return wrapper

    return decorator


def classify_db_error(error: Exception) -> DatabaseError:
    """
    Map a SQLAlchemy/driver error onto the project hierarchy.

    - lock / busy / deadlock / serialization  -> TransientPersistenceError
    - connection / authentication / open      -> FatalPersistenceError
    - integrity violations                    -> DatabaseError
    - everything else                         -> DatabaseError

    Args:
        error: Exception raised by SQLAlchemy or the DBAPI driver

    Returns:
        Exception instance to raise (chained by the caller)
    """
    if isinstance(error, DatabaseError):
        return error

    message = str(error).lower()

    if isinstance(error, IntegrityError):
        return DatabaseError(f"Data integrity violation: {error}")

    if any(marker in message for marker in _TRANSIENT_MARKERS):
        return TransientPersistenceError(f"Transient database error: {error}")

    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return FatalPersistenceError(f"Database connection lost: {error}")

    if any(marker in message for marker in _FATAL_MARKERS):
        return FatalPersistenceError(f"Database unavailable: {error}")

    if isinstance(error, InterfaceError):
        return FatalPersistenceError(f"Database interface error: {error}")

    return DatabaseError(f"Database operation failed: {error}")


def handle_db_errors(function: Callable) -> Callable:
    """
    Decorator to handle common database errors.

    SQLAlchemy errors are classified and re-raised as project exceptions;
    project exceptions pass through untouched.

    Args:
        function: Function to wrap

    Returns:
        Wrapped function with error handling
    """

    @wraps(function)
    def wrapper(*args, **kwargs):
        try:
            return function(*args, **kwargs)
        except SeedbankError:
            raise
        except SQLAlchemyError as e:
            raise classify_db_error(e) from e

    return wrapper


def execute_with_retry(
    operation: Callable[[], T],
    max_attempts: int = 3,
    base_delay: float = 0.5,
    logger: Optional[SeedbankLogger] = None,
    sleep: Callable[[float], Any] = time.sleep,
) -> T:
    """
    Execute an operation, retrying transient persistence failures.

    Waits ``base_delay * 2**attempt`` between attempts. Raw
    OperationalErrors are classified first, so callers may pass code that
    has not been wrapped with handle_db_errors.

    Args:
        operation: Zero-argument callable doing one unit of work
        max_attempts: Total attempts, including the first
        base_delay: First backoff delay in seconds
        logger: Optional logger for retry lines
        sleep: Sleep function (injectable for tests)

    Returns:
        Result of the operation

    Raises:
        TransientPersistenceError: If all attempts are exhausted
        DatabaseError: For non-transient failures (not retried)
    """
    log = safe_logger(logger)

    for attempt in range(max_attempts):
        try:
            return operation()
        except OperationalError as e:
            error = classify_db_error(e)
            if not isinstance(error, TransientPersistenceError):
                raise error from e
            if attempt >= max_attempts - 1:
                raise error from e
        except TransientPersistenceError:
            if attempt >= max_attempts - 1:
                raise

        wait_time = base_delay * (2**attempt)
        log.log_debug(
            f"Transient database error, retrying in {wait_time}s",
            {"attempt": attempt + 1, "max_attempts": max_attempts},
        )
        sleep(wait_time)

    # Unreachable with max_attempts >= 1
    raise DatabaseError("Retry loop completed without success")
