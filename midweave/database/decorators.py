#!/usr/bin/env python3
"""
decorators.py
--------------------
Shared decorators and context managers for cache operations.

- DatabaseOperation: context manager timing a block and translating errors
- log_database_operation: decorator form for methods with a `logger`
- handle_db_errors: converts SQLAlchemy errors into DatabaseError
"""
from __future__ import annotations

import time
from datetime import datetime
from functools import wraps
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from midweave.core.exceptions import DatabaseError
from midweave.core.logging_manager import MidweaveLogger, safe_logger


class DatabaseOperation:
    """
    Context manager that logs and times a cache operation.

    On success it logs "<name>_completed" with the duration. On failure it
    logs the error and re-raises, converting SQLAlchemy errors into
    DatabaseError so callers only deal with project exceptions.

    Usage:
        with DatabaseOperation(self.logger, "replace_all", {"count": n}):
            self.session.query(CachedEntry).delete()
            ...
    """

    def __init__(
        self,
        logger: Optional[MidweaveLogger],
        operation_name: str,
        details: Optional[Dict[str, Any]] = None,
        log_start: bool = False,
    ) -> None:
        self.logger = safe_logger(logger)
        self.operation_name = operation_name
        self.details = dict(details or {})
        self.log_start = log_start
        self._start = 0.0

    def __enter__(self) -> DatabaseOperation:
        self._start = time.monotonic()
        if self.log_start:
            self.logger.log_debug(f"Starting {self.operation_name}", self.details)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        duration = time.monotonic() - self._start
        if exc is None:
            self.logger.log_operation(
                f"{self.operation_name}_completed",
                {**self.details, "duration_seconds": duration, "success": True},
            )
            return False

        self.logger.log_error(
            exc,
            {
                **self.details,
                "operation": self.operation_name,
                "duration_seconds": duration,
            },
        )
        if isinstance(exc, IntegrityError):
            raise DatabaseError(f"Data integrity violation: {exc}") from exc
        if isinstance(exc, SQLAlchemyError):
            raise DatabaseError(f"Database operation failed: {exc}") from exc
        return False


def log_database_operation(operation_name: str):
    """
    Decorator to log cache operations with timing and context.

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
            logger = safe_logger(getattr(self, "logger", None))

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
            except Exception as e:
                logger.log_error(
                    e,
                    {
                        "operation": operation_name,
                        "operation_id": operation_id,
                        "duration_seconds": (datetime.now() - start_time).total_seconds(),
                    },
                )
                raise

            logger.log_operation(
                f"{operation_name}_completed",
                {
                    "operation_id": operation_id,
                    "duration_seconds": (datetime.now() - start_time).total_seconds(),
                    "success": True,
                },
            )
            return result

        return wrapper

    return decorator


def handle_db_errors(function: Callable) -> Callable:
    """
    Decorator to handle common database errors.

    Args:
        function: Function to wrap

    Returns:
        Wrapped function raising DatabaseError instead of SQLAlchemy errors
    """

    @wraps(function)
    def wrapper(*args, **kwargs):
        try:
            return function(*args, **kwargs)
        except IntegrityError as e:
            raise DatabaseError(f"Data integrity violation: {e}") from e
        except SQLAlchemyError as e:
            raise DatabaseError(f"Database operation failed: {e}") from e

    return wrapper
