#!/usr/bin/env python3
"""
base_manager.py
--------------------
Base manager providing common session utilities for cache managers.

Key Features:
    - Retry logic for SQLite lock handling
    - Shared session and logger wiring

Example:
    class EntryManager(BaseManager):
        def get(self, entry_id: str) -> Optional[LibraryEntry]:
            row = self._execute_with_retry(
                lambda: self.session.get(CachedEntry, int(entry_id))
            )
            ...
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import time
from abc import ABC
from typing import Any, Callable, Optional

# --- Third party imports ---
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

# --- Local imports ---
from midweave.core.exceptions import DatabaseError
from midweave.core.logging_manager import MidweaveLogger, safe_logger


class BaseManager(ABC):
    """
    Abstract base manager for cache tables.

    Attributes:
        session: SQLAlchemy session for database operations
        logger: Optional logger for operation tracking
    """

    def __init__(self, session: Session, logger: Optional[MidweaveLogger] = None):
        self.session = session
        self.logger = logger

    def _execute_with_retry(
        self,
        operation: Callable[[], Any],
        max_retries: int = 3,
        retry_delay: float = 0.1,
    ) -> Any:
        """
        Execute a database operation, retrying while SQLite is locked.

        Args:
            operation: Callable that performs the operation
            max_retries: Maximum number of attempts
            retry_delay: Base delay between retries (exponential backoff)

        Returns:
            Result of the operation

        Raises:
            OperationalError: If the error is not a lock or retries are exhausted
        """
        for attempt in range(max_retries):
            try:
                return operation()
            except OperationalError as e:
                error_msg = str(e).lower()
                if (
                    "locked" in error_msg or "busy" in error_msg
                ) and attempt < max_retries - 1:
                    wait_time = retry_delay * (2**attempt)
                    safe_logger(self.logger).log_debug(
                        f"Database locked, retrying in {wait_time}s",
                        {"attempt": attempt + 1, "max_retries": max_retries},
                    )
                    time.sleep(wait_time)
                    continue
                raise

        raise DatabaseError("Retry loop completed without success")
