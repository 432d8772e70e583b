#!/usr/bin/env python3
"""
manager.py
--------------------
Local cache database for the Midweave library.

Provides the CacheDB class, an SQLite mirror of the remote entry store.
Handles:
    - Initialization of the database engine and sessionmaker
    - Schema creation (create_all; the cache is rebuildable from the remote)
    - Transactional session scopes with logging
    - Entry reads/writes through EntryManager
    - Sync bookkeeping through SyncStateManager
    - Destroy-and-reopen for forced resyncs

Core Operations:
    Entries:
        - add_entry: Insert with a newly assigned key
        - put_entry / update_entry / delete_entry: By key
        - get_entry / get_all_entries / get_featured_entries / search_entries
        - replace_all_entries: Atomic rebuild used by resync
        - count_entries

    Maintenance:
        - record_sync / last_sync: Resync bookkeeping
        - export_json / import_json: Full-table dump and restore
        - destroy / reopen: Drop the database file and start fresh

Notes
==============
- Every public method runs in its own session_scope() transaction
- Entries cross the API as LibraryEntry dataclasses, never ORM rows
- Retry logic for SQLite lock contention lives in BaseManager
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

# --- Third party ---
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

# --- Local imports ---
from midweave.core.exceptions import DatabaseError
from midweave.core.logging_manager import MidweaveLogger, safe_logger
from midweave.dataclasses.library_entry import LibraryEntry

from .decorators import handle_db_errors, log_database_operation
from .managers import EntryManager, SyncStateManager
from .models import Base, SyncState

LIBRARY_SCOPE = "library"


class CacheDB:
    """
    SQLite cache mirroring the remote entry store.

    Attributes:
        db_path: Filesystem path to the SQLite database file
        engine: SQLAlchemy engine instance
        SessionLocal: SQLAlchemy session factory
        logger: Optional MidweaveLogger

    Usage:
        cache = CacheDB("~/midweave/data/cache/midweave.db", log_dir=LOG_DIR)
        for entry in cache.get_all_entries():
            print(entry.id, entry.title)
    """

    # ---- Initialization ----
    def __init__(
        self,
        db_path: Union[str, Path],
        log_dir: Optional[Union[str, Path]] = None,
        logger: Optional[MidweaveLogger] = None,
    ) -> None:
        """
        Initialize database engine and session factory.

        Args:
            db_path: Path to the SQLite file (created if missing)
            log_dir: Directory for a dedicated 'cache' component log
            logger: Existing logger to use instead of log_dir
        """
        self.db_path = Path(db_path).expanduser().resolve()

        if logger is not None:
            self.logger: Optional[MidweaveLogger] = logger
        elif log_dir:
            self.logger = MidweaveLogger(
                Path(log_dir).expanduser().resolve() / "system",
                component_name="cache",
            )
        else:
            self.logger = None

        self._setup_engine()

    def _setup_engine(self) -> None:
        """Create engine, session factory and schema."""
        try:
            safe_logger(self.logger).log_operation(
                "cache_init_start", {"db_path": str(self.db_path)}
            )
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

            self.engine: Engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                pool_pre_ping=True,
            )
            self.SessionLocal: sessionmaker = sessionmaker(
                bind=self.engine,
                autoflush=True,
                expire_on_commit=False,
            )
            self.initialize_schema()

            safe_logger(self.logger).log_operation(
                "cache_init_complete", {"success": True}
            )
        except Exception as e:
            safe_logger(self.logger).log_error(e, {"operation": "cache_init"})
            raise DatabaseError(f"Cache initialization failed: {e}") from e

    @handle_db_errors
    def initialize_schema(self) -> None:
        """Create any missing tables."""
        Base.metadata.create_all(self.engine)

    # ---- Session Management ----
    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Provide a transactional scope around a series of operations.

        Commits on success, rolls back and re-raises on error, always closes.

        Usage:
            with cache.session_scope() as session:
                EntryManager(session, cache.logger).put(entry)
        """
        session = self.SessionLocal()
        session_id = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        logger = safe_logger(self.logger)
        logger.log_debug("session_start", {"session_id": session_id})

        try:
            yield session
            session.commit()
            logger.log_debug("session_commit", {"session_id": session_id})
        except Exception as e:
            session.rollback()
            logger.log_error(
                e, {"operation": "session_rollback", "session_id": session_id}
            )
            raise
        finally:
            session.close()
            logger.log_debug("session_close", {"session_id": session_id})

    def _entries(self, session: Session) -> EntryManager:
        return EntryManager(session, self.logger)

    # ---- Entry reads ----
    @handle_db_errors
    def get_entry(self, entry_id: str) -> Optional[LibraryEntry]:
        with self.session_scope() as session:
            return self._entries(session).get(entry_id)

    @handle_db_errors
    def get_all_entries(self) -> List[LibraryEntry]:
        """All cached entries, most recently modified first."""
        with self.session_scope() as session:
            return self._entries(session).get_all()

    @handle_db_errors
    def get_featured_entries(self) -> List[LibraryEntry]:
        with self.session_scope() as session:
            return self._entries(session).get_featured()

    @handle_db_errors
    def search_entries(self, query: str) -> List[LibraryEntry]:
        with self.session_scope() as session:
            return self._entries(session).search(query)

    @handle_db_errors
    def count_entries(self) -> int:
        with self.session_scope() as session:
            return self._entries(session).count()

    # ---- Entry writes ----
    @handle_db_errors
    def add_entry(self, entry: LibraryEntry) -> LibraryEntry:
        """Insert a new entry; the returned copy carries the assigned id."""
        with self.session_scope() as session:
            return self._entries(session).add(entry)

    @handle_db_errors
    def put_entry(self, entry: LibraryEntry) -> LibraryEntry:
        with self.session_scope() as session:
            return self._entries(session).put(entry)

    @handle_db_errors
    def update_entry(self, entry: LibraryEntry) -> LibraryEntry:
        with self.session_scope() as session:
            return self._entries(session).update(entry)

    @handle_db_errors
    def delete_entry(self, entry_id: str) -> bool:
        with self.session_scope() as session:
            return self._entries(session).delete(entry_id)

    @handle_db_errors
    @log_database_operation("replace_all_entries")
    def replace_all_entries(
        self, entries: Iterable[LibraryEntry], reserve_up_to: int = 0
    ) -> Tuple[int, List[str]]:
        """
        Atomically swap the cached table for `entries`.

        Returns:
            Tuple of (rows added, skipped ids)
        """
        with self.session_scope() as session:
            return self._entries(session).replace_all(entries, reserve_up_to)

    # ---- Sync bookkeeping ----
    @handle_db_errors
    def record_sync(self, scope: str = LIBRARY_SCOPE, **fields: Any) -> None:
        with self.session_scope() as session:
            SyncStateManager(session, self.logger).record(scope, **fields)

    @handle_db_errors
    def last_sync(self, scope: str = LIBRARY_SCOPE) -> Optional[SyncState]:
        """The stored SyncState for a scope, detached from its session."""
        with self.session_scope() as session:
            state = SyncStateManager(session, self.logger).get(scope)
            if state is not None:
                session.expunge(state)
            return state

    # ---- Export / import ----
    @handle_db_errors
    @log_database_operation("export_json")
    def export_json(self) -> Dict[str, Any]:
        with self.session_scope() as session:
            return self._entries(session).export_data()

    @handle_db_errors
    @log_database_operation("import_json")
    def import_json(self, data: Dict[str, Any]) -> int:
        """Replace the cache with an export; all-or-nothing."""
        with self.session_scope() as session:
            return self._entries(session).import_data(data)

    # ---- Lifecycle ----
    def close(self) -> None:
        self.engine.dispose()

    @log_database_operation("destroy_cache")
    def destroy(self) -> None:
        """Dispose connections and delete the database file."""
        self.engine.dispose()
        for suffix in ("", "-journal", "-wal", "-shm"):
            path = self.db_path.with_name(self.db_path.name + suffix)
            if path.exists():
                path.unlink()

    def reopen(self) -> None:
        """Recreate engine and schema after destroy()."""
        self._setup_engine()
