#!/usr/bin/env python3
"""
entry_manager.py
--------------------
Manager for cached library entries.

Works on one SQLAlchemy session and exchanges LibraryEntry dataclasses with
callers, so ORM rows never leave the session that loaded them.

Key Features:
    - add / put / update / delete by integer key
    - Full scan ordered by lastModified descending
    - Case-insensitive substring search across text and AI-analysis fields
    - replace_all() rebuilding the table inside the caller's transaction
    - JSON export / transactional import

Usage:
    with db.session_scope() as session:
        entries = EntryManager(session, logger).get_all()
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
from typing import Any, Dict, Iterable, List, Optional, Tuple

# --- Third party imports ---
from sqlalchemy import func, select, text

# --- Local imports ---
from midweave.core.exceptions import DatabaseError, EntryValidationError
from midweave.core.logging_manager import safe_logger
from midweave.dataclasses.library_entry import LibraryEntry, utc_now_iso
from midweave.dataclasses.parsers import EntryRejected, parse_entry
from midweave.database.decorators import DatabaseOperation
from midweave.database.models import CachedEntry

from .base_manager import BaseManager

EXPORT_FORMAT_VERSION = 1


def parse_key(entry_id: Any) -> Optional[int]:
    """
    Map a string id to the integer cache key.

    Only canonical decimal strings map ("7" -> 7, but not "07" or "abc"),
    so str(key) always gives the original id back.

    Examples:
        >>> parse_key("42")
        42
        >>> parse_key("legacy-42") is None
        True
    """
    if isinstance(entry_id, bool):
        return None
    if isinstance(entry_id, int):
        return entry_id if entry_id > 0 else None
    if not isinstance(entry_id, str) or not (entry_id.isascii() and entry_id.isdigit()):
        return None
    key = int(entry_id)
    if key <= 0 or str(key) != entry_id:
        return None
    return key


class EntryManager(BaseManager):
    """Read and write CachedEntry rows as LibraryEntry objects."""

    def _row(self, entry_id: Any) -> Optional[CachedEntry]:
        key = parse_key(entry_id)
        if key is None:
            return None
        return self._execute_with_retry(lambda: self.session.get(CachedEntry, key))

    def _require_key(self, entry_id: Any) -> int:
        key = parse_key(entry_id)
        if key is None:
            raise DatabaseError(f"Entry id '{entry_id}' is not a valid cache key")
        return key

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def exists(self, entry_id: Any) -> bool:
        return self._row(entry_id) is not None

    def get(self, entry_id: Any) -> Optional[LibraryEntry]:
        row = self._row(entry_id)
        return row.to_entry() if row is not None else None

    def get_all(self) -> List[LibraryEntry]:
        """All entries, most recently modified first."""
        stmt = select(CachedEntry).order_by(
            CachedEntry.last_modified.desc(), CachedEntry.id.desc()
        )
        rows = self._execute_with_retry(lambda: self.session.scalars(stmt).all())
        return [row.to_entry() for row in rows]

    def get_featured(self) -> List[LibraryEntry]:
        stmt = (
            select(CachedEntry)
            .where(CachedEntry.featured.is_(True))
            .order_by(CachedEntry.last_modified.desc(), CachedEntry.id.desc())
        )
        rows = self._execute_with_retry(lambda: self.session.scalars(stmt).all())
        return [row.to_entry() for row in rows]

    def search(self, query: str) -> List[LibraryEntry]:
        """
        Entries where the query appears in any searchable field.

        Matching is a case-insensitive substring test, OR-combined over
        title, description, prompt and every AI-analysis string or list.
        An empty query returns everything.
        """
        return [entry for entry in self.get_all() if entry.matches(query)]

    def count(self) -> int:
        stmt = select(func.count()).select_from(CachedEntry)
        return int(self._execute_with_retry(lambda: self.session.scalar(stmt)) or 0)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def add(self, entry: LibraryEntry) -> LibraryEntry:
        """
        Insert an entry and let SQLite assign its key.

        The incoming entry.id is ignored.

        Returns:
            The stored entry, carrying the newly assigned id
        """
        with DatabaseOperation(self.logger, "add_entry", {"sref": entry.parameters.sref}):
            row = CachedEntry.from_entry(entry, with_id=False)
            self.session.add(row)
            self.session.flush()
            return row.to_entry()

    def put(self, entry: LibraryEntry) -> LibraryEntry:
        """Insert or overwrite the row whose key is entry.id."""
        key = self._require_key(entry.id)
        with DatabaseOperation(self.logger, "put_entry", {"entry_id": entry.id}):
            row = self.session.get(CachedEntry, key)
            if row is None:
                row = CachedEntry.from_entry(entry)
                self.session.add(row)
            else:
                row.apply(entry)
            self.session.flush()
            return row.to_entry()

    def update(self, entry: LibraryEntry) -> LibraryEntry:
        """
        Overwrite an existing row.

        Raises:
            DatabaseError: If no row has this id
        """
        row = self._row(entry.id)
        if row is None:
            raise DatabaseError(f"Entry {entry.id} is not in the cache")
        with DatabaseOperation(self.logger, "update_entry", {"entry_id": entry.id}):
            row.apply(entry)
            self.session.flush()
            return row.to_entry()

    def delete(self, entry_id: Any) -> bool:
        """Delete a row; returns False when it was not there."""
        row = self._row(entry_id)
        if row is None:
            return False
        with DatabaseOperation(self.logger, "delete_entry", {"entry_id": str(entry_id)}):
            self.session.delete(row)
            self.session.flush()
        return True

    def replace_all(
        self,
        entries: Iterable[LibraryEntry],
        reserve_up_to: int = 0,
    ) -> Tuple[int, List[str]]:
        """
        Clear the table and repopulate it from `entries`.

        Runs inside the caller's transaction, so other connections see the
        old table until commit. Entries whose id is not a canonical integer,
        or repeats an id already inserted, are skipped.

        Args:
            entries: Validated entries to store
            reserve_up_to: Highest id known on the remote (including ids of
                rejected documents); new keys are assigned above it

        Returns:
            Tuple of (rows added, skipped ids)
        """
        entries = list(entries)
        skipped: List[str] = []
        keys: set = set()

        with DatabaseOperation(self.logger, "replace_all", {"incoming": len(entries)}):
            self.session.query(CachedEntry).delete()
            for entry in entries:
                key = parse_key(entry.id)
                if key is None or key in keys:
                    skipped.append(entry.id)
                    safe_logger(self.logger).log_warning(
                        "Skipping entry with unusable cache key", {"entry_id": entry.id}
                    )
                    continue
                keys.add(key)
                self.session.add(CachedEntry.from_entry(entry))
            self.session.flush()
            self._reserve_keys(max([reserve_up_to, *keys]) if keys else reserve_up_to)

        return len(keys), skipped

    def _reserve_keys(self, highest: int) -> None:
        """Make sure AUTOINCREMENT continues above `highest`."""
        if highest <= 0:
            return
        table = CachedEntry.__tablename__
        current = self.session.execute(
            text("SELECT seq FROM sqlite_sequence WHERE name = :name"),
            {"name": table},
        ).scalar()
        if current is None:
            self.session.execute(
                text("INSERT INTO sqlite_sequence (name, seq) VALUES (:name, :seq)"),
                {"name": table, "seq": highest},
            )
        elif current < highest:
            self.session.execute(
                text("UPDATE sqlite_sequence SET seq = :seq WHERE name = :name"),
                {"name": table, "seq": highest},
            )

    # -------------------------------------------------------------------------
    # Export / import
    # -------------------------------------------------------------------------

    def export_data(self) -> Dict[str, Any]:
        """Dump every entry in its JSON wire form."""
        entries = self.get_all()
        return {
            "version": EXPORT_FORMAT_VERSION,
            "exportedAt": utc_now_iso(),
            "entries": [entry.to_dict() for entry in entries],
        }

    def import_data(self, data: Dict[str, Any]) -> int:
        """
        Replace the table with the entries of an export.

        Every document is validated first; nothing is written if any of
        them is rejected.

        Raises:
            EntryValidationError: If the export is malformed or an entry fails
        """
        raw_entries = data.get("entries") if isinstance(data, dict) else None
        if not isinstance(raw_entries, list):
            raise EntryValidationError("Export has no 'entries' list")

        entries: List[LibraryEntry] = []
        for raw in raw_entries:
            result = parse_entry(raw)
            if isinstance(result, EntryRejected):
                raise EntryValidationError(result.reason, entry_id=result.entry_id)
            if parse_key(result.entry.id) is None:
                raise EntryValidationError(
                    "Id is not a valid cache key", entry_id=result.entry.id
                )
            entries.append(result.entry)

        added, _ = self.replace_all(entries)
        return added
