"""
Synchronization Models
-----------------------

Models for tracking cache resyncs against the remote store.

Models:
    - SyncState: Outcome of the most recent resync per scope

The storage facade reads last_synced_at to decide whether a background
revalidation is due.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class SyncState(Base):
    """
    Record of the last resync for a scope.

    Attributes:
        id: Primary key
        scope: What was synced ('library')
        last_synced_at: When the resync finished
        remote_ref: Branch or ref the resync read from
        entries_listed: Entry files listed on the remote
        entries_added: Rows written to the cache
        entries_rejected: Entries dropped by validation
        orphans_pruned: Remote image files deleted as orphans
        duration_seconds: Wall-clock time of the resync
        success: Whether the resync completed without error
        error_message: Failure summary when success is False

    Examples:
        SyncState(
            scope='library',
            last_synced_at=datetime.now(timezone.utc),
            remote_ref='main',
            entries_listed=12,
            entries_added=11,
            entries_rejected=1,
        )
    """

    __tablename__ = "sync_states"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    scope: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)

    last_synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    remote_ref: Mapped[Optional[str]] = mapped_column(String(255))

    entries_listed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    entries_added: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    entries_rejected: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    orphans_pruned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duration_seconds: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    @property
    def synced_at_utc(self) -> datetime:
        """last_synced_at as an aware datetime (SQLite drops the offset)."""
        if self.last_synced_at.tzinfo is None:
            return self.last_synced_at.replace(tzinfo=timezone.utc)
        return self.last_synced_at

    def __repr__(self) -> str:
        return (
            f"<SyncState {self.scope} synced={self.last_synced_at} "
            f"added={self.entries_added} success={self.success}>"
        )
