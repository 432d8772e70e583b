#!/usr/bin/env python3
"""
sync_state_manager.py
--------------------
Manager for resync bookkeeping.

Usage:
    with db.session_scope() as session:
        mgr = SyncStateManager(session, logger)
        mgr.record("library", entries_added=11, entries_listed=12)
        state = mgr.get("library")
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from midweave.core.logging_manager import safe_logger
from midweave.database.models import SyncState

from .base_manager import BaseManager


class SyncStateManager(BaseManager):
    """Create or update the single SyncState row of a scope."""

    def get(self, scope: str) -> Optional[SyncState]:
        return (
            self.session.query(SyncState).filter_by(scope=scope).one_or_none()
        )

    def record(
        self,
        scope: str,
        *,
        remote_ref: Optional[str] = None,
        entries_listed: int = 0,
        entries_added: int = 0,
        entries_rejected: int = 0,
        orphans_pruned: int = 0,
        duration_seconds: float = 0.0,
        success: bool = True,
        error_message: Optional[str] = None,
        synced_at: Optional[datetime] = None,
    ) -> SyncState:
        """
        Update or create the sync state for a scope.

        Returns:
            The stored SyncState
        """
        state = self.get(scope)
        if state is None:
            state = SyncState(scope=scope)
            self.session.add(state)

        state.last_synced_at = synced_at or datetime.now(timezone.utc)
        state.remote_ref = remote_ref
        state.entries_listed = entries_listed
        state.entries_added = entries_added
        state.entries_rejected = entries_rejected
        state.orphans_pruned = orphans_pruned
        state.duration_seconds = duration_seconds
        state.success = success
        state.error_message = error_message
        self.session.flush()

        safe_logger(self.logger).log_debug(
            f"Recorded sync state: {scope}",
            {"added": entries_added, "rejected": entries_rejected, "success": success},
        )
        return state
