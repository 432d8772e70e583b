"""
Cache table managers.

Each manager wraps one SQLAlchemy session and one table:
    - EntryManager: Cached library entries
    - SyncStateManager: Resync bookkeeping
"""
from .base_manager import BaseManager
from .entry_manager import EntryManager, parse_key
from .sync_state_manager import SyncStateManager

__all__ = ["BaseManager", "EntryManager", "SyncStateManager", "parse_key"]
