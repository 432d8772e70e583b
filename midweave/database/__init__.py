"""
Local cache database package.

Exports:
    CacheDB: SQLite mirror of the remote entry store
    CachedEntry, SyncState: ORM models
"""
from .manager import CacheDB, LIBRARY_SCOPE
from .models import Base, CachedEntry, SyncState

__all__ = ["CacheDB", "LIBRARY_SCOPE", "Base", "CachedEntry", "SyncState"]
