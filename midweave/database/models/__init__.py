"""
Midweave cache models.

Models:
    - Base: Declarative base
    - CachedEntry: Mirrored library entries
    - SyncState: Resync bookkeeping
"""
from .base import Base
from .entry import CachedEntry
from .sync import SyncState

__all__ = ["Base", "CachedEntry", "SyncState"]
