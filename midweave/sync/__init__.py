"""
Synchronization package: resync, pruning and remote-first deletion.
"""
from .engine import RESYNC_OPERATION, ResyncReport, SyncEngine

__all__ = ["RESYNC_OPERATION", "ResyncReport", "SyncEngine"]
