"""
Midweave
========

Sync layer for a curated gallery of Midjourney style references.

A GitHub repository is the system of record: every entry is one JSON
document under data/entries/ and every image a file under
images/originals/. A local SQLite cache mirrors the remote so reads are
fast and work offline; writes go through to the remote with optimistic
concurrency and are mirrored into the cache.

Main Components:
    - remote: Async GitHub contents/git-data client
    - database: SQLAlchemy cache with entry and sync-state managers
    - sync: Resync engine (validation, orphan pruning, single-flight)
    - ai: Image captioning through the OpenAI API
    - storage: LibraryStorage facade used by the CLI
    - cli: Click command-line interface

Example Usage:
    >>> from midweave import LibraryStorage, MidweaveConfig
    >>> config = MidweaveConfig.load()
    >>> async with LibraryStorage.from_config(config) as storage:
    ...     entries = await storage.search_entries("watercolor")

Version: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "Midweave Project"

# Expose primary interfaces for convenience
from midweave.core.config import MidweaveConfig
from midweave.core.paths import CACHE_DB_PATH, DATA_DIR, LOG_DIR
from midweave.dataclasses import EntryDraft, LibraryEntry
from midweave.storage import LibraryStorage

__all__ = [
    "LibraryStorage",
    "MidweaveConfig",
    "EntryDraft",
    "LibraryEntry",
    "CACHE_DB_PATH",
    "DATA_DIR",
    "LOG_DIR",
]
