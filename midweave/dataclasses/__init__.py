"""
dataclasses package
-------------------
Dataclass definitions for library entries.

- LibraryEntry: A gallery record (images, parameters, metadata, analysis)
- EntryDraft: Input to the save path, before an id is assigned
- ImageUpload: Raw image bytes waiting to be committed
"""
from midweave.dataclasses.library_entry import (
    AdminMetadata,
    AIAnalysis,
    EntryDraft,
    ImageRecord,
    ImageUpload,
    LibraryEntry,
    Parameters,
)

__all__ = [
    "AdminMetadata",
    "AIAnalysis",
    "EntryDraft",
    "ImageRecord",
    "ImageUpload",
    "LibraryEntry",
    "Parameters",
]
