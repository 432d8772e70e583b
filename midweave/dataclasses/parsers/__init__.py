"""
Parsers for turning raw entry documents into validated dataclasses.

Modules:
    entry_parser: Tagged parse step (EntryAccepted / EntryRejected)
"""

from .entry_parser import (
    DELETION_MARKER_PREFIX,
    EntryAccepted,
    EntryParseResult,
    EntryRejected,
    parse_entry,
    parse_entry_json,
    require_entry,
)

__all__ = [
    "DELETION_MARKER_PREFIX",
    "EntryAccepted",
    "EntryParseResult",
    "EntryRejected",
    "parse_entry",
    "parse_entry_json",
    "require_entry",
]
