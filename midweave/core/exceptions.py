#!/usr/bin/env python3
"""
exceptions.py
--------------------
Custom exception classes for the Midweave project.

This module defines a hierarchy of exceptions used throughout the project
to handle specific error conditions in the remote store, the local cache
and the synchronization engine.

Exception Hierarchy:
    Exception (built-in)
    └── MidweaveError - Base for all project errors
        ├── RemoteStoreError - Remote repository I/O failures
        │   ├── RemoteConflictError - Stale revision token, retries exhausted
        │   └── EntryDeletionError - Metadata delete failed after images went
        ├── ValidationError - Data validation failures
        │   └── EntryValidationError - Entry rejected by the parse step
        ├── PartialBatchError - Some items of a batch operation failed
        ├── SyncIntegrityError - Resync added nothing from a non-empty remote
        ├── DatabaseError - Local cache failures
        ├── AnalysisError - AI captioning failures
        └── ConfigurationError - Missing or malformed settings

Not-found is never an exception: reads return None or an empty listing,
deletes of absent files succeed.

Usage:
    from midweave.core.exceptions import RemoteStoreError, PartialBatchError

    try:
        await storage.delete_entries(["1", "2"])
    except PartialBatchError as e:
        for entry_id, message in e.failures.items():
            logger.log_warning(f"Could not delete {entry_id}: {message}")
"""
from __future__ import annotations

from typing import Dict, Mapping, Optional


class MidweaveError(Exception):
    """Base exception for every error raised by Midweave."""

    pass


class RemoteStoreError(MidweaveError):
    """
    Exception for remote repository failures.

    Raised when the file-hosting API answers with an unexpected status,
    returns a malformed payload, or cannot be reached at all.

    Attributes:
        status_code: HTTP status of the failing response, if any
        path: Remote path involved in the failing call, if any

    Examples:
        >>> raise RemoteStoreError("Unexpected status 500", status_code=500)
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        path: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.path = path


class RemoteConflictError(RemoteStoreError):
    """
    Exception for optimistic-concurrency conflicts that could not be absorbed.

    The client retries conflicting writes with a freshly fetched revision
    token. This is raised only once the attempt cap is exhausted, or when an
    upload could not find a free file name.

    Examples:
        >>> raise RemoteConflictError("Ref update rejected after 5 attempts")
    """

    pass


class EntryDeletionError(RemoteStoreError):
    """
    Exception for a metadata delete that failed after the images were removed.

    The remote is left with a metadata file pointing at missing images, so
    the local cache row is kept and the error escalated.
    """

    pass


class ValidationError(MidweaveError):
    """
    Exception for data validation failures.

    Raised when input data fails validation checks:
    - Missing required fields
    - Type mismatches
    - Unsupported image formats or oversized uploads

    Examples:
        >>> raise ValidationError("Required field 'sref' missing or empty")
        >>> raise ValidationError("File size must be less than 5MB")
    """

    pass


class EntryValidationError(ValidationError):
    """
    Exception for entries rejected by the tagged parse step.

    Attributes:
        entry_id: Identifier of the rejected entry, when known
        reason: Human-readable rejection reason

    Examples:
        >>> raise EntryValidationError("Entry has no images", entry_id="42")
    """

    def __init__(self, reason: str, entry_id: Optional[str] = None) -> None:
        message = f"Entry {entry_id}: {reason}" if entry_id else reason
        super().__init__(message)
        self.entry_id = entry_id
        self.reason = reason


class PartialBatchError(MidweaveError):
    """
    Exception reporting the failed items of a batch that kept going.

    Multi-entry deletion and multi-image upload process every item and
    collect failures instead of aborting on the first one.

    Attributes:
        failures: Mapping of item identifier to error message
        succeeded: Identifiers of the items that went through

    Examples:
        >>> err = PartialBatchError("delete_entries", {"2": "boom"})
        >>> str(err)
        'delete_entries failed for 1 item(s): 2: boom'
    """

    def __init__(
        self,
        operation: str,
        failures: Mapping[str, str],
        succeeded: Optional[list] = None,
    ) -> None:
        self.operation = operation
        self.failures: Dict[str, str] = dict(failures)
        self.succeeded = list(succeeded or [])
        details = "; ".join(f"{key}: {msg}" for key, msg in self.failures.items())
        super().__init__(
            f"{operation} failed for {len(self.failures)} item(s): {details}"
        )


class SyncIntegrityError(MidweaveError):
    """
    Exception for a resync that produced an empty library from a non-empty remote.

    Distinguishes "the library is empty" from "sync silently failed".

    Examples:
        >>> raise SyncIntegrityError("Remote listed 12 entries, none were added")
    """

    pass


class DatabaseError(MidweaveError):
    """
    Exception for local cache failures.

    Raised when cache operations fail due to connection issues, query
    errors, integrity violations, or a missing row that must exist.
    """

    pass


class AnalysisError(MidweaveError):
    """
    Exception for AI captioning failures.

    There is no partial-result contract: any failure of the captioning
    service surfaces as this single error.
    """

    pass


class ConfigurationError(MidweaveError):
    """Exception for missing or malformed configuration."""

    pass
