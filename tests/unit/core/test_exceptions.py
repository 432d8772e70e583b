"""Tests for the Midweave exception hierarchy."""
import pytest

from midweave.core.exceptions import (
    EntryDeletionError,
    EntryValidationError,
    MidweaveError,
    PartialBatchError,
    RemoteConflictError,
    RemoteStoreError,
    ValidationError,
)


class TestHierarchy:
    """Every project error should be catchable as MidweaveError."""

    @pytest.mark.parametrize(
        "error_class",
        [RemoteStoreError, RemoteConflictError, EntryDeletionError, ValidationError],
    )
    def test_subclasses_of_base(self, error_class):
        assert issubclass(error_class, MidweaveError)

    def test_conflict_is_remote_error(self):
        """Conflicts keep the status code and path of the failing call."""
        error = RemoteConflictError("stale", status_code=409, path="data/entries/1.json")
        assert isinstance(error, RemoteStoreError)
        assert error.status_code == 409
        assert error.path == "data/entries/1.json"


class TestEntryValidationError:
    """Tests for EntryValidationError."""

    def test_message_includes_entry_id(self):
        error = EntryValidationError("Entry has no images", entry_id="42")
        assert str(error) == "Entry 42: Entry has no images"
        assert error.reason == "Entry has no images"
        assert isinstance(error, ValidationError)

    def test_message_without_entry_id(self):
        assert str(EntryValidationError("Missing title")) == "Missing title"


class TestPartialBatchError:
    """Tests for PartialBatchError."""

    def test_lists_only_failures(self):
        """failures and succeeded are kept apart."""
        error = PartialBatchError("delete_entries", {"2": "boom"}, ["1", "3"])
        assert error.failures == {"2": "boom"}
        assert error.succeeded == ["1", "3"]
        assert str(error) == "delete_entries failed for 1 item(s): 2: boom"
