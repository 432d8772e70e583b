"""Tests for database decorators and context managers."""
import pytest
from unittest.mock import MagicMock

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from midweave.core.exceptions import DatabaseError
from midweave.core.logging_manager import MidweaveLogger
from midweave.database.decorators import (
    DatabaseOperation,
    handle_db_errors,
    log_database_operation,
)


class TestDatabaseOperation:
    """Tests for DatabaseOperation context manager."""

    def test_successful_operation(self):
        """DatabaseOperation should log completion on success."""
        mock_logger = MagicMock(spec=MidweaveLogger)

        with DatabaseOperation(mock_logger, "replace_all", {"incoming": 3}):
            result = 1 + 1

        assert result == 2
        mock_logger.log_operation.assert_called_once()
        name, details = mock_logger.log_operation.call_args[0]
        assert name == "replace_all_completed"
        assert details["success"] is True
        assert details["incoming"] == 3

    def test_with_none_logger(self):
        """DatabaseOperation should work with None logger (uses NullLogger)."""
        with DatabaseOperation(None, "noop"):
            pass

    def test_integrity_error_raises_database_error(self):
        """IntegrityError should become DatabaseError."""
        mock_logger = MagicMock(spec=MidweaveLogger)

        with pytest.raises(DatabaseError) as exc_info:
            with DatabaseOperation(mock_logger, "put_entry"):
                raise IntegrityError("statement", {}, Exception("duplicate"))

        assert "Data integrity violation" in str(exc_info.value)
        mock_logger.log_error.assert_called_once()

    def test_sqlalchemy_error_raises_database_error(self):
        mock_logger = MagicMock(spec=MidweaveLogger)

        with pytest.raises(DatabaseError, match="Database operation failed"):
            with DatabaseOperation(mock_logger, "get_all"):
                raise SQLAlchemyError("connection lost")

    def test_other_errors_propagate_unchanged(self):
        with pytest.raises(KeyError):
            with DatabaseOperation(None, "lookup"):
                raise KeyError("missing")


class _Holder:
    def __init__(self, logger):
        self.logger = logger

    @log_database_operation("count_entries")
    def count(self):
        return 4

    @handle_db_errors
    def broken(self):
        raise SQLAlchemyError("disk I/O error")


class TestDecorators:
    """Tests for log_database_operation and handle_db_errors."""

    def test_log_database_operation_logs_completion(self):
        mock_logger = MagicMock(spec=MidweaveLogger)
        assert _Holder(mock_logger).count() == 4
        assert mock_logger.log_operation.call_args[0][0] == "count_entries_completed"

    def test_handle_db_errors_converts(self):
        with pytest.raises(DatabaseError, match="disk I/O error"):
            _Holder(None).broken()
