"""Tests for the exception hierarchy.

Covers the structured shape (code, message, details), string and dict
rendering, and how backup errors slot into the common base classes.
"""

import pytest

from newsdesk_db.backup.exceptions import (
    BackupError,
    BackupIOError,
    BackupNotFoundError,
    DependencyMissingError,
    IntegrityError,
    InvalidStateError,
    OperationCancelledError,
    RecordExistsError,
)
from newsdesk_db.exceptions import (
    ConfigurationError,
    NewsdeskError,
    ResourceNotFoundError,
    ValidationError,
)


class TestNewsdeskError:
    """Tests for base NewsdeskError class."""

    def test_basic_construction(self):
        error = NewsdeskError("TEST_CODE", "Test message")

        assert error.code == "TEST_CODE"
        assert error.message == "Test message"
        assert error.details == {}

    def test_none_details_becomes_empty_dict(self):
        error = NewsdeskError("TEST_CODE", "Test message", details=None)
        assert error.details == {}

    def test_str_without_details(self):
        assert str(NewsdeskError("TEST_CODE", "Test message")) == "TEST_CODE: Test message"

    def test_str_with_details(self):
        result = str(NewsdeskError("TEST_CODE", "Test message", details={"foo": "bar"}))
        assert result.startswith("TEST_CODE: Test message")
        assert "foo" in result and "bar" in result

    def test_to_dict(self):
        error = NewsdeskError("CODE", "msg", details={"a": 1})
        assert error.to_dict() == {"code": "CODE", "message": "msg", "details": {"a": 1}}

    def test_args_contains_message(self):
        error = NewsdeskError("CODE", "The error message")
        assert "The error message" in error.args

    @pytest.mark.parametrize("cls", [ValidationError, ResourceNotFoundError, ConfigurationError])
    def test_subclasses(self, cls):
        with pytest.raises(NewsdeskError) as exc_info:
            raise cls("SUB", "raised")
        assert exc_info.value.code == "SUB"


class TestBackupErrors:
    """Tests for backup-specific errors."""

    def test_backup_error_default_code(self):
        error = BackupError("boom")
        assert error.code == "BACKUP_ERROR"
        assert isinstance(error, NewsdeskError)

    def test_not_found_is_resource_not_found(self):
        error = BackupNotFoundError("full_20240101000000_abcd1234")
        assert isinstance(error, ResourceNotFoundError)
        assert error.code == "BACKUP_NOT_FOUND"
        assert error.backup_id == "full_20240101000000_abcd1234"
        assert error.details == {"backup_id": "full_20240101000000_abcd1234"}

    def test_integrity_error_names_check(self):
        error = IntegrityError("checksum", "mismatch", backup_id="b1")
        assert error.check == "checksum"
        assert error.details == {"check": "checksum", "backup_id": "b1"}
        assert isinstance(error, BackupError)

    def test_invalid_state_details(self):
        error = InvalidStateError("nope", backup_id="b1", status="running")
        assert error.code == "INVALID_STATE"
        assert error.details == {"backup_id": "b1", "status": "running"}

    def test_io_error_path(self):
        assert BackupIOError("disk full", path="/backups").details == {"path": "/backups"}
        assert BackupIOError("disk full").details == {}

    @pytest.mark.parametrize(
        "error, code",
        [
            (DependencyMissingError(), "DEPENDENCY_MISSING"),
            (OperationCancelledError(), "CANCELLED"),
            (RecordExistsError("b1"), "BACKUP_EXISTS"),
        ],
    )
    def test_codes(self, error, code):
        assert error.code == code
        assert isinstance(error, BackupError)
