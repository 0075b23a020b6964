"""Backup engine exceptions

Every error carries a machine-readable code so the CLI can report it and
callers can branch on the failure kind without parsing messages.
"""

from typing import Any, Dict, Optional

from newsdesk_db.exceptions import NewsdeskError, ResourceNotFoundError


class BackupError(NewsdeskError):
    """Base class for backup, restore and retention errors"""

    def __init__(
        self, message: str, code: str = "BACKUP_ERROR", details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(code=code, message=message, details=details)


class BackupNotFoundError(ResourceNotFoundError):
    """Raised when a backup id is unknown"""

    def __init__(self, backup_id: str, message: Optional[str] = None):
        self.backup_id = backup_id
        super().__init__(
            code="BACKUP_NOT_FOUND",
            message=message or f"Backup not found: {backup_id}",
            details={"backup_id": backup_id},
        )


class RecordExistsError(BackupError):
    """Raised when a record with the same id is already stored"""

    def __init__(self, backup_id: str):
        self.backup_id = backup_id
        super().__init__(
            f"Backup record already exists: {backup_id}",
            code="BACKUP_EXISTS",
            details={"backup_id": backup_id},
        )


class InvalidStateError(BackupError):
    """Raised when an operation is not valid for the record's current status"""

    def __init__(self, message: str, backup_id: Optional[str] = None, status: Optional[str] = None):
        details: Dict[str, Any] = {}
        if backup_id is not None:
            details["backup_id"] = backup_id
        if status is not None:
            details["status"] = status
        super().__init__(message, code="INVALID_STATE", details=details)


class IntegrityError(BackupError):
    """Raised when an archive fails verification.

    Attributes:
        check: Name of the failing check (exists, size, checksum, structure)
    """

    def __init__(self, check: str, message: str, backup_id: Optional[str] = None):
        self.check = check
        details: Dict[str, Any] = {"check": check}
        if backup_id is not None:
            details["backup_id"] = backup_id
        super().__init__(message, code="INTEGRITY_ERROR", details=details)


class BackupIOError(BackupError):
    """Raised for permission, disk-full and missing-path failures"""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(
            message,
            code="BACKUP_IO_ERROR",
            details={"path": path} if path else None,
        )


class DependencyMissingError(BackupError):
    """Raised when an incremental backup has no usable full baseline"""

    def __init__(self, message: str = "No completed full backup available as baseline"):
        super().__init__(message, code="DEPENDENCY_MISSING")


class OperationCancelledError(BackupError):
    """Raised when an operator cancels a running scan, dump or extraction"""

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message, code="CANCELLED")
