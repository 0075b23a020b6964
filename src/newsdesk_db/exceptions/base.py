"""Root error types for newsdesk_db.

Every error carries a stable ``code`` for scripts, a ``message`` for
operators and a ``details`` dict naming the backup, path or check involved.
"""

from typing import Any, Dict, Optional


class NewsdeskError(Exception):
    """Root of the newsdesk error hierarchy.

    The CLI prints ``message``; programmatic callers branch on ``code`` or
    the subclass.

    Attributes:
        code: Stable identifier such as "BACKUP_NOT_FOUND"
        message: Text shown to the operator
        details: Backup id, path, check name and similar context
    """

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.code}: {self.message} (details: {self.details})"
        return f"{self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready view with code, message and details."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(NewsdeskError):
    """Input rejected before any work started."""


class ResourceNotFoundError(NewsdeskError):
    """A backup record, archive or table is missing."""


class ConfigurationError(NewsdeskError):
    """Settings are invalid or incomplete."""
