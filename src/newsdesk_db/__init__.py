"""Newsdesk DB - backup, restore and retention for the newsdesk store.

This package provides:
- backup: backup lifecycle, archive integrity, retention and restore
- logger: structured logging with session tracking and JSON support
- config: .env-aware environment loading
- exceptions: common exception classes with structured error info
"""

__version__ = "1.0.0"

from newsdesk_db.logger import (
    Logger,
    StructuredLogger,
    get_logger,
    create_logger,
)

from newsdesk_db.config import EnvLoader

from newsdesk_db.exceptions import (
    NewsdeskError,
    ValidationError,
    ResourceNotFoundError,
    ConfigurationError,
)

from newsdesk_db.backup import (
    BackupConfig,
    BackupRecord,
    BackupService,
    BackupStatus,
    BackupType,
    RestoreOptions,
)

__all__ = [
    "__version__",
    # Logger
    "Logger",
    "StructuredLogger",
    "get_logger",
    "create_logger",
    # Config
    "EnvLoader",
    # Exceptions
    "NewsdeskError",
    "ValidationError",
    "ResourceNotFoundError",
    "ConfigurationError",
    # Backup
    "BackupConfig",
    "BackupRecord",
    "BackupService",
    "BackupStatus",
    "BackupType",
    "RestoreOptions",
]
