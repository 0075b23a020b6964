"""Factory for backup record stores."""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional, Union

from newsdesk_db.exceptions import ConfigurationError
from newsdesk_db.logger import Logger

from .base import RecordStore
from .file import FileRecordStore
from .memory import MemoryRecordStore

BackendType = Literal["memory", "file"]


def create_record_store(
    backend: BackendType,
    *,
    path: Optional[Union[str, Path]] = None,
    logger: Optional[Logger] = None,
) -> RecordStore:
    """Create a record store based on backend type.

    Args:
        backend: "memory" or "file"
        path: Backup directory for the file backend (required for "file")
        logger: Optional logger instance

    Raises:
        ConfigurationError: If required options are missing or the backend is unknown

    Example:
        store = create_record_store("file", path="/var/backups/newsdesk")
    """
    if backend == "memory":
        return MemoryRecordStore()

    if backend == "file":
        if path is None:
            raise ConfigurationError("STORE_PATH_REQUIRED", "'path' is required for file backend")
        return FileRecordStore(path, logger=logger)

    raise ConfigurationError("UNKNOWN_STORE_BACKEND", f"Unknown record store backend: {backend}")
