"""Backup record stores.

Provides pluggable persistence for backup records:
- MemoryRecordStore: for tests
- FileRecordStore: one JSON sidecar per record in the backup directory

Usage:
    from newsdesk_db.backup.store import create_record_store

    store = create_record_store("file", path="/var/backups/newsdesk")
"""

from .base import RecordFilter, RecordStore
from .factory import BackendType, create_record_store
from .file import FileRecordStore
from .memory import MemoryRecordStore

__all__ = [
    "RecordStore",
    "RecordFilter",
    "MemoryRecordStore",
    "FileRecordStore",
    "BackendType",
    "create_record_store",
]
