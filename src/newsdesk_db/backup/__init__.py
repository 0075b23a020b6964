"""Newsdesk Backup Module

Backup, restore and retention engine for the newsdesk SQLite store.

Usage:
    from newsdesk_db.backup import BackupConfig, BackupService, BackupType

    config = BackupConfig.from_env()
    service = BackupService(config)
    record = await service.create_backup(BackupType.FULL)
"""

from newsdesk_db.backup.archive import ArchiveBuilder
from newsdesk_db.backup.cancel import CancelToken
from newsdesk_db.backup.config import BackupConfig
from newsdesk_db.backup.datasource import SqliteDataSource
from newsdesk_db.backup.events import BackupEvent, EventBus, EventKind, EventOperation
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
from newsdesk_db.backup.housekeeping import (
    BackupHousekeeping,
    RetentionPolicy,
    select_for_eviction,
)
from newsdesk_db.backup.locks import RestoreLeases
from newsdesk_db.backup.models import BackupRecord, BackupStatus, BackupType
from newsdesk_db.backup.scheduler import AutoBackupScheduler
from newsdesk_db.backup.service import BackupService, RestoreOptions, RestoreResult
from newsdesk_db.backup.store import (
    FileRecordStore,
    MemoryRecordStore,
    RecordFilter,
    RecordStore,
    create_record_store,
)
from newsdesk_db.backup.verify import BackupVerifier, VerificationResult

__all__ = [
    "ArchiveBuilder",
    "AutoBackupScheduler",
    "BackupConfig",
    "BackupError",
    "BackupEvent",
    "BackupHousekeeping",
    "BackupIOError",
    "BackupNotFoundError",
    "BackupRecord",
    "BackupService",
    "BackupStatus",
    "BackupType",
    "BackupVerifier",
    "CancelToken",
    "DependencyMissingError",
    "EventBus",
    "EventKind",
    "EventOperation",
    "FileRecordStore",
    "IntegrityError",
    "InvalidStateError",
    "MemoryRecordStore",
    "OperationCancelledError",
    "RecordExistsError",
    "RecordFilter",
    "RecordStore",
    "RestoreLeases",
    "RestoreOptions",
    "RestoreResult",
    "RetentionPolicy",
    "SqliteDataSource",
    "VerificationResult",
    "create_record_store",
    "select_for_eviction",
]
