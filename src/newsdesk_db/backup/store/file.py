"""File-based record store.

Persists each backup record as a sidecar ``{backupId}.json`` next to its
archive, written with fsync and an atomic rename so a crash never leaves a
half-written record behind.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import aiofiles
import aiofiles.os

from newsdesk_db.backup.exceptions import BackupIOError, BackupNotFoundError, RecordExistsError
from newsdesk_db.backup.models import BackupRecord, BackupStatus
from newsdesk_db.logger import Logger, create_logger

from .base import RecordFilter, apply_update, select_page


class FileRecordStore:
    """Sidecar-JSON backup record store.

    Records are loaded once at construction and kept in memory; every
    change is written through to disk before the call returns.

    Example:
        store = FileRecordStore("/var/backups/newsdesk")
        await store.create(record)   # writes /var/backups/newsdesk/<id>.json
    """

    SIDECAR_SUFFIX = ".json"

    def __init__(
        self,
        directory: Union[str, Path],
        logger: Optional[Logger] = None,
    ) -> None:
        """Initialize the store.

        Args:
            directory: Backup directory holding the sidecar files
            logger: Optional logger instance
        """
        self.directory = Path(directory)
        self.logger = logger or create_logger(name="newsdesk-backup-store")
        self._records: Dict[str, BackupRecord] = {}
        self._load()

    def _sidecar_path(self, backup_id: str) -> Path:
        return self.directory / f"{backup_id}{self.SIDECAR_SUFFIX}"

    def _load(self) -> None:
        """Read every sidecar in the directory."""
        self._records = {}
        if not self.directory.exists():
            self.logger.debug("Record store initialized as empty", path=str(self.directory))
            return

        for sidecar in sorted(self.directory.glob(f"*{self.SIDECAR_SUFFIX}")):
            try:
                with open(sidecar, "r") as f:
                    record = BackupRecord.from_dict(json.load(f))
            except (OSError, ValueError, KeyError) as e:
                self.logger.warning(
                    "Skipping unreadable backup record", path=str(sidecar), error=str(e)
                )
                continue
            self._records[record.id] = record

        self.logger.debug(
            "Record store loaded from disk",
            records_count=len(self._records),
            path=str(self.directory),
        )

    async def _save(self, record: BackupRecord) -> None:
        path = self._sidecar_path(record.id)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            await aiofiles.os.makedirs(self.directory, exist_ok=True)
            async with aiofiles.open(tmp_path, "w") as f:
                await f.write(json.dumps(record.to_dict(), indent=2))
                await f.flush()
                os.fsync(f.fileno())
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            self.logger.error("Failed to save backup record", backup_id=record.id, error=str(e))
            raise BackupIOError(f"Failed to save backup record {record.id}: {e}", str(path)) from e

    async def create(self, record: BackupRecord) -> BackupRecord:
        if record.id in self._records:
            raise RecordExistsError(record.id)
        stored = record.copy(status=BackupStatus.RUNNING)
        await self._save(stored)
        self._records[stored.id] = stored
        return stored.copy()

    async def update(self, backup_id: str, **fields: Any) -> BackupRecord:
        current = self._records.get(backup_id)
        if current is None:
            raise BackupNotFoundError(backup_id)
        updated = apply_update(current, fields)
        await self._save(updated)
        self._records[backup_id] = updated
        return updated.copy()

    async def get(self, backup_id: str) -> BackupRecord:
        record = self._records.get(backup_id)
        if record is None:
            raise BackupNotFoundError(backup_id)
        return record.copy()

    async def list(
        self,
        record_filter: Optional[RecordFilter] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[BackupRecord]:
        return select_page(self._records.values(), record_filter, limit, offset)

    async def list_all(self) -> List[BackupRecord]:
        return select_page(self._records.values(), None, None, 0)

    async def delete(self, backup_id: str) -> None:
        if backup_id not in self._records:
            raise BackupNotFoundError(backup_id)
        path = self._sidecar_path(backup_id)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise BackupIOError(f"Failed to delete backup record {backup_id}: {e}", str(path)) from e
        del self._records[backup_id]

    def reload(self) -> None:
        """Re-read all sidecars from disk."""
        self._load()

    def __len__(self) -> int:
        return len(self._records)
