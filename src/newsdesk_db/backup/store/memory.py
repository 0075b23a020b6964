"""In-memory record store for testing.

Keeps records in a dictionary. Nothing is persisted to disk.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from newsdesk_db.backup.exceptions import BackupNotFoundError, RecordExistsError
from newsdesk_db.backup.models import BackupRecord, BackupStatus

from .base import RecordFilter, apply_update, select_page


class MemoryRecordStore:
    """In-memory backup record store.

    Example:
        store = MemoryRecordStore()
        await store.create(record)
        record = await store.get(record.id)
    """

    def __init__(self) -> None:
        self._records: Dict[str, BackupRecord] = {}

    async def create(self, record: BackupRecord) -> BackupRecord:
        if record.id in self._records:
            raise RecordExistsError(record.id)
        stored = record.copy(status=BackupStatus.RUNNING)
        self._records[stored.id] = stored
        return stored.copy()

    async def update(self, backup_id: str, **fields: Any) -> BackupRecord:
        current = self._records.get(backup_id)
        if current is None:
            raise BackupNotFoundError(backup_id)
        updated = apply_update(current, fields)
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
        if self._records.pop(backup_id, None) is None:
            raise BackupNotFoundError(backup_id)

    def put(self, record: BackupRecord) -> None:
        """Insert a record as-is, bypassing the lifecycle.

        Useful for seeding tests with historical records.
        """
        self._records[record.id] = record.copy()

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
