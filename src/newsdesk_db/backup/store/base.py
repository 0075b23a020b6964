"""Base protocol for backup record stores.

Defines the interface that every record store backend implements.
Uses Python's Protocol for structural subtyping, so any object with the
right async methods is accepted by :class:`BackupService`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol, runtime_checkable

from newsdesk_db.backup.models import BackupRecord, BackupStatus, BackupType, transition

# Fields a caller may change after creation
UPDATABLE_FIELDS = frozenset({
    "status", "filename", "size", "checksum", "completed_at", "verified_at",
    "base_backup_id", "metadata", "type",
})


@dataclass(frozen=True)
class RecordFilter:
    """Selection criteria for listing backup records"""

    type: Optional[BackupType] = None
    status: Optional[BackupStatus] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None

    def matches(self, record: BackupRecord) -> bool:
        if self.type is not None and record.type != self.type:
            return False
        if self.status is not None and record.status != self.status:
            return False
        if self.created_after is not None and record.created_at < self.created_after:
            return False
        if self.created_before is not None and record.created_at > self.created_before:
            return False
        return True


def apply_update(record: BackupRecord, fields: Dict[str, Any]) -> BackupRecord:
    """Return a copy of ``record`` with ``fields`` applied.

    Status changes go through :func:`transition` and the lifecycle graph.

    Raises:
        ValueError: If a field is unknown or immutable
        InvalidStateError: If the status change is not allowed
    """
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

    fields = dict(fields)
    new_status = fields.pop("status", None)
    if new_status is not None and new_status != record.status:
        record = transition(record, BackupStatus(new_status))

    updated = record.copy(**fields)
    if "metadata" in fields:
        updated.metadata = {str(k): str(v) for k, v in fields["metadata"].items()}
    return updated


def select_page(
    records: Iterable[BackupRecord],
    record_filter: Optional[RecordFilter],
    limit: Optional[int],
    offset: int,
) -> List[BackupRecord]:
    """Filter, sort newest first and slice records"""
    selected = [r for r in records if record_filter is None or record_filter.matches(r)]
    selected.sort(key=lambda r: r.created_at, reverse=True)
    if offset:
        selected = selected[offset:]
    if limit is not None:
        selected = selected[:limit]
    return [r.copy() for r in selected]


@runtime_checkable
class RecordStore(Protocol):
    """Protocol for backup record storage backends.

    Records are keyed by backup id. Returned records are detached copies;
    mutate them through :meth:`update` only.
    """

    async def create(self, record: BackupRecord) -> BackupRecord:
        """Insert a new record with status running.

        Raises:
            RecordExistsError: If the id is already stored
        """
        ...

    async def update(self, backup_id: str, **fields: Any) -> BackupRecord:
        """Apply field changes to an existing record.

        Raises:
            BackupNotFoundError: If the id is unknown
            InvalidStateError: If a status change breaks the lifecycle graph
        """
        ...

    async def get(self, backup_id: str) -> BackupRecord:
        """Fetch a record.

        Raises:
            BackupNotFoundError: If the id is unknown
        """
        ...

    async def list(
        self,
        record_filter: Optional[RecordFilter] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[BackupRecord]:
        """List records newest first"""
        ...

    async def list_all(self) -> List[BackupRecord]:
        """List every record newest first"""
        ...

    async def delete(self, backup_id: str) -> None:
        """Remove a record.

        Raises:
            BackupNotFoundError: If the id is unknown
        """
        ...
