"""Backup record model and lifecycle

A ``BackupRecord`` is the only persistent entity of the backup engine.
Its status moves through a fixed transition graph; every status change in
the package goes through :func:`transition` so the graph is enforced in one
place.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional

from newsdesk_db.backup.exceptions import InvalidStateError

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


class BackupType(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


class BackupStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    VERIFIED = "verified"
    FAILED = "failed"
    CORRUPTED = "corrupted"
    EXPIRED = "expired"


TRANSITIONS: Dict[BackupStatus, FrozenSet[BackupStatus]] = {
    BackupStatus.RUNNING: frozenset({BackupStatus.COMPLETED, BackupStatus.FAILED}),
    BackupStatus.COMPLETED: frozenset(
        {BackupStatus.VERIFIED, BackupStatus.CORRUPTED, BackupStatus.EXPIRED}
    ),
    BackupStatus.VERIFIED: frozenset({BackupStatus.CORRUPTED, BackupStatus.EXPIRED}),
    BackupStatus.FAILED: frozenset(),
    BackupStatus.CORRUPTED: frozenset(),
    BackupStatus.EXPIRED: frozenset(),
}

# Statuses whose archive can be restored from or used as a baseline
USABLE_STATUSES: FrozenSet[BackupStatus] = frozenset(
    {BackupStatus.COMPLETED, BackupStatus.VERIFIED}
)


def can_transition(current: BackupStatus, target: BackupStatus) -> bool:
    return target in TRANSITIONS[current]


def generate_backup_id(backup_type: BackupType, now: Optional[datetime] = None) -> str:
    """Generate a unique backup id: ``{type}_{YYYYmmddHHMMSS}_{8 hex}``"""
    now = now or utc_now()
    return f"{backup_type.value}_{now.strftime('%Y%m%d%H%M%S')}_{secrets.token_hex(4)}"


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class BackupRecord:
    """Persistent metadata describing one backup attempt.

    Attributes:
        id: Unique backup identifier
        type: Full or incremental
        status: Current lifecycle status
        filename: Archive file name inside the backup directory
        size: Archive size in bytes (0 until finalized)
        checksum: SHA-256 hex digest ("" until computed)
        created_at: When the attempt started
        completed_at: When the attempt completed or failed
        verified_at: When the archive last passed verification
        retention_days: Retention captured at creation, never changed
        base_backup_id: Baseline full backup (incremental only)
        metadata: String side channel (skipped, changed_file_count, error...)
    """

    id: str
    type: BackupType
    status: BackupStatus = BackupStatus.RUNNING
    filename: str = ""
    size: int = 0
    checksum: str = ""
    created_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    retention_days: int = 30
    base_backup_id: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def is_usable(self) -> bool:
        """True if the archive may be restored or used as a baseline"""
        return self.status in USABLE_STATUSES

    @property
    def is_skipped(self) -> bool:
        """True for a no-op incremental that produced no archive"""
        return self.metadata.get("skipped") == "true"

    def age_days(self, now: datetime) -> float:
        return (now - self.created_at).total_seconds() / 86400

    def to_dict(self) -> Dict[str, Any]:
        """Serialize record to dictionary for JSON storage"""
        return {
            "id": self.id,
            "type": self.type.value,
            "status": self.status.value,
            "filename": self.filename,
            "size": self.size,
            "checksum": self.checksum,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
            "retention_days": self.retention_days,
            "base_backup_id": self.base_backup_id,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BackupRecord:
        """Deserialize record from dictionary"""
        return cls(
            id=data["id"],
            type=BackupType(data["type"]),
            status=BackupStatus(data.get("status", BackupStatus.RUNNING.value)),
            filename=data.get("filename", ""),
            size=int(data.get("size", 0)),
            checksum=data.get("checksum", ""),
            created_at=_parse_dt(data["created_at"]),
            completed_at=_parse_dt(data.get("completed_at")),
            verified_at=_parse_dt(data.get("verified_at")),
            retention_days=int(data.get("retention_days", 30)),
            base_backup_id=data.get("base_backup_id"),
            metadata={str(k): str(v) for k, v in (data.get("metadata") or {}).items()},
        )

    def copy(self, **changes: Any) -> BackupRecord:
        """Return a detached copy, with a copied metadata dict"""
        changes.setdefault("metadata", dict(self.metadata))
        return replace(self, **changes)


def transition(record: BackupRecord, target: BackupStatus) -> BackupRecord:
    """Return a copy of ``record`` moved to ``target``.

    Raises:
        InvalidStateError: If the transition graph does not allow the move
    """
    if not can_transition(record.status, target):
        raise InvalidStateError(
            f"Cannot move backup {record.id} from {record.status.value} to {target.value}",
            backup_id=record.id,
            status=record.status.value,
        )
    return record.copy(status=target)
