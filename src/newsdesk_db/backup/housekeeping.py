"""Backup housekeeping and retention management

Selects records for eviction by age, count and total size, in that order,
and removes the selected archives and records.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

import aiofiles.os

from newsdesk_db.backup.exceptions import BackupError, BackupNotFoundError
from newsdesk_db.backup.locks import RestoreLeases
from newsdesk_db.backup.models import (
    USABLE_STATUSES,
    BackupRecord,
    BackupStatus,
    Clock,
    utc_now,
)
from newsdesk_db.backup.store import RecordStore
from newsdesk_db.logger import Logger, create_logger


@dataclass(frozen=True)
class RetentionPolicy:
    """Count and size limits; age limits live on each record.

    Attributes:
        max_backups: Count threshold over completed and verified records
        max_total_size: Size threshold in bytes over the same records
        keep_count: Survivors kept once the count threshold is exceeded
    """

    max_backups: int
    max_total_size: int
    keep_count: Optional[int] = None

    @property
    def survivors(self) -> int:
        return min(self.max_backups, self.keep_count or self.max_backups)

    @classmethod
    def from_config(cls, config) -> "RetentionPolicy":
        return cls(
            max_backups=config.max_backups,
            max_total_size=config.max_total_size_bytes,
            keep_count=config.keep_count,
        )


@dataclass
class EvictionPlan:
    by_age: List[str] = field(default_factory=list)
    by_count: List[str] = field(default_factory=list)
    by_size: List[str] = field(default_factory=list)

    @property
    def ids(self) -> List[str]:
        return self.by_age + self.by_count + self.by_size

    def __len__(self) -> int:
        return len(self.ids)


def plan_eviction(
    records: Iterable[BackupRecord],
    policy: RetentionPolicy,
    now: datetime,
    pinned: FrozenSet[str] = frozenset(),
) -> EvictionPlan:
    """Apply the age, count and size rules in order.

    Pinned records are never selected and no other record is picked in
    their place; the next sweep picks them up once released.
    """
    plan = EvictionPlan()
    marked = set()
    newest_first = sorted(records, key=lambda r: r.created_at, reverse=True)

    for record in newest_first:
        if record.status == BackupStatus.RUNNING or record.id in pinned:
            continue
        if record.age_days(now) > record.retention_days:
            plan.by_age.append(record.id)
            marked.add(record.id)

    usable = [r for r in newest_first if r.status in USABLE_STATUSES and r.id not in marked]
    if len(usable) > policy.max_backups:
        for record in usable[policy.survivors:]:
            if record.id in pinned:
                continue
            plan.by_count.append(record.id)
            marked.add(record.id)

    remaining = [r for r in usable if r.id not in marked]
    total = sum(r.size for r in remaining)
    for record in reversed(remaining):
        if total <= policy.max_total_size:
            break
        if record.id in pinned:
            continue
        plan.by_size.append(record.id)
        marked.add(record.id)
        total -= record.size

    return plan


def select_for_eviction(
    records: Iterable[BackupRecord],
    policy: RetentionPolicy,
    now: datetime,
    pinned: FrozenSet[str] = frozenset(),
) -> List[str]:
    """Ids to evict, in rule order (age, count, size)"""
    return plan_eviction(records, policy, now, pinned).ids


class BackupHousekeeping:
    """Manages backup retention and cleanup"""

    def __init__(
        self,
        store: RecordStore,
        backup_dir: Path,
        policy: RetentionPolicy,
        leases: Optional[RestoreLeases] = None,
        clock: Clock = utc_now,
        logger: Optional[Logger] = None,
    ):
        self.store = store
        self.backup_dir = Path(backup_dir)
        self.policy = policy
        self.leases = leases or RestoreLeases()
        self.clock = clock
        self.logger = logger or create_logger(name="newsdesk-backup-housekeeping")

    async def remove_archive(self, record: BackupRecord) -> int:
        if not record.filename:
            return 0
        path = self.backup_dir / record.filename
        try:
            stat = await aiofiles.os.stat(path)
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return 0
        self.logger.debug("Removed backup archive", backup_id=record.id, file=record.filename)
        return stat.st_size

    async def evict(self, backup_id: str) -> int:
        """Expire (when usable), remove the archive, then drop the record.

        Returns:
            Bytes freed on disk
        """
        record = await self.store.get(backup_id)
        if record.status in USABLE_STATUSES:
            record = await self.store.update(backup_id, status=BackupStatus.EXPIRED)
        freed = await self.remove_archive(record)
        await self.store.delete(backup_id)
        return freed

    async def run_cleanup(self) -> Dict[str, object]:
        """Run the retention sweep over every stored record

        Returns:
            Per-rule counts, bytes freed and any per-record errors
        """
        records = await self.store.list_all()
        plan = plan_eviction(records, self.policy, self.clock(), self.leases.pinned_ids())

        results: Dict[str, object] = {
            "by_age": 0,
            "by_count": 0,
            "by_size": 0,
            "deleted": 0,
            "bytes_freed": 0,
            "errors": [],
        }

        for rule, ids in (("by_age", plan.by_age), ("by_count", plan.by_count), ("by_size", plan.by_size)):
            for backup_id in ids:
                # A restore may have pinned it since planning
                if self.leases.is_pinned(backup_id):
                    continue
                try:
                    freed = await self.evict(backup_id)
                except BackupNotFoundError:
                    continue
                except (BackupError, OSError) as e:
                    self.logger.error("Failed to evict backup", backup_id=backup_id, error=str(e))
                    results["errors"].append({"backup_id": backup_id, "error": str(e)})
                    continue
                results[rule] += 1
                results["deleted"] += 1
                results["bytes_freed"] += freed
                self.logger.info("Evicted backup", backup_id=backup_id, rule=rule)

        if results["deleted"]:
            self.logger.info(
                "Retention sweep completed",
                deleted=results["deleted"],
                bytes_freed=results["bytes_freed"],
            )
        return results

    async def get_stats(self) -> Dict[str, object]:
        """Get statistics about stored backups"""
        records = await self.store.list_all()
        return summarize(records)


def summarize(records: Sequence[BackupRecord]) -> Dict[str, object]:
    total_size = sum(r.size for r in records)
    by_type = Counter(r.type.value for r in records)
    by_status = Counter(r.status.value for r in records)
    oldest = min(records, key=lambda r: r.created_at) if records else None
    newest = max(records, key=lambda r: r.created_at) if records else None
    return {
        "total_backups": len(records),
        "total_size": total_size,
        "average_size": total_size // len(records) if records else 0,
        "by_type": dict(by_type),
        "by_status": dict(by_status),
        "oldest": oldest.created_at.isoformat() if oldest else None,
        "newest": newest.created_at.isoformat() if newest else None,
    }
