"""Backup service orchestrator for the newsdesk store

Coordinates archive building, verification, record bookkeeping, retention
and restore. Every collaborator is injected so tests can substitute fakes
for the clock, the record store and the data source.
"""

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from newsdesk_db.backup.archive import ArchiveBuilder, ArchiveEntry
from newsdesk_db.backup.cancel import CancelToken
from newsdesk_db.backup.config import BackupConfig
from newsdesk_db.backup.datasource import SqliteDataSource
from newsdesk_db.backup.events import BackupEvent, EventBus, EventKind, EventOperation
from newsdesk_db.backup.export import EXPORT_FORMATS
from newsdesk_db.backup.exceptions import (
    BackupError,
    BackupNotFoundError,
    IntegrityError,
    InvalidStateError,
)
from newsdesk_db.backup.housekeeping import BackupHousekeeping, RetentionPolicy
from newsdesk_db.backup.locks import RestoreLeases
from newsdesk_db.backup.models import (
    BackupRecord,
    BackupStatus,
    BackupType,
    Clock,
    generate_backup_id,
    utc_now,
)
from newsdesk_db.backup.store import FileRecordStore, RecordFilter, RecordStore
from newsdesk_db.backup.verify import BackupVerifier
from newsdesk_db.exceptions import ValidationError
from newsdesk_db.logger import Logger, create_logger

DUMP_ENTRY = "database.sql"
COPY_ENTRY = "database.sqlite"


@dataclass
class RestoreOptions:
    """What to restore and how.

    Attributes:
        backup_id: Backup to restore (default: latest completed or verified)
        target_dir: Directory to restore into (default: config.data_dir)
        verify_before_restore: Verify the archive before touching the target
        preserve_existing: Snapshot the target first so a failure can roll back
        strip_components: Leading path segments to drop (default: config value)
        restore_database: Load the archive's SQL dump or database image into the
            configured database after extraction
    """

    backup_id: Optional[str] = None
    target_dir: Optional[Path] = None
    verify_before_restore: bool = True
    preserve_existing: bool = True
    strip_components: Optional[int] = None
    restore_database: bool = True


@dataclass
class RestoreResult:
    backup_id: str
    target_dir: Path
    files_restored: int = 0
    snapshot_path: Optional[Path] = None
    verified: bool = False
    replayed_statements: int = 0
    database_restored: bool = False
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backup_id": self.backup_id,
            "target_dir": str(self.target_dir),
            "files_restored": self.files_restored,
            "snapshot_path": str(self.snapshot_path) if self.snapshot_path else None,
            "verified": self.verified,
            "replayed_statements": self.replayed_statements,
            "database_restored": self.database_restored,
            "skipped": self.skipped,
        }


class BackupService:
    """Main backup service orchestrator"""

    def __init__(
        self,
        config: BackupConfig,
        store: Optional[RecordStore] = None,
        builder: Optional[ArchiveBuilder] = None,
        verifier: Optional[BackupVerifier] = None,
        data_source: Optional[SqliteDataSource] = None,
        events: Optional[EventBus] = None,
        leases: Optional[RestoreLeases] = None,
        clock: Clock = utc_now,
        logger: Optional[Logger] = None,
    ):
        self.config = config
        self.logger = logger or create_logger(name="newsdesk-backup")
        self.clock = clock
        self.store = store or FileRecordStore(config.backup_dir, logger=self.logger)
        self.builder = builder or ArchiveBuilder(
            compression_enabled=config.compression_enabled,
            compression_level=config.compression_level,
            logger=self.logger,
        )
        self.verifier = verifier or BackupVerifier(logger=self.logger)
        self.data_source = data_source or SqliteDataSource(config.database_path, logger=self.logger)
        self.events = events or EventBus(logger=self.logger)
        self.leases = leases or RestoreLeases()
        self.housekeeping = BackupHousekeeping(
            self.store,
            config.backup_dir,
            RetentionPolicy.from_config(config),
            leases=self.leases,
            clock=clock,
            logger=self.logger,
        )

    @property
    def backup_dir(self) -> Path:
        return Path(self.config.backup_dir)

    def archive_path(self, record: BackupRecord) -> Path:
        return self.backup_dir / record.filename

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_backup(self, backup_id: str) -> BackupRecord:
        return await self.store.get(backup_id)

    async def list_backups(
        self,
        record_filter: Optional[RecordFilter] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[BackupRecord]:
        return await self.store.list(record_filter, limit=limit, offset=offset)

    async def latest_backup(self, backup_type: Optional[BackupType] = None) -> Optional[BackupRecord]:
        """Newest completed or verified backup, optionally of one type"""
        for record in await self.store.list_all():
            if record.is_usable and (backup_type is None or record.type == backup_type):
                return record
        return None

    async def get_stats(self) -> Dict[str, Any]:
        stats = await self.housekeeping.get_stats()
        stats["backup_dir"] = str(self.backup_dir)
        return stats

    async def cleanup(self) -> Dict[str, Any]:
        """Run the retention sweep"""
        return await self.housekeeping.run_cleanup()

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def _notify(
        self,
        kind: EventKind,
        operation: EventOperation,
        record: BackupRecord,
        error: Optional[BaseException] = None,
    ) -> None:
        if kind == EventKind.SUCCESS and not self.config.notify_on_success:
            return
        if kind == EventKind.FAILURE and not self.config.notify_on_failure:
            return
        await self.events.publish(
            BackupEvent(kind, operation, record, str(error) if error else None)
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def _full_entries(
        self, staging: Path, cancel: Optional[CancelToken]
    ) -> List[ArchiveEntry]:
        if self.config.full_mode == "copy":
            db_copy = staging / COPY_ENTRY
            await self.data_source.copy_to(db_copy)
            entries: List[ArchiveEntry] = [(db_copy, COPY_ENTRY)]
        else:
            dump_file = staging / DUMP_ENTRY
            await self.data_source.dump_to(dump_file, self.config.tables or None, cancel)
            entries = [(dump_file, DUMP_ENTRY)]

        for name, path in self.config.get_source_paths():
            entries.extend(
                ArchiveBuilder.collect_directory(path, name, exclude=[self.backup_dir])
            )
        return entries

    async def _resolve_incremental(self, record: BackupRecord) -> Optional[BackupRecord]:
        """Pick the baseline for an incremental, or escalate the record to full"""
        baseline = await self.latest_backup(BackupType.FULL)
        if baseline is None:
            self.logger.warning(
                "No full baseline available, escalating incremental backup to full",
                backup_id=record.id,
            )
            metadata = dict(record.metadata, escalated_from=BackupType.INCREMENTAL.value)
            await self.store.update(record.id, type=BackupType.FULL, metadata=metadata)
        return baseline

    async def _mark_failed(self, record: BackupRecord, error: BaseException) -> BackupRecord:
        try:
            current = await self.store.get(record.id)
            metadata = dict(current.metadata, error=str(error))
            return await self.store.update(
                record.id,
                status=BackupStatus.FAILED,
                completed_at=self.clock(),
                metadata=metadata,
            )
        except BackupError as e:
            self.logger.error("Failed to record backup failure", backup_id=record.id, error=str(e))
            return record

    async def create_backup(
        self,
        backup_type: BackupType = BackupType.FULL,
        description: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
    ) -> BackupRecord:
        """Create a full or incremental backup

        Returns:
            The final record (completed or verified)

        Raises:
            IntegrityError: If post-backup verification fails (record is corrupted)
            BackupError: If building fails (record is failed)
        """
        backup_type = BackupType(backup_type)
        now = self.clock()
        metadata = {"description": description} if description else {}
        record = await self.store.create(
            BackupRecord(
                id=generate_backup_id(backup_type, now),
                type=backup_type,
                created_at=now,
                retention_days=self.config.retention_days,
                metadata=metadata,
            )
        )
        self.logger.info("Backup started", backup_id=record.id, type=backup_type.value)

        staging = self.backup_dir / f".staging_{record.id}"
        try:
            baseline = None
            if backup_type == BackupType.INCREMENTAL:
                baseline = await self._resolve_incremental(record)

            if baseline is not None:
                entries = await self.builder.scan_changed_files(
                    self.config.data_dir, baseline.created_at, cancel, exclude=[self.backup_dir]
                )
                if not entries:
                    record = await self._complete_skipped(record, baseline)
                    await self._after_success(record)
                    return record
                fields: Dict[str, Any] = {"base_backup_id": baseline.id}
                extra = {"format": "files", "changed_file_count": str(len(entries))}
            else:
                staging.mkdir(parents=True, exist_ok=True)
                entries = await self._full_entries(staging, cancel)
                fields = {}
                extra = {"format": self.config.full_mode}

            filename = self.builder.archive_name(record.id)
            # Recorded before building so a partial archive can still be removed
            await self.store.update(record.id, filename=filename)
            size = await self.builder.build(entries, self.backup_dir / filename, cancel)

            checksum = ""
            if self.config.checksum_enabled or self.config.verify_after_backup:
                checksum = await self.verifier.calculate_checksum(self.backup_dir / filename)

            current = await self.store.get(record.id)
            extra["entry_count"] = str(len(entries))
            record = await self.store.update(
                record.id,
                status=BackupStatus.COMPLETED,
                filename=filename,
                size=size,
                checksum=checksum,
                completed_at=self.clock(),
                metadata=dict(current.metadata, **extra),
                **fields,
            )
        except Exception as e:
            self.logger.error("Backup failed", backup_id=record.id, error=str(e))
            failed = await self._mark_failed(record, e)
            await self._notify(EventKind.FAILURE, EventOperation.BACKUP, failed, e)
            raise
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

        self.logger.info(
            "Backup completed", backup_id=record.id, type=record.type.value, size=record.size
        )

        if self.config.verify_after_backup:
            try:
                record = await self.verify_backup(record.id)
            except IntegrityError as e:
                corrupted = await self.store.get(record.id)
                await self._notify(EventKind.FAILURE, EventOperation.BACKUP, corrupted, e)
                raise

        await self._after_success(record)
        return record

    async def _complete_skipped(self, record: BackupRecord, baseline: BackupRecord) -> BackupRecord:
        current = await self.store.get(record.id)
        record = await self.store.update(
            record.id,
            status=BackupStatus.COMPLETED,
            size=0,
            completed_at=self.clock(),
            base_backup_id=baseline.id,
            metadata=dict(current.metadata, skipped="true", changed_file_count="0"),
        )
        self.logger.info("No changes since baseline, incremental backup skipped", backup_id=record.id)
        return record

    async def _after_success(self, record: BackupRecord) -> None:
        if self.config.cleanup_after_backup:
            try:
                results = await self.housekeeping.run_cleanup()
                self.logger.debug("Post-backup retention sweep", **{k: v for k, v in results.items() if k != "errors"})
            except BackupError as e:
                self.logger.error("Retention sweep failed", backup_id=record.id, error=str(e))
        await self._notify(EventKind.SUCCESS, EventOperation.BACKUP, record)

    # ------------------------------------------------------------------
    # Verify / delete
    # ------------------------------------------------------------------

    async def verify_backup(self, backup_id: str) -> BackupRecord:
        """Verify an archive and record the outcome

        Raises:
            InvalidStateError: If the record is not completed or verified
            IntegrityError: If a check fails (record becomes corrupted)
        """
        record = await self.store.get(backup_id)
        if not record.is_usable:
            raise InvalidStateError(
                f"Backup {backup_id} cannot be verified in status {record.status.value}",
                backup_id=backup_id,
                status=record.status.value,
            )
        try:
            result = await self.verifier.verify(record, self.archive_path(record))
        except IntegrityError:
            await self.store.update(backup_id, status=BackupStatus.CORRUPTED)
            raise

        return await self.store.update(
            backup_id,
            status=BackupStatus.VERIFIED,
            verified_at=self.clock(),
            checksum=result.checksum or record.checksum,
        )

    async def delete_backup(self, backup_id: str) -> None:
        """Remove a backup's archive and record

        Raises:
            InvalidStateError: If the backup is running or pinned by a restore
        """
        record = await self.store.get(backup_id)
        if record.status == BackupStatus.RUNNING:
            raise InvalidStateError(
                f"Backup {backup_id} is still running", backup_id=backup_id, status=record.status.value
            )
        if self.leases.is_pinned(backup_id):
            raise InvalidStateError(f"Backup {backup_id} is being restored", backup_id=backup_id)
        await self.housekeeping.remove_archive(record)
        await self.store.delete(backup_id)
        self.logger.info("Backup deleted", backup_id=backup_id)

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    async def _resolve_restore_record(self, backup_id: Optional[str]) -> BackupRecord:
        if backup_id:
            record = await self.store.get(backup_id)
        else:
            record = await self.latest_backup()
            if record is None:
                raise BackupNotFoundError("latest", "No completed backup available to restore")
        if not record.is_usable:
            raise InvalidStateError(
                f"Backup {record.id} cannot be restored in status {record.status.value}",
                backup_id=record.id,
                status=record.status.value,
            )
        return record

    async def _snapshot(self, target: Path) -> Optional[Path]:
        entries = ArchiveBuilder.collect_directory(
            target, include_dirs=True, exclude=[self.backup_dir]
        )
        if not entries:
            return None
        stamp = self.clock().strftime("%Y%m%d_%H%M%S_%f")
        snapshot = self.config.snapshot_dir / f"pre_restore_{stamp}.tar.gz"
        snapshot_builder = ArchiveBuilder(
            compression_enabled=True,
            compression_level=self.config.compression_level,
            logger=self.logger,
        )
        await snapshot_builder.build(entries, snapshot)
        self.logger.info("Pre-restore snapshot created", path=str(snapshot), entries=len(entries))
        return snapshot

    async def _rollback(self, target: Path, snapshot: Optional[Path], target_was_empty: bool) -> None:
        if snapshot is None and not target_was_empty:
            self.logger.warning("No snapshot available, target left partially restored", target=str(target))
            return
        await self.builder.clear_directory(target, keep=[self.backup_dir])
        if snapshot is not None:
            await self.builder.extract(snapshot, target)
        self.logger.info("Restore rolled back", target=str(target))

    async def restore_backup(
        self,
        options: Optional[RestoreOptions] = None,
        cancel: Optional[CancelToken] = None,
    ) -> RestoreResult:
        """Restore a backup into a target directory and the database

        Raises:
            BackupNotFoundError: If the backup (or any usable backup) is missing
            InvalidStateError: If the backup is not completed or verified
            IntegrityError: If pre-restore verification fails (target untouched)
            BackupIOError: If extraction fails (target rolled back when preserved)
        """
        options = options or RestoreOptions()
        record = await self._resolve_restore_record(options.backup_id)
        target = Path(options.target_dir or self.config.data_dir)
        strip = (
            options.strip_components
            if options.strip_components is not None
            else self.config.strip_components
        )
        result = RestoreResult(backup_id=record.id, target_dir=target)

        async with self.leases.target_lock(target):
            async with self.leases.pinned(record.id):
                if options.verify_before_restore:
                    record = await self.verify_backup(record.id)
                    result.verified = True

                if record.is_skipped:
                    result.skipped = True
                    self.logger.info("Backup has no archive, nothing to restore", backup_id=record.id)
                    await self._notify(EventKind.SUCCESS, EventOperation.RESTORE, record)
                    return result

                archive = self.archive_path(record)
                target_was_empty = not target.exists() or not any(target.iterdir())
                if options.preserve_existing and not target_was_empty:
                    try:
                        result.snapshot_path = await self._snapshot(target)
                    except (BackupError, OSError) as e:
                        self.logger.warning("Pre-restore snapshot failed", target=str(target), error=str(e))

                self.logger.info("Restore started", backup_id=record.id, target=str(target))
                try:
                    result.files_restored = await self.builder.extract(archive, target, strip, cancel)
                    if options.restore_database:
                        await self._restore_database(archive, result)
                except Exception as e:
                    self.logger.error("Restore failed", backup_id=record.id, error=str(e))
                    if options.preserve_existing:
                        try:
                            await self._rollback(target, result.snapshot_path, target_was_empty)
                        except Exception as rollback_error:
                            self.logger.error(
                                "Rollback failed, target left partially restored",
                                backup_id=record.id,
                                target=str(target),
                                error=str(rollback_error),
                            )
                    await self._notify(EventKind.FAILURE, EventOperation.RESTORE, record, e)
                    raise

        self.logger.info(
            "Restore completed", backup_id=record.id, files=result.files_restored, target=str(target)
        )
        await self._notify(EventKind.SUCCESS, EventOperation.RESTORE, record)
        return result

    async def _restore_database(self, archive: Path, result: RestoreResult) -> None:
        """Load the archive's database dump or image into the data source"""
        data = await self.builder.read_entry(archive, DUMP_ENTRY)
        if data is not None:
            result.replayed_statements = await self.data_source.restore_dump(data.decode("utf-8"))
            result.database_restored = True
            return

        image = self.backup_dir / f".restore_{result.backup_id}.sqlite"
        try:
            if await self.builder.extract_entry(archive, COPY_ENTRY, image):
                await self.data_source.restore_copy(image)
                result.database_restored = True
            else:
                self.logger.debug("Archive holds no database dump or image", archive=archive.name)
        finally:
            image.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    async def export_data(
        self,
        fmt: str = "json",
        table: Optional[str] = None,
        output_dir: Optional[Path] = None,
        cancel: Optional[CancelToken] = None,
    ) -> List[Path]:
        """Export tables as JSON or CSV, one file per non-empty table

        Files land in ``output_dir`` (default ``backup_dir/exports``) as
        ``{table}_{YYYYmmdd_HHMMSS}.{fmt}``.

        Raises:
            ValidationError: If the format or table name is unknown
            BackupIOError: If the database file is missing
        """
        if fmt not in EXPORT_FORMATS:
            raise ValidationError(
                "UNSUPPORTED_EXPORT_FORMAT",
                f"Unsupported export format: {fmt}",
                {"format": fmt, "supported": list(EXPORT_FORMATS)},
            )
        directory = Path(output_dir) if output_dir else self.config.export_dir
        stamp = self.clock().strftime("%Y%m%d_%H%M%S")
        tables = [table] if table else None
        try:
            return await self.data_source.export_to(directory, fmt, stamp, tables, cancel)
        except ValueError as e:
            raise ValidationError("UNKNOWN_TABLE", str(e), {"table": table}) from e
