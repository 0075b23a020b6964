"""Automatic backup scheduling

Runs a full backup every ``auto_backup_interval`` seconds on APScheduler's
asyncio scheduler. A failed run is logged; the next run still happens.
"""

import asyncio
import signal
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from newsdesk_db.backup.models import BackupType
from newsdesk_db.backup.service import BackupService
from newsdesk_db.logger import Logger

JOB_ID = "auto_backup"


class AutoBackupScheduler:
    """Interval-driven full backups for a :class:`BackupService`"""

    def __init__(
        self,
        service: BackupService,
        interval: Optional[int] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
        logger: Optional[Logger] = None,
    ):
        self.service = service
        self.interval = service.config.auto_backup_interval if interval is None else interval
        self.scheduler = scheduler or AsyncIOScheduler()
        self.logger = logger or service.logger
        self.runs = 0
        self.failures = 0
        self._stopped: Optional[asyncio.Event] = None

    @property
    def enabled(self) -> bool:
        return self.interval > 0

    async def run_backup_job(self) -> None:
        """Create one full backup; errors are logged, never raised"""
        self.runs += 1
        self.logger.info("Scheduled backup started", run=self.runs)
        try:
            record = await self.service.create_backup(BackupType.FULL, description="scheduled")
        except Exception as e:
            self.failures += 1
            self.logger.error("Scheduled backup failed", run=self.runs, error=str(e))
            return
        self.logger.info("Scheduled backup completed", backup_id=record.id, status=record.status.value)

    def setup(self) -> bool:
        """Register the backup job; returns False when scheduling is disabled"""
        if not self.enabled:
            self.logger.warning("Automatic backups disabled (interval is 0)")
            return False
        self.scheduler.add_job(
            self.run_backup_job,
            trigger=IntervalTrigger(seconds=self.interval),
            id=JOB_ID,
            name="Automatic Backup",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.logger.info("Automatic backups scheduled", interval_seconds=self.interval)
        return True

    def start(self) -> bool:
        """Set up and start the scheduler; must run inside an event loop"""
        if not self.setup():
            return False
        self.scheduler.start()
        job = self.scheduler.get_job(JOB_ID)
        if job is not None:
            self.logger.info("Next backup scheduled", next_run=str(job.next_run_time))
        return True

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        if self._stopped is not None:
            self._stopped.set()
        self.logger.info("Automatic backup scheduler stopped")

    async def run_forever(self) -> None:
        """Run until SIGINT or SIGTERM"""
        self._stopped = asyncio.Event()
        results = await self.service.cleanup()
        self.logger.info("Initial cleanup results", deleted=results["deleted"])
        if not self.start():
            return

        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self.shutdown)
            except NotImplementedError:
                pass
        await self._stopped.wait()
