"""Backup verification module

Checks an archive against its record in a fixed order (exists, size,
checksum, structure) and stops at the first failure.
"""

import asyncio
import hashlib
import tarfile
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import aiofiles
import aiofiles.os

from newsdesk_db.backup.exceptions import IntegrityError
from newsdesk_db.backup.models import BackupRecord
from newsdesk_db.logger import Logger, create_logger

CHUNK_SIZE = 65536

CHECK_EXISTS = "exists"
CHECK_SIZE = "size"
CHECK_CHECKSUM = "checksum"
CHECK_STRUCTURE = "structure"


@dataclass
class VerificationResult:
    """Outcome of a successful verification"""

    backup_id: str
    checksum: str = ""
    size: int = 0
    entry_count: int = 0
    checks: List[str] = field(default_factory=list)
    skipped: bool = False

    def to_dict(self) -> dict:
        return {
            "backup_id": self.backup_id,
            "checksum": self.checksum,
            "size": self.size,
            "entry_count": self.entry_count,
            "checks": list(self.checks),
            "skipped": self.skipped,
        }


class BackupVerifier:
    """Verifies backup archive integrity"""

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger or create_logger(name="newsdesk-backup-verify")

    async def calculate_checksum(self, filepath: Path) -> str:
        """SHA-256 hex digest of a file, read in chunks"""
        digest = hashlib.sha256()
        async with aiofiles.open(filepath, "rb") as f:
            while True:
                chunk = await f.read(CHUNK_SIZE)
                if not chunk:
                    break
                digest.update(chunk)
        checksum = digest.hexdigest()
        self.logger.debug("Calculated checksum", file=Path(filepath).name, checksum=checksum)
        return checksum

    @staticmethod
    def _read_structure(filepath: Path) -> int:
        """Read every member to EOF; returns the member count"""
        count = 0
        with tarfile.open(filepath, "r:*") as tar:
            for member in tar:
                count += 1
                if member.isfile():
                    handle = tar.extractfile(member)
                    if handle is None:
                        continue
                    while handle.read(CHUNK_SIZE):
                        pass
        return count

    async def verify_structure(self, filepath: Path) -> int:
        """Check the tar container is readable end to end.

        Raises:
            IntegrityError: With check "structure" on any read failure
        """
        try:
            count = await asyncio.to_thread(self._read_structure, Path(filepath))
        except (tarfile.TarError, EOFError, zlib.error, OSError) as e:
            raise IntegrityError(CHECK_STRUCTURE, f"Archive is unreadable: {e}") from e
        if count == 0:
            raise IntegrityError(CHECK_STRUCTURE, "Archive is empty")
        return count

    async def verify(self, record: BackupRecord, filepath: Path) -> VerificationResult:
        """Run all checks for ``record`` against the archive at ``filepath``.

        A record without a checksum adopts the computed one; the caller
        persists ``result.checksum``.

        Raises:
            IntegrityError: Naming the first failing check
        """
        if record.is_skipped:
            return VerificationResult(backup_id=record.id, skipped=True)

        filepath = Path(filepath)
        result = VerificationResult(backup_id=record.id)

        try:
            if not await aiofiles.os.path.isfile(filepath):
                raise IntegrityError(
                    CHECK_EXISTS, f"Backup file not found: {filepath.name}", record.id
                )
            result.checks.append(CHECK_EXISTS)

            stat = await aiofiles.os.stat(filepath)
            if stat.st_size != record.size:
                raise IntegrityError(
                    CHECK_SIZE,
                    f"Size mismatch: expected {record.size}, found {stat.st_size}",
                    record.id,
                )
            result.size = stat.st_size
            result.checks.append(CHECK_SIZE)

            actual = await self.calculate_checksum(filepath)
            if record.checksum and actual != record.checksum:
                raise IntegrityError(
                    CHECK_CHECKSUM,
                    f"Checksum mismatch: expected {record.checksum}, got {actual}",
                    record.id,
                )
            result.checksum = actual
            result.checks.append(CHECK_CHECKSUM)

            try:
                result.entry_count = await self.verify_structure(filepath)
            except IntegrityError as e:
                raise IntegrityError(e.check, e.message, record.id) from e
            result.checks.append(CHECK_STRUCTURE)
        except IntegrityError as e:
            self.logger.warning(
                "Backup verification failed", backup_id=record.id, check=e.check, error=e.message
            )
            raise

        self.logger.info("Backup verification passed", backup_id=record.id, entries=result.entry_count)
        return result
