"""Archive building and extraction

Archives are plain tar containers, optionally gzip-compressed. All tar and
filesystem work runs in a worker thread so the event loop stays free.
"""

import asyncio
import shutil
import tarfile
import zlib
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from newsdesk_db.backup.cancel import CancelToken, check_cancelled
from newsdesk_db.backup.exceptions import BackupIOError
from newsdesk_db.logger import Logger, create_logger

# (source path on disk, entry name inside the archive)
ArchiveEntry = Tuple[Path, str]

# Raised by tarfile, gzip and the filesystem on damaged or unreadable archives
ARCHIVE_ERRORS = (tarfile.TarError, EOFError, zlib.error, OSError)


def _is_within(path: Path, parent: Path) -> bool:
    try:
        path.resolve().relative_to(parent.resolve())
        return True
    except ValueError:
        return False


class ArchiveBuilder:
    """Builds backup archives and extracts them back"""

    def __init__(
        self,
        compression_enabled: bool = True,
        compression_level: int = 6,
        logger: Optional[Logger] = None,
    ):
        if not 1 <= compression_level <= 9:
            raise ValueError("compression_level must be between 1 and 9")
        self.compression_enabled = compression_enabled
        self.compression_level = compression_level
        self.logger = logger or create_logger(name="newsdesk-backup-archive")

    @property
    def extension(self) -> str:
        return "tar.gz" if self.compression_enabled else "tar"

    def archive_name(self, stem: str) -> str:
        return f"{stem}.{self.extension}"

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    @staticmethod
    def collect_directory(
        root: Path,
        prefix: str = "",
        include_dirs: bool = False,
        exclude: Sequence[Path] = (),
    ) -> List[ArchiveEntry]:
        """Expand ``root`` into entries named ``prefix/relative/path``.

        A file root yields a single entry named ``prefix`` (or its own name).
        """
        root = Path(root)
        if root.is_file():
            return [(root, prefix or root.name)]

        entries: List[ArchiveEntry] = []
        for path in sorted(root.rglob("*")):
            if any(_is_within(path, ex) for ex in exclude):
                continue
            if path.is_dir() and not include_dirs:
                continue
            if not (path.is_file() or path.is_dir()):
                continue
            rel = path.relative_to(root).as_posix()
            entries.append((path, f"{prefix}/{rel}" if prefix else rel))
        return entries

    @staticmethod
    def _scan(
        root: Path,
        since: datetime,
        exclude: Sequence[Path],
        cancel: Optional[CancelToken],
    ) -> List[ArchiveEntry]:
        threshold = since.timestamp()
        entries: List[ArchiveEntry] = []
        for path in sorted(root.rglob("*")):
            check_cancelled(cancel)
            if not path.is_file():
                continue
            if any(_is_within(path, ex) for ex in exclude):
                continue
            if path.stat().st_mtime > threshold:
                entries.append((path, path.relative_to(root).as_posix()))
        return entries

    async def scan_changed_files(
        self,
        root: Path,
        since: datetime,
        cancel: Optional[CancelToken] = None,
        exclude: Sequence[Path] = (),
    ) -> List[ArchiveEntry]:
        """Files under ``root`` modified strictly after ``since``"""
        root = Path(root)
        if not root.is_dir():
            raise BackupIOError(f"Data directory does not exist: {root}", str(root))
        entries = await asyncio.to_thread(self._scan, root, since, tuple(exclude), cancel)
        self.logger.debug(
            "Scanned for changed files", root=str(root), since=since.isoformat(), changed=len(entries)
        )
        return entries

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def _build(
        self, entries: Sequence[ArchiveEntry], output: Path, cancel: Optional[CancelToken]
    ) -> int:
        if self.compression_enabled:
            tar = tarfile.open(output, "w:gz", compresslevel=self.compression_level)
        else:
            tar = tarfile.open(output, "w")
        with tar:
            for source, arcname in entries:
                check_cancelled(cancel)
                tar.add(str(source), arcname=arcname, recursive=False)
        return output.stat().st_size

    async def build(
        self,
        entries: Sequence[ArchiveEntry],
        output: Path,
        cancel: Optional[CancelToken] = None,
    ) -> int:
        """Write ``entries`` into a new archive at ``output``.

        Returns:
            Size of the archive in bytes

        Raises:
            BackupIOError: If a source cannot be read or the output written
            OperationCancelledError: If ``cancel`` fires between entries
        """
        output = Path(output)
        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            size = await asyncio.to_thread(self._build, list(entries), output, cancel)
        except OSError as e:
            raise BackupIOError(f"Failed to write archive {output.name}: {e}", str(output)) from e
        self.logger.debug("Archive written", path=str(output), entries=len(entries), size=size)
        return size

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    @staticmethod
    def _extract(
        archive: Path, target: Path, strip_components: int, cancel: Optional[CancelToken]
    ) -> int:
        extracted = 0
        with tarfile.open(archive, "r:*") as tar:
            for member in tar:
                check_cancelled(cancel)
                parts = [p for p in member.name.split("/") if p and p != "."]
                if len(parts) <= strip_components:
                    continue
                member.name = "/".join(parts[strip_components:])
                tar.extract(member, path=str(target), filter="data")
                if member.isfile():
                    extracted += 1
        return extracted

    async def extract(
        self,
        archive: Path,
        target: Path,
        strip_components: int = 0,
        cancel: Optional[CancelToken] = None,
    ) -> int:
        """Extract ``archive`` into ``target``; returns the number of files written

        Raises:
            BackupIOError: If the archive is damaged or the target is not writable
        """
        target = Path(target)
        target.mkdir(parents=True, exist_ok=True)
        try:
            count = await asyncio.to_thread(self._extract, Path(archive), target, strip_components, cancel)
        except ARCHIVE_ERRORS as e:
            raise BackupIOError(f"Failed to extract {Path(archive).name}: {e}", str(archive)) from e
        self.logger.debug("Archive extracted", archive=str(archive), target=str(target), files=count)
        return count

    @staticmethod
    def _extract_entry(archive: Path, name: str, output: Path) -> bool:
        with tarfile.open(archive, "r:*") as tar:
            try:
                member = tar.getmember(name)
            except KeyError:
                return False
            handle = tar.extractfile(member)
            if handle is None:
                return False
            output.parent.mkdir(parents=True, exist_ok=True)
            with handle, open(output, "wb") as f:
                shutil.copyfileobj(handle, f)
        return True

    async def extract_entry(self, archive: Path, name: str, output: Path) -> bool:
        """Stream one archive entry to ``output``; False if the entry is absent"""
        try:
            return await asyncio.to_thread(self._extract_entry, Path(archive), name, Path(output))
        except ARCHIVE_ERRORS as e:
            raise BackupIOError(f"Failed to read {name} from {Path(archive).name}: {e}", str(archive)) from e

    @staticmethod
    def _read_entry(archive: Path, name: str) -> Optional[bytes]:
        with tarfile.open(archive, "r:*") as tar:
            try:
                member = tar.getmember(name)
            except KeyError:
                return None
            handle = tar.extractfile(member)
            return handle.read() if handle else None

    async def read_entry(self, archive: Path, name: str) -> Optional[bytes]:
        """Contents of one archive entry, or None if it is absent"""
        try:
            return await asyncio.to_thread(self._read_entry, Path(archive), name)
        except ARCHIVE_ERRORS as e:
            raise BackupIOError(f"Failed to read {name} from {Path(archive).name}: {e}", str(archive)) from e

    @classmethod
    def _clear(cls, target: Path, keep: Sequence[Path]) -> None:
        for child in target.iterdir():
            if any(_is_within(child, k) for k in keep):
                continue
            if child.is_dir() and not child.is_symlink():
                if any(_is_within(k, child) for k in keep):
                    cls._clear(child, keep)
                else:
                    shutil.rmtree(child)
            else:
                child.unlink()

    async def clear_directory(self, target: Path, keep: Sequence[Path] = ()) -> None:
        """Remove everything inside ``target`` except ``keep`` paths"""
        target = Path(target)
        if target.exists():
            await asyncio.to_thread(self._clear, target, tuple(keep))
