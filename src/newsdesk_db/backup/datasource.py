"""SQLite data source consumed by the backup engine.

The engine never holds a connection across operations: each dump, copy or
replay opens one through :meth:`SqliteDataSource.connection` and closes it
when the block exits. All sqlite calls run in a worker thread.
"""

import asyncio
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List, Optional, Sequence, Union

from newsdesk_db.backup.cancel import CancelToken
from newsdesk_db.backup.dump import apply_dump, write_dump
from newsdesk_db.backup.exceptions import BackupIOError
from newsdesk_db.backup.export import export_tables
from newsdesk_db.logger import Logger, create_logger


class SqliteDataSource:
    """Scoped access to the news store database file"""

    def __init__(self, path: Union[str, Path], logger: Optional[Logger] = None) -> None:
        self.path = Path(path)
        self.logger = logger or create_logger(name="newsdesk-backup-datasource")

    def exists(self) -> bool:
        return self.path.is_file()

    def _connect(self) -> sqlite3.Connection:
        if not self.path.parent.exists():
            raise BackupIOError(f"Database directory does not exist: {self.path.parent}", str(self.path))
        return sqlite3.connect(str(self.path), check_same_thread=False)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[sqlite3.Connection]:
        """Open a connection for the duration of the block"""
        conn = await asyncio.to_thread(self._connect)
        try:
            yield conn
        finally:
            await asyncio.to_thread(conn.close)

    async def dump_to(
        self,
        output: Path,
        tables: Optional[Sequence[str]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> int:
        """Write a logical dump to ``output``; returns the table count"""
        if not self.exists():
            raise BackupIOError(f"Database file not found: {self.path}", str(self.path))
        async with self.connection() as conn:
            count = await asyncio.to_thread(write_dump, conn, output, tables, cancel)
        self.logger.debug("Database dumped", path=str(output), tables=count)
        return count

    async def copy_to(self, output: Path) -> None:
        """Copy the database file through SQLite's online backup API"""
        if not self.exists():
            raise BackupIOError(f"Database file not found: {self.path}", str(self.path))

        def _copy(conn: sqlite3.Connection) -> None:
            target = sqlite3.connect(str(output))
            try:
                conn.backup(target)
            finally:
                target.close()

        async with self.connection() as conn:
            await asyncio.to_thread(_copy, conn)
        self.logger.debug("Database copied", path=str(output))

    async def restore_dump(self, sql_text: str) -> int:
        """Replay dump text into the database; returns statements executed"""
        async with self.connection() as conn:
            executed = await asyncio.to_thread(apply_dump, conn, sql_text)
        self.logger.info("Dump replayed into database", path=str(self.path), statements=executed)
        return executed

    async def restore_copy(self, image: Path) -> None:
        """Overwrite the database with a saved copy through the online backup API"""
        if not Path(image).is_file():
            raise BackupIOError(f"Database image not found: {image}", str(image))

        def _restore(conn: sqlite3.Connection) -> None:
            source = sqlite3.connect(str(image))
            try:
                source.backup(conn)
            finally:
                source.close()

        async with self.connection() as conn:
            await asyncio.to_thread(_restore, conn)
        self.logger.info("Database image restored", path=str(self.path), image=str(image))

    async def export_to(
        self,
        output_dir: Path,
        fmt: str,
        stamp: str,
        tables: Optional[Sequence[str]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> List[Path]:
        """Write per-table JSON or CSV exports; returns the files written"""
        if not self.exists():
            raise BackupIOError(f"Database file not found: {self.path}", str(self.path))
        async with self.connection() as conn:
            files = await asyncio.to_thread(export_tables, conn, fmt, Path(output_dir), stamp, tables, cancel)
        self.logger.info("Data exported", format=fmt, files=len(files), path=str(output_dir))
        return files
