"""Shared fixtures for backup engine tests."""

import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from newsdesk_db.backup import BackupConfig, BackupService, MemoryRecordStore
from newsdesk_db.logger import Logger, create_logger

START = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock returning timezone-aware UTC datetimes."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def seed_database(path: Path) -> None:
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(
            """
            CREATE TABLE news_items (
                id INTEGER PRIMARY KEY,
                title TEXT NOT NULL,
                source TEXT,
                score REAL,
                raw BLOB
            );
            CREATE TABLE sources (name TEXT PRIMARY KEY, enabled INTEGER) WITHOUT ROWID;
            """
        )
        conn.executemany(
            "INSERT INTO news_items (title, source, score, raw) VALUES (?, ?, ?, ?)",
            [
                ("Markets rally", "weibo", 0.75, b"\x00\x01"),
                ("It's raining", "twitter", None, None),
                ("Line one\nline two", None, 1.0, b""),
            ],
        )
        conn.executemany(
            "INSERT INTO sources (name, enabled) VALUES (?, ?)",
            [("weibo", 1), ("twitter", 0)],
        )
        conn.commit()
    finally:
        conn.close()


def read_table(path: Path, table: str) -> list:
    conn = sqlite3.connect(str(path))
    try:
        return conn.execute(f"SELECT * FROM {table} ORDER BY 1").fetchall()
    finally:
        conn.close()


class ListLogger(Logger):
    """Logger that keeps every call for assertions."""

    def __init__(self):
        self.records = []

    def _add(self, level, message, kwargs):
        self.records.append((level, message, kwargs))

    def debug(self, message, **kwargs):
        self._add("DEBUG", message, kwargs)

    def info(self, message, **kwargs):
        self._add("INFO", message, kwargs)

    def warning(self, message, **kwargs):
        self._add("WARNING", message, kwargs)

    def error(self, message, **kwargs):
        self._add("ERROR", message, kwargs)

    def critical(self, message, **kwargs):
        self._add("CRITICAL", message, kwargs)

    def get_session_id(self):
        return "test"

    def messages(self, level):
        return [message for lvl, message, _ in self.records if lvl == level]


@pytest.fixture
def list_logger():
    return ListLogger()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def quiet_logger():
    return create_logger(name="newsdesk-backup-test", level=50)


@pytest.fixture
def workspace(tmp_path):
    """Data directory with a seeded database, plus a separate backup directory."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    seed_database(data_dir / "newsdesk.db")
    return tmp_path


@pytest.fixture
def config(workspace):
    return BackupConfig(
        backup_dir=workspace / "backups",
        data_dir=workspace / "data",
        database_path=workspace / "data" / "newsdesk.db",
        notify_on_success=True,
        notify_on_failure=True,
    )


@pytest.fixture
def make_service(clock, quiet_logger):
    def factory(config, **kwargs):
        kwargs.setdefault("store", MemoryRecordStore())
        return BackupService(config, clock=clock, logger=quiet_logger, **kwargs)

    return factory


@pytest.fixture
def service(config, make_service):
    return make_service(config)
