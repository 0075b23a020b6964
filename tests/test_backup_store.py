"""Tests for backup record stores (memory and file backends)."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from newsdesk_db.backup.exceptions import (
    BackupNotFoundError,
    InvalidStateError,
    RecordExistsError,
)
from newsdesk_db.backup.models import BackupRecord, BackupStatus, BackupType
from newsdesk_db.backup.store import (
    FileRecordStore,
    MemoryRecordStore,
    RecordFilter,
    RecordStore,
    create_record_store,
)
from newsdesk_db.backup.store.base import apply_update
from newsdesk_db.exceptions import ConfigurationError

NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_record(backup_id, minutes=0, backup_type=BackupType.FULL, **kwargs):
    return BackupRecord(
        id=backup_id, type=backup_type, created_at=NOW + timedelta(minutes=minutes), **kwargs
    )


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path, quiet_logger):
    if request.param == "memory":
        return MemoryRecordStore()
    return FileRecordStore(tmp_path / "backups", logger=quiet_logger)


class TestRecordStoreContract:
    def test_implements_protocol(self, store):
        assert isinstance(store, RecordStore)

    @pytest.mark.asyncio
    async def test_create_forces_running(self, store):
        created = await store.create(make_record("b1", status=BackupStatus.COMPLETED))
        assert created.status == BackupStatus.RUNNING
        assert (await store.get("b1")).status == BackupStatus.RUNNING

    @pytest.mark.asyncio
    async def test_create_duplicate_raises(self, store):
        await store.create(make_record("b1"))
        with pytest.raises(RecordExistsError):
            await store.create(make_record("b1"))

    @pytest.mark.asyncio
    async def test_get_missing_raises(self, store):
        with pytest.raises(BackupNotFoundError):
            await store.get("nope")

    @pytest.mark.asyncio
    async def test_update_applies_fields(self, store):
        await store.create(make_record("b1"))
        updated = await store.update(
            "b1",
            status=BackupStatus.COMPLETED,
            size=10,
            filename="b1.tar.gz",
            metadata={"entry_count": 2},
        )

        assert updated.status == BackupStatus.COMPLETED
        assert updated.size == 10
        assert updated.metadata == {"entry_count": "2"}
        assert (await store.get("b1")).filename == "b1.tar.gz"

    @pytest.mark.asyncio
    async def test_update_rejects_illegal_transition(self, store):
        await store.create(make_record("b1"))
        with pytest.raises(InvalidStateError):
            await store.update("b1", status=BackupStatus.VERIFIED)
        assert (await store.get("b1")).status == BackupStatus.RUNNING

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(self, store):
        await store.create(make_record("b1"))
        with pytest.raises(ValueError):
            await store.update("b1", retention_days=1)

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, store):
        with pytest.raises(BackupNotFoundError):
            await store.update("nope", size=1)

    @pytest.mark.asyncio
    async def test_returned_records_are_detached(self, store):
        await store.create(make_record("b1"))
        record = await store.get("b1")
        record.metadata["x"] = "y"
        assert "x" not in (await store.get("b1")).metadata

    @pytest.mark.asyncio
    async def test_list_newest_first_with_paging(self, store):
        for i in range(5):
            await store.create(make_record(f"b{i}", minutes=i))

        ids = [r.id for r in await store.list()]
        assert ids == ["b4", "b3", "b2", "b1", "b0"]

        page = await store.list(limit=2, offset=1)
        assert [r.id for r in page] == ["b3", "b2"]

    @pytest.mark.asyncio
    async def test_list_filters(self, store):
        await store.create(make_record("f1", minutes=0))
        await store.create(make_record("i1", minutes=10, backup_type=BackupType.INCREMENTAL))
        await store.create(make_record("f2", minutes=20))
        await store.update("f2", status=BackupStatus.COMPLETED)

        fulls = await store.list(RecordFilter(type=BackupType.FULL))
        assert {r.id for r in fulls} == {"f1", "f2"}

        completed = await store.list(RecordFilter(status=BackupStatus.COMPLETED))
        assert [r.id for r in completed] == ["f2"]

        window = await store.list(
            RecordFilter(
                created_after=NOW + timedelta(minutes=5),
                created_before=NOW + timedelta(minutes=15),
            )
        )
        assert [r.id for r in window] == ["i1"]

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.create(make_record("b1"))
        await store.delete("b1")
        assert await store.list_all() == []
        with pytest.raises(BackupNotFoundError):
            await store.delete("b1")


class TestFileRecordStore:
    @pytest.mark.asyncio
    async def test_writes_sidecar_json(self, tmp_path, quiet_logger):
        store = FileRecordStore(tmp_path, logger=quiet_logger)
        await store.create(make_record("full_1"))

        sidecar = tmp_path / "full_1.json"
        assert sidecar.exists()
        assert json.loads(sidecar.read_text())["status"] == "running"
        assert not list(tmp_path.glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path, quiet_logger):
        store = FileRecordStore(tmp_path, logger=quiet_logger)
        await store.create(make_record("full_1"))
        await store.update("full_1", status=BackupStatus.COMPLETED, size=99)

        reopened = FileRecordStore(tmp_path, logger=quiet_logger)
        record = await reopened.get("full_1")
        assert record.status == BackupStatus.COMPLETED
        assert record.size == 99
        assert record.created_at == NOW

    @pytest.mark.asyncio
    async def test_delete_removes_sidecar(self, tmp_path, quiet_logger):
        store = FileRecordStore(tmp_path, logger=quiet_logger)
        await store.create(make_record("full_1"))
        await store.delete("full_1")
        assert not (tmp_path / "full_1.json").exists()

    @pytest.mark.asyncio
    async def test_reload_picks_up_external_writes(self, tmp_path, quiet_logger):
        store = FileRecordStore(tmp_path, logger=quiet_logger)
        writer = FileRecordStore(tmp_path, logger=quiet_logger)
        await writer.create(make_record("full_1"))

        assert len(store) == 0
        store.reload()
        assert (await store.get("full_1")).id == "full_1"

    def test_skips_unreadable_sidecars(self, tmp_path, list_logger):
        (tmp_path / "broken.json").write_text("{not json")
        (tmp_path / "other.json").write_text(json.dumps({"unrelated": True}))

        store = FileRecordStore(tmp_path, logger=list_logger)

        assert len(store) == 0
        assert len(list_logger.messages("WARNING")) == 2


class TestApplyUpdate:
    def test_status_change_goes_through_lifecycle(self):
        record = make_record("b1")
        fields = {"status": "completed", "size": 5}

        updated = apply_update(record, fields)

        assert updated.status == BackupStatus.COMPLETED
        assert updated.size == 5
        assert record.status == BackupStatus.RUNNING
        assert fields == {"status": "completed", "size": 5}

    def test_illegal_status_change(self):
        record = make_record("b1", status=BackupStatus.FAILED)
        with pytest.raises(InvalidStateError) as exc_info:
            apply_update(record, {"status": BackupStatus.VERIFIED})
        assert exc_info.value.details["status"] == "failed"

    def test_same_status_is_not_a_transition(self):
        record = make_record("b1", status=BackupStatus.VERIFIED)
        assert apply_update(record, {"status": BackupStatus.VERIFIED, "size": 1}).size == 1


class TestFactory:

    def test_memory(self):
        assert isinstance(create_record_store("memory"), MemoryRecordStore)

    def test_file(self, tmp_path, quiet_logger):
        store = create_record_store("file", path=tmp_path, logger=quiet_logger)
        assert isinstance(store, FileRecordStore)

    def test_file_requires_path(self):
        with pytest.raises(ConfigurationError):
            create_record_store("file")

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            create_record_store("vault")  # type: ignore[arg-type]
