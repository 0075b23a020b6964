"""Tests for the backup event bus."""

import pytest

from newsdesk_db.backup import BackupEvent, BackupRecord, BackupType, EventBus, EventKind, EventOperation


def make_event(kind=EventKind.SUCCESS, error=None):
    record = BackupRecord(id="full_1", type=BackupType.FULL)
    return BackupEvent(kind, EventOperation.BACKUP, record, error)


class TestEventBus:
    @pytest.mark.asyncio
    async def test_sync_and_async_hooks(self, quiet_logger):
        bus = EventBus(logger=quiet_logger)
        seen = []

        async def on_async(event):
            seen.append("async")

        bus.subscribe(lambda event: seen.append("sync"))
        bus.subscribe(on_async)

        await bus.publish(make_event())

        assert seen == ["sync", "async"]
        assert len(bus.drain()) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self, quiet_logger):
        bus = EventBus(logger=quiet_logger)
        seen = []
        hook = seen.append
        bus.subscribe(hook)
        bus.unsubscribe(hook)
        bus.unsubscribe(hook)

        await bus.publish(make_event())

        assert seen == []

    @pytest.mark.asyncio
    async def test_failing_hook_does_not_stop_others(self, list_logger):
        bus = EventBus(logger=list_logger)
        seen = []

        def broken(event):
            raise ValueError("boom")

        bus.subscribe(broken)
        bus.subscribe(seen.append)

        await bus.publish(make_event(EventKind.FAILURE, "disk full"))

        assert len(seen) == 1
        [failure] = bus.failed_deliveries
        assert failure.hook.endswith("broken")
        assert failure.error == "boom"
        assert list_logger.messages("WARNING") == ["Event hook failed"]

    def test_to_dict(self):
        payload = make_event(EventKind.FAILURE, "disk full").to_dict()
        assert payload["kind"] == "failure"
        assert payload["operation"] == "backup"
        assert payload["error"] == "disk full"
        assert payload["record"]["id"] == "full_1"
