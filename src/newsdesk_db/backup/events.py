"""Backup and restore notification events

Events are queued on an :class:`EventBus` and fanned out to registered
hooks. A failing hook is recorded and logged; it never fails the backup or
restore that published the event.
"""

import asyncio
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from newsdesk_db.backup.models import BackupRecord
from newsdesk_db.logger import Logger, create_logger


class EventKind(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class EventOperation(str, Enum):
    BACKUP = "backup"
    RESTORE = "restore"


@dataclass
class BackupEvent:
    kind: EventKind
    operation: EventOperation
    record: BackupRecord
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "operation": self.operation.value,
            "record": self.record.to_dict(),
            "error": self.error,
        }


EventHook = Callable[[BackupEvent], Union[None, Awaitable[None]]]


@dataclass
class FailedDelivery:
    event: BackupEvent
    hook: str
    error: str


class EventBus:
    """Queue of backup events with hook fan-out.

    Example:
        bus = EventBus()
        bus.subscribe(lambda event: print(event.kind))
        await bus.publish(event)
        latest = bus.queue.get_nowait()
    """

    def __init__(self, logger: Optional[Logger] = None, maxsize: int = 1000):
        self.queue: "asyncio.Queue[BackupEvent]" = asyncio.Queue(maxsize=maxsize)
        self.hooks: List[EventHook] = []
        self.failed_deliveries: List[FailedDelivery] = []
        self.logger = logger or create_logger(name="newsdesk-backup-events")

    def subscribe(self, hook: EventHook) -> None:
        self.hooks.append(hook)

    def unsubscribe(self, hook: EventHook) -> None:
        if hook in self.hooks:
            self.hooks.remove(hook)

    async def publish(self, event: BackupEvent) -> None:
        if self.queue.full():
            # Drop the oldest event so publishing never blocks an operation
            self.queue.get_nowait()
        self.queue.put_nowait(event)

        for hook in list(self.hooks):
            name = getattr(hook, "__qualname__", repr(hook))
            try:
                outcome = hook(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                self.failed_deliveries.append(FailedDelivery(event, name, str(e)))
                self.logger.warning(
                    "Event hook failed",
                    hook=name,
                    kind=event.kind.value,
                    operation=event.operation.value,
                    error=str(e),
                )

    def drain(self) -> List[BackupEvent]:
        """Remove and return every queued event"""
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events
