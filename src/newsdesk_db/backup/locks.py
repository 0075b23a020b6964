"""Restore leases: record pins and per-target locks

A pinned record is never evicted or deleted. Restores into the same target
directory run one at a time; restores into different targets run freely.
"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, FrozenSet, Union


class RestoreLeases:
    """Tracks pinned backup ids and hands out per-target locks"""

    def __init__(self) -> None:
        self._pins: Dict[str, int] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def pin(self, backup_id: str) -> None:
        self._pins[backup_id] = self._pins.get(backup_id, 0) + 1

    def unpin(self, backup_id: str) -> None:
        count = self._pins.get(backup_id, 0) - 1
        if count > 0:
            self._pins[backup_id] = count
        else:
            self._pins.pop(backup_id, None)

    def is_pinned(self, backup_id: str) -> bool:
        return backup_id in self._pins

    def pinned_ids(self) -> FrozenSet[str]:
        return frozenset(self._pins)

    @asynccontextmanager
    async def pinned(self, backup_id: str) -> AsyncIterator[None]:
        self.pin(backup_id)
        try:
            yield
        finally:
            self.unpin(backup_id)

    def target_lock(self, target: Union[str, Path]) -> asyncio.Lock:
        """Lock shared by every restore into the same resolved directory"""
        key = str(Path(target).resolve())
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock
