"""Cooperative cancellation for long-running backup work"""

import threading
from typing import Optional

from newsdesk_db.backup.exceptions import OperationCancelledError


class CancelToken:
    """Thread-safe cancellation flag.

    Work running in a worker thread calls :meth:`raise_if_cancelled` between
    units of work (files, tables, archive members).
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError(self.reason or "Operation cancelled")


def check_cancelled(cancel: Optional[CancelToken]) -> None:
    """Raise if ``cancel`` is set; a None token never cancels"""
    if cancel is not None:
        cancel.raise_if_cancelled()
