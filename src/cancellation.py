"""Cooperative cancellation for reconciliation passes."""

import threading
from typing import Any


class CancellationToken:
    """A polled flag telling a reconciliation pass to stop.

    Optionally wraps another truthy-when-stopped flag, such as the
    `stopped` kwarg kopf passes to timers and daemons, so a pass also
    stops when the operator is shutting down.
    """

    def __init__(self, source: Any = None) -> None:
        self._event = threading.Event()
        self._source = source

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or bool(self._source)

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"
