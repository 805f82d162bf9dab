"""Cooperative cancellation shared between the event loop and workers."""

from __future__ import annotations

import threading

from pygls.exceptions import JsonRpcRequestCancelled


class CancellationToken:
    """Set on the loop, polled by work running on the pool."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        """Checkpoint: raise JsonRpcRequestCancelled once cancellation was requested."""
        if self._event.is_set():
            raise JsonRpcRequestCancelled()
