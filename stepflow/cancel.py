"""CancellationToken — cooperative abort signal handed to guarded steps."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class CancellationToken:
    """One-shot, thread-safe cancellation signal.

    ``DeadlineGuard`` creates one token per guarded call and places it on
    ``StepContext.cancel_token``.  Async steps are also cancelled as tasks;
    the token is what a sync step running in a worker thread, or a network
    client, uses to notice the abort::

        def call_payments(ctx):
            conn = open_connection()
            ctx.cancel_token.add_callback(conn.close)
            ...

    Callbacks run exactly once, on the thread that calls ``cancel()``, or
    immediately when registered after cancellation.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._run_callback(callback)

    def add_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        self._run_callback(callback)

    def raise_if_cancelled(self) -> None:
        """Raise ``CancelledError`` if the token has fired."""
        if self._event.is_set():
            raise asyncio.CancelledError(self.reason)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or *timeout* seconds pass.  Thread use only."""
        return self._event.wait(timeout)

    @staticmethod
    def _run_callback(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            logger.exception("Cancellation callback %r failed", callback)
