"""Cooperative cancellation for provisioning attempts."""

from __future__ import annotations

import threading


class CancellationToken:
    """Thread-safe interruption flag, polled at fixed points of the pipeline.

    The host sets it (e.g. from a SIGINT handler); the pipeline only ever
    reads it. A fresh token is used for the destroy path so rollback is
    never itself interrupted.
    """

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"
