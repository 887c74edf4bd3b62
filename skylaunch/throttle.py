"""Batch admission control for instance launches."""

from __future__ import annotations

from collections.abc import Callable
from math import ceil
from threading import Lock
from time import sleep as _sleep

from loguru import logger

from skylaunch.constants import BATCH_COOLDOWN_SECONDS, BATCH_SIZE

log = logger.bind(component="throttle")


class AdmissionThrottle:
    """Thread-safe launch gate that admits attempts in fixed-size batches.

    Every ``admit()`` takes the next sequence number. Attempt ``n`` belongs
    to batch ``ceil(n / batch_size)`` and sleeps one cooldown per batch
    ahead of the first before it may proceed, so at most ``batch_size``
    attempts start inside any cooldown window.

    The counter is a sequence, not a live count: it is never decremented.

    Example:
        throttle = AdmissionThrottle()

        def provision(request):
            throttle.admit()
            ...
    """

    __slots__ = ("batch_size", "cooldown", "_sleep", "_count", "_lock")

    def __init__(
        self,
        batch_size: int = BATCH_SIZE,
        cooldown: float = BATCH_COOLDOWN_SECONDS,
        sleep: Callable[[float], None] = _sleep,
    ) -> None:
        """Initialize throttle.

        Args:
            batch_size: Attempts admitted per batch.
            cooldown: Seconds slept for each batch ahead of the first.
            sleep: Sleep function, injectable for tests.
        """
        self.batch_size = batch_size
        self.cooldown = cooldown
        self._sleep = sleep
        self._count = 0
        self._lock = Lock()

    @property
    def admitted(self) -> int:
        with self._lock:
            return self._count

    def _next_sequence(self) -> int:
        with self._lock:
            self._count += 1
            return self._count

    def admit(self) -> int:
        """Take a sequence number, blocking until its batch is admitted."""
        sequence = self._next_sequence()
        batch = ceil(sequence / self.batch_size)
        log.info("Attempt {sequence} admitted to batch {batch}", sequence=sequence, batch=batch)

        # Sleep OUTSIDE the lock so later callers can take their numbers
        cursor = 1
        while batch > cursor:
            cursor += 1
            log.info(
                "Attempt {sequence} waiting {cooldown}s for batch {batch}",
                sequence=sequence, cooldown=self.cooldown, batch=batch,
            )
            self._sleep(self.cooldown)
        return sequence


_default: AdmissionThrottle | None = None
_default_lock = Lock()


def default_throttle() -> AdmissionThrottle:
    """Process-wide throttle shared by attempts that do not inject one."""
    global _default
    with _default_lock:
        if _default is None:
            _default = AdmissionThrottle()
        return _default
