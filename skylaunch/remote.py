"""Wait until the instance accepts remote-control connections."""

from __future__ import annotations

import time
from collections.abc import Callable

from loguru import logger

from skylaunch.cancellation import CancellationToken
from skylaunch.constants import REMOTE_POLL_INTERVAL
from skylaunch.exceptions import SkylaunchError
from skylaunch.providers.protocols import Communicator
from skylaunch.retry import Sleep, Timer, poll_until
from skylaunch.types import InstanceHandle

log = logger.bind(component="remote")


class RemoteControlWait:
    """Polls the communicator with no try limit.

    Ends when the communicator reports ready or the attempt is
    interrupted; the caller tells the two apart through the token. A
    provider error raised by the communicator rolls the instance back
    before it propagates.
    """

    def __init__(
        self,
        communicator: Communicator,
        rollback: Callable[[], None],
        cancel: CancellationToken,
        *,
        interval: float = REMOTE_POLL_INTERVAL,
        sleep: Sleep = time.sleep,
    ) -> None:
        self._communicator = communicator
        self._rollback = rollback
        self._cancel = cancel
        self._interval = interval
        self._sleep = sleep

    def _reachable_or_cancelled(self) -> bool:
        return self._cancel.cancelled or self._communicator.ready()

    def await_reachable(self, handle: InstanceHandle) -> float:
        """Returns seconds spent waiting."""
        with Timer() as timer:
            try:
                attempts = poll_until(
                    self._reachable_or_cancelled,
                    tries=None,
                    interval=self._interval,
                    sleep=self._sleep,
                    description=f"remote control on {handle.id}",
                )
            except SkylaunchError as e:
                log.warning(
                    "Remote control check failed for {instance_id}: {error}",
                    instance_id=handle.id, error=e,
                )
                self._rollback()
                raise

        if self._cancel.cancelled:
            log.info("Interrupted while waiting for {instance_id}", instance_id=handle.id)
        else:
            log.info(
                "Instance {instance_id} reachable after {attempts} checks",
                instance_id=handle.id, attempts=attempts,
            )
        return timer.elapsed
