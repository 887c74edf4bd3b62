"""Wait for a launched instance to reach the running state."""

from __future__ import annotations

import time
from collections.abc import Callable

from loguru import logger

from skylaunch.cancellation import CancellationToken
from skylaunch.constants import READY_POLL_INTERVAL, InstanceState, Lifecycle
from skylaunch.exceptions import PollTimeout, ReadyTimeout, SkylaunchError
from skylaunch.providers.protocols import ComputeClient
from skylaunch.retry import Sleep, Timer, poll_until
from skylaunch.types import InstanceHandle

log = logger.bind(component="readiness")


class ReadinessPoller:
    """Polls instance state with a try budget of ``timeout // 2``.

    An interrupted attempt skips the wait (before or during polling)
    without error. On exhaustion the instance is rolled back before
    ``ReadyTimeout`` is raised; provider errors while polling roll back
    too, then propagate.
    """

    def __init__(
        self,
        client: ComputeClient,
        rollback: Callable[[], None],
        *,
        cancel: CancellationToken | None = None,
        interval: float = READY_POLL_INTERVAL,
        sleep: Sleep = time.sleep,
    ) -> None:
        self._client = client
        self._rollback = rollback
        self._cancel = cancel or CancellationToken()
        self._interval = interval
        self._sleep = sleep

    def await_ready(self, handle: InstanceHandle, timeout_seconds: int) -> float:
        """Block until ``handle`` is running. Returns the elapsed seconds."""
        timer = Timer().start()
        if self._cancel.cancelled:
            log.info("Interrupted, skipping readiness wait for {instance_id}", instance_id=handle.id)
            return timer.stop()

        instance_id = handle.id
        if instance_id is None:
            raise ValueError("Cannot wait for an instance that was never created")

        tries = timeout_seconds // 2

        def _running() -> bool:
            if self._cancel.cancelled:
                return True
            state = self._client.instance_state(instance_id)
            log.debug("Instance {instance_id} is {state}", instance_id=instance_id, state=state)
            if state == InstanceState.RUNNING:
                handle.state = Lifecycle.RUNNING
                return True
            return False

        try:
            attempts = poll_until(
                _running,
                tries=tries,
                interval=self._interval,
                sleep=self._sleep,
                description=f"instance {instance_id}",
            )
        except PollTimeout as e:
            elapsed = timer.stop()
            log.warning(
                "Instance {instance_id} not ready after {tries} checks",
                instance_id=instance_id, tries=e.tries,
            )
            self._rollback()
            raise ReadyTimeout(timeout_seconds, elapsed) from e
        except SkylaunchError:
            self._rollback()
            raise

        elapsed = timer.stop()
        log.info(
            "Instance {instance_id} ready after {attempts} checks ({elapsed:.1f}s)",
            instance_id=instance_id, attempts=attempts, elapsed=elapsed,
        )
        return elapsed
