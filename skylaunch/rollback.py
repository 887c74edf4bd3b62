"""Compensating rollback for failed or interrupted attempts.

Rollback never undoes individual steps. It hands the whole machine to the
destroy workflow, which terminates the instance (taking attached volumes
with it) and releases any persisted elastic address.
"""

from __future__ import annotations

from collections.abc import Callable
from threading import Lock

from loguru import logger

from skylaunch.constants import Lifecycle
from skylaunch.context import ProvisionContext
from skylaunch.exceptions import SkylaunchError

log = logger.bind(component="rollback")

type Destroyer = Callable[[ProvisionContext], None]


class RollbackCoordinator:
    """Dispatches at most one destroy per instance of an attempt.

    Safe to call repeatedly, and a no-op when no instance id was ever
    recorded on the context.
    """

    def __init__(self, context: ProvisionContext, destroy: Destroyer) -> None:
        self._context = context
        self._destroy = destroy
        self._rolled_back: set[str] = set()
        self._lock = Lock()

    @property
    def dispatched(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._rolled_back)

    def rollback(self) -> None:
        instance_id = self._context.instance.id
        if instance_id is None:
            log.debug("No instance recorded, nothing to roll back")
            return

        with self._lock:
            if instance_id in self._rolled_back:
                log.debug("Instance {instance_id} already rolled back", instance_id=instance_id)
                return
            self._rolled_back.add(instance_id)

        log.warning("Rolling back instance {instance_id}", instance_id=instance_id)
        try:
            self._destroy(self._context.for_destroy())
        except BaseException:
            with self._lock:
                self._rolled_back.discard(instance_id)
            raise
        self._context.instance.state = Lifecycle.TERMINATED


def recover(context: ProvisionContext, coordinator: RollbackCoordinator) -> None:
    """Backstop for errors that escaped the pipeline's own handling.

    Errors from the skylaunch hierarchy were already rolled back where
    they were raised. Anything else rolls back the instance unless the
    provider never created it.
    """
    if isinstance(context.error, SkylaunchError):
        return

    instance_id = context.instance.id
    if instance_id is None:
        return

    if context.client.instance_state(instance_id) is None:
        log.debug("Instance {instance_id} was never created", instance_id=instance_id)
        return

    log.warning(
        "Recovering from {error!r}, destroying {instance_id}",
        error=context.error, instance_id=instance_id,
    )
    coordinator.rollback()
