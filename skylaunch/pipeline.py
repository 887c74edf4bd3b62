"""The provisioning pipeline for one instance.

admit -> launch -> await ready -> attach volumes -> associate address
-> await remote control -> next stage

Every fatal error rolls the instance back before it reaches the caller.
An interrupted attempt rolls back without raising and does not hand off.

Example:
    from skylaunch import ProvisionContext, RunInstance
    from skylaunch.providers.aws import EC2Client

    client = EC2Client(request.region)
    context = ProvisionContext(request=request, client=client, communicator=ssh)
    handle = provision(context, RunInstance(next_stage=install_software))
"""

from __future__ import annotations

import time
from collections.abc import Callable

from loguru import logger

from skylaunch.addresses import ElasticAddressWorkflow
from skylaunch.config import LaunchSettings
from skylaunch.constants import INSTANCE_READY_TIME, INSTANCE_SSH_TIME, Lifecycle
from skylaunch.context import ProvisionContext
from skylaunch.destroy import TerminateInstance
from skylaunch.exceptions import ReadyTimeout
from skylaunch.launch import LaunchOrchestrator
from skylaunch.readiness import ReadinessPoller
from skylaunch.remote import RemoteControlWait
from skylaunch.retry import Sleep
from skylaunch.rollback import Destroyer, RollbackCoordinator, recover
from skylaunch.throttle import AdmissionThrottle, default_throttle
from skylaunch.types import (
    AllocateElasticIp,
    InstanceHandle,
    NoElasticIp,
    UseExistingElasticIp,
    ebs_volumes,
)
from skylaunch.volumes import VolumeAttachmentWorkflow

log = logger.bind(component="pipeline")

type NextStage = Callable[[ProvisionContext], None]


def _noop(context: ProvisionContext) -> None:
    pass


class RunInstance:
    """Provisions the context's request, then hands off to ``next_stage``.

    One RunInstance may serve many attempts (and threads); each call gets
    its own rollback coordinator, dropped when the call returns. When the
    call raises it is kept until ``recover`` or ``release``. Attempts that
    share a throttle share its admission sequence.

    Args:
        next_stage: Called with the context once the instance is ready.
        throttle: Admission gate. Defaults to the process-wide throttle, or
            a dedicated one when ``settings`` change the batch parameters.
        destroy: Workflow run on rollback.
        settings: Poll intervals and batch parameters.
        sleep: Sleep function for every poll, injectable for tests.
    """

    def __init__(
        self,
        next_stage: NextStage = _noop,
        *,
        throttle: AdmissionThrottle | None = None,
        destroy: Destroyer | None = None,
        settings: LaunchSettings | None = None,
        sleep: Sleep = time.sleep,
    ) -> None:
        self._settings = settings or LaunchSettings()
        self._next = next_stage
        self._destroy = destroy or TerminateInstance()
        self._sleep = sleep
        if throttle is not None:
            self._throttle = throttle
        elif settings is not None:
            self._throttle = AdmissionThrottle(
                self._settings.batch_size, self._settings.batch_cooldown,
            )
        else:
            self._throttle = default_throttle()
        self._coordinators: dict[int, RollbackCoordinator] = {}

    def _coordinator(self, context: ProvisionContext) -> RollbackCoordinator:
        return self._coordinators.setdefault(id(context), RollbackCoordinator(context, self._destroy))

    def __call__(self, context: ProvisionContext) -> InstanceHandle:
        coordinator = self._coordinator(context)
        handle = self._run(context, coordinator)
        # Kept only when an error escapes, for recover()
        self.release(context)
        return handle

    def _run(self, context: ProvisionContext, coordinator: RollbackCoordinator) -> InstanceHandle:
        settings = self._settings
        request = context.request

        self._throttle.admit()

        launcher = LaunchOrchestrator(context.client, context.console, ssh_port=settings.ssh_port)
        handle = launcher.launch(request)
        context.instance = handle
        context.warnings.extend(launcher.warnings)

        context.console.info("Waiting for instance to become ready...")
        poller = ReadinessPoller(
            context.client,
            coordinator.rollback,
            cancel=context.cancel,
            interval=settings.ready_poll_interval,
            sleep=self._sleep,
        )
        try:
            context.metrics[INSTANCE_READY_TIME] = poller.await_ready(handle, request.ready_timeout)
        except ReadyTimeout as e:
            context.metrics[INSTANCE_READY_TIME] = e.elapsed
            raise
        log.info(
            "Time to instance ready: {elapsed:.1f}s",
            elapsed=context.metrics[INSTANCE_READY_TIME],
        )

        if context.interrupted:
            return self._interrupted(context, coordinator)

        if ebs_volumes(request.block_devices):
            context.console.info("Creating and attaching EBS volumes...")
            VolumeAttachmentWorkflow(
                context.client,
                coordinator.rollback,
                interval=settings.volume_poll_interval,
                sleep=self._sleep,
            ).attach_all(handle, request.block_devices, request.volume_tries)

        addresses = ElasticAddressWorkflow(
            context.client, context.metadata, coordinator.rollback, context.console,
        )
        match request.elastic_ip:
            case UseExistingElasticIp(address_id=address_id):
                addresses.associate_existing(handle, address_id)
            case AllocateElasticIp(pool=pool):
                addresses.allocate_and_associate(handle, pool)
            case NoElasticIp():
                pass

        if context.interrupted:
            return self._interrupted(context, coordinator)

        context.console.info("Waiting for SSH to become available...")
        context.metrics[INSTANCE_SSH_TIME] = RemoteControlWait(
            context.communicator,
            coordinator.rollback,
            context.cancel,
            interval=settings.remote_poll_interval,
            sleep=self._sleep,
        ).await_reachable(handle)
        log.info("Time for SSH ready: {elapsed:.1f}s", elapsed=context.metrics[INSTANCE_SSH_TIME])

        if context.interrupted:
            return self._interrupted(context, coordinator)

        handle.state = Lifecycle.READY_WITH_ERRORS if context.warnings else Lifecycle.READY
        context.console.info("Machine is booted and ready for use!")
        self._next(context)
        return handle

    def _interrupted(
        self, context: ProvisionContext, coordinator: RollbackCoordinator,
    ) -> InstanceHandle:
        log.warning("Attempt interrupted, rolling back {instance_id}", instance_id=context.instance.id)
        coordinator.rollback()
        return context.instance

    def recover(self, context: ProvisionContext) -> None:
        """Backstop for an error the host caught from ``__call__``."""
        try:
            recover(context, self._coordinator(context))
        finally:
            self._coordinators.pop(id(context), None)

    def release(self, context: ProvisionContext) -> None:
        """Forget the rollback state kept for a finished attempt."""
        self._coordinators.pop(id(context), None)


def provision(context: ProvisionContext, runner: RunInstance | None = None) -> InstanceHandle:
    """Run one attempt with host-side recovery.

    Errors escaping the pipeline are recorded on the context and passed
    through the recovery hook before being re-raised.
    """
    runner = runner or RunInstance()
    try:
        return runner(context)
    except Exception as e:
        context.error = e
        runner.recover(context)
        raise
    finally:
        runner.release(context)
