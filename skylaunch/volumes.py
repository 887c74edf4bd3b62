"""Create, await and attach EBS volumes to a running instance."""

from __future__ import annotations

import time
from collections.abc import Callable

from loguru import logger

from skylaunch.constants import DEFAULT_EBS_DEVICE, VOLUME_POLL_INTERVAL, VolumeState
from skylaunch.exceptions import (
    ConfigError,
    PollTimeout,
    SkylaunchError,
    VolumeAttachTimeout,
    VolumeProvisionTimeout,
)
from skylaunch.providers.protocols import ComputeClient
from skylaunch.retry import Sleep, poll_until
from skylaunch.types import (
    BlockDeviceSpec,
    InstanceHandle,
    VolumeHandle,
    VolumeOptions,
    ebs_volumes,
)

log = logger.bind(component="volumes")


def build_volume_options(spec: BlockDeviceSpec, availability_zone: str | None) -> VolumeOptions:
    """Volume creation parameters for an EBS spec.

    Raises:
        ConfigError: If the spec has no size or the zone is unknown.
    """
    if spec.volume_size is None:
        raise ConfigError(
            f"EBS volume for {spec.device_name or DEFAULT_EBS_DEVICE} is missing Ebs.VolumeSize"
        )
    if not availability_zone:
        raise ConfigError("Cannot create an EBS volume without an availability zone")

    return VolumeOptions(
        size=spec.volume_size,
        availability_zone=availability_zone,
        device=spec.device_name or DEFAULT_EBS_DEVICE,
        delete_on_termination=(
            spec.delete_on_termination if spec.delete_on_termination is not None else True
        ),
        volume_type=spec.volume_type,
        iops=spec.iops,
        tags={"Name": spec.virtual_name} if spec.virtual_name else {},
    )


class VolumeAttachmentWorkflow:
    """Attaches EBS volumes one at a time, in declaration order.

    Each volume is created, polled until available (``interval`` apart),
    attached, then polled back-to-back until in-use. Any failure rolls
    back the instance and propagates.
    """

    def __init__(
        self,
        client: ComputeClient,
        rollback: Callable[[], None],
        *,
        interval: float = VOLUME_POLL_INTERVAL,
        sleep: Sleep = time.sleep,
    ) -> None:
        self._client = client
        self._rollback = rollback
        self._interval = interval
        self._sleep = sleep

    def attach_all(
        self,
        handle: InstanceHandle,
        block_devices: tuple[BlockDeviceSpec, ...],
        tries: int,
    ) -> list[VolumeHandle]:
        volumes: list[VolumeHandle] = []
        try:
            for spec in ebs_volumes(block_devices):
                volumes.append(self.attach(handle, spec, tries))
        except SkylaunchError:
            self._rollback()
            raise
        return volumes

    def _observe(self, volume: VolumeHandle) -> str:
        volume.state = self._client.volume_state(volume.id)
        log.debug("Volume {volume_id} is {state}", volume_id=volume.id, state=volume.state)
        return volume.state

    def attach(self, handle: InstanceHandle, spec: BlockDeviceSpec, tries: int) -> VolumeHandle:
        instance_id = handle.id
        if instance_id is None:
            raise ValueError("Cannot attach a volume to an instance that was never created")

        options = build_volume_options(spec, handle.availability_zone)
        log.debug("Volume options: {options}", options=options)
        volume = self._client.create_volume(options)
        log.info(
            "Created volume {volume_id} ({size} GiB) for {device}",
            volume_id=volume.id, size=options.size, device=volume.device,
        )

        try:
            poll_until(
                lambda: self._observe(volume) == VolumeState.AVAILABLE,
                tries=tries,
                interval=self._interval,
                sleep=self._sleep,
                description=f"volume {volume.id} available",
            )
        except PollTimeout as e:
            raise VolumeProvisionTimeout(volume.id, e.tries) from e

        self._client.attach_volume(instance_id, volume.id, volume.device)
        volume.state = VolumeState.ATTACHING

        try:
            poll_until(
                lambda: self._observe(volume) == VolumeState.IN_USE,
                tries=tries,
                sleep=self._sleep,
                description=f"volume {volume.id} in-use",
            )
        except PollTimeout as e:
            raise VolumeAttachTimeout(volume.id, volume.device, instance_id, e.tries) from e

        self._client.set_delete_on_termination(
            instance_id, volume.device, options.delete_on_termination,
        )
        log.info(
            "Attached volume {volume_id} to {instance_id} as {device}",
            volume_id=volume.id, instance_id=instance_id, device=volume.device,
        )
        return volume
