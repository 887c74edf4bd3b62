"""Default destroy workflow: release the elastic address, terminate the instance."""

from __future__ import annotations

from collections.abc import Callable

from loguru import logger

from skylaunch.constants import ELASTIC_IP_KEY, Lifecycle
from skylaunch.context import ProvisionContext
from skylaunch.exceptions import AddressNotFound, DestroyNotConfirmed, ResourceNotFound
from skylaunch.types import ElasticAddressRecord

log = logger.bind(component="destroy")


class TerminateInstance:
    """Terminates the context's instance.

    Without ``force_confirm_destroy`` on the context, the ``confirm``
    callback decides; with neither, destroy is refused.

    Args:
        confirm: Asked with the instance id before a non-forced destroy.
    """

    def __init__(self, confirm: Callable[[str], bool] | None = None) -> None:
        self._confirm = confirm

    def __call__(self, context: ProvisionContext) -> None:
        instance_id = context.instance.id
        if instance_id is None:
            log.debug("No instance to destroy")
            return

        if not context.force_confirm_destroy:
            if self._confirm is None or not self._confirm(instance_id):
                raise DestroyNotConfirmed(instance_id)

        context.console.info("Terminating the instance...")
        self._release_address(context)

        try:
            context.client.terminate_instance(instance_id)
        except ResourceNotFound:
            log.warning("Instance {instance_id} already gone", instance_id=instance_id)

        log.info("Terminated {instance_id}", instance_id=instance_id)
        context.instance.id = None
        context.instance.state = Lifecycle.TERMINATED

    def _release_address(self, context: ProvisionContext) -> None:
        if not context.metadata.exists(ELASTIC_IP_KEY):
            return

        record = ElasticAddressRecord.from_json(context.metadata.get(ELASTIC_IP_KEY))
        client = context.client
        try:
            if record.association_id is not None:
                client.disassociate_address(association_id=record.association_id)
            elif record.allocation_id is None:
                client.disassociate_address(public_ip=record.public_ip)
            if record.allocated:
                client.release_address(
                    allocation_id=record.allocation_id, public_ip=record.public_ip,
                )
        except AddressNotFound:
            log.warning("Elastic IP {ip} already released", ip=record.public_ip)

        context.metadata.delete(ELASTIC_IP_KEY)
        log.info("Released elastic IP {ip}", ip=record.public_ip)
