"""Elastic address association for a launched instance."""

from __future__ import annotations

from collections.abc import Callable

from loguru import logger

from skylaunch.console import Console
from skylaunch.constants import ELASTIC_IP_KEY
from skylaunch.exceptions import AddressNotFound, SkylaunchError
from skylaunch.providers.protocols import ComputeClient
from skylaunch.storage import ObjectStore
from skylaunch.types import ElasticAddressRecord, InstanceHandle

log = logger.bind(component="addresses")


class ElasticAddressWorkflow:
    """Associates an elastic address and persists the association.

    The record is written under ``ELASTIC_IP_KEY`` in the machine's
    metadata store so a later destroy can release it. Failures roll back
    the instance before propagating.
    """

    def __init__(
        self,
        client: ComputeClient,
        metadata: ObjectStore,
        rollback: Callable[[], None],
        console: Console,
    ) -> None:
        self._client = client
        self._metadata = metadata
        self._rollback = rollback
        self._console = console

    def associate_existing(
        self, handle: InstanceHandle, address_id: str, *, allocated: bool = False,
    ) -> ElasticAddressRecord:
        """Associate an address looked up by public IP or allocation id."""
        instance_id = handle.id
        if instance_id is None:
            raise ValueError("Cannot associate an address with an instance that was never created")

        try:
            address = self._client.describe_address(address_id)
            if address is None:
                raise AddressNotFound(address_id)

            if address.allocation_id is not None:
                association_id = self._client.associate_address(
                    instance_id, allocation_id=address.allocation_id,
                )
            else:
                association_id = self._client.associate_address(
                    instance_id, public_ip=address.public_ip,
                )
        except SkylaunchError:
            log.warning("Could not associate {address_id}", address_id=address_id)
            self._rollback()
            raise

        record = ElasticAddressRecord(
            public_ip=address.public_ip,
            allocation_id=address.allocation_id,
            association_id=association_id,
            allocated=allocated,
        )
        self._metadata.put(ELASTIC_IP_KEY, record.to_json().encode())
        self._console.info(f"Elastic IP {record.public_ip} associated with {instance_id}")
        log.info(
            "Associated {public_ip} with {instance_id}",
            public_ip=record.public_ip, instance_id=instance_id,
        )
        return record

    def allocate_and_associate(self, handle: InstanceHandle, pool: str) -> ElasticAddressRecord:
        """Allocate a fresh address in ``pool`` and associate it."""
        try:
            address = self._client.allocate_address(pool)
        except AddressNotFound as e:
            self._rollback()
            raise AddressNotFound(pool, _not_allocated(pool)) from e
        except SkylaunchError:
            self._rollback()
            raise

        log.info("Allocated {public_ip} from {pool}", public_ip=address.public_ip, pool=pool)
        # Recorded before association so a rollback releases it
        pending = ElasticAddressRecord(
            public_ip=address.public_ip, allocation_id=address.allocation_id, allocated=True,
        )
        self._metadata.put(ELASTIC_IP_KEY, pending.to_json().encode())

        try:
            return self.associate_existing(handle, address.public_ip, allocated=True)
        except AddressNotFound as e:
            raise AddressNotFound(pool, _not_allocated(pool)) from e


def _not_allocated(pool: str) -> str:
    return f"Elastic IP not allocated with allocate_elastic_ip option: {pool}"
