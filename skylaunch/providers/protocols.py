"""Provider-side collaborators of the provisioning pipeline.

Implementations raise the typed errors from ``skylaunch.exceptions``
(``ResourceNotFound`` and subclasses, ``ProviderError``,
``TransportError``); the pipeline never inspects provider messages.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from skylaunch.constants import InstanceState
from skylaunch.types import (
    ElasticAddress,
    InstanceHandle,
    SecurityGroup,
    VolumeHandle,
    VolumeOptions,
)


@runtime_checkable
class ComputeClient(Protocol):
    """Instance, volume and address operations of a compute provider."""

    def create_instance(self, payload: Mapping[str, Any]) -> InstanceHandle: ...

    def instance_state(self, instance_id: str) -> InstanceState | None:
        """Current state, or None if the provider has no such instance."""
        ...

    def terminate_instance(self, instance_id: str) -> None: ...

    def security_groups(self) -> tuple[SecurityGroup, ...]: ...

    def create_volume(self, options: VolumeOptions) -> VolumeHandle: ...

    def volume_state(self, volume_id: str) -> str: ...

    def attach_volume(self, instance_id: str, volume_id: str, device: str) -> None: ...

    def set_delete_on_termination(self, instance_id: str, device: str, enabled: bool) -> None: ...

    def allocate_address(self, domain: str) -> ElasticAddress: ...

    def describe_address(self, address: str) -> ElasticAddress | None:
        """Look up by public IP or allocation id; None if unknown."""
        ...

    def associate_address(
        self,
        instance_id: str,
        *,
        allocation_id: str | None = None,
        public_ip: str | None = None,
    ) -> str | None:
        """Associate and return the association id (VPC only)."""
        ...

    def disassociate_address(
        self, *, association_id: str | None = None, public_ip: str | None = None,
    ) -> None: ...

    def release_address(
        self, *, allocation_id: str | None = None, public_ip: str | None = None,
    ) -> None: ...


@runtime_checkable
class Communicator(Protocol):
    """Remote-control channel (SSH or equivalent) of an instance."""

    def ready(self) -> bool: ...
