"""Core data model for provisioning a single EC2 instance.

Requests and specs are immutable; handles are owned and mutated by one
provisioning attempt only.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from skylaunch.constants import (
    DEFAULT_EBS_DEVICE,
    DEFAULT_READY_TIMEOUT,
    DEFAULT_REGION,
    Lifecycle,
    VolumeState,
)

# =============================================================================
# Block Devices
# =============================================================================

# Flat keys as they appear in user configuration
_DEVICE_NAME = "DeviceName"
_VIRTUAL_NAME = "VirtualName"
_EBS_SIZE = "Ebs.VolumeSize"
_EBS_TYPE = "Ebs.VolumeType"
_EBS_IOPS = "Ebs.Iops"
_EBS_DELETE = "Ebs.DeleteOnTermination"


@dataclass(frozen=True, slots=True)
class BlockDeviceSpec:
    """A requested block device.

    A spec carrying any ``Ebs.*`` field is EBS-backed and is created and
    attached after launch; otherwise it is an ephemeral device that goes
    into the launch-time block device mapping.
    """

    device_name: str | None = None
    virtual_name: str | None = None
    volume_size: int | None = None
    volume_type: str | None = None
    iops: int | None = None
    delete_on_termination: bool | None = None

    @property
    def is_ebs(self) -> bool:
        return any(
            value is not None
            for value in (self.volume_size, self.volume_type, self.iops, self.delete_on_termination)
        )

    @property
    def is_ephemeral(self) -> bool:
        return not self.is_ebs

    def to_mapping(self) -> dict[str, Any]:
        """Launch-time mapping entry for an ephemeral device."""
        entry: dict[str, Any] = {}
        if self.device_name is not None:
            entry[_DEVICE_NAME] = self.device_name
        if self.virtual_name is not None:
            entry[_VIRTUAL_NAME] = self.virtual_name
        return entry

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> BlockDeviceSpec:
        """Build from the flat ``Ebs.*`` key format used in configuration."""
        size = data.get(_EBS_SIZE)
        iops = data.get(_EBS_IOPS)
        delete = data.get(_EBS_DELETE)
        return cls(
            device_name=data.get(_DEVICE_NAME),
            virtual_name=data.get(_VIRTUAL_NAME),
            volume_size=int(size) if size is not None else None,
            volume_type=data.get(_EBS_TYPE),
            iops=int(iops) if iops is not None else None,
            delete_on_termination=bool(delete) if delete is not None else None,
        )


def ebs_volumes(block_devices: tuple[BlockDeviceSpec, ...]) -> tuple[BlockDeviceSpec, ...]:
    return tuple(bd for bd in block_devices if bd.is_ebs)


def ephemeral_devices(block_devices: tuple[BlockDeviceSpec, ...]) -> tuple[BlockDeviceSpec, ...]:
    return tuple(bd for bd in block_devices if bd.is_ephemeral)


# =============================================================================
# Elastic Address Modes
# =============================================================================


@dataclass(frozen=True, slots=True)
class NoElasticIp:
    """Do not associate an elastic address."""


@dataclass(frozen=True, slots=True)
class UseExistingElasticIp:
    """Associate an address that already exists in the account."""

    address_id: str


@dataclass(frozen=True, slots=True)
class AllocateElasticIp:
    """Allocate a fresh address from ``pool`` and associate it."""

    pool: str


type ElasticIpMode = NoElasticIp | UseExistingElasticIp | AllocateElasticIp


# =============================================================================
# Provision Request
# =============================================================================


@dataclass(frozen=True, slots=True)
class ProvisionRequest:
    """Immutable configuration for one provisioning attempt.

    Args:
        ami: Image to boot.
        instance_type: Instance size class (e.g. ``t2.micro``).
        region: Region to launch in.
        availability_zone: Optional placement zone.
        keypair_name: Key pair for SSH access. A warning is emitted if unset.
        private_ip_address: Fixed private IP inside the subnet.
        subnet_id: Launch into this subnet (VPC networking).
        security_groups: Group names (standard) or group ids (VPC).
        tags: Instance tags.
        user_data: Boot-time user data.
        block_devices: Requested devices, in order.
        elastic_ip: Elastic address mode.
        iam_instance_profile_arn: IAM instance profile by ARN.
        iam_instance_profile_name: IAM instance profile by name.
        monitoring: Enable detailed monitoring.
        ebs_optimized: Launch as EBS-optimized.
        terminate_on_shutdown: Terminate (instead of stop) on guest shutdown.
        ready_timeout: Seconds to wait for the instance to become ready.
        volume_timeout: Seconds budgeted for each volume poll. Defaults to
            ``ready_timeout``.
    """

    ami: str
    instance_type: str
    region: str = DEFAULT_REGION
    availability_zone: str | None = None
    keypair_name: str | None = None
    private_ip_address: str | None = None
    subnet_id: str | None = None
    security_groups: tuple[str, ...] = ()
    tags: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    user_data: str | None = None
    block_devices: tuple[BlockDeviceSpec, ...] = ()
    elastic_ip: ElasticIpMode = NoElasticIp()
    iam_instance_profile_arn: str | None = None
    iam_instance_profile_name: str | None = None
    monitoring: bool = False
    ebs_optimized: bool = False
    terminate_on_shutdown: bool = False
    ready_timeout: int = DEFAULT_READY_TIMEOUT
    volume_timeout: int | None = None

    @property
    def is_vpc(self) -> bool:
        return self.subnet_id is not None

    @property
    def volume_tries(self) -> int:
        timeout = self.volume_timeout if self.volume_timeout is not None else self.ready_timeout
        return timeout // 2


# =============================================================================
# Handles
# =============================================================================


@dataclass(slots=True)
class InstanceHandle:
    """A launched instance, owned by the attempt that created it."""

    id: str | None = None
    state: Lifecycle = Lifecycle.NOT_CREATED
    availability_zone: str | None = None


@dataclass(slots=True)
class VolumeHandle:
    """An EBS volume moving through creation and attachment."""

    id: str
    device: str
    state: str = VolumeState.CREATING


@dataclass(frozen=True, slots=True)
class VolumeOptions:
    """Parameters for creating one EBS volume."""

    size: int
    availability_zone: str
    device: str = DEFAULT_EBS_DEVICE
    delete_on_termination: bool = True
    volume_type: str | None = None
    iops: int | None = None
    tags: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


# =============================================================================
# Elastic Addresses
# =============================================================================


@dataclass(frozen=True, slots=True)
class ElasticAddress:
    """An elastic address as described by the provider."""

    public_ip: str
    allocation_id: str | None = None
    association_id: str | None = None
    instance_id: str | None = None


@dataclass(frozen=True, slots=True)
class ElasticAddressRecord:
    """Association metadata persisted so destroy can release the address.

    ``allocated`` marks addresses this tool allocated itself. Only those are
    released on destroy; pre-existing addresses are just disassociated.
    """

    public_ip: str
    allocation_id: str | None = None
    association_id: str | None = None
    allocated: bool = False

    def to_json(self) -> str:
        data: dict[str, Any] = {"public_ip": self.public_ip}
        if self.allocation_id is not None:
            data["allocation_id"] = self.allocation_id
        if self.association_id is not None:
            data["association_id"] = self.association_id
        if self.allocated:
            data["allocated"] = True
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str | bytes) -> ElasticAddressRecord:
        data = json.loads(raw)
        return cls(
            public_ip=str(data["public_ip"]),
            allocation_id=data.get("allocation_id"),
            association_id=data.get("association_id"),
            allocated=bool(data.get("allocated", False)),
        )


# =============================================================================
# Security Groups
# =============================================================================


@dataclass(frozen=True, slots=True)
class IpPermission:
    """One ingress rule of a security group."""

    protocol: str
    from_port: int | None = None
    to_port: int | None = None

    def allows_tcp(self, port: int) -> bool:
        if self.protocol != "tcp" or self.from_port is None or self.to_port is None:
            return False
        return self.from_port <= port <= self.to_port


@dataclass(frozen=True, slots=True)
class SecurityGroup:
    """Security group with its ingress rules."""

    group_id: str
    name: str
    permissions: tuple[IpPermission, ...] = ()


# =============================================================================
# Metrics
# =============================================================================

type Metrics = dict[str, float]
