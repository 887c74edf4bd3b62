"""boto3-backed EC2 client.

Translates ``botocore`` failures into skylaunch's typed errors using the
structured ``Error.Code`` of each response, so callers never match on
free-text messages.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from functools import cached_property
from typing import TYPE_CHECKING, Any

from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from skylaunch.constants import InstanceState, Lifecycle
from skylaunch.exceptions import (
    AddressNotFound,
    ProviderError,
    ResourceNotFound,
    SkylaunchError,
    SubnetNotFound,
    TransportError,
)
from skylaunch.types import (
    ElasticAddress,
    InstanceHandle,
    IpPermission,
    SecurityGroup,
    VolumeHandle,
    VolumeOptions,
)

if TYPE_CHECKING:
    from mypy_boto3_ec2 import EC2Client as Boto3EC2Client

log = logger.bind(component="aws-client")

_NOT_FOUND_KINDS: Mapping[str, str] = {
    "InvalidSubnetID.NotFound": "subnet",
    "InvalidAddress.NotFound": "elastic-ip",
    "InvalidAllocationID.NotFound": "elastic-ip",
    "InvalidAssociationID.NotFound": "elastic-ip",
    "InvalidInstanceID.NotFound": "instance",
    "InvalidVolume.NotFound": "volume",
    "InvalidAMIID.NotFound": "image",
    "InvalidGroup.NotFound": "security-group",
    "InvalidKeyPair.NotFound": "key-pair",
}


def translate_client_error(
    exc: ClientError,
    identifier: str = "",
    by_kind: Mapping[str, str] | None = None,
) -> SkylaunchError:
    """Map a botocore ClientError to a typed skylaunch error.

    Args:
        exc: The botocore error.
        identifier: Resource the failed call was about.
        by_kind: Per-kind identifiers for calls that reference several
            resources (e.g. a launch names both a subnet and an image).
    """
    error = exc.response.get("Error", {})
    code = error.get("Code", "")
    message = error.get("Message", "") or str(exc)
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")

    kind = _NOT_FOUND_KINDS.get(code)
    if kind is not None and by_kind:
        identifier = by_kind.get(kind, identifier)

    match kind:
        case "subnet":
            return SubnetNotFound(identifier)
        case "elastic-ip":
            return AddressNotFound(identifier)
        case str():
            return ResourceNotFound(kind, identifier, message)
        case None:
            pass

    if not code or (status is not None and status >= 500):
        return TransportError(code or "HTTP error", status=status, body=message)
    return ProviderError(message, code=code)


@contextmanager
def _translated(identifier: str = "", **by_kind: str) -> Iterator[None]:
    try:
        yield
    except ClientError as e:
        raise translate_client_error(e, identifier, by_kind) from e
    except BotoCoreError as e:
        raise TransportError(type(e).__name__, body=str(e)) from e


def _parse_security_group(raw: Mapping[str, Any]) -> SecurityGroup:
    return SecurityGroup(
        group_id=raw.get("GroupId", ""),
        name=raw.get("GroupName", ""),
        permissions=tuple(
            IpPermission(
                protocol=str(rule.get("IpProtocol", "")),
                from_port=rule.get("FromPort"),
                to_port=rule.get("ToPort"),
            )
            for rule in raw.get("IpPermissions", [])
        ),
    )


def _parse_address(raw: Mapping[str, Any]) -> ElasticAddress:
    return ElasticAddress(
        public_ip=raw["PublicIp"],
        allocation_id=raw.get("AllocationId"),
        association_id=raw.get("AssociationId"),
        instance_id=raw.get("InstanceId"),
    )


class EC2Client:
    """EC2 operations used by the provisioning pipeline.

    Args:
        region: AWS region.
        client: Pre-built boto3 EC2 client. Created lazily if omitted.
    """

    def __init__(self, region: str, client: Boto3EC2Client | None = None) -> None:
        self.region = region
        if client is not None:
            self.__dict__["_ec2"] = client

    @cached_property
    def _ec2(self) -> Boto3EC2Client:
        """Lazy EC2 client."""
        import boto3

        return boto3.client("ec2", region_name=self.region)

    # -------------------------------------------------------------------------
    # Instances
    # -------------------------------------------------------------------------

    def create_instance(self, payload: Mapping[str, Any]) -> InstanceHandle:
        with _translated(
            payload.get("ImageId", ""),
            subnet=payload.get("SubnetId", ""),
            image=payload.get("ImageId", ""),
        ):
            response = self._ec2.run_instances(**payload)

        raw = response["Instances"][0]
        log.debug("run_instances returned {instance_id}", instance_id=raw["InstanceId"])
        return InstanceHandle(
            id=raw["InstanceId"],
            state=Lifecycle.PENDING,
            availability_zone=raw.get("Placement", {}).get("AvailabilityZone"),
        )

    def instance_state(self, instance_id: str) -> InstanceState | None:
        try:
            with _translated(instance_id):
                response = self._ec2.describe_instances(InstanceIds=[instance_id])
        except ResourceNotFound:
            return None

        for reservation in response.get("Reservations", []):
            for raw in reservation.get("Instances", []):
                return InstanceState(raw["State"]["Name"])
        return None

    def instance_address(self, instance_id: str) -> str | None:
        """Public IP of the instance, falling back to its private IP."""
        with _translated(instance_id):
            response = self._ec2.describe_instances(InstanceIds=[instance_id])

        for reservation in response.get("Reservations", []):
            for raw in reservation.get("Instances", []):
                return raw.get("PublicIpAddress") or raw.get("PrivateIpAddress")
        return None

    def terminate_instance(self, instance_id: str) -> None:
        with _translated(instance_id):
            self._ec2.terminate_instances(InstanceIds=[instance_id])

    def security_groups(self) -> tuple[SecurityGroup, ...]:
        groups: list[SecurityGroup] = []
        with _translated():
            paginator = self._ec2.get_paginator("describe_security_groups")
            for page in paginator.paginate():
                groups.extend(_parse_security_group(sg) for sg in page.get("SecurityGroups", []))
        return tuple(groups)

    # -------------------------------------------------------------------------
    # Volumes
    # -------------------------------------------------------------------------

    def create_volume(self, options: VolumeOptions) -> VolumeHandle:
        args: dict[str, Any] = {
            "AvailabilityZone": options.availability_zone,
            "Size": options.size,
        }
        if options.volume_type is not None:
            args["VolumeType"] = options.volume_type
        if options.iops is not None:
            args["Iops"] = options.iops
        if options.tags:
            args["TagSpecifications"] = [
                {
                    "ResourceType": "volume",
                    "Tags": [{"Key": k, "Value": v} for k, v in options.tags.items()],
                }
            ]

        with _translated(options.device):
            response = self._ec2.create_volume(**args)

        return VolumeHandle(
            id=response["VolumeId"],
            device=options.device,
            state=response.get("State", "creating"),
        )

    def volume_state(self, volume_id: str) -> str:
        with _translated(volume_id):
            response = self._ec2.describe_volumes(VolumeIds=[volume_id])
        volumes = response.get("Volumes", [])
        if not volumes:
            raise ResourceNotFound("volume", volume_id)
        return volumes[0]["State"]

    def attach_volume(self, instance_id: str, volume_id: str, device: str) -> None:
        with _translated(volume_id):
            self._ec2.attach_volume(Device=device, InstanceId=instance_id, VolumeId=volume_id)

    def set_delete_on_termination(self, instance_id: str, device: str, enabled: bool) -> None:
        with _translated(instance_id):
            self._ec2.modify_instance_attribute(
                InstanceId=instance_id,
                BlockDeviceMappings=[
                    {"DeviceName": device, "Ebs": {"DeleteOnTermination": enabled}},
                ],
            )

    # -------------------------------------------------------------------------
    # Elastic Addresses
    # -------------------------------------------------------------------------

    def allocate_address(self, domain: str) -> ElasticAddress:
        with _translated(domain):
            response = self._ec2.allocate_address(Domain=domain)  # type: ignore[arg-type]
        return _parse_address(response)

    def describe_address(self, address: str) -> ElasticAddress | None:
        if address.startswith("eipalloc-"):
            query: dict[str, Any] = {"AllocationIds": [address]}
        else:
            query = {"PublicIps": [address]}

        try:
            with _translated(address):
                response = self._ec2.describe_addresses(**query)
        except AddressNotFound:
            return None

        addresses = response.get("Addresses", [])
        return _parse_address(addresses[0]) if addresses else None

    def associate_address(
        self,
        instance_id: str,
        *,
        allocation_id: str | None = None,
        public_ip: str | None = None,
    ) -> str | None:
        args: dict[str, Any] = {"InstanceId": instance_id}
        if allocation_id is not None:
            args["AllocationId"] = allocation_id
        else:
            args["PublicIp"] = public_ip

        with _translated(allocation_id or public_ip or ""):
            response = self._ec2.associate_address(**args)
        return response.get("AssociationId")

    def disassociate_address(
        self, *, association_id: str | None = None, public_ip: str | None = None,
    ) -> None:
        args: dict[str, Any] = (
            {"AssociationId": association_id} if association_id else {"PublicIp": public_ip}
        )
        with _translated(association_id or public_ip or ""):
            self._ec2.disassociate_address(**args)

    def release_address(
        self, *, allocation_id: str | None = None, public_ip: str | None = None,
    ) -> None:
        args: dict[str, Any] = (
            {"AllocationId": allocation_id} if allocation_id else {"PublicIp": public_ip}
        )
        with _translated(allocation_id or public_ip or ""):
            self._ec2.release_address(**args)
