"""Instance launch: pre-flight checks, payload construction, create call."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from loguru import logger

from skylaunch.console import Console
from skylaunch.constants import DEFAULT_SECURITY_GROUP, SSH_PORT
from skylaunch.exceptions import (
    ConfigWarning,
    ProviderError,
    ResourceNotFound,
    SubnetNotFound,
)
from skylaunch.providers.protocols import ComputeClient
from skylaunch.types import (
    AllocateElasticIp,
    InstanceHandle,
    NoElasticIp,
    ProvisionRequest,
    SecurityGroup,
    UseExistingElasticIp,
    ephemeral_devices,
)

log = logger.bind(component="launch")

NO_KEYPAIR_WARNING = (
    "No keypair is configured. Unless your AMI allows SSH logins some other "
    "way, you will not be able to reach the instance."
)
SUBNET_WITHOUT_ADDRESS_WARNING = (
    "Launching into a subnet without an elastic IP. The instance is only "
    "reachable if the subnet assigns it a public address."
)
SSH_ACCESS_WARNING = (
    "Security groups do not allow inbound TCP on port {port}. The instance "
    "may not be reachable over SSH."
)


def preflight_warnings(request: ProvisionRequest) -> list[ConfigWarning]:
    """Non-fatal configuration notices for a request."""
    warnings: list[ConfigWarning] = []
    if not request.keypair_name:
        warnings.append(ConfigWarning(NO_KEYPAIR_WARNING))
    if request.is_vpc and isinstance(request.elastic_ip, NoElasticIp):
        warnings.append(ConfigWarning(SUBNET_WITHOUT_ADDRESS_WARNING))
    return warnings


def allows_ssh_port(
    groups: Iterable[SecurityGroup],
    requested: Iterable[str],
    vpc: bool,
    port: int = SSH_PORT,
) -> bool:
    """Whether any requested group has a TCP rule covering ``port``.

    Requested groups are matched by id under VPC networking and by name
    otherwise. With no groups requested the provider's default group is
    checked.
    """
    wanted = set(requested) or {DEFAULT_SECURITY_GROUP}
    for group in groups:
        key = group.group_id if vpc else group.name
        if key not in wanted:
            continue
        if any(rule.allows_tcp(port) for rule in group.permissions):
            return True
    return False


def build_payload(request: ProvisionRequest) -> dict[str, Any]:
    """Provider create payload for ``request``.

    EBS-backed block devices are left out; they are created and attached
    once the instance is running.
    """
    payload: dict[str, Any] = {
        "ImageId": request.ami,
        "InstanceType": request.instance_type,
        "MinCount": 1,
        "MaxCount": 1,
        "Monitoring": {"Enabled": request.monitoring},
        "EbsOptimized": request.ebs_optimized,
    }

    if request.availability_zone:
        payload["Placement"] = {"AvailabilityZone": request.availability_zone}
    if request.keypair_name:
        payload["KeyName"] = request.keypair_name
    if request.private_ip_address:
        payload["PrivateIpAddress"] = request.private_ip_address
    if request.subnet_id:
        payload["SubnetId"] = request.subnet_id

    if request.iam_instance_profile_arn:
        payload["IamInstanceProfile"] = {"Arn": request.iam_instance_profile_arn}
    elif request.iam_instance_profile_name:
        payload["IamInstanceProfile"] = {"Name": request.iam_instance_profile_name}

    if request.tags:
        payload["TagSpecifications"] = [
            {
                "ResourceType": "instance",
                "Tags": [{"Key": k, "Value": v} for k, v in request.tags.items()],
            }
        ]
    if request.user_data:
        payload["UserData"] = request.user_data
    if request.terminate_on_shutdown:
        payload["InstanceInitiatedShutdownBehavior"] = "terminate"

    ephemeral = ephemeral_devices(request.block_devices)
    if ephemeral:
        payload["BlockDeviceMappings"] = [bd.to_mapping() for bd in ephemeral]

    if request.security_groups:
        key = "SecurityGroupIds" if request.is_vpc else "SecurityGroups"
        payload[key] = list(request.security_groups)

    return payload


def describe_launch(request: ProvisionRequest) -> list[str]:
    """Status lines summarizing what is about to be launched."""
    lines = [
        f" -- Type: {request.instance_type}",
        f" -- AMI: {request.ami}",
        f" -- Region: {request.region}",
    ]
    optional = [
        ("Availability Zone", request.availability_zone),
        ("Keypair", request.keypair_name),
        ("Subnet ID", request.subnet_id),
        ("IAM Instance Profile ARN", request.iam_instance_profile_arn),
        ("IAM Instance Profile Name", request.iam_instance_profile_name),
        ("Private IP", request.private_ip_address),
    ]
    lines.extend(f" -- {label}: {value}" for label, value in optional if value)

    match request.elastic_ip:
        case UseExistingElasticIp(address_id=address_id):
            lines.append(f" -- Elastic IP: {address_id}")
        case AllocateElasticIp(pool=pool):
            lines.append(f" -- Allocate Elastic IP: {pool}")
        case NoElasticIp():
            pass

    if request.user_data:
        lines.append(" -- User Data: yes")
    if request.security_groups:
        lines.append(f" -- Security Groups: {list(request.security_groups)}")
    ephemeral = ephemeral_devices(request.block_devices)
    if ephemeral:
        lines.append(f" -- Block Device Mapping: {[bd.to_mapping() for bd in ephemeral]}")
    lines.extend([
        f" -- Terminate On Shutdown: {request.terminate_on_shutdown}",
        f" -- Monitoring: {request.monitoring}",
        f" -- EBS optimized: {request.ebs_optimized}",
    ])
    return lines


class LaunchOrchestrator:
    """Issues the create call for one request.

    Warnings emitted during a launch are shown on the console and kept on
    ``warnings`` for the caller.
    """

    def __init__(self, client: ComputeClient, console: Console, *, ssh_port: int = SSH_PORT) -> None:
        self._client = client
        self._console = console
        self._ssh_port = ssh_port
        self.warnings: list[ConfigWarning] = []

    def _warn(self, warning: ConfigWarning) -> None:
        log.warning("{warning}", warning=str(warning))
        self._console.warn(str(warning))
        self.warnings.append(warning)

    def launch(self, request: ProvisionRequest) -> InstanceHandle:
        for warning in preflight_warnings(request):
            self._warn(warning)

        self._console.info("Launching an instance with the following settings...")
        for line in describe_launch(request):
            self._console.info(line)

        payload = build_payload(request)

        try:
            groups = self._client.security_groups()
            if not allows_ssh_port(groups, request.security_groups, request.is_vpc, self._ssh_port):
                self._warn(ConfigWarning(SSH_ACCESS_WARNING.format(port=self._ssh_port)))

            log.debug("Create payload: {payload}", payload=payload)
            handle = self._client.create_instance(payload)
        except SubnetNotFound:
            raise
        except ResourceNotFound as e:
            raise ProviderError(str(e), code=e.kind) from e

        log.info(
            "Launched {instance_id} ({instance_type}, {ami})",
            instance_id=handle.id, instance_type=request.instance_type, ami=request.ami,
        )
        return handle
