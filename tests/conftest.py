from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from typing import Any

import pytest

from skylaunch.cancellation import CancellationToken
from skylaunch.constants import InstanceState, Lifecycle, VolumeState
from skylaunch.context import ProvisionContext
from skylaunch.storage import MemoryObjectStore
from skylaunch.types import (
    ElasticAddress,
    InstanceHandle,
    IpPermission,
    ProvisionRequest,
    SecurityGroup,
    VolumeHandle,
    VolumeOptions,
)

SSH_OPEN = SecurityGroup(
    group_id="sg-default",
    name="default",
    permissions=(IpPermission("tcp", 22, 22),),
)


class _Script[T]:
    """Hands out scripted values in order, repeating the last one."""

    def __init__(self, values: Iterable[T]) -> None:
        self._values = list(values)
        self._index = 0

    def next(self) -> T:
        value = self._values[min(self._index, len(self._values) - 1)]
        self._index += 1
        return value


class FakeComputeClient:
    """In-memory ComputeClient with scripted state transitions."""

    def __init__(
        self,
        *,
        instance_states: Iterable[InstanceState | None] = (InstanceState.RUNNING,),
        volume_states: Iterable[str] = (VolumeState.AVAILABLE, VolumeState.IN_USE),
        groups: Iterable[SecurityGroup] = (SSH_OPEN,),
        addresses: Mapping[str, ElasticAddress] | None = None,
        availability_zone: str | None = "us-east-1a",
        create_error: Exception | None = None,
        allocate_error: Exception | None = None,
        associate_error: Exception | None = None,
        state_errors: Mapping[int, Exception] | None = None,
    ) -> None:
        self._instance_states = _Script(instance_states)
        self._volume_states = _Script(volume_states)
        self._groups = tuple(groups)
        self.addresses = dict(addresses or {})
        self._availability_zone = availability_zone
        self._create_error = create_error
        self._allocate_error = allocate_error
        self._associate_error = associate_error
        self._state_errors = dict(state_errors or {})

        self.payloads: list[dict[str, Any]] = []
        self.described: list[str] = []
        self.state_checks = 0
        self.terminated: list[str] = []
        self.volumes: list[VolumeOptions] = []
        self.attached: list[tuple[str, str, str]] = []
        self.delete_on_termination: list[tuple[str, str, bool]] = []
        self.associated: list[tuple[str, str | None, str | None]] = []
        self.disassociated: list[tuple[str | None, str | None]] = []
        self.released: list[tuple[str | None, str | None]] = []
        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter:04d}"

    def create_instance(self, payload):
        self.payloads.append(dict(payload))
        if self._create_error is not None:
            raise self._create_error
        return InstanceHandle(
            id=self._next_id("i"),
            state=Lifecycle.PENDING,
            availability_zone=self._availability_zone,
        )

    def instance_state(self, instance_id):
        self.state_checks += 1
        if self.state_checks in self._state_errors:
            raise self._state_errors[self.state_checks]
        return self._instance_states.next()

    def terminate_instance(self, instance_id):
        self.terminated.append(instance_id)

    def security_groups(self):
        return self._groups

    def create_volume(self, options):
        self.volumes.append(options)
        return VolumeHandle(id=self._next_id("vol"), device=options.device)

    def volume_state(self, volume_id):
        return self._volume_states.next()

    def attach_volume(self, instance_id, volume_id, device):
        self.attached.append((instance_id, volume_id, device))

    def set_delete_on_termination(self, instance_id, device, enabled):
        self.delete_on_termination.append((instance_id, device, enabled))

    def allocate_address(self, domain):
        if self._allocate_error is not None:
            raise self._allocate_error
        allocation_id = self._next_id("eipalloc")
        address = ElasticAddress(public_ip=f"203.0.113.{self._counter}", allocation_id=allocation_id)
        self.addresses[address.public_ip] = address
        return address

    def describe_address(self, address):
        self.described.append(address)
        return self.addresses.get(address)

    def associate_address(self, instance_id, *, allocation_id=None, public_ip=None):
        if self._associate_error is not None:
            raise self._associate_error
        self.associated.append((instance_id, allocation_id, public_ip))
        return self._next_id("eipassoc") if allocation_id else None

    def disassociate_address(self, *, association_id=None, public_ip=None):
        self.disassociated.append((association_id, public_ip))

    def release_address(self, *, allocation_id=None, public_ip=None):
        self.released.append((allocation_id, public_ip))


class RecordingConsole:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def info(self, message: str) -> None:
        self.messages.append(("info", message))

    def warn(self, message: str) -> None:
        self.messages.append(("warn", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    def lines(self, level: str) -> list[str]:
        return [m for lvl, m in self.messages if lvl == level]


class FakeCommunicator:
    """Becomes ready on the ``ready_after``-th check."""

    def __init__(self, ready_after: int = 1, on_check: Callable[[int], None] | None = None) -> None:
        self.ready_after = ready_after
        self.checks = 0
        self._on_check = on_check

    def ready(self) -> bool:
        self.checks += 1
        if self._on_check is not None:
            self._on_check(self.checks)
        return self.checks >= self.ready_after


BASE_REQUEST = ProvisionRequest(
    ami="ami-123",
    instance_type="t2.micro",
    keypair_name="deploy",
    availability_zone="us-east-1a",
    ready_timeout=20,
)


@pytest.fixture
def make_request() -> Callable[..., ProvisionRequest]:
    def _make(**overrides: Any) -> ProvisionRequest:
        return replace(BASE_REQUEST, **overrides)

    return _make


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def client() -> FakeComputeClient:
    return FakeComputeClient()


@pytest.fixture
def console() -> RecordingConsole:
    return RecordingConsole()


@pytest.fixture
def make_context(client: FakeComputeClient, console: RecordingConsole):
    def _make(
        request: ProvisionRequest = BASE_REQUEST,
        *,
        compute: FakeComputeClient | None = None,
        communicator: FakeCommunicator | None = None,
        instance_id: str | None = None,
    ) -> ProvisionContext:
        context = ProvisionContext(
            request=request,
            client=compute or client,
            communicator=communicator or FakeCommunicator(),
            metadata=MemoryObjectStore(),
            console=console,
            cancel=CancellationToken(),
        )
        if instance_id is not None:
            context.instance = InstanceHandle(
                id=instance_id, state=Lifecycle.RUNNING, availability_zone="us-east-1a",
            )
        return context

    return _make
