"""Per-attempt pipeline context."""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from skylaunch.cancellation import CancellationToken
from skylaunch.console import Console, NullConsole
from skylaunch.exceptions import ConfigWarning
from skylaunch.providers.protocols import Communicator, ComputeClient
from skylaunch.storage import MemoryObjectStore, ObjectStore
from skylaunch.types import InstanceHandle, Metrics, ProvisionRequest


@dataclass(slots=True)
class ProvisionContext:
    """Everything one provisioning attempt reads and writes.

    Owned by a single attempt. ``for_destroy`` derives the context handed
    to the destroy workflow; it shares the instance handle, metrics and
    metadata store with this one.

    Args:
        request: What to provision.
        client: Provider client.
        communicator: Remote-control channel used to detect reachability.
        metadata: Per-machine store for state that outlives the process.
        console: Status sink for user-facing lines.
        instance: The instance being provisioned.
        metrics: Phase durations, written by the pipeline.
        cancel: Interruption flag set by the host.
        config_validate: Whether the host validates config before acting.
        force_confirm_destroy: Destroy without asking for confirmation.
        warnings: Non-fatal notices surfaced during the attempt.
        error: Unhandled error, set by the host before calling ``recover``.
    """

    request: ProvisionRequest
    client: ComputeClient
    communicator: Communicator
    metadata: ObjectStore = field(default_factory=MemoryObjectStore)
    console: Console = field(default_factory=NullConsole)
    instance: InstanceHandle = field(default_factory=InstanceHandle)
    metrics: Metrics = field(default_factory=dict)
    cancel: CancellationToken = field(default_factory=CancellationToken)
    config_validate: bool = True
    force_confirm_destroy: bool = False
    warnings: list[ConfigWarning] = field(default_factory=list)
    error: BaseException | None = None

    @property
    def interrupted(self) -> bool:
        return self.cancel.cancelled

    def for_destroy(self) -> ProvisionContext:
        """Context for a forced, non-interactive destroy of this attempt."""
        return replace(
            self,
            cancel=CancellationToken(),
            config_validate=False,
            force_confirm_destroy=True,
        )
