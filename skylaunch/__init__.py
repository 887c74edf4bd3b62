"""skylaunch: launch a single EC2 instance and bring it to a usable state.

Example:
    from skylaunch import ProvisionContext, RunInstance, load_request, provision
    from skylaunch.providers.aws import EC2Client
    from skylaunch.providers.ssh import SSHCommunicator, SSHConfig

    request = load_request("eu-west-1")
    client = EC2Client(request.region)
    context = ProvisionContext(request=request, client=client, communicator=ssh)
    handle = provision(context)
"""

from skylaunch.cancellation import CancellationToken
from skylaunch.config import LaunchSettings, load_request, load_settings
from skylaunch.console import Console, NullConsole, RichConsole
from skylaunch.constants import InstanceState, Lifecycle, VolumeState
from skylaunch.context import ProvisionContext
from skylaunch.destroy import TerminateInstance
from skylaunch.exceptions import (
    AddressNotFound,
    ConfigError,
    ConfigurationError,
    ConfigWarning,
    DestroyNotConfirmed,
    PollTimeout,
    ProviderError,
    ReadyTimeout,
    ResourceNotFound,
    SkylaunchError,
    SubnetNotFound,
    TimeoutError,
    TransportError,
    VolumeAttachTimeout,
    VolumeProvisionTimeout,
)
from skylaunch.logging import LogConfig
from skylaunch.pipeline import RunInstance, provision
from skylaunch.rollback import RollbackCoordinator, recover
from skylaunch.storage import LocalObjectStore, MemoryObjectStore, ObjectStore
from skylaunch.throttle import AdmissionThrottle
from skylaunch.types import (
    AllocateElasticIp,
    BlockDeviceSpec,
    InstanceHandle,
    NoElasticIp,
    ProvisionRequest,
    UseExistingElasticIp,
    VolumeHandle,
)

__version__ = "0.1.0"

__all__ = [
    "AddressNotFound",
    "AdmissionThrottle",
    "AllocateElasticIp",
    "BlockDeviceSpec",
    "CancellationToken",
    "ConfigError",
    "ConfigWarning",
    "ConfigurationError",
    "Console",
    "DestroyNotConfirmed",
    "InstanceHandle",
    "InstanceState",
    "Lifecycle",
    "LaunchSettings",
    "LocalObjectStore",
    "LogConfig",
    "MemoryObjectStore",
    "NoElasticIp",
    "NullConsole",
    "ObjectStore",
    "PollTimeout",
    "ProviderError",
    "ProvisionContext",
    "ProvisionRequest",
    "ReadyTimeout",
    "ResourceNotFound",
    "RichConsole",
    "RollbackCoordinator",
    "RunInstance",
    "SkylaunchError",
    "SubnetNotFound",
    "TerminateInstance",
    "TimeoutError",
    "TransportError",
    "UseExistingElasticIp",
    "VolumeAttachTimeout",
    "VolumeHandle",
    "VolumeProvisionTimeout",
    "VolumeState",
    "load_request",
    "load_settings",
    "provision",
    "recover",
]
