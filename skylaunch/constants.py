"""Centralized constants and enums for skylaunch.

All magic strings, poll intervals and batch limits are defined here
to ensure consistency and enable type-safe usage throughout the codebase.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

# =============================================================================
# EC2 States
# =============================================================================


class InstanceState(StrEnum):
    """EC2 instance state names."""

    PENDING = "pending"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    SHUTTING_DOWN = "shutting-down"
    TERMINATED = "terminated"


class VolumeState(StrEnum):
    """EBS volume state names."""

    CREATING = "creating"
    AVAILABLE = "available"
    ATTACHING = "attaching"
    IN_USE = "in-use"
    DELETING = "deleting"
    ERROR = "error"


class Lifecycle(StrEnum):
    """Lifecycle of an instance owned by a provisioning attempt."""

    NOT_CREATED = "not-created"
    PENDING = "pending"
    RUNNING = "running"
    READY = "ready"
    READY_WITH_ERRORS = "ready(with-errors)"
    TERMINATED = "terminated"


# =============================================================================
# Admission Control
# =============================================================================

BATCH_SIZE: Final = 10
BATCH_COOLDOWN_SECONDS: Final = 30.0


# =============================================================================
# Polling (in seconds)
# =============================================================================

READY_POLL_INTERVAL: Final = 3.0
VOLUME_POLL_INTERVAL: Final = 5.0
REMOTE_POLL_INTERVAL: Final = 2.0
DEFAULT_READY_TIMEOUT: Final = 120


# =============================================================================
# Networking
# =============================================================================

DEFAULT_REGION: Final = "us-east-1"
SSH_PORT: Final = 22
DEFAULT_SECURITY_GROUP: Final = "default"


# =============================================================================
# Block Devices
# =============================================================================

DEFAULT_EBS_DEVICE: Final = "/dev/sdf"


# =============================================================================
# Metadata
# =============================================================================

ELASTIC_IP_KEY: Final = "elastic_ip"


# =============================================================================
# Metric Names
# =============================================================================

INSTANCE_READY_TIME: Final = "instance_ready_time"
INSTANCE_SSH_TIME: Final = "instance_ssh_time"
