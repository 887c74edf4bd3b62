"""Custom exception hierarchy for skylaunch.

All skylaunch-specific exceptions inherit from SkylaunchError, enabling
callers (and the recovery hook) to recognize errors that were already
handled by the provisioning pipeline with a single except clause.
"""

from __future__ import annotations


class SkylaunchError(Exception):
    """Base exception for all skylaunch errors."""


# =============================================================================
# Configuration
# =============================================================================


class ConfigurationError(SkylaunchError):
    """Raised for invalid configuration or missing required settings."""


class ConfigError(ConfigurationError):
    """Raised when a request cannot be provisioned as configured."""


class ConfigWarning(SkylaunchError, UserWarning):
    """Non-fatal configuration notice surfaced to the user.

    Never raised by the pipeline; instances are emitted to the console
    and recorded on the provisioning context.
    """


# =============================================================================
# Provider
# =============================================================================


class ResourceNotFound(SkylaunchError):
    """Raised when the provider reports an unknown resource."""

    def __init__(self, kind: str, identifier: str, message: str | None = None) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(message or f"{kind} not found: {identifier}")


class SubnetNotFound(ResourceNotFound):
    """Raised when the subnet given for a launch does not exist."""

    def __init__(self, subnet_id: str) -> None:
        super().__init__("subnet", subnet_id, f"Subnet ID not found: {subnet_id}")


class AddressNotFound(ResourceNotFound):
    """Raised when an elastic address cannot be found or allocated."""

    def __init__(self, address_id: str, message: str | None = None) -> None:
        super().__init__(
            "elastic-ip", address_id, message or f"Elastic IP not found: {address_id}",
        )


class ProviderError(SkylaunchError):
    """Raised when the provider rejects a request."""

    def __init__(self, message: str, code: str | None = None) -> None:
        self.code = code
        super().__init__(message)


class TransportError(SkylaunchError):
    """Raised on HTTP-layer failures talking to the provider."""

    def __init__(self, error: str, status: int | None = None, body: str = "") -> None:
        self.status = status
        self.body = body
        super().__init__(f"{error} (status={status}): {body}" if body else error)


# =============================================================================
# Timeouts
# =============================================================================


class TimeoutError(SkylaunchError):  # noqa: A001
    """Raised when an operation exceeds its timeout."""


class PollTimeout(TimeoutError):
    """Raised when a bounded poll exhausts its try budget."""

    def __init__(self, description: str, tries: int) -> None:
        self.description = description
        self.tries = tries
        super().__init__(f"Timeout waiting for {description} after {tries} tries")


class ReadyTimeout(TimeoutError):
    """Raised when the instance does not become ready within its timeout."""

    def __init__(self, timeout: int, elapsed: float = 0.0) -> None:
        self.timeout = timeout
        self.elapsed = elapsed
        super().__init__(f"Instance failed to reach ready state within {timeout} seconds")


class VolumeProvisionTimeout(TimeoutError):
    """Raised when a created volume never reports available."""

    def __init__(self, volume_id: str, tries: int) -> None:
        self.volume_id = volume_id
        self.tries = tries
        super().__init__(f"Taking too long to create volume with id {volume_id}")


class VolumeAttachTimeout(TimeoutError):
    """Raised when an attached volume never reports in-use."""

    def __init__(self, volume_id: str, device: str, instance_id: str, tries: int) -> None:
        self.volume_id = volume_id
        self.device = device
        self.instance_id = instance_id
        self.tries = tries
        super().__init__(
            f"Unable to attach volume {volume_id} as device {device} to server {instance_id}"
        )


# =============================================================================
# Destroy
# =============================================================================


class DestroyNotConfirmed(SkylaunchError):
    """Raised when a destroy was requested without confirmation."""

    def __init__(self, instance_id: str) -> None:
        self.instance_id = instance_id
        super().__init__(f"Destroy of {instance_id} was not confirmed")
