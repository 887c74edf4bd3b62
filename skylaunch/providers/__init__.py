"""Provider clients and remote-control channels."""

from skylaunch.providers.protocols import Communicator, ComputeClient

__all__ = ["Communicator", "ComputeClient"]
