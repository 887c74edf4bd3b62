"""AWS EC2 provider."""

from skylaunch.providers.aws.client import EC2Client, translate_client_error

__all__ = ["EC2Client", "translate_client_error"]
