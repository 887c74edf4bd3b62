"""Paramiko-backed remote-control reachability."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import paramiko
from loguru import logger

from skylaunch.constants import SSH_PORT
from skylaunch.exceptions import TransportError

log = logger.bind(component="ssh")


@dataclass(frozen=True, slots=True)
class SSHConfig:
    """SSH connection configuration.

    The host is resolved on every check, since the instance address is only
    known (and may change, e.g. after elastic IP association) once launched.
    """

    resolve_host: Callable[[], str | None]
    username: str
    port: int = SSH_PORT
    key_path: str | None = None
    connect_timeout: float = 10.0


class SSHCommunicator:
    """Reports ready once an authenticated SSH session can be opened."""

    __slots__ = ("_config",)

    def __init__(self, config: SSHConfig) -> None:
        self._config = config

    def ready(self) -> bool:
        config = self._config
        try:
            host = config.resolve_host()
        except TransportError as e:
            log.debug("Could not resolve instance address: {error}", error=e)
            return False
        if not host:
            log.debug("No address for instance yet")
            return False

        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        kwargs: dict = {
            "hostname": host,
            "username": config.username,
            "port": config.port,
            "timeout": config.connect_timeout,
            "banner_timeout": config.connect_timeout,
            "auth_timeout": config.connect_timeout,
        }
        if config.key_path:
            kwargs["key_filename"] = config.key_path

        try:
            client.connect(**kwargs)
        except (paramiko.SSHException, OSError) as e:
            log.debug("SSH to {host}:{port} not ready: {error}", host=host, port=config.port, error=e)
            return False
        finally:
            client.close()

        log.debug("SSH to {host}:{port} ready", host=host, port=config.port)
        return True
