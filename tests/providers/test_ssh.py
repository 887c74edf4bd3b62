from __future__ import annotations

from unittest.mock import MagicMock, patch

import paramiko
import pytest

from skylaunch.exceptions import ResourceNotFound, TransportError
from skylaunch.providers.protocols import Communicator
from skylaunch.providers.ssh import SSHCommunicator, SSHConfig

pytestmark = [pytest.mark.xdist_group("unit")]


@pytest.fixture
def ssh_client():
    with patch("skylaunch.providers.ssh.paramiko.SSHClient") as cls:
        yield cls.return_value


class TestSSHCommunicator:
    def test_is_a_communicator(self):
        assert isinstance(SSHCommunicator(SSHConfig(lambda: None, "ubuntu")), Communicator)

    def test_no_address_yet(self, ssh_client: MagicMock):
        communicator = SSHCommunicator(SSHConfig(lambda: None, "ubuntu"))
        assert communicator.ready() is False
        ssh_client.connect.assert_not_called()

    def test_ready_when_connect_succeeds(self, ssh_client: MagicMock):
        config = SSHConfig(lambda: "203.0.113.1", "ubuntu", key_path="~/.ssh/deploy.pem")

        assert SSHCommunicator(config).ready() is True

        kwargs = ssh_client.connect.call_args.kwargs
        assert kwargs["hostname"] == "203.0.113.1"
        assert kwargs["username"] == "ubuntu"
        assert kwargs["port"] == 22
        assert kwargs["key_filename"] == "~/.ssh/deploy.pem"
        ssh_client.close.assert_called_once()

    def test_transport_error_resolving_host_is_not_ready(self, ssh_client: MagicMock):
        def resolve() -> str:
            raise TransportError("EndpointConnectionError", body="could not connect")

        assert SSHCommunicator(SSHConfig(resolve, "ubuntu")).ready() is False
        ssh_client.connect.assert_not_called()

    def test_provider_error_resolving_host_propagates(self, ssh_client: MagicMock):
        def resolve() -> str:
            raise ResourceNotFound("instance", "i-0001")

        with pytest.raises(ResourceNotFound):
            SSHCommunicator(SSHConfig(resolve, "ubuntu")).ready()

    @pytest.mark.parametrize(
        "error",
        [
            paramiko.ssh_exception.NoValidConnectionsError({("203.0.113.1", 22): ConnectionRefusedError()}),
            paramiko.AuthenticationException("key not installed yet"),
            TimeoutError("timed out"),
        ],
    )
    def test_not_ready_on_connection_errors(self, ssh_client: MagicMock, error: Exception):
        ssh_client.connect.side_effect = error
        assert SSHCommunicator(SSHConfig(lambda: "203.0.113.1", "ubuntu")).ready() is False
        ssh_client.close.assert_called_once()

    def test_other_errors_propagate(self, ssh_client: MagicMock):
        ssh_client.connect.side_effect = ValueError("bad key file")
        with pytest.raises(ValueError, match="bad key file"):
            SSHCommunicator(SSHConfig(lambda: "203.0.113.1", "ubuntu")).ready()
