"""
SFTP client tests with paramiko mocked out.
"""

from dataclasses import dataclass
from pathlib import PurePosixPath
from unittest.mock import MagicMock, patch

import paramiko
import pytest

from mtsftp.sftp import (
    ConnectionStrategy,
    PasswordConnectionStrategy,
    PrivateKeyConnectionStrategy,
    SFTPConnection,
    SFTPError,
    SFTPFileConnectorService,
    check_connection,
    load_private_key,
)


@pytest.fixture
def ssh_client():
    with patch("mtsftp.sftp.strategies.paramiko.SSHClient") as client_class:
        client = MagicMock()
        client_class.return_value = client
        yield client


@pytest.fixture
def password_strategy():
    return PasswordConnectionStrategy(
        username="foo", password="secret", remote_host="sftp.local", port=2222
    )


def session_with_channel():
    session = MagicMock()
    channel = MagicMock()
    session.open_sftp.return_value.__enter__.return_value = channel
    return session, channel


class TestStrategies:

    def test_password_strategy_connects_with_password(self, ssh_client, password_strategy):
        session = password_strategy.open_session("/tmp/known_hosts")

        assert session is ssh_client
        ssh_client.load_host_keys.assert_called_once_with("/tmp/known_hosts")
        kwargs = ssh_client.connect.call_args.kwargs
        assert kwargs["hostname"] == "sftp.local"
        assert kwargs["port"] == 2222
        assert kwargs["username"] == "foo"
        assert kwargs["password"] == "secret"

    def test_strict_host_checking_rejects_unknown_hosts(self, ssh_client, password_strategy):
        password_strategy.open_session()

        policy = ssh_client.set_missing_host_key_policy.call_args.args[0]
        assert isinstance(policy, paramiko.RejectPolicy)
        ssh_client.load_host_keys.assert_not_called()

    def test_relaxed_host_checking_adds_unknown_hosts(self, ssh_client):
        strategy = PasswordConnectionStrategy(
            username="foo", password="p", remote_host="h", strict_host_checking=False
        )
        strategy.open_session()

        policy = ssh_client.set_missing_host_key_policy.call_args.args[0]
        assert isinstance(policy, paramiko.AutoAddPolicy)

    def test_default_port(self, ssh_client):
        PasswordConnectionStrategy(username="foo", password="p", remote_host="h").open_session()
        assert ssh_client.connect.call_args.kwargs["port"] == 22

    def test_ssh_failure_becomes_sftp_error(self, ssh_client, password_strategy):
        ssh_client.connect.side_effect = paramiko.AuthenticationException("denied")

        with pytest.raises(SFTPError):
            password_strategy.open_session()
        ssh_client.close.assert_called_once()

    def test_private_key_strategy_loads_key(self, ssh_client):
        key = MagicMock(spec=paramiko.PKey)
        strategy = PrivateKeyConnectionStrategy(
            username="foo", private_key="/keys/id", remote_host="h"
        )

        with patch("mtsftp.sftp.strategies.load_private_key", return_value=key):
            strategy.open_session()

        assert ssh_client.connect.call_args.kwargs["pkey"] is key

    def test_unloadable_key_closes_client(self, ssh_client, tmp_path):
        strategy = PrivateKeyConnectionStrategy(
            username="foo", private_key=str(tmp_path / "missing"), remote_host="h"
        )

        with pytest.raises(SFTPError, match="not found"):
            strategy.open_session()

        ssh_client.connect.assert_not_called()
        ssh_client.close.assert_called_once()

    def test_base_strategy_is_abstract(self):
        with pytest.raises(TypeError):
            ConnectionStrategy(username="u", remote_host="h")

    def test_load_private_key_missing_file(self, tmp_path):
        with pytest.raises(SFTPError, match="not found"):
            load_private_key(str(tmp_path / "nope"))

    def test_load_private_key_rejects_garbage(self, tmp_path):
        key_file = tmp_path / "id"
        key_file.write_text("not a key")

        with pytest.raises(SFTPError, match="Could not load"):
            load_private_key(str(key_file))

    def test_load_private_key_reads_rsa(self, tmp_path):
        key_file = tmp_path / "id_rsa"
        paramiko.RSAKey.generate(1024).write_private_key_file(str(key_file))

        assert isinstance(load_private_key(str(key_file)), paramiko.RSAKey)


class TestConnection:

    def test_upload(self):
        session, channel = session_with_channel()

        SFTPConnection(session).upload_file("/tmp/in.tmp", PurePosixPath("/share/in.tmp"))

        channel.put.assert_called_once_with("/tmp/in.tmp", "/share/in.tmp")

    def test_download(self):
        session, channel = session_with_channel()

        SFTPConnection(session).download_file("/share/a.csv", "/tmp/a.csv")

        channel.get.assert_called_once_with("/share/a.csv", "/tmp/a.csv")

    def test_transfer_errors_become_sftp_errors(self):
        session, channel = session_with_channel()
        channel.get.side_effect = IOError("no such file")

        with pytest.raises(SFTPError, match="Failed to download"):
            SFTPConnection(session).download_file("/share/a.csv", "/tmp/a.csv")

    def test_list_remote_files_resolves_against_directory(self):
        session, channel = session_with_channel()
        channel.listdir.return_value = ["a.csv", "b.tmp"]

        files = SFTPConnection(session).list_remote_files("/share")

        assert files == {PurePosixPath("/share/a.csv"), PurePosixPath("/share/b.tmp")}

    def test_disconnect_closes_session_once(self):
        session, _ = session_with_channel()
        connection = SFTPConnection(session)

        connection.disconnect()
        connection.disconnect()

        session.close.assert_called_once()

    def test_operations_after_disconnect_fail(self):
        session, _ = session_with_channel()
        connection = SFTPConnection(session)
        connection.disconnect()

        with pytest.raises(SFTPError, match="closed"):
            connection.list_remote_files("/share")

    def test_context_manager_disconnects(self):
        session, _ = session_with_channel()

        with SFTPConnection(session):
            pass

        session.close.assert_called_once()


class TestConnectorService:

    def test_connect_passes_known_hosts(self, ssh_client, password_strategy):
        service = SFTPFileConnectorService(known_hosts_path="/etc/known_hosts")

        connection = service.connect(password_strategy)

        assert isinstance(connection, SFTPConnection)
        ssh_client.load_host_keys.assert_called_once_with("/etc/known_hosts")

    def test_unsupported_strategy(self):
        with pytest.raises(SFTPError, match="Unsupported"):
            SFTPFileConnectorService().connect(object())

    def test_unknown_strategy_subclass_is_unsupported(self, ssh_client):
        @dataclass
        class AgentStrategy(ConnectionStrategy):
            def _auth_kwargs(self) -> dict:
                return {"allow_agent": True}

        with pytest.raises(SFTPError, match="Unsupported"):
            SFTPFileConnectorService().connect(AgentStrategy(username="u", remote_host="h"))

        ssh_client.connect.assert_not_called()

    def test_check_connection_reports_failure(self, ssh_client, password_strategy):
        ssh_client.connect.side_effect = paramiko.SSHException("refused")
        assert check_connection(password_strategy) is False

    def test_check_connection_success(self, ssh_client, password_strategy):
        channel = ssh_client.open_sftp.return_value.__enter__.return_value
        channel.listdir.return_value = ["a"]

        assert check_connection(password_strategy, "/share") is True
