"""
Authentication strategies for opening SSH sessions.

A strategy carries the credentials and target host, and knows how to turn
them into an authenticated paramiko SSHClient checked against a
known_hosts file.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import paramiko

logger = logging.getLogger(__name__)

DEFAULT_SSH_PORT = 22


class SFTPError(Exception):
    """Raised when SFTP operations fail."""
    pass


def load_private_key(key_path: str) -> paramiko.PKey:
    """
    Load private key from file, trying different key types.

    Args:
        key_path: Path to private key file

    Returns:
        Loaded private key

    Raises:
        SFTPError: If key cannot be loaded
    """
    key_path = os.path.expanduser(str(key_path))
    if not os.path.exists(key_path):
        raise SFTPError(f"SSH key file not found: {key_path}")

    key_classes = [
        paramiko.Ed25519Key,
        paramiko.RSAKey,
        paramiko.ECDSAKey,
    ]

    last_error = None
    for key_class in key_classes:
        try:
            return key_class.from_private_key_file(key_path)
        except paramiko.SSHException as e:
            last_error = e
            continue

    raise SFTPError(f"Could not load SSH key {key_path}: {last_error}")


@dataclass
class ConnectionStrategy(ABC):
    """
    Common connection settings.

    Attributes:
        username: Remote user
        remote_host: SSH server hostname
        port: SSH port, 22 when None
        strict_host_checking: Reject hosts missing from known_hosts
    """
    username: str
    remote_host: str
    port: Optional[int] = None
    strict_host_checking: bool = True

    @abstractmethod
    def _auth_kwargs(self) -> dict:
        """Keyword arguments passed to SSHClient.connect for authentication."""

    def open_session(self, known_hosts_path: Optional[str] = None) -> paramiko.SSHClient:
        """
        Open an authenticated SSH session.

        Args:
            known_hosts_path: known_hosts file used to verify the server key

        Raises:
            SFTPError: If the host key is rejected, the credentials cannot be
                loaded or authentication fails
        """
        port = self.port or DEFAULT_SSH_PORT
        client = paramiko.SSHClient()

        try:
            if known_hosts_path:
                client.load_host_keys(os.path.expanduser(known_hosts_path))

            if self.strict_host_checking:
                client.set_missing_host_key_policy(paramiko.RejectPolicy())
            else:
                client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

            logger.debug(f"{type(self).__name__} on host {self.remote_host}:{port}")
            client.connect(
                hostname=self.remote_host,
                port=port,
                username=self.username,
                look_for_keys=False,
                allow_agent=False,
                **self._auth_kwargs(),
            )
            logger.debug("session opened on remote host")
            return client

        except SFTPError:
            client.close()
            raise

        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise SFTPError(
                f"SSH connection to {self.remote_host}:{port} failed: {e}"
            ) from e


@dataclass
class PasswordConnectionStrategy(ConnectionStrategy):
    password: str = ""

    def _auth_kwargs(self) -> dict:
        return {"password": self.password}


@dataclass
class PrivateKeyConnectionStrategy(ConnectionStrategy):
    private_key: str = ""

    def _auth_kwargs(self) -> dict:
        return {"pkey": load_private_key(self.private_key)}
