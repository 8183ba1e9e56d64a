"""
SFTP client for moving files to and from remote servers.

This module provides:
- SFTPFileConnectorService: opens connections from a strategy
- SFTPConnection: upload, download and list over an open session

Each file operation opens its own SFTP channel on the shared SSH
session and closes it afterwards.
"""

import logging
import os
from pathlib import PurePosixPath
from typing import Optional, Set, Union

import paramiko

from mtsftp.sftp.strategies import (
    ConnectionStrategy,
    PasswordConnectionStrategy,
    PrivateKeyConnectionStrategy,
    SFTPError,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


class SFTPConnection:
    """
    An open SFTP connection.

    Use as a context manager to ensure the session is closed.

    Example:
        ```python
        service = SFTPFileConnectorService(known_hosts_path="~/.ssh/known_hosts")

        with service.connect(strategy) as connection:
            connection.upload_file("report.csv", "/share/report.csv")
            files = connection.list_remote_files("/share")
        ```
    """

    def __init__(self, session: paramiko.SSHClient):
        self._session: Optional[paramiko.SSHClient] = session

    def __enter__(self) -> "SFTPConnection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()

    def _open_channel(self) -> paramiko.SFTPClient:
        if self._session is None:
            raise SFTPError("Connection is closed.")
        try:
            return self._session.open_sftp()
        except paramiko.SSHException as e:
            raise SFTPError(f"Failed to open SFTP channel: {e}") from e

    def upload_file(self, local_file_path: PathLike, remote_file_path: PathLike) -> None:
        """
        Upload a local file.

        Raises:
            SFTPError: If the transfer fails
        """
        local_path = str(local_file_path)
        remote_path = str(PurePosixPath(remote_file_path))

        with self._open_channel() as sftp:
            logger.debug(f"upload file from {local_path} to {remote_path}")
            try:
                sftp.put(local_path, remote_path)
            except IOError as e:
                raise SFTPError(f"Failed to upload {local_path} to {remote_path}: {e}") from e
            logger.debug("file uploaded")

    def download_file(self, remote_file_path: PathLike, local_file_path: PathLike) -> None:
        """
        Download a remote file.

        Raises:
            SFTPError: If the transfer fails
        """
        remote_path = str(PurePosixPath(remote_file_path))
        local_path = str(local_file_path)

        with self._open_channel() as sftp:
            logger.debug(f"download file from {remote_path} to {local_path}")
            try:
                sftp.get(remote_path, local_path)
            except IOError as e:
                raise SFTPError(f"Failed to download {remote_path} to {local_path}: {e}") from e
            logger.debug("file downloaded")

    def list_remote_files(self, remote_directory_path: PathLike) -> Set[PurePosixPath]:
        """
        List entries of a remote directory.

        Returns:
            Set of entry paths resolved against ``remote_directory_path``

        Raises:
            SFTPError: If the directory cannot be listed
        """
        directory = PurePosixPath(remote_directory_path)

        with self._open_channel() as sftp:
            logger.debug(f"listing files from {directory}")
            try:
                names = sftp.listdir(str(directory))
            except IOError as e:
                raise SFTPError(f"Failed to list files in {directory}: {e}") from e

        result = {directory / name for name in names if name not in (".", "..")}
        logger.debug(f"end file list. Found {len(result)} files")
        return result

    def disconnect(self) -> None:
        """Close the SSH session."""
        if self._session:
            try:
                self._session.close()
            except Exception as e:
                logger.warning(f"Error closing SSH session: {e}")
            self._session = None
            logger.debug("SFTP connection closed")


class SFTPFileConnectorService:
    """
    Opens SFTP connections.

    Args:
        known_hosts_path: known_hosts file used to verify every server
    """

    def __init__(self, known_hosts_path: Optional[PathLike] = None):
        self.known_hosts_path = str(known_hosts_path) if known_hosts_path else None

    def connect(self, strategy: ConnectionStrategy) -> SFTPConnection:
        """
        Open a connection using ``strategy``.

        Raises:
            SFTPError: If the strategy is unsupported or the connection fails
        """
        if not isinstance(strategy, (PasswordConnectionStrategy, PrivateKeyConnectionStrategy)):
            raise SFTPError(f"Unsupported connection strategy: {strategy!r}")

        logger.info(f"Connecting to SFTP: {strategy.remote_host}:{strategy.port or 22}")
        session = strategy.open_session(self.known_hosts_path)
        logger.info(f"Connected to SFTP server: {strategy.remote_host}")
        return SFTPConnection(session)


def check_connection(
    strategy: ConnectionStrategy,
    remote_directory_path: PathLike = "/",
    known_hosts_path: Optional[PathLike] = None,
) -> bool:
    """
    Test SFTP connection without transferring files.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        with SFTPFileConnectorService(known_hosts_path).connect(strategy) as connection:
            files = connection.list_remote_files(remote_directory_path)
            logger.info(f"Connection test successful. Found {len(files)} files.")
            return True
    except SFTPError as e:
        logger.error(f"Connection test failed: {e}")
        return False
