"""
SFTP module for moving files to and from remote servers.

This module provides:
- SFTPFileConnectorService: opens connections from a strategy
- SFTPConnection: upload, download and list over an open session
- PasswordConnectionStrategy / PrivateKeyConnectionStrategy
- check_connection: Quick connection test utility
"""

from mtsftp.sftp.client import (
    SFTPConnection,
    SFTPFileConnectorService,
    check_connection,
)
from mtsftp.sftp.strategies import (
    ConnectionStrategy,
    PasswordConnectionStrategy,
    PrivateKeyConnectionStrategy,
    SFTPError,
    load_private_key,
)

__all__ = [
    "ConnectionStrategy",
    "PasswordConnectionStrategy",
    "PrivateKeyConnectionStrategy",
    "SFTPConnection",
    "SFTPError",
    "SFTPFileConnectorService",
    "check_connection",
    "load_private_key",
]
