"""
SFTP server test container (atmoz/sftp).

The server authenticates user ``foo`` with a client key whose public half
is copied into the container, and presents a host key we generated, so
tests can connect with strict host key checking.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import paramiko

from mtsftp.containers.reuse import ContainerSpec, RunningContainer
from mtsftp.sftp.strategies import PrivateKeyConnectionStrategy

logger = logging.getLogger(__name__)

SFTP_TYPE = "sftp"
SFTP_IMAGE = "atmoz/sftp"
SFTP_PORT = 22
SFTP_USERNAME_TEST = "foo"
SFTP_SHARE = "/share"

HOST_KEY_FILE = "ssh_host_rsa_key"
CLIENT_KEY_FILE = "id_rsa_client"


@dataclass
class SshMaterial:
    """Key files used by the SFTP test container and its clients."""
    directory: Path
    host_key: Path
    client_key: Path
    client_public_key: Path

    @property
    def host_public_key(self) -> paramiko.PKey:
        return paramiko.RSAKey.from_private_key_file(str(self.host_key))


def generate_ssh_material(directory: Union[str, Path], bits: int = 2048) -> SshMaterial:
    """
    Generate a server host key and a client key pair under ``directory``.

    Existing files are kept, so several test processes can share one
    directory.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    host_key = directory / HOST_KEY_FILE
    client_key = directory / CLIENT_KEY_FILE
    client_public_key = directory / f"{CLIENT_KEY_FILE}.pub"

    if not host_key.exists():
        paramiko.RSAKey.generate(bits).write_private_key_file(str(host_key))
        logger.debug(f"Generated host key {host_key}")

    if not client_key.exists():
        key = paramiko.RSAKey.generate(bits)
        key.write_private_key_file(str(client_key))
        client_public_key.write_text(f"{key.get_name()} {key.get_base64()} {SFTP_USERNAME_TEST}\n")
        logger.debug(f"Generated client key {client_key}")

    return SshMaterial(
        directory=directory,
        host_key=host_key,
        client_key=client_key,
        client_public_key=client_public_key,
    )


def sftp_container_spec(material: SshMaterial) -> ContainerSpec:
    return ContainerSpec(
        resource_type=SFTP_TYPE,
        image=SFTP_IMAGE,
        exposed_ports=(SFTP_PORT,),
        env={"SFTP_USERS": f"{SFTP_USERNAME_TEST}::1001::share"},
        command=["/bin/sh", "-c", "exec /usr/sbin/sshd -D -e"],
        files={
            str(material.host_key): f"/etc/ssh/{HOST_KEY_FILE}",
            str(material.client_public_key): (
                f"/home/{SFTP_USERNAME_TEST}/.ssh/keys/{CLIENT_KEY_FILE}.pub"
            ),
        },
    )


def write_known_hosts(material: SshMaterial, running: RunningContainer) -> Path:
    """
    Write a known_hosts file trusting the container's host key.

    Returns:
        Path of the known_hosts file
    """
    known_hosts = material.directory / f"known_hosts-{running.instance_id}"
    host_keys = paramiko.HostKeys()
    host_key = material.host_public_key
    host_keys.add(
        f"[{running.host}]:{running.mapped_port(SFTP_PORT)}",
        host_key.get_name(),
        host_key,
    )
    host_keys.save(str(known_hosts))
    return known_hosts


def sftp_strategy(material: SshMaterial, running: RunningContainer) -> PrivateKeyConnectionStrategy:
    return PrivateKeyConnectionStrategy(
        username=SFTP_USERNAME_TEST,
        private_key=str(material.client_key),
        remote_host=running.host,
        port=running.mapped_port(SFTP_PORT),
        strict_host_checking=True,
    )
