"""
End-to-end tests against real containers.

Needs a Docker daemon. The Redis container is shared across runs through
its fixed instance id; SFTP containers are borrowed from the pool.

Run with:
    pytest tests/integration -v -m integration
"""

import uuid
from pathlib import PurePosixPath

import docker
import pytest

from mtsftp.containers.fixtures import create_input_temp_file, create_output_temp_directory
from mtsftp.containers.sftp import SFTP_SHARE, SFTP_TYPE, sftp_strategy, write_known_hosts
from mtsftp.sftp import SFTPFileConnectorService


def docker_available() -> bool:
    try:
        client = docker.from_env()
        try:
            return bool(client.ping())
        finally:
            client.close()
    except Exception:
        return False


pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not docker_available(), reason="Docker daemon not available"),
]


def test_upload_and_download_with_private_key(sftp_container, ssh_material):
    # Given
    remote_file_path = PurePosixPath(SFTP_SHARE) / f"{uuid.uuid4()}.tmp"
    downloaded_file_path = create_output_temp_directory() / remote_file_path.name
    known_hosts = write_known_hosts(ssh_material, sftp_container)
    connection = SFTPFileConnectorService(known_hosts).connect(
        sftp_strategy(ssh_material, sftp_container)
    )

    # When
    connection.upload_file(create_input_temp_file(), remote_file_path)

    # Then
    assert remote_file_path in connection.list_remote_files(remote_file_path.parent)

    # And then
    connection.download_file(remote_file_path, downloaded_file_path)
    assert downloaded_file_path.is_file()

    connection.disconnect()


def test_pool_hands_out_distinct_ids_and_frees_them(pool_coordinator):
    free_before, _ = pool_coordinator.queue_lengths(SFTP_TYPE)

    ids = [pool_coordinator.acquire(SFTP_TYPE) for _ in range(3)]
    assert len(set(ids)) == 3

    for instance_id in ids:
        assert pool_coordinator.release(SFTP_TYPE, instance_id) is True

    free_after, _ = pool_coordinator.queue_lengths(SFTP_TYPE)
    assert free_after == max(free_before, 3)
