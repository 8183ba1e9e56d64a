"""
pytest fixtures for tests that need pooled containers.

Enable with ``pytest_plugins = ["mtsftp.containers.fixtures"]`` in a
conftest.py. The shared Redis container is started (or reused) once per
session; each test borrows an SFTP identity from the pool and gives it
back on teardown, and the session ends with a reap of the sftp pool.
"""

import logging
import tempfile
from pathlib import Path
from typing import Generator

import docker
import pytest

from mtsftp.config import load_settings
from mtsftp.config.models import Settings
from mtsftp.containers.redis import pool_coordinator_for, start_shared_redis
from mtsftp.containers.reuse import RunningContainer, start_or_reuse_unique_instance
from mtsftp.containers.sftp import (
    SFTP_TYPE,
    SshMaterial,
    generate_ssh_material,
    sftp_container_spec,
)
from mtsftp.pool.coordinator import PoolCoordinator

logger = logging.getLogger(__name__)


def create_input_temp_file() -> Path:
    """Create an empty local file to upload."""
    handle, path = tempfile.mkstemp(prefix="file-in", suffix=".tmp")
    with open(handle, "wb"):
        pass
    return Path(path)


def create_output_temp_directory() -> Path:
    """Create a local directory to download into."""
    return Path(tempfile.mkdtemp(prefix="files-out"))


@pytest.fixture(scope="session")
def mtsftp_settings() -> Settings:
    return load_settings()


@pytest.fixture(scope="session")
def docker_client() -> Generator[docker.DockerClient, None, None]:
    client = docker.from_env()
    yield client
    client.close()


@pytest.fixture(scope="session")
def shared_redis(docker_client, mtsftp_settings) -> RunningContainer:
    return start_shared_redis(docker_client, mtsftp_settings, container_logger=logger)


@pytest.fixture(scope="session")
def pool_coordinator(shared_redis, docker_client, mtsftp_settings) -> Generator[PoolCoordinator, None, None]:
    coordinator = pool_coordinator_for(shared_redis, docker_client, mtsftp_settings)
    yield coordinator
    coordinator.release_all(SFTP_TYPE)
    coordinator.close()


@pytest.fixture(scope="session")
def ssh_material(tmp_path_factory) -> SshMaterial:
    return generate_ssh_material(tmp_path_factory.mktemp("ssh"))


@pytest.fixture
def sftp_container(
    pool_coordinator, docker_client, ssh_material, mtsftp_settings
) -> Generator[RunningContainer, None, None]:
    instance_id = pool_coordinator.acquire(SFTP_TYPE)
    try:
        running = start_or_reuse_unique_instance(
            docker_client,
            sftp_container_spec(ssh_material),
            instance_id=instance_id,
            reuse_label=mtsftp_settings.pool.reuse_label,
            docker_config=mtsftp_settings.docker,
        )
        yield running
    finally:
        pool_coordinator.release(SFTP_TYPE, instance_id)
