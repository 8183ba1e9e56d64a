"""
Docker test containers shared through the pool coordinator.

This module provides:
- start_or_reuse_unique_instance: start a container keyed by instance id
- SFTP and Redis container specs
- pool_coordinator_for: a coordinator backed by the shared Redis container

pytest fixtures live in mtsftp.containers.fixtures.
"""

from mtsftp.containers.redis import (
    REDIS_INSTANCE_ID,
    REDIS_PORT,
    pool_coordinator_for,
    redis_container_spec,
    start_shared_redis,
)
from mtsftp.containers.reuse import (
    ContainerSpec,
    RunningContainer,
    ensure_image,
    start_or_reuse_unique_instance,
)
from mtsftp.containers.sftp import (
    SFTP_PORT,
    SFTP_TYPE,
    SFTP_USERNAME_TEST,
    generate_ssh_material,
    sftp_container_spec,
    sftp_strategy,
    write_known_hosts,
)

__all__ = [
    "ContainerSpec",
    "REDIS_INSTANCE_ID",
    "REDIS_PORT",
    "RunningContainer",
    "SFTP_PORT",
    "SFTP_TYPE",
    "SFTP_USERNAME_TEST",
    "ensure_image",
    "generate_ssh_material",
    "pool_coordinator_for",
    "redis_container_spec",
    "sftp_container_spec",
    "sftp_strategy",
    "start_or_reuse_unique_instance",
    "start_shared_redis",
    "write_known_hosts",
]
