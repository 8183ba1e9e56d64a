"""
Shared Redis test container backing the lease store.

Every test process asks for the same fixed instance id, so they all end up
on one Redis container and therefore one view of the pool.
"""

import logging
from typing import Optional

import docker

from mtsftp.config.models import RedisConfig, Settings
from mtsftp.containers.reuse import ContainerSpec, RunningContainer, start_or_reuse_unique_instance
from mtsftp.pool.coordinator import PoolCoordinator
from mtsftp.pool.lifecycle import DockerLifecycleController
from mtsftp.pool.store import RedisLeaseStore

logger = logging.getLogger(__name__)

REDIS_TYPE = "redis"
REDIS_IMAGE = "redis:alpine"
REDIS_PORT = 6379
REDIS_INSTANCE_ID = "ad4ad799-ae9e-453e-8deb-8b777ec521d3"


def redis_container_spec() -> ContainerSpec:
    return ContainerSpec(
        resource_type=REDIS_TYPE,
        image=REDIS_IMAGE,
        exposed_ports=(REDIS_PORT,),
    )


def start_shared_redis(
    client: docker.DockerClient,
    settings: Optional[Settings] = None,
    container_logger: Optional[logging.Logger] = None,
) -> RunningContainer:
    """Start, or attach to, the Redis container shared by all test processes."""
    settings = settings or Settings()
    return start_or_reuse_unique_instance(
        client,
        redis_container_spec(),
        instance_id=REDIS_INSTANCE_ID,
        reuse_label=settings.pool.reuse_label,
        docker_config=settings.docker,
        container_logger=container_logger,
    )


def pool_coordinator_for(
    running: RunningContainer,
    client: docker.DockerClient,
    settings: Optional[Settings] = None,
) -> PoolCoordinator:
    """
    Build a PoolCoordinator whose lease store is the given Redis container.
    """
    settings = settings or Settings()
    redis_config = RedisConfig(
        host=running.host,
        port=running.mapped_port(REDIS_PORT),
        socket_timeout=settings.redis.socket_timeout,
    )
    logger.info(f"Pool coordinator using redis at {redis_config.host}:{redis_config.port}")

    return PoolCoordinator(
        store=RedisLeaseStore.from_config(redis_config),
        lifecycle=DockerLifecycleController(client, stop_timeout=settings.docker.stop_timeout),
        lock_ttl=settings.pool.lock_ttl,
        creation_ttl=settings.pool.creation_ttl,
        reuse_label=settings.pool.reuse_label,
        atomic_release=settings.pool.atomic_release,
    )
