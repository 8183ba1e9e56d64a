"""
Shared pool of reusable test containers.

This module provides:
- PoolCoordinator: acquire/release/reap container identities
- RedisLeaseStore: the Redis-backed free/locked queues
- DockerLifecycleController: stops and kills containers by reuse label
- ContainerInstance: the record stored in the queues
"""

from mtsftp.pool.coordinator import (
    PoolCoordinator,
    ReapResult,
)
from mtsftp.pool.instance import ContainerInstance
from mtsftp.pool.lifecycle import ContainerError, DockerLifecycleController
from mtsftp.pool.store import (
    CorruptRecordError,
    LeaseStoreError,
    RedisLeaseStore,
    free_queue,
    lock_queue,
)

__all__ = [
    "ContainerError",
    "ContainerInstance",
    "CorruptRecordError",
    "DockerLifecycleController",
    "LeaseStoreError",
    "PoolCoordinator",
    "ReapResult",
    "RedisLeaseStore",
    "free_queue",
    "lock_queue",
]
