"""
Pool coordinator for reusable test containers.

Hands out container identities per resource type, takes them back, and
reaps abandoned ones. All state lives in the lease store so that any
number of concurrent test processes can share the same pool; the
coordinator itself keeps nothing between calls.

Known limitation: the drain loops in release() and release_all() pop a
record and push it back in two separate store calls. A process that dies
between the two loses that record from the pool (its container is left
running until removed by hand). Only one record per crashed sweep can be
lost this way. release() avoids the window entirely when the store
supports server-side scripts.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Protocol, Tuple

from mtsftp.config.models import DEFAULT_REUSE_LABEL, Settings
from mtsftp.pool.instance import ContainerInstance, utc_now
from mtsftp.pool.lifecycle import DockerLifecycleController
from mtsftp.pool.store import (
    AtomicLeaseSession,
    CorruptRecordError,
    LeaseSession,
    Payload,
    RedisLeaseStore,
    free_queue,
    lock_queue,
)

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL = timedelta(minutes=5)
DEFAULT_CREATION_TTL = timedelta(minutes=30)


class LifecycleController(Protocol):
    def find_by_label(self, key: str, value: str) -> Optional[str]: ...

    def stop(self, container_id: str) -> None: ...

    def kill(self, container_id: str) -> None: ...


@dataclass
class ReapResult:
    """
    Outcome of a release_all() sweep.

    Attributes:
        reclaimed: Ids whose lock expired, moved back to the free queue
        destroyed: Ids past their creation TTL, terminated and dropped
        kept: Ids still validly locked
    """
    reclaimed: List[str] = field(default_factory=list)
    destroyed: List[str] = field(default_factory=list)
    kept: List[str] = field(default_factory=list)

    @property
    def swept_count(self) -> int:
        return len(self.reclaimed) + len(self.destroyed) + len(self.kept)


class PoolCoordinator:
    """
    Acquire, release and reap pooled container identities.

    Example:
        ```python
        coordinator = PoolCoordinator.from_settings(load_settings())

        instance_id = coordinator.acquire("sftp")
        try:
            container = start_or_reuse_unique_instance(client, spec, instance_id)
            ...
        finally:
            coordinator.release("sftp", instance_id)

        coordinator.release_all("sftp")
        ```
    """

    def __init__(
        self,
        store,
        lifecycle: LifecycleController,
        lock_ttl: timedelta = DEFAULT_LOCK_TTL,
        creation_ttl: timedelta = DEFAULT_CREATION_TTL,
        reuse_label: str = DEFAULT_REUSE_LABEL,
        atomic_release: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._lifecycle = lifecycle
        self.lock_ttl = lock_ttl
        self.creation_ttl = creation_ttl
        self.reuse_label = reuse_label
        self.atomic_release = atomic_release
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "PoolCoordinator":
        return cls(
            store=RedisLeaseStore.from_config(settings.redis),
            lifecycle=DockerLifecycleController(stop_timeout=settings.docker.stop_timeout),
            lock_ttl=settings.pool.lock_ttl,
            creation_ttl=settings.pool.creation_ttl,
            reuse_label=settings.pool.reuse_label,
            atomic_release=settings.pool.atomic_release,
        )

    def _pop(self, session: LeaseSession, queue: str) -> Optional[Tuple[Payload, ContainerInstance]]:
        """
        Pop and decode the head of ``queue``.

        A corrupt entry, undecodable bytes included, is pushed back onto the
        tail of the same queue unchanged before the error is raised, so it
        stays visible in the store.
        """
        payload = session.pop_head(queue)
        if payload is None:
            return None
        try:
            return payload, ContainerInstance.from_json(payload)
        except CorruptRecordError:
            session.push_tail(queue, payload)
            logger.error(f"Corrupt entry in {queue}, left in place: {payload!r}")
            raise

    def acquire(self, resource_type: str) -> str:
        """
        Lock an identity for ``resource_type``, reusing a free one if possible.

        Returns:
            Instance id to use as the container's reuse key

        Raises:
            LeaseStoreError: If the store is unreachable
            CorruptRecordError: If the free queue head cannot be decoded
        """
        now = self._clock()

        with self._store.session() as session:
            popped = self._pop(session, free_queue(resource_type))

            if popped is not None:
                instance = popped[1].relock(now)
                logger.info(f"Reusing {resource_type} instance {instance.id}")
            else:
                instance = ContainerInstance.mint(now)
                logger.info(f"Created {resource_type} instance {instance.id}")

            session.push_tail(lock_queue(resource_type), instance.to_json())
            logger.info(f"Locking {instance.id}")

        return instance.id

    def release(self, resource_type: str, instance_id: str) -> bool:
        """
        Return a locked identity to the free queue.

        Unknown ids (never acquired, already released or reaped) are ignored.

        Returns:
            True if the identity was found and freed

        Raises:
            LeaseStoreError: If the store is unreachable
            CorruptRecordError: If a locked entry ahead of the id cannot be decoded
        """
        locked = lock_queue(resource_type)
        free = free_queue(resource_type)

        with self._store.session() as session:
            if self.atomic_release and isinstance(session, AtomicLeaseSession):
                released = session.relocate(locked, free, instance_id)
            else:
                released = self._drain_release(session, locked, free, instance_id)

        if released:
            logger.info(f"Releasing {instance_id}")
        else:
            logger.debug(f"{instance_id} not locked for {resource_type}, nothing to release")
        return released

    def _drain_release(self, session: LeaseSession, locked: str, free: str, instance_id: str) -> bool:
        released = False

        for _ in range(session.length(locked)):
            popped = self._pop(session, locked)
            if popped is None:
                break
            payload, instance = popped

            if not released and instance.id == instance_id:
                session.push_tail(free, payload)
                released = True
            else:
                session.push_tail(locked, payload)

        return released

    def release_all(self, resource_type: str) -> ReapResult:
        """
        Sweep the locked queue once and apply the TTL policy.

        - Lock still valid: kept locked, however old the instance is.
        - Lock expired and instance past its creation TTL: terminated and dropped.
        - Lock expired otherwise: moved to the free queue.

        Only records present when the sweep starts are visited.

        Returns:
            ReapResult listing what happened to each swept id

        Raises:
            LeaseStoreError: If the store is unreachable
            CorruptRecordError: If a locked entry cannot be decoded
            ContainerError: If a stale container cannot be torn down
        """
        locked = lock_queue(resource_type)
        free = free_queue(resource_type)
        result = ReapResult()
        now = self._clock()

        with self._store.session() as session:
            for _ in range(session.length(locked)):
                popped = self._pop(session, locked)
                if popped is None:
                    break
                payload, instance = popped

                if not instance.is_lock_expired(now, self.lock_ttl):
                    session.push_tail(locked, payload)
                    result.kept.append(instance.id)

                elif instance.is_creation_expired(now, self.creation_ttl):
                    try:
                        self.terminate(instance.id)
                    except Exception:
                        session.push_tail(locked, payload)
                        raise
                    result.destroyed.append(instance.id)
                    logger.info(f"Destroyed expired {resource_type} instance {instance.id}")

                else:
                    session.push_tail(free, payload)
                    result.reclaimed.append(instance.id)
                    logger.warning(
                        f"Reclaimed abandoned {resource_type} instance {instance.id} "
                        f"(locked since {instance.locked_at.isoformat()})"
                    )

        logger.info(
            f"Swept {result.swept_count} {resource_type} instances: "
            f"{len(result.reclaimed)} reclaimed, {len(result.destroyed)} destroyed, "
            f"{len(result.kept)} still locked"
        )
        return result

    def terminate(self, instance_id: str) -> bool:
        """
        Stop then kill the container labelled with ``instance_id``.

        Returns:
            True if a container was found, False if there was nothing to do
        """
        container_id = self._lifecycle.find_by_label(self.reuse_label, instance_id)
        if container_id is None:
            logger.debug(f"No container labelled {self.reuse_label}={instance_id}")
            return False

        logger.info(f"Terminating container {container_id} for instance {instance_id}")
        self._lifecycle.stop(container_id)
        self._lifecycle.kill(container_id)
        return True

    def queue_lengths(self, resource_type: str) -> Tuple[int, int]:
        """Return ``(free, locked)`` queue lengths for ``resource_type``."""
        with self._store.session() as session:
            return (
                session.length(free_queue(resource_type)),
                session.length(lock_queue(resource_type)),
            )

    def close(self) -> None:
        """Release the lease store connections."""
        self._store.close()
