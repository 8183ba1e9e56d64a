"""
Lease store backed by Redis lists.

Each resource type owns two Redis lists used as FIFO queues:
``<type>-free`` and ``<type>-lock``. Entries are pushed at the tail
(RPUSH) and popped from the head (LPOP).

The store hands out short-lived sessions. A session borrows one connection
from the shared connection pool for the duration of a single coordinator
operation and returns it afterwards.
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional, Protocol, Union, runtime_checkable

import redis

from mtsftp.config.models import RedisConfig

logger = logging.getLogger(__name__)

# Entries are written as str and read back as raw bytes.
Payload = Union[str, bytes]

# Moves the first entry whose "id" matches ARGV[1] from KEYS[1] to the tail
# of KEYS[2]. Records are serialized with "id" as their first key. An entry
# without a leading id met before the match aborts the script with a CORRUPT
# error and leaves both lists untouched.
RELOCATE_SCRIPT = """
local entries = redis.call('LRANGE', KEYS[1], 0, -1)
for index, entry in ipairs(entries) do
  local id = string.match(entry, '^%s*{%s*"id"%s*:%s*"([^"]+)"')
  if not id then
    return redis.error_reply('CORRUPT entry at index ' .. (index - 1) .. ' of ' .. KEYS[1])
  end
  if id == ARGV[1] then
    redis.call('LREM', KEYS[1], 1, entry)
    redis.call('RPUSH', KEYS[2], entry)
    return 1
  end
end
return 0
"""

CORRUPT_REPLY_PREFIX = "CORRUPT"


class LeaseStoreError(Exception):
    """Raised when the lease store is unreachable or returns bad data."""
    pass


class CorruptRecordError(LeaseStoreError):
    """Raised when a queue entry cannot be decoded into an instance record."""

    def __init__(self, message: str, payload: Optional[Payload] = None):
        super().__init__(message)
        self.payload = payload


def free_queue(resource_type: str) -> str:
    return f"{resource_type}-free"


def lock_queue(resource_type: str) -> str:
    return f"{resource_type}-lock"


@runtime_checkable
class LeaseSession(Protocol):
    """Queue primitives the pool coordinator relies on."""

    def push_tail(self, queue: str, payload: Payload) -> None: ...

    def pop_head(self, queue: str) -> Optional[Payload]: ...

    def length(self, queue: str) -> int: ...


@runtime_checkable
class AtomicLeaseSession(LeaseSession, Protocol):
    """A session that can move a record by id in one server-side step."""

    def relocate(self, source: str, target: str, instance_id: str) -> bool: ...


class RedisLeaseSession:
    """Queue operations bound to one borrowed Redis connection."""

    def __init__(self, client: redis.Redis):
        self._client = client

    def push_tail(self, queue: str, payload: Payload) -> None:
        self._client.rpush(queue, payload)

    def pop_head(self, queue: str) -> Optional[bytes]:
        return self._client.lpop(queue)

    def length(self, queue: str) -> int:
        return int(self._client.llen(queue))

    def relocate(self, source: str, target: str, instance_id: str) -> bool:
        """
        Move the record with ``instance_id`` from ``source`` to ``target``.

        Runs as a Lua script, so the record is never absent from both
        queues as seen by other clients.

        Returns:
            True if a record was moved

        Raises:
            CorruptRecordError: If an entry ahead of the match cannot be decoded
        """
        script = self._client.register_script(RELOCATE_SCRIPT)
        try:
            moved = script(keys=[source, target], args=[instance_id])
        except redis.ResponseError as e:
            if CORRUPT_REPLY_PREFIX in str(e):
                logger.error(f"Corrupt entry in {source}, left in place: {e}")
                raise CorruptRecordError(f"Corrupt instance record: {e}") from e
            raise
        return bool(moved)


class RedisLeaseStore:
    """
    Redis implementation of the lease store.

    Example:
        ```python
        store = RedisLeaseStore.from_config(RedisConfig(host="localhost"))

        with store.session() as session:
            session.push_tail("sftp-lock", record.to_json())
        ```
    """

    def __init__(self, connection_pool: redis.ConnectionPool):
        self._connection_pool = connection_pool

    @classmethod
    def from_config(cls, config: RedisConfig) -> "RedisLeaseStore":
        logger.info(f"Creating lease store pool for redis://{config.host}:{config.port}/{config.db}")
        connection_pool = redis.ConnectionPool(
            host=config.host,
            port=config.port,
            db=config.db,
            password=config.password,
            socket_timeout=config.socket_timeout,
        )
        return cls(connection_pool)

    @contextmanager
    def session(self) -> Generator[RedisLeaseSession, None, None]:
        """
        Borrow a connection for the duration of one pool operation.

        Yields:
            RedisLeaseSession bound to the borrowed connection

        Raises:
            LeaseStoreError: If any Redis command fails
        """
        client = redis.Redis(connection_pool=self._connection_pool)
        try:
            logger.debug("Lease store session opened")
            yield RedisLeaseSession(client)
        except redis.RedisError as e:
            logger.error(f"Lease store operation failed: {e}", exc_info=True)
            raise LeaseStoreError(f"Lease store operation failed: {e}") from e
        finally:
            client.close()
            logger.debug("Lease store session closed")

    def ping(self) -> bool:
        """Check that the store is reachable."""
        client = redis.Redis(connection_pool=self._connection_pool)
        try:
            return bool(client.ping())
        except redis.RedisError as e:
            logger.error(f"Lease store ping failed: {e}")
            return False
        finally:
            client.close()

    def close(self) -> None:
        """Disconnect every pooled connection."""
        self._connection_pool.disconnect()
        logger.info("Lease store pool closed")
