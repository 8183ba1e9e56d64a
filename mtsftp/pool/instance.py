"""
Instance records stored in the lease queues.

An instance record is the pool's unit of identity for a reusable
container. It exists independently of the container itself: the
container is created on first use by whoever acquired the identity.
"""

import uuid
from datetime import datetime, timedelta, timezone

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, ValidationError

from mtsftp.pool.store import CorruptRecordError, Payload


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ContainerInstance(BaseModel):
    """
    A pooled container identity.

    Attributes:
        id: Random UUID used as the container's reuse label value
        created_at: When the identity was minted (never changes)
        locked_at: Last time the identity entered the locked queue

    Serialized as ``{"id", "createdAt", "lockedAt"}`` with ISO-8601
    timestamps.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    created_at: AwareDatetime = Field(alias="createdAt")
    locked_at: AwareDatetime = Field(alias="lockedAt")

    @classmethod
    def mint(cls, now: datetime) -> "ContainerInstance":
        """Create a fresh identity locked at ``now``."""
        return cls(id=str(uuid.uuid4()), created_at=now, locked_at=now)

    def relock(self, now: datetime) -> "ContainerInstance":
        self.locked_at = now
        return self

    def is_lock_expired(self, now: datetime, lock_ttl: timedelta) -> bool:
        return now - self.locked_at > lock_ttl

    def is_creation_expired(self, now: datetime, creation_ttl: timedelta) -> bool:
        return now - self.created_at > creation_ttl

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, payload: Payload) -> "ContainerInstance":
        """
        Decode a queue entry, as text or as raw bytes read from the store.

        Raises:
            CorruptRecordError: If the payload is not a valid record
        """
        if isinstance(payload, bytes):
            try:
                payload = payload.decode("utf-8")
            except UnicodeDecodeError as e:
                raise CorruptRecordError(
                    f"Instance record is not UTF-8: {payload!r}", payload=payload
                ) from e
        try:
            return cls.model_validate_json(payload)
        except ValidationError as e:
            raise CorruptRecordError(
                f"Corrupt instance record {payload!r}: {e}", payload=payload
            ) from e
