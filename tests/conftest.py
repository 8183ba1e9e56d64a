"""
Shared fixtures for mtsftp tests.

Provides:
- InMemoryLeaseStore: FIFO lists with the same primitives as RedisLeaseStore
- FakeLifecycle: records stop/kill calls for labelled containers
- FrozenClock: a controllable clock for TTL tests
"""

from collections import defaultdict, deque
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from mtsftp.pool.coordinator import PoolCoordinator
from mtsftp.pool.instance import ContainerInstance

pytest_plugins = ["mtsftp.containers.fixtures"]

START = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class InMemoryLeaseSession:
    def __init__(self, queues):
        self.queues = queues

    def push_tail(self, queue: str, payload: str) -> None:
        self.queues[queue].append(payload)

    def pop_head(self, queue: str) -> Optional[str]:
        if not self.queues[queue]:
            return None
        return self.queues[queue].popleft()

    def length(self, queue: str) -> int:
        return len(self.queues[queue])


class AtomicInMemoryLeaseSession(InMemoryLeaseSession):
    def __init__(self, queues):
        super().__init__(queues)
        self.relocate_calls = 0

    def relocate(self, source: str, target: str, instance_id: str) -> bool:
        self.relocate_calls += 1
        for payload in list(self.queues[source]):
            if ContainerInstance.from_json(payload).id == instance_id:
                self.queues[source].remove(payload)
                self.queues[target].append(payload)
                return True
        return False


class InMemoryLeaseStore:
    def __init__(self, session_class=InMemoryLeaseSession):
        self.queues: Dict[str, deque] = defaultdict(deque)
        self.session_class = session_class
        self.last_session = None
        self.closed = False

    @contextmanager
    def session(self):
        self.last_session = self.session_class(self.queues)
        yield self.last_session

    def close(self) -> None:
        self.closed = True

    def seed(self, queue: str, instance: ContainerInstance) -> ContainerInstance:
        self.queues[queue].append(instance.to_json())
        return instance

    def ids(self, queue: str) -> List[str]:
        return [ContainerInstance.from_json(p).id for p in self.queues[queue]]


class FakeLifecycle:
    def __init__(self):
        self.containers: Dict[str, str] = {}
        self.calls: List[tuple] = []

    def add(self, instance_id: str, container_id: Optional[str] = None) -> str:
        container_id = container_id or f"container-{instance_id}"
        self.containers[instance_id] = container_id
        return container_id

    def find_by_label(self, key: str, value: str) -> Optional[str]:
        self.calls.append(("find", key, value))
        return self.containers.get(value)

    def stop(self, container_id: str) -> None:
        self.calls.append(("stop", container_id))

    def kill(self, container_id: str) -> None:
        self.calls.append(("kill", container_id))

    def terminated(self) -> List[str]:
        return [call[1] for call in self.calls if call[0] == "kill"]


class FrozenClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store():
    return InMemoryLeaseStore()


@pytest.fixture
def lifecycle():
    return FakeLifecycle()


@pytest.fixture
def coordinator(store, lifecycle, clock):
    return PoolCoordinator(store=store, lifecycle=lifecycle, clock=clock)
