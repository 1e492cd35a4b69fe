# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Shared pytest fixtures: a hand-driven clock and a synchronous store."""

from concurrent.futures import Future

import pytest

from trace_index.sinks.memory_store import InMemoryStore

NANOS = 1_000_000_000


class FakeClock:
    """Monotonic nanosecond clock that only moves when told to."""

    def __init__(self, seconds: float = 0):
        self.now = round(seconds * NANOS)

    def __call__(self) -> int:
        return self.now

    def set(self, seconds: float) -> None:
        self.now = round(seconds * NANOS)

    def advance(self, seconds: float) -> None:
        self.now += round(seconds * NANOS)


class ImmediateStore(InMemoryStore):
    """InMemoryStore that applies each write on the calling thread.

    Futures come back already resolved, so done-callbacks have run by the
    time execute_async() returns.
    """

    def execute_async(self, bound):
        future = Future()
        try:
            self._apply(bound)
        except Exception as e:
            future.set_exception(e)
        else:
            future.set_result(None)
        return future


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def immediate_store():
    store = ImmediateStore()
    yield store
    store.disconnect()
