# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Unit tests for DeduplicatingWrite and its factory."""

from concurrent.futures import Future

import pytest

from trace_index.dedup.deduplicating_write import completed_future
from trace_index.indexing.index_trace_id import (
    IndexTraceIdInput,
    InvalidCandidateError,
    ServiceNameIndexFactory,
)
from trace_index.sinks.base_store import FatalStoreError, UnavailableError, WriteTimeoutError
from trace_index.sinks.memory_store import InMemoryStore


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

TS = 1_700_000_000_000_000


def _input(service="frontend", ts=TS, trace_id=0x1234):
    return IndexTraceIdInput(service, ts, trace_id)


def _factory(store, clock, cache_max=100, ttl=60):
    return ServiceNameIndexFactory(
        store, cache_ttl_seconds=ttl, cache_max=cache_max, clock=clock
    )


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestNewWriteTask:

    def test_first_task_permitted(self, immediate_store, clock):
        factory = _factory(immediate_store, clock)
        task = factory.new_write_task(_input())
        assert task.suppressed is False

    def test_repeat_task_suppressed(self, immediate_store, clock):
        factory = _factory(immediate_store, clock)
        factory.new_write_task(_input())
        assert factory.new_write_task(_input()).suppressed is True

    def test_permitted_again_after_ttl(self, immediate_store, clock):
        factory = _factory(immediate_store, clock, ttl=60)
        factory.new_write_task(_input())
        clock.advance(61)
        assert factory.new_write_task(_input()).suppressed is False

    def test_zero_cache_max_disables_dedup(self, immediate_store, clock):
        factory = _factory(immediate_store, clock, cache_max=0)
        assert factory.cache is None
        assert factory.new_write_task(_input()).suppressed is False
        assert factory.new_write_task(_input()).suppressed is False

    def test_negative_cache_max_rejected(self, immediate_store, clock):
        with pytest.raises(ValueError):
            _factory(immediate_store, clock, cache_max=-1)

    def test_stats_count_permitted_and_suppressed(self, immediate_store, clock):
        factory = _factory(immediate_store, clock)
        for _ in range(3):
            factory.new_write_task(_input())
        assert factory.stats.permitted == 1
        assert factory.stats.suppressed == 2

    def test_failed_construction_gives_permission_back(self, immediate_store, clock):
        class RejectingFactory(ServiceNameIndexFactory):
            def _new_task(self, input, permitted):
                raise InvalidCandidateError("rejected")

        factory = RejectingFactory(immediate_store, clock=clock)
        with pytest.raises(InvalidCandidateError):
            factory.new_write_task(_input())

        assert _input() not in factory.cache
        assert factory.stats.permitted == 0


class TestIssue:

    def test_permitted_task_writes(self, immediate_store, clock):
        factory = _factory(immediate_store, clock)
        future = factory.new_write_task(_input()).issue()
        assert future.result() is None
        assert immediate_store.write_count == 1

    def test_suppressed_task_is_successful_noop(self, immediate_store, clock):
        """Suppression resolves like a success; only instrumentation tells them apart."""
        factory = _factory(immediate_store, clock)
        factory.new_write_task(_input()).issue().result()

        task = factory.new_write_task(_input())
        future = task.issue()

        assert future.done()
        assert future.exception() is None
        assert future.result() is None
        assert immediate_store.write_count == 1
        assert task.suppressed is True

    def test_store_failure_propagates_unmodified(self, immediate_store, clock):
        factory = _factory(immediate_store, clock)
        error = WriteTimeoutError("timed out", table="service_name_index")
        immediate_store.fail_next(error)

        future = factory.new_write_task(_input()).issue()

        assert future.exception() is error

    def test_failure_invalidates_cache_entry(self, immediate_store, clock):
        factory = _factory(immediate_store, clock)
        immediate_store.fail_next(UnavailableError("no replicas"))
        factory.new_write_task(_input()).issue()

        # The failed write never landed, so the next one must not be suppressed
        assert factory.new_write_task(_input()).suppressed is False
        assert factory.stats.failed == 1

    def test_synchronous_submit_error_invalidates_and_raises(self, clock):
        class BrokenStore(InMemoryStore):
            def execute_async(self, bound):
                raise FatalStoreError("rejected")

        factory = _factory(BrokenStore(), clock)
        task = factory.new_write_task(_input())

        with pytest.raises(FatalStoreError):
            task.issue()
        assert factory.new_write_task(_input()).suppressed is False


class TestClone:

    def test_clone_of_suppressed_task_writes(self, immediate_store, clock):
        """A retry is never silently suppressed, whatever the cache holds."""
        factory = _factory(immediate_store, clock)
        factory.new_write_task(_input()).issue().result()
        suppressed = factory.new_write_task(_input())

        clone = suppressed.clone()
        clone.issue().result()

        assert clone.suppressed is False
        assert immediate_store.write_count == 2

    def test_clone_is_independent_task_with_same_input(self, immediate_store, clock):
        factory = _factory(immediate_store, clock)
        task = factory.new_write_task(_input())
        clone = task.clone()

        assert clone is not task
        assert type(clone) is type(task)
        assert clone.input == task.input
        assert clone.factory is task.factory

    def test_clone_does_not_touch_cache_or_counters(self, immediate_store, clock):
        factory = _factory(immediate_store, clock)
        task = factory.new_write_task(_input())
        task.clone()
        task.clone()
        assert factory.stats.permitted == 1
        assert len(factory.cache) == 1


class TestRelease:

    def test_release_gives_permission_back(self, immediate_store, clock):
        factory = _factory(immediate_store, clock)
        factory.new_write_task(_input()).release()
        assert factory.new_write_task(_input()).suppressed is False

    def test_release_of_suppressed_task_keeps_entry(self, immediate_store, clock):
        factory = _factory(immediate_store, clock)
        factory.new_write_task(_input())
        factory.new_write_task(_input()).release()
        assert factory.new_write_task(_input()).suppressed is True


class TestClear:

    def test_clear_forgets_prior_writes(self, immediate_store, clock):
        factory = _factory(immediate_store, clock)
        factory.new_write_task(_input())
        factory.clear()
        assert factory.new_write_task(_input()).suppressed is False


class TestCompletedFuture:

    def test_resolved(self):
        future = completed_future("x")
        assert isinstance(future, Future)
        assert future.done()
        assert future.result() == "x"
