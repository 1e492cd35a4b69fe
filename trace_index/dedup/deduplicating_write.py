# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Write tasks that skip themselves when an equivalent write was just made.

A factory decides once, when it builds a task, whether the task's input
still needs writing. issue() then either submits the store write or
returns an already-completed future. Suppression is never an error.

Retries go through clone(): the clone carries the same input and is always
permitted, so an external retry policy can re-attempt a failed write
without the cache (which still holds the original permission) swallowing
it. A failed write also removes its cache entry so a later, independent
write for the same key is not suppressed by a write that never landed.
"""

from abc import ABC, abstractmethod
from concurrent.futures import Future
from typing import Any, Callable, Hashable, Optional

from trace_index.dedup.dedup_cache import DedupCache
from trace_index.monitoring.write_stats import WriteStats
from trace_index.utils.logger import get_logger

logger = get_logger()


def completed_future(result: Any = None) -> Future:
    """Return a future that has already resolved to ``result``."""
    future: Future = Future()
    future.set_result(result)
    return future


class DeduplicatingWrite(ABC):
    """
    One pending write, permitted or suppressed at construction.

    Subclasses implement _new_future(), which binds the input into the
    factory's write template and submits it.
    """

    def __init__(self, factory: "DeduplicatingWriteFactory", input: Any, permitted: bool):
        self.factory = factory
        self.input = input
        self._permitted = permitted

    @property
    def suppressed(self) -> bool:
        """True when issue() will not touch the store."""
        return not self._permitted

    def issue(self) -> Future:
        """
        Submit the write, or do nothing if it was found redundant.

        Returns:
            Future resolving to None. Store failures are raised from the
            future unmodified.
        """
        if not self._permitted:
            logger.trace(f"Suppressed redundant write {self}")
            return completed_future(None)

        try:
            future = self._new_future()
        except Exception:
            self._on_failure()
            raise

        future.add_done_callback(self._on_done)
        return future

    def release(self) -> None:
        """Give back the permission of a task that will never be issued."""
        if self._permitted:
            self.factory.invalidate(self.input)

    def clone(self) -> "DeduplicatingWrite":
        """A fresh, always-permitted task for the same input."""
        return self.factory._new_task(self.input, permitted=True)

    @abstractmethod
    def _new_future(self) -> Future:
        """Bind and submit the store write."""

    def _on_done(self, future: Future) -> None:
        if not future.cancelled() and future.exception() is not None:
            logger.debug(f"Write {self} failed: {future.exception()}")
            self._on_failure()

    def _on_failure(self) -> None:
        self.factory.invalidate(self.input)
        self.factory.stats.record_failed()

    def __repr__(self) -> str:
        state = "suppressed" if self.suppressed else "permitted"
        return f"{type(self).__name__}({self.input!r}, {state})"


class DeduplicatingWriteFactory(ABC):
    """
    Owns the dedup cache for one table and builds write tasks for it.

    A max_size of 0 disables deduplication: every task is permitted.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_size: int,
        clock: Optional[Callable[[], int]] = None,
        label: str = "default",
    ):
        """
        Args:
            ttl_seconds: Dedup window in seconds.
            max_size: Maximum cache entries, 0 to disable the cache.
            clock: Nanosecond monotonic clock override (tests).
            label: Name used in stats and logs, usually the table.
        """
        if max_size < 0:
            raise ValueError(f"max_size must be >= 0 (got {max_size})")
        self.cache: Optional[DedupCache] = None
        if max_size > 0:
            kwargs = {"clock": clock} if clock is not None else {}
            self.cache = DedupCache(ttl_seconds, max_size, **kwargs)
        self.stats = WriteStats(label)

    def new_write_task(self, input: Any) -> DeduplicatingWrite:
        """
        Build a task for ``input``, suppressing it if already written recently.

        Args:
            input: Immutable description of the row to write.

        Returns:
            A task whose issue() writes or is a no-op.

        Raises:
            Whatever building the task raises; the permission just taken
            is given back first.
        """
        permitted = self.cache is None or self.cache.should_write(self.dedup_key(input))
        try:
            task = self._new_task(input, permitted)
        except Exception:
            if permitted:
                self.invalidate(input)
            raise
        if permitted:
            self.stats.record_permitted()
        else:
            self.stats.record_suppressed()
        return task

    def dedup_key(self, input: Any) -> Hashable:
        """Cache key for an input. Inputs identical for every query share a key."""
        return input

    def invalidate(self, input: Any) -> None:
        if self.cache is not None:
            self.cache.invalidate(self.dedup_key(input))

    def clear(self) -> None:
        """Forget every prior write (e.g. after the table is rebuilt)."""
        if self.cache is not None:
            self.cache.clear()
        self.stats.reset()

    @abstractmethod
    def _new_task(self, input: Any, permitted: bool) -> DeduplicatingWrite:
        """Construct the concrete task type for this factory."""
