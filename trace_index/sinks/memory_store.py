# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""In-memory index store backed by a thread pool.

Rows are kept per table, keyed by primary key, so a second write of the
same row overwrites the first the way a column store upsert does. Used
for tests, local runs, and the CLI when no persistent backend is set.
"""

import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from trace_index.sinks.base_store import BoundWrite, IndexStore, StoreError, StoreType
from trace_index.utils.logger import get_logger

logger = get_logger()


class InMemoryStore(IndexStore):
    """
    Asynchronous in-memory store.

    Failures can be injected with fail_next() to exercise the caller's
    retry path without a real cluster.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(config or {})
        self.store_type = StoreType.MEMORY

        memory_config = self.config.get("storage", {}).get("memory", {})
        self.max_workers = memory_config.get("max_workers", 4)

        self._clock = clock
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()
        # table -> primary key tuple -> (row, expires_at or None)
        self._tables: Dict[str, Dict[Tuple, Tuple[Dict[str, Any], Optional[float]]]] = {}
        self._failures: Deque[StoreError] = deque()
        self.write_count = 0

    def connect(self) -> None:
        """Start the worker pool."""
        with self._lock:
            if self._executor is not None:
                return
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="memory-store"
            )
        logger.info(f"InMemoryStore connected (max_workers={self.max_workers})")

    def disconnect(self) -> None:
        """Wait for in-flight writes and stop the worker pool."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
            logger.debug("InMemoryStore disconnected")

    def execute_async(self, bound: BoundWrite) -> "Future[None]":
        self.connect()
        return self._executor.submit(self._apply, bound)

    def fail_next(self, error: StoreError, times: int = 1) -> None:
        """Make the next ``times`` writes fail with ``error``."""
        with self._lock:
            self._failures.extend([error] * times)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        """Return live (non-expired) rows of a table."""
        now = self._clock()
        with self._lock:
            stored = list(self._tables.get(table, {}).values())
        return [dict(row) for row, expires_at in stored
                if expires_at is None or expires_at > now]

    def select(self, table: str, **partition: Any) -> List[Dict[str, Any]]:
        """Return live rows whose columns equal every given value."""
        return [
            row for row in self.rows(table)
            if all(row.get(col) == value for col, value in partition.items())
        ]

    def _apply(self, bound: BoundWrite) -> None:
        with self._lock:
            if self._failures:
                error = self._failures.popleft()
                logger.debug(f"Injected failure for {bound.table}: {error}")
                raise error

            row = bound.as_dict()
            key = tuple(row[c] for c in bound.template.primary_key)
            ttl = bound.template.ttl
            expires_at = self._clock() + ttl if ttl > 0 else None
            self._tables.setdefault(bound.table, {})[key] = (row, expires_at)
            self.write_count += 1
