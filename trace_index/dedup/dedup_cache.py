# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Time- and capacity-bounded cache deciding whether a write is still needed.

Index writers ask should_write(key) before writing a row. The first caller
for a key within the TTL is permitted and every later caller is told the
write is redundant, until the entry expires or is evicted for capacity.

Locking is two-level:
- A fixed set of striped locks serializes callers of the same key, so the
  check and the insert are atomic per key while unrelated keys rarely
  contend.
- A short internal lock guards only the insertion-ordered dict used for
  eviction bookkeeping. It is never held while a caller's merge function
  runs.

Eviction removes the least recently inserted entry once max_size is
exceeded, and expired entries are dropped from the head as new ones
arrive. Losing an entry early only causes an extra write, never a lost
one.
"""

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Hashable, List, NamedTuple, Optional

from trace_index.utils.logger import get_logger

logger = get_logger()

NANOS_PER_SECOND = 1_000_000_000


class _Entry(NamedTuple):
    value: Any
    written_at: int  # clock nanos


class DedupCache:
    """
    Concurrent map of key -> last permitted write, bounded by TTL and size.

    Usage::

        cache = DedupCache(ttl_seconds=60, max_size=100_000)
        if cache.should_write(("service_name_index", "frontend", ts, trace_id)):
            store.execute_async(bound)
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_size: int,
        clock: Callable[[], int] = time.monotonic_ns,
        stripes: int = 16,
    ):
        """
        Args:
            ttl_seconds: How long a permitted write suppresses repeats.
            max_size: Maximum number of resident entries.
            clock: Monotonic clock returning nanoseconds.
            stripes: Number of per-key lock stripes.

        Raises:
            ValueError: If ttl_seconds is negative or max_size/stripes is not positive.
        """
        if ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be >= 0 (got {ttl_seconds})")
        if max_size <= 0:
            raise ValueError(f"max_size must be positive (got {max_size})")
        if stripes <= 0:
            raise ValueError(f"stripes must be positive (got {stripes})")

        self.ttl_nanos = int(ttl_seconds * NANOS_PER_SECOND)
        self.max_size = max_size
        self._clock = clock
        self._stripes: List[threading.Lock] = [threading.Lock() for _ in range(stripes)]
        self._order_lock = threading.Lock()
        self._entries: "OrderedDict[Hashable, _Entry]" = OrderedDict()
        self._eviction_count = 0

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def should_write(self, key: Hashable) -> bool:
        """
        Decide whether a write for ``key`` is needed, recording it if so.

        A suppressed call leaves the existing entry untouched: only a
        permitted write starts a new window.

        Args:
            key: Identity of the write (see the owning factory's dedup_key).

        Returns:
            True if the caller should perform the write, False if redundant.
        """
        return self.update(key, _permit_if_absent) is not None

    def update(
        self,
        key: Hashable,
        merge: Callable[[Optional[Any]], Optional[Any]],
    ) -> Optional[Any]:
        """
        Atomically replace the value for ``key``.

        ``merge`` receives the live value (None when absent or expired) and
        returns the value to store, or None to leave the entry as it is.
        A stored value becomes the newest entry and starts a fresh TTL.

        Args:
            key: Cache key.
            merge: Pure function of the previous value.

        Returns:
            The stored value, or None if merge declined to change anything.
        """
        with self._stripe(key):
            with self._order_lock:
                entry = self._entries.get(key)
                now = self._clock()
            previous = entry.value if entry is not None and not self._expired(entry, now) else None

            value = merge(previous)
            if value is None:
                return None

            with self._order_lock:
                # Stamped under the order lock so insertion order matches time order.
                written_at = self._clock()
                self._entries.pop(key, None)
                self._entries[key] = _Entry(value, written_at)
                self._evict(written_at)
            return value

    def invalidate(self, key: Hashable) -> None:
        """Forget ``key`` so the next should_write() for it is permitted."""
        with self._stripe(key):
            with self._order_lock:
                self._entries.pop(key, None)

    def clear(self) -> None:
        """Drop every entry and reset the eviction counter."""
        with self._order_lock:
            self._entries.clear()
            self._eviction_count = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        with self._order_lock:
            self._evict(self._clock())
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        with self._order_lock:
            entry = self._entries.get(key)
            return entry is not None and not self._expired(entry, self._clock())

    @property
    def eviction_count(self) -> int:
        """Number of entries evicted because max_size was exceeded."""
        return self._eviction_count

    def __repr__(self) -> str:
        return (
            f"DedupCache(ttl_seconds={self.ttl_nanos / NANOS_PER_SECOND:g}, "
            f"max_size={self.max_size})"
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _stripe(self, key: Hashable) -> threading.Lock:
        return self._stripes[hash(key) % len(self._stripes)]

    def _expired(self, entry: _Entry, now: int) -> bool:
        # An entry exactly ttl old still suppresses; ttl 0 suppresses nothing.
        return self.ttl_nanos == 0 or now - entry.written_at > self.ttl_nanos

    def _evict(self, now: int) -> None:
        """Pop expired or over-capacity entries from the oldest end. Caller holds _order_lock."""
        while self._entries:
            key, oldest = next(iter(self._entries.items()))
            if len(self._entries) > self.max_size:
                self._entries.popitem(last=False)
                self._eviction_count += 1
                logger.debug(f"Dedup cache full ({self.max_size}), evicted {key!r}")
            elif self._expired(oldest, now):
                self._entries.popitem(last=False)
            else:
                break


def _permit_if_absent(previous: Optional[Any]) -> Optional[bool]:
    return True if previous is None else None
