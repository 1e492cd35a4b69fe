# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Drops index rows that cannot change any query result.

A query asks for trace IDs under a partition key between
``end_ts - lookback`` and ``end_ts``. For one (partition key, trace ID)
pair, only the earliest and latest indexed timestamps decide whether the
trace is found: a row timestamped between two rows that already exist is
invisible to every such query. The indexer therefore remembers the
``(first, last)`` interval written per pair and lets through only inputs
that widen it.

The interval state lives in the owning factory's DedupCache, so it is
shared across indexers (threads), bounded by the same max size, and
forgotten after the same TTL. The TTL must be at least the query lookback
for the dropped rows to stay invisible.
"""

from collections import OrderedDict
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Set, Tuple

from trace_index.dedup.dedup_cache import DedupCache
from trace_index.utils.logger import get_logger

if TYPE_CHECKING:
    from trace_index.indexing.index_trace_id import IndexTraceIdInput

logger = get_logger()

Interval = Tuple[int, int]


def interval_key(partition_key: str, trace_id: int) -> Tuple[str, str, int]:
    """Cache key of the interval written for one (partition key, trace ID) pair."""
    return ("interval", partition_key, trace_id)


def widen(previous: Optional[Interval], first: int, last: int) -> Optional[Interval]:
    """
    Interval covering ``previous`` and ``[first, last]``, or None if unchanged.

    Args:
        previous: Interval already indexed, or None if nothing is.
        first: Earliest timestamp in the update.
        last: Latest timestamp in the update.
    """
    if previous is None:
        return (first, last)
    lo, hi = previous
    if first >= lo and last <= hi:
        return None
    return (min(first, lo), max(last, hi))


class TraceIdIndexer:
    """
    Collects the index inputs of one batch and yields those worth writing.

    Usage::

        indexer = factory.new_indexer()
        for span in spans:
            indexer.add(IndexTraceIdInput(span.local_service_name, ts, span.trace_id))
        tasks = [factory.new_write_task(i) for i in indexer]
    """

    def __init__(self, shared_state: Optional[DedupCache]):
        """
        Args:
            shared_state: Cache holding intervals, or None to pass every input through.
        """
        self._shared_state = shared_state
        # (partition_key, trace_id) -> timestamps, in arrival order
        self._pending: "OrderedDict[Tuple[str, int], Dict[int, IndexTraceIdInput]]" = OrderedDict()

    def add(self, input: "IndexTraceIdInput") -> None:
        group = self._pending.setdefault((input.partition_key, input.trace_id), {})
        group.setdefault(input.ts, input)

    def __len__(self) -> int:
        return sum(len(group) for group in self._pending.values())

    def __iter__(self) -> Iterator["IndexTraceIdInput"]:
        return iter(self.entries_that_increase_gap())

    def entries_that_increase_gap(self) -> List["IndexTraceIdInput"]:
        """
        Inputs that become the first or last timestamp of their pair's interval.

        Each pair's interval is widened atomically in the shared state; if
        another thread already covered the update, nothing is returned for it.

        Returns:
            Inputs to write, in the order their pairs were first added.
        """
        if self._shared_state is None:
            return [i for group in self._pending.values() for i in group.values()]

        result: List["IndexTraceIdInput"] = []
        for (partition_key, trace_id), group in self._pending.items():
            first, last = min(group), max(group)
            interval = self._shared_state.update(
                interval_key(partition_key, trace_id),
                lambda previous: widen(previous, first, last),
            )
            if interval is None:
                continue
            endpoints: Set[int] = {interval[0], interval[1]}
            result.extend(group[ts] for ts in sorted(endpoints) if ts in group)

        dropped = len(self) - len(result)
        if dropped:
            logger.debug(f"Indexer dropped {dropped} of {len(self)} rows inside known intervals")
        return result
