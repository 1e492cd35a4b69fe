# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Inserts rows into the trace-ID-by-time index tables.

Each row maps a partition key (service name, service+span name, or
annotation) and a timestamp to a trace ID. Rows that are exact repeats of a
recent write are suppressed by the factory's dedup cache. Rows that only
vary on timestamp and fall inside an interval already written are dropped
earlier, by TraceIdIndexer.

Tables:
    service_name_index       (service_name, bucket) -> ts, trace_id
    service_span_name_index  (service_span_name)    -> ts, trace_id
    annotations_index        (annotation, bucket)   -> ts, trace_id
"""

from abc import abstractmethod
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from trace_index.dedup.deduplicating_write import (
    DeduplicatingWrite,
    DeduplicatingWriteFactory,
)
from trace_index.indexing import timestamp_codec
from trace_index.indexing.bucketing import BUCKET_COUNT, row_bucket
from trace_index.indexing.trace_id_indexer import TraceIdIndexer, interval_key
from trace_index.sinks.base_store import IndexStore
from trace_index.utils.logger import get_logger

logger = get_logger()


class InvalidCandidateError(ValueError):
    """A write candidate is malformed and can never be written."""
    pass


@dataclass(frozen=True)
class IndexTraceIdInput:
    """Logical index fact: ``trace_id`` was seen under ``partition_key`` at ``ts``."""
    partition_key: str  # ends up as the partition key, ignoring bucketing
    ts: int  # epoch microseconds at millisecond precision
    trace_id: int  # clustering key

    def __post_init__(self):
        if not self.partition_key:
            raise InvalidCandidateError("partition_key is required")
        for name in ("ts", "trace_id"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidCandidateError(f"{name} must be an integer (got {value!r})")
        if self.ts < 0:
            raise InvalidCandidateError(f"ts must be >= 0 (got {self.ts})")
        if self.trace_id < 0:
            raise InvalidCandidateError(f"trace_id must be >= 0 (got {self.trace_id})")


@dataclass(frozen=True)
class WriteCandidate:
    """A physical index row ready to bind: the input plus bucket and row TTL."""
    table: str
    partition_key: str
    bucket: Optional[int]  # None for tables that are not bucketed
    trace_id: int
    ts: int
    row_ttl: int = 0

    def __post_init__(self):
        if not self.partition_key:
            raise InvalidCandidateError(f"{self.table}: partition_key is required")
        if self.bucket is not None and not 0 <= self.bucket < BUCKET_COUNT:
            raise InvalidCandidateError(
                f"{self.table}: bucket {self.bucket} outside [0, {BUCKET_COUNT})"
            )
        if self.ts < 0:
            raise InvalidCandidateError(f"{self.table}: ts must be >= 0 (got {self.ts})")
        if self.row_ttl < 0:
            raise InvalidCandidateError(
                f"{self.table}: row_ttl must be >= 0 (got {self.row_ttl})"
            )


class IndexTraceId(DeduplicatingWrite):
    """Write task for one trace ID index row."""

    def __init__(self, factory: "IndexTraceIdFactory", input: IndexTraceIdInput, permitted: bool):
        super().__init__(factory, input, permitted)
        # Built eagerly so a malformed row fails here, not after an async round trip.
        self.candidate = factory.to_candidate(input)

    def _new_future(self) -> Future:
        factory = self.factory
        values = {
            "ts": timestamp_codec.serialize(self.candidate.ts),
            "trace_id": self.candidate.trace_id,
        }
        values.update(factory.bind_partition_key(self.candidate))
        return factory.store.execute_async(factory.template.bind(values))

    def __repr__(self) -> str:
        state = "suppressed" if self.suppressed else "permitted"
        return (
            f"{type(self.factory).__name__}(partition_key={self.input.partition_key!r}, "
            f"ts={self.input.ts}, trace_id={self.input.trace_id:016x}, {state})"
        )


class IndexTraceIdFactory(DeduplicatingWriteFactory):
    """
    Builds IndexTraceId tasks for one table.

    The write template is prepared once. Subclasses declare how the logical
    partition key maps onto the table's partition columns.
    """

    table: str = ""
    bucketed: bool = False

    def __init__(
        self,
        store: IndexStore,
        index_ttl: int = 0,
        cache_ttl_seconds: float = 60,
        cache_max: int = 100_000,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            store: Store the rows are written to.
            index_ttl: Row TTL in seconds, 0 for none.
            cache_ttl_seconds: Dedup window; must be >= the query lookback.
            cache_max: Maximum dedup entries, 0 to disable deduplication.
            clock: Nanosecond monotonic clock override (tests).
        """
        super().__init__(cache_ttl_seconds, cache_max, clock=clock, label=self.table)
        self.store = store
        self.index_ttl = index_ttl
        partition = self.partition_columns()
        self.template = store.prepare(
            self.table,
            columns=partition + ("ts", "trace_id"),
            partition_key=partition,
            clustering_key=("ts", "trace_id"),
            ttl=index_ttl,
        )
        logger.debug(
            f"Prepared {self.table} insert (ttl={index_ttl}s, "
            f"cache_ttl={cache_ttl_seconds}s, cache_max={cache_max})"
        )

    @abstractmethod
    def partition_columns(self) -> Tuple[str, ...]:
        """Columns of the table's partition key, in bind order."""

    @abstractmethod
    def bind_partition_key(self, candidate: WriteCandidate) -> Dict[str, Any]:
        """Values for partition_columns() from a candidate."""

    def to_candidate(self, input: IndexTraceIdInput) -> WriteCandidate:
        bucket = row_bucket(input.partition_key, input.trace_id) if self.bucketed else None
        return WriteCandidate(
            table=self.table,
            partition_key=input.partition_key,
            bucket=bucket,
            trace_id=input.trace_id,
            ts=input.ts,
            row_ttl=self.index_ttl,
        )

    def new_indexer(self) -> TraceIdIndexer:
        """Indexer sharing this factory's cache, for one batch of spans."""
        return TraceIdIndexer(self.cache)

    def invalidate(self, input: IndexTraceIdInput) -> None:
        """
        Forget the row and the interval it may have widened.

        Intervals are dropped whole, so a later write inside the part that
        did land goes out again. Extra rows are harmless; a missing one is not.
        """
        super().invalidate(input)
        if self.cache is not None:
            self.cache.invalidate(interval_key(input.partition_key, input.trace_id))

    def _new_task(self, input: IndexTraceIdInput, permitted: bool) -> IndexTraceId:
        return IndexTraceId(self, input, permitted)


class ServiceNameIndexFactory(IndexTraceIdFactory):
    table = "service_name_index"
    bucketed = True

    def partition_columns(self) -> Tuple[str, ...]:
        return ("service_name", "bucket")

    def bind_partition_key(self, candidate: WriteCandidate) -> Dict[str, Any]:
        return {"service_name": candidate.partition_key, "bucket": candidate.bucket}


class ServiceSpanNameIndexFactory(IndexTraceIdFactory):
    """Partition key is ``service.span``; low enough cardinality to skip buckets."""

    table = "service_span_name_index"

    def partition_columns(self) -> Tuple[str, ...]:
        return ("service_span_name",)

    def bind_partition_key(self, candidate: WriteCandidate) -> Dict[str, Any]:
        return {"service_span_name": candidate.partition_key}


class AnnotationIndexFactory(IndexTraceIdFactory):
    table = "annotations_index"
    bucketed = True

    def partition_columns(self) -> Tuple[str, ...]:
        return ("annotation", "bucket")

    def bind_partition_key(self, candidate: WriteCandidate) -> Dict[str, Any]:
        # annotation is a blob column
        return {"annotation": candidate.partition_key.encode("utf-8"), "bucket": candidate.bucket}
