# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Turns a batch of spans into index writes.

For each span with a local service name the consumer derives:
- a service_names row and, if the span is named, a span_names row
- a service_name_index row keyed by service
- a service_span_name_index row keyed by ``service.span``
- one annotations_index row per annotation key

Timestamps are truncated to millisecond precision first, so spans of the
same trace differing only in sub-millisecond timing collapse. Each table's
rows then pass through a per-batch indexer and the table's dedup cache;
only the survivors reach the store.
"""

from concurrent.futures import Future
from typing import TYPE_CHECKING, Iterable, List, Tuple

from trace_index.dedup.deduplicating_write import DeduplicatingWrite, DeduplicatingWriteFactory
from trace_index.indexing.index_trace_id import IndexTraceIdInput
from trace_index.indexing.name_inserts import ServiceSpanName
from trace_index.indexing.timestamp_codec import to_index_precision
from trace_index.span import Span
from trace_index.utils.logger import get_logger

if TYPE_CHECKING:
    from trace_index.storage import IndexStorage

logger = get_logger()


class SpanConsumer:
    """Indexes spans through the factories of one IndexStorage."""

    def __init__(self, storage: "IndexStorage"):
        self.storage = storage

    def accept(self, spans: Iterable[Span]) -> List[Future]:
        """
        Issue every non-redundant index write for a batch of spans.

        If a write cannot be submitted, the writes not yet issued give back
        their dedup entries before the error is raised, so redelivering the
        batch writes them.

        Args:
            spans: Spans of one ingestion batch, possibly from many traces.

        Returns:
            Futures of the writes actually sent to the store.
        """
        tasks = self.write_tasks(spans)
        futures: List[Future] = []
        for position, task in enumerate(tasks):
            if task.suppressed:
                continue
            try:
                futures.append(task.issue())
            except Exception:
                # issue() has already released its own entry
                for pending in tasks[position + 1:]:
                    pending.release()
                raise
        logger.debug(
            f"Indexed batch: {len(futures)} writes issued, "
            f"{len(tasks) - len(futures)} suppressed"
        )
        return futures

    def write_tasks(self, spans: Iterable[Span]) -> List[DeduplicatingWrite]:
        """
        Build (but don't issue) the write tasks for a batch of spans.

        Every input is derived and validated before any dedup cache is
        touched. A malformed span therefore raises without leaving entries
        behind for the valid spans of the batch.

        Raises:
            InvalidCandidateError: If a span yields a malformed row.
        """
        storage = self.storage
        names: List[Tuple[DeduplicatingWriteFactory, ServiceSpanName]] = []
        service_indexer = storage.service_name_index.new_indexer()
        span_name_indexer = storage.service_span_name_index.new_indexer()
        annotation_indexer = storage.annotations_index.new_indexer()

        for span in spans:
            service = span.local_service_name
            if not service:
                continue

            names.append((storage.service_names, ServiceSpanName(service)))
            if span.name:
                names.append((storage.span_names, ServiceSpanName(service, span.name)))

            ts = span.guess_timestamp()
            if ts is None:
                continue
            ts = to_index_precision(ts)

            service_indexer.add(IndexTraceIdInput(service, ts, span.trace_id))
            if span.name:
                span_name_indexer.add(
                    IndexTraceIdInput(f"{service}.{span.name}", ts, span.trace_id)
                )
            for key in span.annotation_keys():
                annotation_indexer.add(IndexTraceIdInput(key, ts, span.trace_id))

        tasks: List[DeduplicatingWrite] = []
        try:
            for factory, input in names:
                tasks.append(factory.new_write_task(input))
            for factory, indexer in (
                (storage.service_name_index, service_indexer),
                (storage.service_span_name_index, span_name_indexer),
                (storage.annotations_index, annotation_indexer),
            ):
                # iterating widens the shared intervals
                widened = list(indexer)
                try:
                    for input in widened:
                        tasks.append(factory.new_write_task(input))
                except Exception:
                    for input in widened:
                        factory.invalidate(input)
                    raise
        except Exception:
            for task in tasks:
                task.release()
            raise
        return tasks
