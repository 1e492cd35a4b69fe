# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Inserts into the service and span name lookup tables.

These rows carry no timestamp, so once a name is written any repeat within
the dedup window is redundant regardless of when it was seen.

Tables:
    service_names  (service_name)
    span_names     (service_name, bucket) -> span_name   bucket is always 0
"""

from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Optional

from trace_index.dedup.deduplicating_write import (
    DeduplicatingWrite,
    DeduplicatingWriteFactory,
)
from trace_index.indexing.index_trace_id import InvalidCandidateError
from trace_index.sinks.base_store import IndexStore


@dataclass(frozen=True)
class ServiceSpanName:
    service_name: str
    span_name: Optional[str] = None

    def __post_init__(self):
        if not self.service_name:
            raise InvalidCandidateError("service_name is required")


class NameInsert(DeduplicatingWrite):

    def _new_future(self) -> Future:
        factory = self.factory
        values = {"service_name": self.input.service_name}
        if factory.with_span_name:
            values["bucket"] = 0
            values["span_name"] = self.input.span_name
        return factory.store.execute_async(factory.template.bind(values))


class NameInsertFactory(DeduplicatingWriteFactory):
    """Builds inserts for ``service_names`` or, with span names, ``span_names``."""

    def __init__(
        self,
        store: IndexStore,
        with_span_name: bool,
        index_ttl: int = 0,
        cache_ttl_seconds: float = 60,
        cache_max: int = 100_000,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.table = "span_names" if with_span_name else "service_names"
        super().__init__(cache_ttl_seconds, cache_max, clock=clock, label=self.table)
        self.store = store
        self.with_span_name = with_span_name
        if with_span_name:
            self.template = store.prepare(
                self.table,
                columns=("service_name", "bucket", "span_name"),
                partition_key=("service_name", "bucket"),
                clustering_key=("span_name",),
                ttl=index_ttl,
            )
        else:
            self.template = store.prepare(
                self.table,
                columns=("service_name",),
                partition_key=("service_name",),
                ttl=index_ttl,
            )

    def new_write_task(self, input: ServiceSpanName) -> DeduplicatingWrite:
        if self.with_span_name and not input.span_name:
            raise InvalidCandidateError("span_names rows require a span_name")
        if not self.with_span_name:
            input = ServiceSpanName(input.service_name)
        return super().new_write_task(input)

    def _new_task(self, input: ServiceSpanName, permitted: bool) -> NameInsert:
        return NameInsert(self, input, permitted)
