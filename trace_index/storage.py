# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Storage handle owning the index store and every index write factory.

Each factory owns one dedup cache sized from the ``storage`` config section.
The caches live exactly as long as this handle: close() clears them and
disconnects the store.
"""

from typing import Any, Callable, Dict, List, Optional

from trace_index.dedup.deduplicating_write import DeduplicatingWriteFactory
from trace_index.indexing.index_trace_id import (
    AnnotationIndexFactory,
    ServiceNameIndexFactory,
    ServiceSpanNameIndexFactory,
)
from trace_index.indexing.name_inserts import NameInsertFactory
from trace_index.indexing.span_consumer import SpanConsumer
from trace_index.sinks.base_store import IndexStore
from trace_index.sinks.memory_store import InMemoryStore
from trace_index.sinks.parquet_store import ParquetStore
from trace_index.utils.logger import get_logger

logger = get_logger()

_DEFAULTS = {
    "backend": "memory",
    "index_cache_ttl": 60,  # seconds
    "index_cache_max": 100000,
    "index_ttl": 0,  # seconds, 0 means rows never expire
}


def create_store(config: Dict[str, Any]) -> IndexStore:
    """
    Build the store named by ``config["storage"]["backend"]``.

    Raises:
        ValueError: If the backend is unknown.
    """
    backend = config.get("storage", {}).get("backend", _DEFAULTS["backend"])
    if backend == "memory":
        return InMemoryStore(config)
    if backend == "parquet":
        return ParquetStore(config)
    raise ValueError(f"Unknown storage backend: {backend!r}")


class IndexStorage:
    """
    Wires the store, write templates and dedup caches for the index tables.

    Usage::

        with IndexStorage(config) as storage:
            futures = storage.span_consumer().accept(spans)
            wait(futures)
    """

    def __init__(
        self,
        config: Dict[str, Any],
        store: Optional[IndexStore] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            config: Full merged config dict; reads the ``storage`` section.
            store: Store override; built from config when omitted.
            clock: Nanosecond monotonic clock for the dedup caches (tests).
        """
        storage_config = {**_DEFAULTS, **config.get("storage", {})}
        self.cache_ttl = storage_config["index_cache_ttl"]
        self.cache_max = storage_config["index_cache_max"]
        self.index_ttl = storage_config["index_ttl"]

        self.store = store if store is not None else create_store(config)
        self.store.connect()

        factory_args = dict(
            index_ttl=self.index_ttl,
            cache_ttl_seconds=self.cache_ttl,
            cache_max=self.cache_max,
            clock=clock,
        )
        self.service_name_index = ServiceNameIndexFactory(self.store, **factory_args)
        self.service_span_name_index = ServiceSpanNameIndexFactory(self.store, **factory_args)
        self.annotations_index = AnnotationIndexFactory(self.store, **factory_args)
        self.service_names = NameInsertFactory(self.store, with_span_name=False, **factory_args)
        self.span_names = NameInsertFactory(self.store, with_span_name=True, **factory_args)

        self._closed = False
        logger.info(
            f"IndexStorage ready ({type(self.store).__name__}, "
            f"cache_ttl={self.cache_ttl}s, cache_max={self.cache_max}, "
            f"index_ttl={self.index_ttl}s)"
        )

    @property
    def factories(self) -> List[DeduplicatingWriteFactory]:
        return [
            self.service_name_index,
            self.service_span_name_index,
            self.annotations_index,
            self.service_names,
            self.span_names,
        ]

    def span_consumer(self) -> SpanConsumer:
        return SpanConsumer(self)

    def stats(self) -> List[Dict[str, object]]:
        """Write counters per table."""
        return [factory.stats.snapshot() for factory in self.factories]

    def clear(self) -> None:
        """Forget every prior write, e.g. after the index tables are truncated."""
        for factory in self.factories:
            factory.clear()

    def close(self) -> None:
        """Clear the caches and disconnect the store. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        self.clear()
        self.store.disconnect()
        logger.info("IndexStorage closed")

    def __enter__(self) -> "IndexStorage":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
