"""Abstract base class for index stores and the write template they accept."""

from abc import ABC, abstractmethod
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class StoreType(Enum):
    """Types of index stores."""
    MEMORY = "memory"
    PARQUET = "parquet"


# ---------------------------------------------------------------------------
# Error taxonomy
# ---------------------------------------------------------------------------


class StoreError(Exception):
    """Base class for failures reported by a store."""

    def __init__(self, message: str, table: Optional[str] = None):
        super().__init__(message)
        self.table = table


class TransientStoreError(StoreError):
    """Failure that may succeed on a later attempt (timeout, overload, transport)."""
    pass


class WriteTimeoutError(TransientStoreError):
    """The store did not acknowledge the write in time."""
    pass


class UnavailableError(TransientStoreError):
    """Not enough replicas or the store is unreachable."""
    pass


class FatalStoreError(StoreError):
    """Failure that will not improve on retry (bad schema, rejected write)."""
    pass


# ---------------------------------------------------------------------------
# Write templates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BoundWrite:
    """A write template with every column bound to a value."""
    template: "WriteTemplate"
    values: Tuple[Tuple[str, Any], ...]

    @property
    def table(self) -> str:
        return self.template.table

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.values)


@dataclass(frozen=True)
class WriteTemplate:
    """
    Precompiled insert for one table.

    Columns are fixed when the template is prepared; binding checks the
    supplied values against them so a malformed write fails before it is
    submitted.
    """
    table: str
    columns: Tuple[str, ...]
    partition_key: Tuple[str, ...]
    clustering_key: Tuple[str, ...] = ()
    ttl: int = 0  # seconds, 0 means no expiry

    @property
    def primary_key(self) -> Tuple[str, ...]:
        return self.partition_key + self.clustering_key

    def bind(self, values: Dict[str, Any]) -> BoundWrite:
        """
        Bind values to every column of the template.

        Args:
            values: Column name to value.

        Returns:
            BoundWrite ready for execute_async().

        Raises:
            ValueError: If a column is missing or unknown.
        """
        missing = [c for c in self.columns if c not in values]
        unknown = [c for c in values if c not in self.columns]
        if missing or unknown:
            raise ValueError(
                f"Cannot bind write for {self.table}: "
                f"missing={missing} unknown={unknown}"
            )
        return BoundWrite(self, tuple((c, values[c]) for c in self.columns))


class IndexStore(ABC):
    """
    Abstract base class for the column-oriented store index rows land in.

    A store accepts a bound write (partition key, clustering key, timestamp,
    optional row TTL) and completes it asynchronously.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Args:
            config: Configuration dictionary containing paths, pool sizes, etc.
        """
        self.config = config
        self.store_type: Optional[StoreType] = None

    @abstractmethod
    def connect(self) -> None:
        """Establish connection to the store (if applicable)."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Release connections and wait for in-flight writes."""
        pass

    def prepare(
        self,
        table: str,
        columns: Tuple[str, ...],
        partition_key: Tuple[str, ...],
        clustering_key: Tuple[str, ...] = (),
        ttl: int = 0,
    ) -> WriteTemplate:
        """
        Compile a parameterized insert for a table.

        Args:
            table: Target table name.
            columns: Every column the insert binds.
            partition_key: Columns that choose the physical partition.
            clustering_key: Columns that order rows within a partition.
            ttl: Row time-to-live in seconds, 0 for none.

        Raises:
            ValueError: If the TTL is negative or a key column isn't bound.
        """
        if ttl < 0:
            raise ValueError(f"Row TTL must be >= 0 (got {ttl})")
        undeclared = [c for c in (*partition_key, *clustering_key) if c not in columns]
        if undeclared:
            raise ValueError(f"Key columns {undeclared} are not bound by {table}")
        return WriteTemplate(
            table, tuple(columns), tuple(partition_key), tuple(clustering_key), ttl
        )

    @abstractmethod
    def execute_async(self, bound: BoundWrite) -> "Future[None]":
        """
        Submit a bound write.

        Args:
            bound: Write produced by WriteTemplate.bind().

        Returns:
            Future resolving to None on success, or raising a StoreError.
        """
        pass
