# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Parquet-backed index store, one file per table partition.

Writes bound index rows to local Parquet files using the pyarrow engine
with configurable compression (default: Snappy). A write merges with the
existing partition file and keeps the last row per primary key, so
re-writing an index row is an upsert rather than an append.
"""

import re
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pandas as pd
import pyarrow.parquet as pq

from trace_index.sinks.base_store import (
    BoundWrite,
    FatalStoreError,
    IndexStore,
    StoreType,
)
from trace_index.utils.logger import get_logger

logger = get_logger()

_EXPIRES_AT = "_expires_at"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class ParquetStore(IndexStore):
    """
    Write index rows to partitioned Parquet files.

    File layout: {base_path}/{table}/{partition}.parquet

    A single writer thread owns every read-modify-write of a file, so
    concurrent callers never interleave on the same partition.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(config)
        self.store_type = StoreType.PARQUET

        parquet_config = config.get("storage", {}).get("parquet", {})
        self.base_path = Path(parquet_config.get("base_path", "data/index"))
        self.compression = parquet_config.get("compression", "snappy")
        self.row_group_size = parquet_config.get("row_group_size", 10000)

        self._clock = clock
        self._executor: Optional[ThreadPoolExecutor] = None

    def connect(self) -> None:
        """Ensure the base directory exists and start the writer thread."""
        self.base_path.mkdir(parents=True, exist_ok=True)
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="parquet-store"
            )
        logger.info(f"ParquetStore connected (base_path={self.base_path})")

    def disconnect(self) -> None:
        """Flush pending writes and stop the writer thread."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        logger.debug("ParquetStore disconnected")

    def execute_async(self, bound: BoundWrite) -> "Future[None]":
        if self._executor is None:
            self.connect()
        return self._executor.submit(self._write_row, bound)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        """
        Read every live row of a table across all partition files.

        Args:
            table: Table name.

        Returns:
            Rows as dicts, without the internal expiry column.
        """
        table_dir = self.base_path / table
        if not table_dir.is_dir():
            return []

        frames = [pd.read_parquet(path) for path in sorted(table_dir.glob("*.parquet"))]
        if not frames:
            return []

        df = pd.concat(frames, ignore_index=True)
        expires_at = pd.to_numeric(df[_EXPIRES_AT], errors="coerce")
        live = expires_at.isna() | (expires_at > self._clock())
        return df[live].drop(columns=[_EXPIRES_AT]).to_dict(orient="records")

    def select(self, table: str, **partition: Any) -> List[Dict[str, Any]]:
        """Return live rows whose columns equal every given value."""
        return [
            row for row in self.rows(table)
            if all(row.get(col) == value for col, value in partition.items())
        ]

    def _write_row(self, bound: BoundWrite) -> None:
        """Merge one row into its partition file."""
        template = bound.template
        row = bound.as_dict()
        row[_EXPIRES_AT] = (
            self._clock() + template.ttl if template.ttl > 0 else None
        )

        path = self._partition_path(template.table, [row[c] for c in template.partition_key])
        path.parent.mkdir(parents=True, exist_ok=True)

        new_df = pd.DataFrame([row])
        try:
            if path.exists():
                existing_df = pd.read_parquet(path)
                merged_df = pd.concat([existing_df, new_df], ignore_index=True)
                merged_df = merged_df.drop_duplicates(
                    subset=list(template.primary_key), keep="last"
                ).reset_index(drop=True)
            else:
                merged_df = new_df

            merged_df.to_parquet(
                path,
                engine="pyarrow",
                compression=self.compression,
                row_group_size=self.row_group_size,
                index=False,
            )
        except (OSError, ValueError) as e:
            raise FatalStoreError(f"Parquet write to {path} failed: {e}",
                                  table=template.table) from e

        logger.trace(f"Wrote {template.table} row to {path} ({len(merged_df)} rows)")

    def row_count(self, table: str) -> int:
        """Count physical rows (including expired) using Parquet metadata only."""
        table_dir = self.base_path / table
        if not table_dir.is_dir():
            return 0
        return sum(
            pq.ParquetFile(path).metadata.num_rows
            for path in table_dir.glob("*.parquet")
        )

    def _partition_path(self, table: str, partition_values: List[Any]) -> Path:
        """Build a filesystem-safe file path for one partition."""
        parts = []
        for value in partition_values:
            if isinstance(value, bytes):
                value = value.decode("utf-8", errors="replace")
            parts.append(_UNSAFE_CHARS.sub("_", str(value)) or "_")
        return self.base_path / table / f"{'__'.join(parts)}.parquet"
