"""Unit tests for ParquetStore."""

import pytest
import pandas as pd

from trace_index.sinks.base_store import StoreType
from trace_index.sinks.parquet_store import ParquetStore


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_config(tmp_path):
    """Create a minimal config pointing base_path to tmp_path."""
    return {
        "storage": {
            "parquet": {
                "base_path": str(tmp_path / "index"),
                "compression": "snappy",
                "row_group_size": 10000,
            }
        }
    }


def _template(store, ttl=0):
    return store.prepare(
        "annotations_index",
        columns=("annotation", "bucket", "ts", "trace_id"),
        partition_key=("annotation", "bucket"),
        clustering_key=("ts", "trace_id"),
        ttl=ttl,
    )


def _values(annotation=b"frontend:http.path:/api", bucket=2, ts=1000, trace_id=7):
    return {"annotation": annotation, "bucket": bucket, "ts": ts, "trace_id": trace_id}


@pytest.fixture
def store(tmp_path):
    s = ParquetStore(_make_config(tmp_path))
    s.connect()
    yield s
    s.disconnect()


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestConnect:

    def test_connect_creates_base_dir(self, tmp_path):
        s = ParquetStore(_make_config(tmp_path))
        s.connect()
        try:
            assert (tmp_path / "index").is_dir()
            assert s.store_type == StoreType.PARQUET
        finally:
            s.disconnect()


class TestWrite:

    def test_row_written_to_partition_file(self, store, tmp_path):
        store.execute_async(_template(store).bind(_values())).result(timeout=10)

        files = list((tmp_path / "index" / "annotations_index").glob("*.parquet"))
        assert len(files) == 1
        assert files[0].name == "frontend_http.path_api__2.parquet"

        df = pd.read_parquet(files[0])
        assert df["trace_id"].tolist() == [7]

    def test_rewrite_is_upsert(self, store):
        template = _template(store)
        store.execute_async(template.bind(_values())).result(timeout=10)
        store.execute_async(template.bind(_values())).result(timeout=10)

        assert store.row_count("annotations_index") == 1

    def test_rows_merge_within_partition(self, store):
        template = _template(store)
        for trace_id in (1, 2, 3):
            store.execute_async(template.bind(_values(trace_id=trace_id))).result(timeout=10)

        rows = store.rows("annotations_index")
        assert sorted(r["trace_id"] for r in rows) == [1, 2, 3]
        assert all(r["annotation"] == b"frontend:http.path:/api" for r in rows)

    def test_separate_partitions_separate_files(self, store, tmp_path):
        template = _template(store)
        store.execute_async(template.bind(_values(bucket=1))).result(timeout=10)
        store.execute_async(template.bind(_values(bucket=2))).result(timeout=10)

        files = list((tmp_path / "index" / "annotations_index").glob("*.parquet"))
        assert len(files) == 2
        assert len(store.select("annotations_index", bucket=1)) == 1

    def test_expired_rows_hidden(self, tmp_path):
        now = [1000.0]
        s = ParquetStore(_make_config(tmp_path), clock=lambda: now[0])
        s.connect()
        try:
            s.execute_async(_template(s, ttl=10).bind(_values())).result(timeout=10)
            assert len(s.rows("annotations_index")) == 1
            now[0] += 11
            assert s.rows("annotations_index") == []
            # Physically still present until compaction
            assert s.row_count("annotations_index") == 1
        finally:
            s.disconnect()


class TestReads:

    def test_missing_table(self, store):
        assert store.rows("annotations_index") == []
        assert store.row_count("annotations_index") == 0
