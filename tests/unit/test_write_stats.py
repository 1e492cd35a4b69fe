# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Unit tests for WriteStats."""

from concurrent.futures import ThreadPoolExecutor

from trace_index.monitoring import WriteStats


class TestWriteStats:

    def test_starts_at_zero(self):
        stats = WriteStats("service_names")
        assert stats.snapshot() == {
            "table": "service_names",
            "permitted": 0,
            "suppressed": 0,
            "failed": 0,
            "retried": 0,
        }

    def test_record_each_counter(self):
        stats = WriteStats()
        stats.record_permitted()
        stats.record_suppressed()
        stats.record_suppressed()
        stats.record_failed()
        stats.record_retried()
        assert (stats.permitted, stats.suppressed, stats.failed, stats.retried) == (1, 2, 1, 1)

    def test_reset(self):
        stats = WriteStats()
        stats.record_permitted()
        stats.reset()
        assert stats.permitted == 0

    def test_thread_safe_increments(self):
        stats = WriteStats()
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda _: stats.record_suppressed(), range(4000)))
        assert stats.suppressed == 4000

    def test_repr(self):
        stats = WriteStats("span_names")
        stats.record_permitted()
        assert repr(stats) == "WriteStats(span_names: permitted=1, suppressed=0, failed=0, retried=0)"
