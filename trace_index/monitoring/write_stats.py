# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Counters for index write outcomes.

Suppressed writes are successful no-ops, so this is the only place they
become visible. Nothing here emits metrics; callers read snapshot().
"""

import threading
from typing import Dict


class WriteStats:
    """Thread-safe counters of permitted, suppressed, failed and retried writes.

    Usage::

        stats = WriteStats("service_name_index")
        stats.record_suppressed()
        stats.snapshot()  # {"table": "service_name_index", "suppressed": 1, ...}
    """

    _COUNTERS = ("permitted", "suppressed", "failed", "retried")

    def __init__(self, label: str = "default"):
        self.label = label
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = dict.fromkeys(self._COUNTERS, 0)

    def record_permitted(self) -> None:
        self._increment("permitted")

    def record_suppressed(self) -> None:
        self._increment("suppressed")

    def record_failed(self) -> None:
        self._increment("failed")

    def record_retried(self) -> None:
        self._increment("retried")

    @property
    def permitted(self) -> int:
        return self._counts["permitted"]

    @property
    def suppressed(self) -> int:
        return self._counts["suppressed"]

    @property
    def failed(self) -> int:
        return self._counts["failed"]

    @property
    def retried(self) -> int:
        return self._counts["retried"]

    def snapshot(self) -> Dict[str, object]:
        """Return a consistent copy of all counters, labelled with the table."""
        with self._lock:
            return {"table": self.label, **self._counts}

    def reset(self) -> None:
        with self._lock:
            self._counts = dict.fromkeys(self._COUNTERS, 0)

    def _increment(self, name: str) -> None:
        with self._lock:
            self._counts[name] += 1

    def __repr__(self) -> str:
        counts = ", ".join(f"{k}={v}" for k, v in self.snapshot().items() if k != "table")
        return f"WriteStats({self.label}: {counts})"
