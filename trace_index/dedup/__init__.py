# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

from trace_index.dedup.dedup_cache import DedupCache
from trace_index.dedup.deduplicating_write import DeduplicatingWrite, DeduplicatingWriteFactory

__all__ = ["DedupCache", "DeduplicatingWrite", "DeduplicatingWriteFactory"]
