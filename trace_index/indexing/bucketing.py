# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Synthetic bucketing of index partitions.

Index tables queried by service name or annotation would put every row for
a busy service into one physical partition. Appending a bucket number to
the partition key spreads those rows over BUCKET_COUNT partitions.

BUCKET_COUNT must be the same for every writer and every reader: a reader
fans out over all buckets, so a writer using a larger count writes rows no
reader will look for. Changing it requires a coordinated rollout.
"""

import hashlib
from typing import List, Tuple

BUCKET_COUNT = 10
BUCKETS = frozenset(range(BUCKET_COUNT))


def bucket(key: str, bucket_count: int = BUCKET_COUNT) -> int:
    """
    Map a key to a bucket in ``[0, bucket_count)``.

    The digest is taken over the UTF-8 bytes of the key, so the result is the
    same in every process and across restarts (unlike the salted ``hash()``).

    Args:
        key: Value to bucket.
        bucket_count: Number of buckets.

    Returns:
        Bucket index.

    Raises:
        ValueError: If bucket_count is not positive.
    """
    if bucket_count <= 0:
        raise ValueError(f"bucket_count must be positive (got {bucket_count})")
    digest = hashlib.md5(key.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") % bucket_count


def row_bucket(partition_key: str, trace_id: int, bucket_count: int = BUCKET_COUNT) -> int:
    """Bucket for one index row: rows of the same partition key spread by trace ID."""
    return bucket(f"{partition_key}:{trace_id:016x}", bucket_count)


def partition_buckets(partition_key: str, bucket_count: int = BUCKET_COUNT) -> List[Tuple[str, int]]:
    """Every (partition key, bucket) pair a reader must query to see all rows."""
    return [(partition_key, b) for b in range(bucket_count)]
