"""Serialization of index timestamps.

Index rows carry epoch microseconds in memory but the store column holds
epoch milliseconds as an 8-byte big-endian integer.
"""

import struct

_LONG = struct.Struct(">q")


def to_index_precision(ts_micros: int) -> int:
    """Truncate epoch microseconds to millisecond precision."""
    return 1000 * (ts_micros // 1000)


def serialize(ts_micros: int) -> bytes:
    """Encode epoch microseconds as the store's millisecond timestamp."""
    return _LONG.pack(ts_micros // 1000)


def deserialize(data: bytes) -> int:
    """Decode a stored timestamp back to epoch microseconds."""
    if len(data) != _LONG.size:
        raise ValueError(f"Expected {_LONG.size} timestamp bytes, got {len(data)}")
    return _LONG.unpack(data)[0] * 1000
