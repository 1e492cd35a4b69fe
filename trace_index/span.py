# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Minimal span model: the fields index writes are derived from."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

# Tag values longer than this are indexed by key only
LONGEST_VALUE_TO_INDEX = 256


@dataclass(frozen=True)
class Span:
    """One timed operation within a trace.

    Timestamps and durations are epoch microseconds.
    """
    trace_id: int
    id: int
    name: Optional[str] = None
    local_service_name: Optional[str] = None
    timestamp: Optional[int] = None
    duration: Optional[int] = None
    annotations: Tuple[Tuple[int, str], ...] = ()
    tags: Tuple[Tuple[str, str], ...] = ()  # (key, value) pairs, in arrival order

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Span":
        """
        Parse a JSON-decoded span.

        ``traceId`` and ``id`` may be hex strings (as on the wire) or ints.
        128-bit trace IDs are truncated to their low 64 bits, which is what
        the index tables store.

        Raises:
            ValueError: If traceId or id is missing or not hex, or a
                timestamp is not a whole number of microseconds.
        """
        if "traceId" not in data or "id" not in data:
            raise ValueError(f"Span requires traceId and id: {data}")
        return cls(
            trace_id=_parse_id(data["traceId"]) & 0xFFFFFFFFFFFFFFFF,
            id=_parse_id(data["id"]),
            name=(data.get("name") or None),
            local_service_name=_local_service_name(data),
            timestamp=_micros(data.get("timestamp"), "timestamp"),
            duration=data.get("duration"),
            annotations=tuple(
                (_micros(a["timestamp"], "annotation timestamp"), a["value"])
                for a in data.get("annotations", [])
            ),
            tags=tuple((str(k), str(v)) for k, v in data.get("tags", {}).items()),
        )

    def guess_timestamp(self) -> Optional[int]:
        """The span's timestamp, falling back to its earliest annotation."""
        if self.timestamp:
            return self.timestamp
        if self.annotations:
            return min(ts for ts, _ in self.annotations)
        return None

    def annotation_keys(self) -> List[str]:
        """
        Partition keys for annotations_index.

        Returns:
            ``service:value`` per annotation, ``service:key`` per tag, and
            ``service:key:value`` for tags short enough to index by value.
            Empty when the span has no local service.
        """
        service = self.local_service_name
        if not service:
            return []
        keys = [f"{service}:{value}" for _, value in self.annotations]
        for key, value in self.tags:
            keys.append(f"{service}:{key}")
            if len(value) <= LONGEST_VALUE_TO_INDEX:
                keys.append(f"{service}:{key}:{value}")
        # de-duplicate, keep order
        return list(dict.fromkeys(keys))


def _parse_id(value: Any) -> int:
    if isinstance(value, int):
        return value
    return int(str(value), 16)


def _local_service_name(data: Dict[str, Any]) -> Optional[str]:
    endpoint = data.get("localEndpoint") or {}
    name = endpoint.get("serviceName") or data.get("localServiceName")
    return name.lower() if name else None


def _micros(value: Any, field_name: str) -> Optional[int]:
    """Epoch micros from JSON; 1.7e15 is accepted, 1.5 and "now" are not."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise ValueError(f"{field_name} must be an integer, got {value!r}")
