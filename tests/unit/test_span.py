"""Unit tests for the Span model."""

import pytest

from trace_index.span import Span


def _span_dict(**overrides):
    data = {
        "traceId": "463ac35c9f6413ad",
        "id": "a2fb4a1d1a96d312",
        "name": "get /api",
        "localEndpoint": {"serviceName": "Frontend"},
        "timestamp": 1_700_000_000_123_456,
        "duration": 2500,
        "annotations": [{"timestamp": 1_700_000_000_124_000, "value": "ws"}],
        "tags": {"http.path": "/api"},
    }
    data.update(overrides)
    return data


class TestFromDict:

    def test_parses_hex_ids_and_lowercases_service(self):
        span = Span.from_dict(_span_dict())
        assert span.trace_id == 0x463AC35C9F6413AD
        assert span.id == 0xA2FB4A1D1A96D312
        assert span.local_service_name == "frontend"
        assert span.annotations == ((1_700_000_000_124_000, "ws"),)
        assert span.tags == (("http.path", "/api"),)

    def test_128_bit_trace_id_keeps_low_bits(self):
        span = Span.from_dict(_span_dict(traceId="5af7183fb1d4cf5f463ac35c9f6413ad"))
        assert span.trace_id == 0x463AC35C9F6413AD

    def test_missing_ids_rejected(self):
        data = _span_dict()
        del data["traceId"]
        with pytest.raises(ValueError):
            Span.from_dict(data)

    def test_empty_name_becomes_none(self):
        assert Span.from_dict(_span_dict(name="")).name is None

    def test_integral_float_timestamps_become_ints(self):
        # JSON encoders may emit 1.7e15 for a whole number of micros
        span = Span.from_dict(_span_dict(
            timestamp=1.7e15,
            annotations=[{"timestamp": 1.7e15, "value": "ws"}],
        ))
        assert span.timestamp == 1_700_000_000_000_000
        assert type(span.timestamp) is int
        assert type(span.annotations[0][0]) is int

    @pytest.mark.parametrize("timestamp", [1.5, "abc", True])
    def test_non_integer_timestamp_rejected(self, timestamp):
        with pytest.raises(ValueError):
            Span.from_dict(_span_dict(timestamp=timestamp))

    def test_non_integer_annotation_timestamp_rejected(self):
        with pytest.raises(ValueError):
            Span.from_dict(_span_dict(annotations=[{"timestamp": "later", "value": "ws"}]))


class TestHashable:

    def test_parsed_span_is_hashable(self):
        span = Span.from_dict(_span_dict())
        assert hash(span) == hash(Span.from_dict(_span_dict()))
        assert span in {span}

    def test_tags_are_immutable_pairs(self):
        span = Span.from_dict(_span_dict(tags={"a": "1", "b": 2}))
        assert span.tags == (("a", "1"), ("b", "2"))


class TestGuessTimestamp:

    def test_prefers_span_timestamp(self):
        span = Span(trace_id=1, id=1, timestamp=100, annotations=((50, "a"),))
        assert span.guess_timestamp() == 100

    def test_falls_back_to_earliest_annotation(self):
        span = Span(trace_id=1, id=1, annotations=((70, "b"), (50, "a")))
        assert span.guess_timestamp() == 50

    def test_none_without_any_timestamp(self):
        assert Span(trace_id=1, id=1).guess_timestamp() is None


class TestAnnotationKeys:

    def test_annotation_and_tag_keys(self):
        span = Span(
            trace_id=1, id=1, local_service_name="frontend",
            annotations=((1, "ws"),), tags=(("http.path", "/api"),),
        )
        assert span.annotation_keys() == [
            "frontend:ws",
            "frontend:http.path",
            "frontend:http.path:/api",
        ]

    def test_long_tag_value_indexed_by_key_only(self):
        span = Span(trace_id=1, id=1, local_service_name="frontend",
                    tags=(("sql", "x" * 300),))
        assert span.annotation_keys() == ["frontend:sql"]

    def test_no_service_no_keys(self):
        span = Span(trace_id=1, id=1, annotations=((1, "ws"),))
        assert span.annotation_keys() == []

    def test_duplicates_removed(self):
        span = Span(trace_id=1, id=1, local_service_name="frontend",
                    annotations=((1, "ws"), (2, "ws")))
        assert span.annotation_keys() == ["frontend:ws"]
