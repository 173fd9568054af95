from __future__ import annotations

import io

import fastavro
import pytest

from conftest import avro_bytes, corrupt_first_block
from heap_segment_shipper.errors import RecordDecodeError
from heap_segment_shipper.records import read_records

SCHEMA = {
    "type": "record",
    "name": "signup",
    "fields": [
        {"name": "user_id", "type": "long"},
        {"name": "event_id", "type": "long"},
        {"name": "time", "type": "string"},
        {"name": "plan", "type": ["null", "string"], "default": None},
    ],
}


def test_reads_avro_container_lazily():
    buf = io.BytesIO()
    rows = [
        {"user_id": 1, "event_id": 10, "time": "2023-04-18 10:15:02", "plan": "pro"},
        {"user_id": 2, "event_id": 11, "time": "2023-04-18 10:15:03", "plan": None},
    ]
    fastavro.writer(buf, fastavro.parse_schema(SCHEMA), rows)
    buf.seek(0)
    it = read_records(buf)
    assert next(it) == rows[0]
    assert list(it) == rows[1:]


def test_non_avro_stream_raises_decode_error():
    with pytest.raises(RecordDecodeError):
        list(read_records(io.BytesIO(b"")))


def test_corrupt_deflate_block_raises_decode_error():
    rows = [{"user_id": i, "event_id": i, "time": "2023-04-18 10:15:02"} for i in range(5)]
    data = corrupt_first_block(avro_bytes(rows, codec="deflate"))
    # The header still parses, so the failure surfaces while iterating
    it = read_records(io.BytesIO(data))
    with pytest.raises(RecordDecodeError):
        next(it)
