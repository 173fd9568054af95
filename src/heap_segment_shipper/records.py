"""Avro record-file decoding.

Heap Connect writes each table part as an Avro object container file with
the writer schema embedded. `read_records` streams it with fastavro, one
record at a time, without buffering the file. Records come back as plain
dicts; the schema is not validated beyond what the decoder enforces.

The iterator is lazy, finite and cannot be restarted. Any failure while
decoding ends it: the error is re-raised as `RecordDecodeError` so the
dispatcher can count it and move on to the next file.
"""
from __future__ import annotations

from typing import Any, Dict, Iterator

import fastavro

from .errors import RecordDecodeError

__all__ = ["read_records"]


def read_records(stream: Any) -> Iterator[Dict[str, Any]]:
    try:
        reader = fastavro.reader(stream)
        for record in reader:
            yield record
    except Exception as e:
        # Corrupt blocks surface as zlib, struct or index errors, not only ValueError
        raise RecordDecodeError(f"Avro decode failed: {e}") from e
