import io
import json
import sys
from pathlib import Path
from typing import Any, Dict, List

import fastavro
import pytest

# Ensure `src` is on sys.path for tests when not installed editable.
ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from heap_segment_shipper.config import SyncOptions  # noqa: E402
from heap_segment_shipper.mapping.batch_context import BatchContext  # noqa: E402

PROJECT = "acme"


class FakeBody(list):
    """Record list served as an object body; remembers whether it was closed."""

    closed = False

    def close(self) -> None:
        self.closed = True


class FakeStore:
    """In-memory stand-in for S3ObjectStore.

    Manifests are stored as dicts and served as JSON byte streams. Record
    files stored as lists of dicts are served as a FakeBody, so tests pass
    `list_decoder` instead of the Avro reader; files stored as bytes are
    served as a byte stream for the real reader. Every served body is kept
    in `bodies`.
    """

    def __init__(self) -> None:
        self.objects: Dict[str, Any] = {}
        self.opened: List[str] = []
        self.bodies: List[Any] = []
        self.copies: List[tuple] = []

    def add_manifest(self, key: str, manifest: Any) -> None:
        self.objects[key] = manifest if isinstance(manifest, (bytes, str)) else json.dumps(manifest)

    def add_file(self, path: str, records: List[Dict[str, Any]]) -> None:
        self.objects[path] = records

    def list_keys(self, prefix: str, delimiter: str = "/") -> List[str]:
        return [k for k in self.objects if k.startswith(prefix)]

    def open(self, key: str) -> Any:
        self.opened.append(key)
        value = self.objects[key]
        if isinstance(value, str):
            body: Any = io.BytesIO(value.encode("utf-8"))
        elif isinstance(value, bytes):
            body = io.BytesIO(value)
        else:
            body = FakeBody(value)
        self.bodies.append(body)
        return body

    def all_closed(self) -> bool:
        return all(body.closed for body in self.bodies)

    def copy(self, source_key: str, dest_key: str) -> None:
        self.copies.append((source_key, dest_key))
        self.objects[dest_key] = self.objects[source_key]

    def exists(self, key: str) -> bool:
        return key in self.objects

    def delete(self, key: str) -> None:
        self.objects.pop(key, None)


class RecordingSink:
    """Sink capturing submitted events in order."""

    def __init__(self) -> None:
        self.events: List[tuple] = []
        self.shutdown_called = False

    def track(self, event):
        self.events.append(("track", event))

    def page(self, event):
        self.events.append(("page", event))

    def identify(self, event):
        self.events.append(("identify", event))

    def alias(self, event):
        self.events.append(("alias", event))

    def queued_messages(self) -> int:
        return 0

    def flush(self) -> None:
        return None

    def shutdown(self) -> None:
        self.shutdown_called = True

    def of_kind(self, kind: str) -> list:
        return [e for k, e in self.events if k == kind]


def list_decoder(stream):
    return iter(stream)


def make_options(**overrides) -> SyncOptions:
    values = {"project_identifier": PROJECT}
    values.update(overrides)
    return SyncOptions(**values)


def make_context(**overrides) -> BatchContext:
    return BatchContext(options=make_options(**overrides))


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


SIGNUP_SCHEMA = {
    "type": "record",
    "name": "signup",
    "fields": [
        {"name": "user_id", "type": "long"},
        {"name": "event_id", "type": "long"},
        {"name": "time", "type": "string"},
    ],
}
SYNC_MARKER = bytes(range(16))


def avro_bytes(rows, schema=None, codec: str = "null") -> bytes:
    buf = io.BytesIO()
    fastavro.writer(
        buf, fastavro.parse_schema(schema or SIGNUP_SCHEMA), rows, codec=codec, sync_marker=SYNC_MARKER
    )
    return buf.getvalue()


def _skip_long(data: bytes, pos: int) -> int:
    while data[pos] & 0x80:
        pos += 1
    return pos + 1


def corrupt_first_block(data: bytes) -> bytes:
    """Overwrite the payload of the first data block, keeping the framing intact."""
    block_start = data.index(SYNC_MARKER) + len(SYNC_MARKER)
    payload_start = _skip_long(data, _skip_long(data, block_start))
    payload_end = data.index(SYNC_MARKER, payload_start)
    return data[:payload_start] + b"\xff" * (payload_end - payload_start) + data[payload_end:]
