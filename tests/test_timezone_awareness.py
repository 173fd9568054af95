from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path

from conftest import make_context
from heap_segment_shipper.mapping.time_utils import parse_heap_timestamp, parse_time
from heap_segment_shipper.mapping.transformer import map_page, map_track

SRC_DIR = Path(__file__).resolve().parent.parent / "src" / "heap_segment_shipper"
TESTS_DIR = Path(__file__).resolve().parent  # current tests directory


def test_no_naive_datetime_patterns():
    """Ensure the codebase does not use deprecated/naive UTC constructors.

    We forbid `datetime.utcnow(` / `datetime.utcfromtimestamp(` entirely and bare
    `datetime.now()` without a timezone argument.
    """
    forbidden = []
    this_file = Path(__file__).resolve()
    for base in (SRC_DIR, TESTS_DIR):
        for py_file in base.rglob("*.py"):
            if py_file.resolve() == this_file:
                continue
            for i, line in enumerate(py_file.read_text(encoding="utf-8").splitlines(), start=1):
                stripped = line.strip()
                if stripped.startswith("#") or stripped.startswith("\""):
                    continue
                if "allow-naive-datetime" in stripped:
                    continue
                for banned in ("datetime.utcnow(", "datetime.utcfromtimestamp("):
                    if banned in stripped:
                        forbidden.append((py_file, i, banned, stripped))
                for m in re.finditer(r"datetime\.now\(([^)]*)\)", stripped):
                    inner = m.group(1).strip()
                    if "timezone.utc" not in inner and "tz=" not in inner:
                        forbidden.append((py_file, i, "datetime.now() lacks explicit timezone", stripped))
    assert not forbidden, (
        "Found naive datetime usages (add '# allow-naive-datetime' comment to intentionally allow):\n"
        + "\n".join(f"{p}:{ln}: {reason} -> {snippet}" for p, ln, reason, snippet in forbidden)
    )


def test_parse_time_variants_are_utc():
    expected = parse_time("2023-04-18T10:15:02Z")
    assert expected.tzinfo is not None
    assert parse_time("2023-04-18 10:15:02") == expected
    assert parse_time("2023-04-18T12:15:02+02:00") == expected
    assert parse_time(1681812902000000) == expected
    assert parse_time(datetime(2023, 4, 18, 10, 15, 2)) == expected


def test_parse_heap_timestamp():
    assert parse_heap_timestamp(1681812902000000) == "2023-04-18T10:15:02Z"
    assert parse_heap_timestamp(None) is None
    assert parse_heap_timestamp("soon") == "soon"


def test_mapped_events_carry_aware_timestamps():
    ctx = make_context()
    naive = datetime(2023, 4, 18, 10, 15, 2)
    (track,) = map_track({"user_id": 1, "event_id": 1, "time": naive}, ctx, "Signup")
    (page,) = map_page({"user_id": 1, "event_id": 2, "time": "2023-04-18 10:15:02"}, ctx, "Pageviews")
    assert track.timestamp.tzinfo is not None
    assert page.timestamp.tzinfo is not None
    assert track.timestamp == page.timestamp
