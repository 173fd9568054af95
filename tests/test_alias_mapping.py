from __future__ import annotations

import pytest

from conftest import make_context
from heap_segment_shipper.errors import UnknownTableTypeError
from heap_segment_shipper.mapping.transformer import (
    emit_alias,
    map_track,
    store_alias,
    store_session,
    transform_for,
)


def test_store_alias_populates_cache_without_events():
    ctx = make_context()
    assert store_alias({"from_user_id": 1, "to_user_id": 2}, ctx, "User Migrations") == []
    assert ctx.identities.resolve(1) == 2
    assert ctx.identities.aliases_of(2) == (1,)


def test_store_alias_ignores_incomplete_rows():
    ctx = make_context()
    assert store_alias({"from_user_id": 1, "to_user_id": None}, ctx, "User Migrations") == []
    assert len(ctx.identities) == 0


def test_emit_alias_uses_raw_ids():
    ctx = make_context()
    ctx.identities.record(1, 2)
    (event,) = emit_alias({"from_user_id": 1, "to_user_id": 3}, ctx, "User Migrations")
    assert event.previous_id == "acme|1"
    assert event.anonymous_id == "acme|3"
    assert emit_alias({"from_user_id": None, "to_user_id": 3}, ctx, "User Migrations") == []


def test_store_session_keeps_first_seen_time():
    ctx = make_context()
    store_session({"session_id": 9, "time": "2023-04-18 10:05:00"}, ctx, "Sessions")
    store_session({"session_id": 9, "time": "2023-04-18 10:00:00"}, ctx, "Sessions")
    assert ctx.sessions.first_seen(9).isoformat() == "2023-04-18T10:05:00+00:00"
    assert store_session({"session_id": None, "time": "2023-04-18 10:00:00"}, ctx, "Sessions") == []


def test_transform_for_known_types():
    ctx = make_context()
    assert transform_for("alias", ctx) is store_alias
    assert transform_for("track", ctx) is map_track


def test_transform_for_manual_alias_mode():
    ctx = make_context(emit_migration_aliases=True)
    assert transform_for("alias", ctx) is emit_alias


def test_transform_for_unknown_type():
    ctx = make_context()
    with pytest.raises(UnknownTableTypeError):
        transform_for("mystery", ctx)
    with pytest.raises(UnknownTableTypeError):
        transform_for(None, ctx)
