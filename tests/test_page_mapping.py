from __future__ import annotations

from datetime import datetime, timezone

import pytest

from conftest import make_context
from heap_segment_shipper.errors import RecordMappingError
from heap_segment_shipper.mapping.transformer import map_page, store_session
from heap_segment_shipper.models.segment import PageEvent

T0 = "2023-04-18 10:15:02"


def _web(**extra):
    rec = {
        "user_id": 7,
        "event_id": 500,
        "time": T0,
        "session_id": 42,
        "library": "web",
        "domain": "shop.io",
        "path": "/cart",
        "query": "?a=1",
        "hash": "#top",
        "title": "Cart",
        "ip": "1.2.3.4",
    }
    rec.update(extra)
    return rec


def test_web_page_url_and_fields():
    ctx = make_context()
    (event,) = map_page(_web(), ctx, "Pageviews")
    assert isinstance(event, PageEvent)
    assert event.url == "https://shop.io/cart?a=1#top"
    assert event.name == "Loaded a Page"
    assert event.title == "Cart"
    assert event.anonymous_id == "acme|7"
    assert event.message_id == "HEAP|500"
    assert event.context["ip"] == "1.2.3.4"
    assert event.properties == {"referrer": None, "title": "Cart", "url": event.url}


def test_web_page_url_skips_missing_parts():
    ctx = make_context()
    (event,) = map_page(_web(query=None, hash=None), ctx, "Pageviews")
    assert event.url == "https://shop.io/cart"


def test_mobile_page_url():
    ctx = make_context()
    rec = {"user_id": 7, "event_id": 501, "time": T0, "library": "ios", "app_name": "Shop", "view_controller": "CartVC"}
    (event,) = map_page(rec, ctx, "Pageviews")
    assert event.url == "ios-app://Shop/CartVC"
    rec["library"] = "android"
    (event,) = map_page(rec, ctx, "Pageviews")
    assert event.url == "android-app://Shop/CartVC"


def test_unknown_library_page_url():
    ctx = make_context()
    (event,) = map_page({"user_id": 7, "event_id": 502, "time": T0, "library": "server"}, ctx, "Pageviews")
    assert event.url == "unknown://502"


def test_referrer_kept_when_session_time_matches():
    ctx = make_context()
    (event,) = map_page(
        _web(referrer="https://google.com", session_time=T0, previous_page="/home"), ctx, "Pageviews"
    )
    assert event.referrer == "https://google.com"


def test_referrer_kept_when_session_cache_matches():
    ctx = make_context()
    store_session({"session_id": 42, "time": T0}, ctx, "Sessions")
    (event,) = map_page(_web(referrer="https://google.com", previous_page="/home"), ctx, "Pageviews")
    assert event.referrer == "https://google.com"


def test_previous_page_used_after_session_start():
    ctx = make_context()
    store_session({"session_id": 42, "time": "2023-04-18 10:00:00"}, ctx, "Sessions")
    (event,) = map_page(
        _web(referrer="https://google.com", session_time="2023-04-18 10:00:00", previous_page="/home"),
        ctx,
        "Pageviews",
    )
    assert event.referrer == "https://shop.io/home"


def test_heap_previous_page_without_domain():
    ctx = make_context()
    (event,) = map_page(
        {"user_id": 7, "event_id": 503, "time": T0, "library": "ios", "heap_previous_page": "/home"},
        ctx,
        "Pageviews",
    )
    assert event.referrer == "unknown:///home"


def test_no_referrer_information():
    ctx = make_context()
    (event,) = map_page(_web(referrer="https://google.com"), ctx, "Pageviews")
    assert event.referrer is None


def test_page_skip_before():
    ctx = make_context(skip_before=datetime(2024, 1, 1, tzinfo=timezone.utc))
    assert map_page(_web(), ctx, "Pageviews") == []


def test_bad_session_time_is_mapping_error():
    ctx = make_context()
    with pytest.raises(RecordMappingError):
        map_page(_web(session_time="not-a-time"), ctx, "Pageviews")
