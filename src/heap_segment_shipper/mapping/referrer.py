"""Page URL reconstruction and session-start referrer inference.

Heap stores page views as split columns, so the URL is rebuilt per platform:

    web            https://{domain}{path}{query}{hash}
    ios / android  {library}-app://{app_name}/{view_controller}
    anything else  unknown://{event_id}

Referrer inference:
    Heap attributes the external referrer to every page view of a session,
    Segment expects it only on the landing page. The record's own referrer
    is therefore kept only when the page view starts its session:
        (a) the record carries session_time equal to its own timestamp, or
        (b) the SessionCache saw the session first at exactly this timestamp.
    Otherwise the previous in-app page (previous_page / heap_previous_page)
    becomes the referrer, prefixed with the current domain when one exists.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from ..errors import RecordMappingError
from .caches import SessionCache
from .time_utils import parse_time

MOBILE_LIBRARIES = ("ios", "android")

__all__ = ["build_page_url", "resolve_referrer"]


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def build_page_url(fields: Dict[str, Any], event_id: Any) -> str:
    library = fields.get("library")
    if library == "web":
        return "https://" + "".join(
            _text(fields.get(k)) for k in ("domain", "path", "query", "hash")
        )
    if library in MOBILE_LIBRARIES:
        parts = [str(fields[k]) for k in ("app_name", "view_controller") if fields.get(k) is not None]
        return f"{library}-app://" + "/".join(parts)
    return f"unknown://{_text(event_id)}"


def _starts_session(fields: Dict[str, Any], timestamp: datetime, sessions: SessionCache) -> bool:
    session_time = fields.pop("session_time", None)
    if session_time is not None:
        try:
            if parse_time(session_time) == timestamp:
                return True
        except ValueError as e:
            raise RecordMappingError(f"Unparseable session_time {session_time!r}") from e
    first_seen = sessions.first_seen(fields.get("session_id"))
    return first_seen is not None and first_seen == timestamp


def resolve_referrer(
    fields: Dict[str, Any], timestamp: datetime, sessions: SessionCache
) -> Optional[str]:
    """Consume referrer related fields and return the page referrer (or None)."""
    referrer = fields.pop("referrer", None)
    previous_page = fields.pop("previous_page", None) or fields.pop("heap_previous_page", None)
    if _starts_session(fields, timestamp, sessions) and referrer:
        return referrer
    if previous_page:
        domain = fields.get("domain")
        if domain:
            return f"https://{domain}{previous_page}"
        return f"unknown://{previous_page}"
    return None
