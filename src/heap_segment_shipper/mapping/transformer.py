"""Per-type mapping of raw Heap records to normalized Segment events.

Every transform takes `(record, context, event_name)` and returns the list of
events to submit, usually zero or one. An empty list means the record was
intentionally dropped (time floor, missing user id, cache-only table) and is
counted as skipped by the dispatcher.

Transforms never mutate the record they are given. They work on a copy,
consume the fields they map by name, and let the leftovers become properties
(track) or traits (identify).

Dispatch is an explicit lookup table, TRANSFORMS, keyed by table type tag:

    alias     -> store_alias   (or emit_alias with emit_migration_aliases)
    session   -> store_session
    track     -> map_track
    page      -> map_page
    identify  -> map_identify
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..errors import RecordMappingError, UnknownTableTypeError
from ..models.segment import (
    AliasEvent,
    IdentifyEvent,
    PageEvent,
    SegmentEvent,
    TrackEvent,
    default_context,
)
from .batch_context import BatchContext
from .id_utils import message_id, wrap_user_id
from .referrer import build_page_url, resolve_referrer
from .revenue import apply_revenue, filter_properties
from .time_utils import parse_heap_timestamp, parse_time

logger = logging.getLogger(__name__)

Transform = Callable[[Mapping[str, Any], BatchContext, str], List[SegmentEvent]]

__all__ = [
    "TRANSFORMS",
    "emit_alias",
    "map_identify",
    "map_page",
    "map_track",
    "store_alias",
    "store_session",
    "transform_for",
]


@dataclass
class CommonFields:
    heap_user_id: Any
    event_id: Any
    anonymous_id: Optional[str]
    message_id: str
    timestamp: datetime
    context: Dict[str, Any]


def _parse_required_time(value: Any, field_name: str) -> datetime:
    try:
        return parse_time(value)
    except (TypeError, ValueError) as e:
        raise RecordMappingError(f"Unparseable {field_name} {value!r}") from e


def common_fields(fields: Dict[str, Any], context: BatchContext) -> CommonFields:
    """Consume user_id, event_id, time and ip fields shared by track and page."""
    heap_user_id = fields.pop("user_id", None)
    event_id = fields.pop("event_id", None)
    timestamp = _parse_required_time(fields.pop("time", None), "time")
    ip = fields.pop("ip", None)
    browser_ip = fields.pop("browser_ip", None)
    return CommonFields(
        heap_user_id=heap_user_id,
        event_id=event_id,
        anonymous_id=wrap_user_id(
            context.options.project_identifier, heap_user_id, context.identities
        ),
        message_id=message_id(event_id),
        timestamp=timestamp,
        context=default_context(ip or browser_ip),
    )


def _before_floor(timestamp: datetime, context: BatchContext) -> bool:
    floor = context.options.skip_before
    return floor is not None and timestamp < floor


def map_track(record: Mapping[str, Any], context: BatchContext, event_name: str) -> List[SegmentEvent]:
    fields = dict(record)
    common = common_fields(fields, context)
    if _before_floor(common.timestamp, context):
        return []

    properties: Dict[str, Any] = {"heap_user_id": common.heap_user_id}
    properties.update(filter_properties(fields))
    apply_revenue(
        properties,
        event_name,
        fields,
        context.options.revenue_mapping,
        context.options.revenue_fallback,
    )
    return [
        TrackEvent(
            event=event_name,
            timestamp=common.timestamp,
            anonymous_id=common.anonymous_id,
            message_id=common.message_id,
            properties=properties,
            context=common.context,
        )
    ]


def map_page(record: Mapping[str, Any], context: BatchContext, event_name: str) -> List[SegmentEvent]:
    fields = dict(record)
    common = common_fields(fields, context)
    if _before_floor(common.timestamp, context):
        return []

    url = build_page_url(fields, common.event_id)
    referrer = resolve_referrer(fields, common.timestamp, context.sessions)
    return [
        PageEvent(
            timestamp=common.timestamp,
            url=url,
            anonymous_id=common.anonymous_id,
            message_id=common.message_id,
            referrer=referrer,
            title=fields.pop("title", None),
            context=common.context,
        )
    ]


def map_identify(record: Mapping[str, Any], context: BatchContext, event_name: str) -> List[SegmentEvent]:
    options = context.options
    fields = dict(record)
    heap_user_id = fields.pop("user_id", None)
    email = fields.pop("email", None)
    if email is None:
        email = fields.pop("_email", None)
    identity = fields.pop("identity", None)

    # Heap projects commonly identify users by email address.
    if email is None and isinstance(identity, str) and "@" in identity:
        email = identity

    if options.user_id_prop == "email":
        identity = email
    user_id = identity
    if options.identify_only_users and user_id is None:
        return []

    explicit = {
        "email": email,
        "identity": identity,
        "heap_user_id": heap_user_id,
        "join_date": parse_heap_timestamp(fields.pop("joindate", None)),
        "last_modified": parse_heap_timestamp(fields.pop("last_modified", None)),
    }
    traits = {k: v for k, v in fields.items() if v is not None}
    traits.update({k: v for k, v in explicit.items() if v is not None})

    events: List[SegmentEvent] = []
    if options.alias_on_identify and heap_user_id is not None:
        for from_user_id in context.identities.aliases_of(heap_user_id):
            events.extend(
                emit_alias({"from_user_id": from_user_id, "to_user_id": heap_user_id}, context, event_name)
            )
    events.append(
        IdentifyEvent(
            anonymous_id=wrap_user_id(options.project_identifier, heap_user_id, context.identities),
            user_id=None if user_id is None else str(user_id),
            traits=traits,
        )
    )
    return events


def store_alias(record: Mapping[str, Any], context: BatchContext, event_name: str) -> List[SegmentEvent]:
    from_user_id = record.get("from_user_id")
    to_user_id = record.get("to_user_id")
    if from_user_id is None or to_user_id is None:
        return []
    context.identities.record(from_user_id, to_user_id)
    return []


def emit_alias(record: Mapping[str, Any], context: BatchContext, event_name: str) -> List[SegmentEvent]:
    """Build an alias event; ids are already canonical so no cache lookup."""
    from_user_id = record.get("from_user_id")
    to_user_id = record.get("to_user_id")
    if from_user_id is None or to_user_id is None:
        return []
    project = context.options.project_identifier
    event = AliasEvent(
        previous_id=wrap_user_id(project, from_user_id),
        anonymous_id=wrap_user_id(project, to_user_id),
    )
    logger.debug("Alias %s -> %s", event.previous_id, event.anonymous_id)
    return [event]


def store_session(record: Mapping[str, Any], context: BatchContext, event_name: str) -> List[SegmentEvent]:
    session_id = record.get("session_id")
    if session_id is None:
        return []
    context.sessions.observe(session_id, _parse_required_time(record.get("time"), "time"))
    return []


TRANSFORMS: Dict[str, Transform] = {
    "alias": store_alias,
    "session": store_session,
    "track": map_track,
    "page": map_page,
    "identify": map_identify,
}


def transform_for(table_type: Optional[str], context: BatchContext) -> Transform:
    """Return the transform for a table type tag.

    Raises:
        UnknownTableTypeError: If no transform exists for the tag.
    """
    if table_type == "alias" and context.options.emit_migration_aliases:
        return emit_alias
    try:
        return TRANSFORMS[table_type]  # type: ignore[index]
    except KeyError:
        raise UnknownTableTypeError(
            f"No transform for table type {table_type!r}; expected one of {sorted(TRANSFORMS)}"
        ) from None
