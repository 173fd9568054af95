"""Track property filtering and revenue resolution.

Property ceiling:
    Values whose text exceeds PROPERTY_MAX_BYTES (UTF-8) are dropped, as are
    None and empty strings. Long free-text columns in Heap exports (full
    URLs with tracking params, serialized blobs) would otherwise bloat every
    Segment payload.

Revenue precedence:
    1. revenue_mapping[event_name] names the field to read, if configured
       (no fallback when that field is absent)
    2. else the first non-None value among revenue_fallback fields
    The `revenue` property is never overwritten once present.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Sequence

PROPERTY_MAX_BYTES = 200

__all__ = ["PROPERTY_MAX_BYTES", "apply_revenue", "filter_properties", "resolve_revenue"]


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def filter_properties(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Return the fields eligible to be sent as event properties."""
    kept: Dict[str, Any] = {}
    for key, value in fields.items():
        if _is_blank(value):
            continue
        if len(str(value).encode("utf-8")) > PROPERTY_MAX_BYTES:
            continue
        kept[key] = value
    return kept


def resolve_revenue(
    event_name: str,
    fields: Mapping[str, Any],
    revenue_mapping: Mapping[str, str],
    revenue_fallback: Sequence[str],
) -> Optional[Any]:
    mapped_field = revenue_mapping.get(event_name)
    if mapped_field:
        return fields.get(mapped_field)
    for name in revenue_fallback:
        value = fields.get(name)
        if value is not None:
            return value
    return None


def apply_revenue(
    properties: Dict[str, Any],
    event_name: str,
    fields: Mapping[str, Any],
    revenue_mapping: Mapping[str, str],
    revenue_fallback: Sequence[str],
) -> None:
    """Set properties['revenue'] in place when resolvable and not already set."""
    if properties.get("revenue") is not None:
        return
    revenue = resolve_revenue(event_name, fields, revenue_mapping, revenue_fallback)
    if revenue is not None:
        properties["revenue"] = revenue
