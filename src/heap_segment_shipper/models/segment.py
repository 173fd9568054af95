"""Pydantic models for the normalized Segment events.

These models are the target structures of the record transformer. The
`shipper` module converts them into calls on the Segment client (or just logs
them in dry-run mode).
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field

LIBRARY_CONTEXT = {"name": "HeapIntegration", "version": "1.0"}


def default_context(ip: Optional[str] = None) -> Dict[str, Any]:
    """Return the event context sent with every track/page call."""
    return {"ip": ip, "library": dict(LIBRARY_CONTEXT)}


class TrackEvent(BaseModel):
    """A generic action (Segment `track`)."""

    event: str
    timestamp: datetime
    anonymous_id: Optional[str] = None
    message_id: Optional[str] = None
    properties: Dict[str, Any] = Field(default_factory=dict)
    context: Dict[str, Any] = Field(default_factory=default_context)


class PageEvent(BaseModel):
    """A page view (Segment `page`)."""

    timestamp: datetime
    url: str
    anonymous_id: Optional[str] = None
    message_id: Optional[str] = None
    referrer: Optional[str] = None
    title: Optional[str] = None
    name: str = "Loaded a Page"
    context: Dict[str, Any] = Field(default_factory=default_context)

    @property
    def properties(self) -> Dict[str, Any]:
        return {"referrer": self.referrer, "title": self.title, "url": self.url}


class IdentifyEvent(BaseModel):
    """An identity (Segment `identify`)."""

    anonymous_id: Optional[str] = None
    user_id: Optional[str] = None
    traits: Dict[str, Any] = Field(default_factory=dict)


class AliasEvent(BaseModel):
    """Links a previous anonymous id to a new one (Segment `alias`)."""

    previous_id: Optional[str] = None
    anonymous_id: Optional[str] = None


SegmentEvent = Union[TrackEvent, PageEvent, IdentifyEvent, AliasEvent]

__all__ = [
    "AliasEvent",
    "IdentifyEvent",
    "LIBRARY_CONTEXT",
    "PageEvent",
    "SegmentEvent",
    "TrackEvent",
    "default_context",
]
