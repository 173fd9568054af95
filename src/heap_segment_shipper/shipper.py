"""Shipper: submits normalized events to Segment with queue backpressure.

This module is the "L" (Load) in the pipeline. It takes the event models
produced by the transformer and hands them to the Segment analytics client,
which batches and uploads them from its own background consumer thread.

Key responsibilities include:
- Building the Segment client from settings.
- Routing each event model to the matching client call (track, page,
  identify, alias).
- Backpressure: the client drops messages once its queue is full, so before
  every submit the queue depth is compared with the configured capacity and,
  at or above it, a synchronous flush blocks until the consumer drains it.
  The transformer therefore never buffers events itself.
- Dry-run mode, which maps and logs without sending anything.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Protocol

from segment.analytics.client import Client

from .config import Settings
from .models.segment import AliasEvent, IdentifyEvent, PageEvent, SegmentEvent, TrackEvent

logger = logging.getLogger(__name__)

__all__ = [
    "DryRunSink",
    "EventSink",
    "SegmentSink",
    "build_sink",
    "submit_event",
]


class EventSink(Protocol):
    def track(self, event: TrackEvent) -> None: ...

    def page(self, event: PageEvent) -> None: ...

    def identify(self, event: IdentifyEvent) -> None: ...

    def alias(self, event: AliasEvent) -> None: ...

    def queued_messages(self) -> int: ...

    def flush(self) -> None: ...

    def shutdown(self) -> None: ...


class SegmentSink:
    """Segment client wrapper enforcing a bounded send queue."""

    def __init__(self, client: Any, max_queue_size: int):
        self._client = client
        self._max_queue_size = max(1, int(max_queue_size))
        self.flush_count = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "SegmentSink":
        client_kwargs: Dict[str, Any] = {
            "write_key": settings.SEGMENT_WRITE_KEY,
            "max_queue_size": settings.SEGMENT_MAX_QUEUE_SIZE,
            "on_error": _log_upload_error,
        }
        if settings.SEGMENT_HOST:
            client_kwargs["host"] = settings.SEGMENT_HOST
        return cls(Client(**client_kwargs), settings.SEGMENT_MAX_QUEUE_SIZE)

    def queued_messages(self) -> int:
        return self._client.queue.qsize()

    def check_flush_queue(self) -> None:
        queued = self.queued_messages()
        if queued < self._max_queue_size:
            return
        logger.info("Max queue size reached - %d, flushing", queued)
        started = time.monotonic()
        self.flush()
        elapsed = time.monotonic() - started
        rate = int(self._max_queue_size / elapsed) if elapsed > 0 else 0
        logger.info("Flush done in %.2f seconds (%d req/sec), continue", elapsed, rate)

    def flush(self) -> None:
        self._client.flush()
        self.flush_count += 1

    def track(self, event: TrackEvent) -> None:
        self.check_flush_queue()
        self._client.track(
            anonymous_id=event.anonymous_id,
            event=event.event,
            properties=event.properties,
            context=event.context,
            timestamp=event.timestamp,
            message_id=event.message_id,
        )

    def page(self, event: PageEvent) -> None:
        self.check_flush_queue()
        self._client.page(
            anonymous_id=event.anonymous_id,
            name=event.name,
            properties=event.properties,
            context=event.context,
            timestamp=event.timestamp,
            message_id=event.message_id,
        )

    def identify(self, event: IdentifyEvent) -> None:
        self.check_flush_queue()
        self._client.identify(
            user_id=event.user_id,
            anonymous_id=event.anonymous_id,
            traits=event.traits,
        )

    def alias(self, event: AliasEvent) -> None:
        self.check_flush_queue()
        # Segment's alias call names the new id `user_id`.
        self._client.alias(previous_id=event.previous_id, user_id=event.anonymous_id)

    def shutdown(self) -> None:  # pragma: no cover - simple shutdown hook
        """Flush buffered messages and stop the client's consumer thread."""
        self._client.shutdown()


class DryRunSink:
    """Sink that logs events instead of sending them."""

    def __init__(self) -> None:
        self.counts: Dict[str, int] = {"track": 0, "page": 0, "identify": 0, "alias": 0}

    def _record(self, kind: str, event: SegmentEvent) -> None:
        self.counts[kind] += 1
        logger.debug("Dry-run %s: %s", kind, event.model_dump_json())

    def track(self, event: TrackEvent) -> None:
        self._record("track", event)

    def page(self, event: PageEvent) -> None:
        self._record("page", event)

    def identify(self, event: IdentifyEvent) -> None:
        self._record("identify", event)

    def alias(self, event: AliasEvent) -> None:
        self._record("alias", event)

    def queued_messages(self) -> int:
        return 0

    def flush(self) -> None:
        return None

    def shutdown(self) -> None:
        logger.info("Dry-run totals: %s", self.counts)


_SUBMITTERS = {
    TrackEvent: "track",
    PageEvent: "page",
    IdentifyEvent: "identify",
    AliasEvent: "alias",
}


def submit_event(sink: EventSink, event: SegmentEvent) -> None:
    """Route an event model to the matching sink call."""
    method_name = _SUBMITTERS[type(event)]
    getattr(sink, method_name)(event)


def build_sink(settings: Settings, dry_run: Optional[bool] = None) -> EventSink:
    effective_dry_run = settings.DRY_RUN if dry_run is None else dry_run
    if effective_dry_run:
        logger.info("Dry-run mode: events are logged, nothing is sent to Segment")
        return DryRunSink()
    if not settings.SEGMENT_WRITE_KEY:
        logger.warning("SEGMENT_WRITE_KEY is empty; Segment will reject uploads")
    return SegmentSink.from_settings(settings)


def _log_upload_error(error: Exception, batch: Any) -> None:
    logger.error("Segment upload failed for %d message(s): %s", len(batch or []), error)
