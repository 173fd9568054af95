"""Completion markers for idempotent batch processing.

A batch (manifest) counts as processed once an object named
`imported_<manifest key>` exists in the export bucket. The marker is written
by copying the manifest itself, only after every table of the batch went
through the dispatcher, so an interrupted run leaves no marker and the whole
batch is replayed next time. Segment deduplicates the replayed events by
message id.

Deleting a marker makes its batch eligible for processing again.
"""
from __future__ import annotations

from typing import Any

MARKER_PREFIX = "imported_"

__all__ = ["MARKER_PREFIX", "is_synced", "mark_synced", "marker_key"]


def marker_key(manifest_key: str) -> str:
    return f"{MARKER_PREFIX}{manifest_key}"


def is_synced(store: Any, manifest_key: str) -> bool:
    """Return True if the manifest already has a completion marker.

    A missing marker (including a not-found lookup) means the batch is
    pending.
    """
    return bool(store.exists(marker_key(manifest_key)))


def mark_synced(store: Any, manifest_key: str) -> None:
    store.copy(manifest_key, marker_key(manifest_key))
