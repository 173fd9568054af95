"""Identifier helpers for anonymous ids and message ids.

Anonymous id format: f"{project_identifier}|{user_id}" where user_id is the
canonical id after alias resolution (or the raw id when resolution is
disabled, as for synthesized aliases).

Message id format: f"HEAP|{event_id}". The prefix MUST NOT change: Segment
deduplicates replays by message id, so reruns of a batch rely on producing
identical ids.
"""
from __future__ import annotations

from typing import Any, Optional

from .caches import IdentityCache

MESSAGE_ID_PREFIX = "HEAP|"

__all__ = ["MESSAGE_ID_PREFIX", "message_id", "wrap_user_id"]


def wrap_user_id(
    project_identifier: str,
    heap_user_id: Any,
    identities: Optional[IdentityCache] = None,
) -> Optional[str]:
    """Build the anonymous id for heap_user_id.

    Args:
        project_identifier: Scope prefix of the target Segment project.
        heap_user_id: Raw heap user id; None yields None.
        identities: When given, the id is resolved through its forward map.

    Returns:
        The scoped anonymous id, or None when no user id is present.
    """
    if heap_user_id is None:
        return None
    resolved = identities.resolve(heap_user_id) if identities is not None else heap_user_id
    return f"{project_identifier}|{resolved}"


def message_id(event_id: Any) -> str:
    return f"{MESSAGE_ID_PREFIX}{'' if event_id is None else event_id}"
