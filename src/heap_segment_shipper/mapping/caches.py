"""Batch-scoped identity and session caches.

Both caches live for exactly one batch: the orchestrator clears them before a
manifest is read, so nothing learned from one dump can leak into the next.

IdentityCache:
    forward: raw heap user id -> canonical (migration-terminal) user id.
        First write wins; a later migration of the same raw id is ignored.
    reverse: canonical id -> raw ids aliased to it, kept in insertion order
        so synthesized alias events come out deterministically.

SessionCache:
    session id -> timestamp of the first record seen for that session.
        Later records of the same session never overwrite it.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Tuple

__all__ = ["IdentityCache", "SessionCache"]


class IdentityCache:
    def __init__(self) -> None:
        self._forward: Dict[Any, Any] = {}
        self._reverse: Dict[Any, Dict[Any, None]] = {}

    def record(self, raw_id: Any, canonical_id: Any) -> None:
        """Store a migration edge raw_id -> canonical_id."""
        self._reverse.setdefault(canonical_id, {})[raw_id] = None
        self._forward.setdefault(raw_id, canonical_id)

    def resolve(self, raw_id: Any) -> Any:
        """Return the canonical id for raw_id, or raw_id itself when unmapped."""
        return self._forward.get(raw_id, raw_id)

    def aliases_of(self, canonical_id: Any) -> Tuple[Any, ...]:
        """Return every raw id ever aliased to canonical_id (empty if none)."""
        return tuple(self._reverse.get(canonical_id, ()))

    def clear(self) -> None:
        self._forward.clear()
        self._reverse.clear()

    def __len__(self) -> int:
        return len(self._forward)


class SessionCache:
    def __init__(self) -> None:
        self._first_seen: Dict[Any, datetime] = {}

    def observe(self, session_id: Any, timestamp: datetime) -> None:
        """Remember timestamp for session_id unless the session is already known."""
        self._first_seen.setdefault(session_id, timestamp)

    def first_seen(self, session_id: Any) -> Optional[datetime]:
        return self._first_seen.get(session_id)

    def clear(self) -> None:
        self._first_seen.clear()

    def __len__(self) -> int:
        return len(self._first_seen)
