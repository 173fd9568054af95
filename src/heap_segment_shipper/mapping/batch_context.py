"""Batch-scoped state container for the dispatcher and transformer.

BatchContext bundles the run options with the two caches whose lifetime is
exactly one batch. Transforms receive it explicitly instead of reaching for
module or instance globals, which keeps them testable in isolation.

State Fields:
    options: Frozen SyncOptions for the whole run
    identities: raw heap user id -> canonical id (and the reverse)
    sessions: session id -> first timestamp seen

Usage Pattern:
    1. Orchestrator creates one context per run
    2. `reset()` is called before each manifest is read
    3. Alias and session tables populate the caches
    4. Track, page and identify transforms read them
"""
from __future__ import annotations

from dataclasses import dataclass, field

from ..config import SyncOptions
from .caches import IdentityCache, SessionCache

__all__ = ["BatchContext"]


@dataclass
class BatchContext:
    options: SyncOptions
    identities: IdentityCache = field(default_factory=IdentityCache)
    sessions: SessionCache = field(default_factory=SessionCache)

    def reset(self) -> None:
        self.identities.clear()
        self.sessions.clear()
