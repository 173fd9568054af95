"""Application configuration management using Pydantic Settings.

This module defines the `Settings` class, which loads configuration parameters
from environment variables and a `.env` file. It centralizes all tunable
parameters, from S3 and Segment credentials to the record filtering rules
applied while replaying a Heap export.

The engine itself never reads `Settings`; `build_sync_options` freezes the
relevant values into a `SyncOptions` instance so the dispatcher and
transformer can be driven directly from tests or other callers.

The `get_settings` function provides a cached, singleton instance of the
configuration, ensuring consistent settings throughout the application.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any, Callable, FrozenSet, Mapping, Optional, Tuple

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict as _SettingsConfigDict

from .errors import ConfigError
from .mapping.time_utils import ensure_utc

DEFAULT_MANIFEST_PREFIX = "manifests/sync_"
DEFAULT_SKIP_TABLES = ("_event_metadata",)
TABLE_TYPES = ("alias", "session", "track", "page", "identify")
USER_ID_PROPS = ("identity", "email")


@dataclass(frozen=True)
class SyncOptions:
    """Immutable engine configuration for one run.

    skip_file receives the file path (URI) and returns True to bypass it
    before any byte is decoded.
    """

    project_identifier: str
    manifest_prefix: str = DEFAULT_MANIFEST_PREFIX
    process_single_sync: bool = True
    skip_types: FrozenSet[str] = frozenset()
    skip_tables: FrozenSet[str] = frozenset(DEFAULT_SKIP_TABLES)
    skip_before: Optional[datetime] = None
    skip_file: Optional[Callable[[str], bool]] = None
    identify_only_users: bool = False
    alias_on_identify: bool = True
    emit_migration_aliases: bool = False
    revenue_mapping: Mapping[str, str] = field(default_factory=dict)
    revenue_fallback: Tuple[str, ...] = ()
    user_id_prop: str = "identity"
    table_type_overrides: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.project_identifier:
            raise ConfigError("project_identifier must not be empty")
        if self.user_id_prop not in USER_ID_PROPS:
            raise ConfigError(
                f"user_id_prop must be one of {USER_ID_PROPS}, got {self.user_id_prop!r}"
            )
        if self.skip_before is not None:
            object.__setattr__(self, "skip_before", ensure_utc(self.skip_before))


class Settings(BaseSettings):
    """Defines all application configuration parameters.

    This class uses `pydantic-settings` to automatically load values from
    environment variables or a `.env` file. List and mapping fields accept
    comma-separated strings so they can be set from a shell without JSON
    quoting.
    """

    model_config = _SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Heap export location
    PROJECT_IDENTIFIER: str = Field(
        description="Scope prefix for anonymous ids, e.g. the Heap project name"
    )
    AWS_S3_BUCKET: str = Field(description="Bucket holding the Heap Connect export")
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_REGION: str = Field(default="us-east-1", description="Bucket region")
    MANIFEST_PREFIX: str = Field(
        default=DEFAULT_MANIFEST_PREFIX, description="Key prefix under which manifests are listed"
    )

    # Segment
    SEGMENT_WRITE_KEY: str = Field(default="", description="Segment source write key")
    SEGMENT_HOST: Optional[str] = Field(default=None, description="Override Segment API host")
    SEGMENT_MAX_QUEUE_SIZE: int = Field(
        default=10000,
        description="Client queue size; reaching it forces a synchronous flush (backpressure)",
    )

    # Logging & runtime behavior
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    DRY_RUN: bool = Field(
        default=True,
        description="If true, events are mapped and logged but not sent to Segment",
    )
    PROMPT: bool = Field(default=True, description="Ask for confirmation before each batch")
    PROCESS_SINGLE_SYNC: bool = Field(
        default=True, description="Stop after the first successfully processed batch"
    )

    # ---------------- Filtering -----------------
    # Use Any type to prevent Pydantic Settings JSON decoding; validators convert.
    SKIP_TYPES: Any = Field(
        default_factory=list,
        description="Comma-separated table types to suppress (alias,session,track,page,identify)",
    )
    SKIP_TABLES: Any = Field(
        default_factory=lambda: list(DEFAULT_SKIP_TABLES),
        description="Comma-separated table names to suppress entirely",
    )
    SKIP_BEFORE: Optional[datetime] = Field(
        default=None, description="Drop track/page events strictly earlier than this (UTC)"
    )
    SKIP_FILE_PATTERN: Optional[str] = Field(
        default=None, description="Regex; files whose path matches are skipped"
    )

    # ---------------- Identity -----------------
    IDENTIFY_ONLY_USERS: bool = Field(
        default=False,
        description="Only emit identify calls for records with a resolved user id",
    )
    ALIAS_ON_IDENTIFY: bool = Field(
        default=True,
        description="Emit alias calls for migrated users when their profile is identified",
    )
    EMIT_MIGRATION_ALIASES: bool = Field(
        default=False,
        description="Send user_migrations rows as alias calls instead of caching them",
    )
    USER_ID_PROP: str = Field(
        default="identity", description="Field used as Segment userId: identity or email"
    )

    # ---------------- Revenue -----------------
    REVENUE_MAPPING: Any = Field(
        default_factory=dict,
        description="Event name to revenue field, e.g. 'Purchase=total,Order Completed=amount'",
    )
    REVENUE_FALLBACK: Any = Field(
        default_factory=list,
        description="Ordered comma-separated revenue fields tried when no mapping exists",
    )

    TABLE_TYPE_OVERRIDES: Any = Field(
        default_factory=dict,
        description="Force a table type, e.g. 'legacy_users=identify'",
    )

    @field_validator("SKIP_TYPES", "SKIP_TABLES", "REVENUE_FALLBACK", mode="before")
    @classmethod
    def parse_comma_separated(cls, v: Any) -> list[str]:
        """Parse comma-separated string into list of stripped strings.

        Supports both direct list input (from code/tests) and comma-separated
        string input (from environment variables). Empty strings result in
        empty list.
        """
        if isinstance(v, (list, tuple, set, frozenset)):
            return [str(s).strip() for s in v if str(s).strip()]
        if isinstance(v, str):
            if not v.strip():
                return []
            return [s.strip() for s in v.split(",") if s.strip()]
        return []

    @field_validator("REVENUE_MAPPING", "TABLE_TYPE_OVERRIDES", mode="before")
    @classmethod
    def parse_key_value_pairs(cls, v: Any) -> dict[str, str]:
        """Parse `key=value` pairs (comma-separated) or a JSON object."""
        if isinstance(v, dict):
            return {str(k).strip(): str(val).strip() for k, val in v.items()}
        if not isinstance(v, str) or not v.strip():
            return {}
        text = v.strip()
        if text.startswith("{"):
            loaded = json.loads(text)
            return {str(k).strip(): str(val).strip() for k, val in loaded.items()}
        pairs: dict[str, str] = {}
        for chunk in text.split(","):
            if not chunk.strip():
                continue
            key, sep, value = chunk.partition("=")
            if not sep:
                raise ValueError(f"Expected key=value, got {chunk!r}")
            pairs[key.strip()] = value.strip()
        return pairs

    @field_validator("SKIP_FILE_PATTERN", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Optional[str]:
        if isinstance(v, str) and not v.strip():
            return None
        return v


def _pattern_predicate(pattern: str) -> Callable[[str], bool]:
    try:
        compiled = re.compile(pattern)
    except re.error as e:
        raise ConfigError(f"Invalid SKIP_FILE_PATTERN {pattern!r}: {e}") from e
    return lambda path: compiled.search(path) is not None


def build_sync_options(settings: Settings, **overrides: Any) -> SyncOptions:
    """Freeze settings (plus explicit overrides, e.g. from CLI flags) into SyncOptions."""
    unknown_types = [
        t
        for t in list(settings.SKIP_TYPES) + list(settings.TABLE_TYPE_OVERRIDES.values())
        if t not in TABLE_TYPES
    ]
    if unknown_types:
        raise ConfigError(f"Unknown table type(s) {unknown_types}; expected one of {TABLE_TYPES}")
    values: dict[str, Any] = {
        "project_identifier": settings.PROJECT_IDENTIFIER,
        "manifest_prefix": settings.MANIFEST_PREFIX,
        "process_single_sync": settings.PROCESS_SINGLE_SYNC,
        "skip_types": frozenset(settings.SKIP_TYPES),
        "skip_tables": frozenset(settings.SKIP_TABLES),
        "skip_before": settings.SKIP_BEFORE,
        "skip_file": (
            _pattern_predicate(settings.SKIP_FILE_PATTERN) if settings.SKIP_FILE_PATTERN else None
        ),
        "identify_only_users": settings.IDENTIFY_ONLY_USERS,
        "alias_on_identify": settings.ALIAS_ON_IDENTIFY,
        "emit_migration_aliases": settings.EMIT_MIGRATION_ALIASES,
        "revenue_mapping": dict(settings.REVENUE_MAPPING),
        "revenue_fallback": tuple(settings.REVENUE_FALLBACK),
        "user_id_prop": settings.USER_ID_PROP,
        "table_type_overrides": dict(settings.TABLE_TYPE_OVERRIDES),
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return SyncOptions(**values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:  # pragma: no cover - trivial
    """Return a cached, singleton instance of the application settings.

    Provides a clearer error if mandatory env vars are missing.
    """
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as e:
        missing = [
            ".".join(str(p) for p in err.get("loc", ()))
            for err in e.errors()
            if err.get("type") == "missing"
        ]
        if missing:
            raise ConfigError(
                f"Missing required setting(s): {', '.join(missing)}. "
                "Set them in the environment or a .env file."
            ) from e
        raise
