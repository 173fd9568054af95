"""Shipper exception hierarchy.

Each stage of the sync raises its own error type so the orchestrator can tell
record-level problems (counted, never fatal) from batch-level failures
(abort the batch, leave it unmarked).
"""
from __future__ import annotations


class ShipperError(Exception):
    """Base exception for all shipper failures."""


class ConfigError(ShipperError):
    """Raised for invalid runtime configuration."""


class UnknownTableTypeError(ConfigError):
    """Raised when a table carries a type tag with no matching transform."""


class StorageError(ShipperError):
    """Raised when listing, reading or copying objects fails."""


class ManifestError(ShipperError):
    """Raised for unreadable or incomplete batch manifests."""


class RecordDecodeError(ShipperError):
    """Raised when the record file decoder cannot produce the next record."""


class RecordMappingError(ShipperError):
    """Raised when a single record cannot be mapped to an event."""


class SyncError(ShipperError):
    """Raised when a batch fails; carries the manifest key in its message."""
