"""Pydantic models for Heap Connect batch manifests.

A Heap S3 sync writes one manifest per dump (`manifests/sync_<n>.json`)
listing every table exported in that dump together with its Avro part files.
These models give the dispatcher a validated view of that JSON; record
contents themselves stay plain dictionaries because their shape depends on
the table.
"""
from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ManifestTable(BaseModel):
    """A named group of same-schema record files within a dump."""

    model_config = ConfigDict(extra="ignore")

    name: str
    files: List[str] = Field(default_factory=list)
    # Assigned once by the table classifier before ordering; None until then.
    type: Optional[str] = None


class SyncManifest(BaseModel):
    """The manifest describing one exported batch (dump)."""

    model_config = ConfigDict(extra="ignore")

    dump_id: Union[int, str]
    tables: List[ManifestTable]
