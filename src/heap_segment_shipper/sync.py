"""Sync orchestrator: finds pending Heap dumps and replays them into Segment.

For each manifest key under the configured prefix, in ascending key order:

1.  Skip it when its completion marker (`imported_<key>`) exists.
2.  Ask the confirmation callback; a negative answer skips the batch.
3.  Reset the batch caches, read and validate the manifest, run the table
    dispatcher, write the completion marker and log the elapsed time.
4.  Stop after the first processed batch when `process_single_sync` is set.

A failure while processing a batch leaves it unmarked (at-least-once: the
next run replays the whole batch; Segment deduplicates by message id) and is
re-raised as `SyncError` naming the manifest key.
"""
from __future__ import annotations

import json
import logging
import re
import time
from contextlib import closing
from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from .checkpoint import is_synced, mark_synced
from .config import SyncOptions
from .dispatcher import BatchReport, Decoder, TableDispatcher
from .errors import ManifestError, SyncError
from .mapping.batch_context import BatchContext
from .models.heap import SyncManifest
from .records import read_records
from .shipper import EventSink

logger = logging.getLogger(__name__)

MANIFEST_REGEXP = re.compile(r"/sync_\d+\.json$")

Confirm = Callable[[str], bool]

__all__ = ["MANIFEST_REGEXP", "SyncRunner", "always_proceed", "run_sync"]


def always_proceed(manifest_key: str) -> bool:
    return True


class SyncRunner:
    """Runs pending batches one after another with batch-scoped caches."""

    def __init__(
        self,
        store: Any,
        sink: EventSink,
        options: SyncOptions,
        *,
        confirm: Optional[Confirm] = None,
        decoder: Decoder = read_records,
    ):
        self._store = store
        self._options = options
        self._confirm = confirm or always_proceed
        self._dispatcher = TableDispatcher(store, sink, decoder=decoder)
        self.context = BatchContext(options=options)
        self.reports: List[BatchReport] = []

    def scan_manifests(self) -> List[str]:
        keys = self._store.list_keys(self._options.manifest_prefix, delimiter="/")
        return sorted(k for k in keys if MANIFEST_REGEXP.search(k))

    def run(self) -> bool:
        """Process pending batches; return True if at least one was processed."""
        processed = False
        for key in self.scan_manifests():
            if is_synced(self._store, key):
                logger.debug("Already synced %s", key)
                continue
            if not self._confirm(key):
                logger.info("Skipping %s (not confirmed)", key)
                continue
            self.process_sync(key)
            processed = True
            if self._options.process_single_sync:
                break
        if not processed:
            logger.info("No pending manifests under %s", self._options.manifest_prefix)
        return processed

    def process_sync(self, key: str) -> BatchReport:
        # Caches never carry over between batches.
        self.context.reset()
        started = time.monotonic()
        try:
            manifest = self.load_manifest(key)
            report = self._dispatcher.process(manifest, self.context)
            mark_synced(self._store, key)
        except Exception as e:
            logger.error("Sync of %s failed, batch left unmarked: %s", key, e)
            raise SyncError(f"Sync of {key} failed: {e}") from e
        report.elapsed_seconds = time.monotonic() - started
        self.reports.append(report)
        logger.info(
            "Done syncing %s in %d seconds (%d rows, %d emitted, %d skipped, %d errored)",
            key,
            int(report.elapsed_seconds),
            report.rows,
            report.emitted,
            report.skipped,
            report.errored,
        )
        return report

    def load_manifest(self, key: str) -> SyncManifest:
        logger.info("Reading %s", key)
        with closing(self._store.open(key)) as body:
            payload = body.read()
        try:
            raw = json.loads(payload)
        except (ValueError, TypeError) as e:
            raise ManifestError(f"Manifest {key} is not valid JSON: {e}") from e
        try:
            return SyncManifest.model_validate(raw)
        except ValidationError as e:
            raise ManifestError(f"Manifest {key} is malformed: {e}") from e


def run_sync(
    store: Any,
    sink: EventSink,
    options: SyncOptions,
    *,
    confirm: Optional[Confirm] = None,
    decoder: Decoder = read_records,
) -> bool:
    return SyncRunner(store, sink, options, confirm=confirm, decoder=decoder).run()
