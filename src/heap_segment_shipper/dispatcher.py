"""Table dispatcher: drives one manifest through the transformer.

For a parsed manifest it:
1.  Drops skipped tables, tags every table with its type and sorts them
    (mapping.table_order).
2.  Orders the files of each table.
3.  Streams every file through the decoder, one record at a time, and
    submits the events each record maps to.

Processing is strictly sequential. Alias and session tables mutate the batch
caches that later tables read, so tables, files and records are never
reordered or run concurrently.

Record-level problems (decode or mapping errors) are counted and logged but
never abort the batch. Anything else propagates with the table and file in
progress so the batch can be resumed by hand.
"""
from __future__ import annotations

import logging
import time
from contextlib import closing
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from .errors import RecordDecodeError, RecordMappingError, ShipperError, StorageError, SyncError
from .mapping.batch_context import BatchContext
from .mapping.table_order import event_name_for, order_files, order_tables
from .mapping.transformer import Transform, transform_for
from .models.heap import ManifestTable, SyncManifest
from .records import read_records
from .shipper import EventSink, submit_event

logger = logging.getLogger(__name__)

Decoder = Callable[[Any], Iterable[Dict[str, Any]]]

__all__ = ["BatchReport", "FileReport", "TableDispatcher", "TableReport", "process_manifest"]


@dataclass
class FileReport:
    path: str
    rows: int = 0
    emitted: int = 0
    skipped: int = 0
    errored: int = 0
    bypassed: bool = False


@dataclass
class TableReport:
    name: str
    type: Optional[str]
    files: List[FileReport] = field(default_factory=list)
    skipped_type: bool = False

    def _total(self, attr: str) -> int:
        return sum(getattr(f, attr) for f in self.files)

    @property
    def rows(self) -> int:
        return self._total("rows")

    @property
    def emitted(self) -> int:
        return self._total("emitted")

    @property
    def skipped(self) -> int:
        return self._total("skipped")

    @property
    def errored(self) -> int:
        return self._total("errored")


@dataclass
class BatchReport:
    dump_id: Any
    tables: List[TableReport] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def table_order(self) -> List[str]:
        return [t.name for t in self.tables]

    @property
    def rows(self) -> int:
        return sum(t.rows for t in self.tables)

    @property
    def emitted(self) -> int:
        return sum(t.emitted for t in self.tables)

    @property
    def skipped(self) -> int:
        return sum(t.skipped for t in self.tables)

    @property
    def errored(self) -> int:
        return sum(t.errored for t in self.tables)


class TableDispatcher:
    """Processes the tables of one manifest against a batch context."""

    def __init__(
        self,
        store: Any,
        sink: EventSink,
        decoder: Decoder = read_records,
    ):
        self._store = store
        self._sink = sink
        self._decoder = decoder

    def process(self, manifest: SyncManifest, context: BatchContext) -> BatchReport:
        logger.info("Processing manifest(dump_id: %s)", manifest.dump_id)
        options = context.options
        tables = order_tables(
            manifest.tables,
            skip_tables=options.skip_tables,
            overrides=options.table_type_overrides,
        )
        report = BatchReport(dump_id=manifest.dump_id)
        for table in tables:
            report.tables.append(self.process_table(table, context))
        return report

    def process_table(self, table: ManifestTable, context: BatchContext) -> TableReport:
        event_name = event_name_for(table.name)
        report = TableReport(name=table.name, type=table.type)
        if table.type in context.options.skip_types:
            logger.info("Skipping table(%s) - type %s suppressed", table.name, table.type)
            report.skipped_type = True
            return report

        transform = transform_for(table.type, context)
        logger.info('Processing table(%s) - "%s" event', table.name, event_name)
        for path in order_files(table):
            try:
                report.files.append(self.process_file(path, transform, context, event_name))
            except StorageError as e:
                raise StorageError(f"table({table.name}) file({path}): {e}") from e
            except ShipperError:
                raise
            except Exception as e:
                raise SyncError(
                    f"Failed processing table({table.name}) file({path}): {e}"
                ) from e
        return report

    def process_file(
        self,
        path: str,
        transform: Transform,
        context: BatchContext,
        event_name: str,
    ) -> FileReport:
        report = FileReport(path=path)
        skip_file = context.options.skip_file
        if skip_file is not None and skip_file(path):
            logger.info("Skipping file(%s)", path)
            report.bypassed = True
            return report

        logger.info("Processing file(%s)", path)
        load_started = time.monotonic()
        # The body holds a pooled HTTP connection until closed
        with closing(self._store.open(path)) as stream:
            records = iter(self._decoder(stream))
            load_seconds = time.monotonic() - load_started

            started = time.monotonic()
            for record in _until_decode_error(records, report):
                report.rows += 1
                try:
                    events = transform(record, context, event_name)
                except RecordMappingError as e:
                    report.errored += 1
                    logger.warning("Record %d of %s not mapped: %s", report.rows, path, e)
                    continue
                if not events:
                    report.skipped += 1
                    continue
                for event in events:
                    submit_event(self._sink, event)
                    report.emitted += 1

        elapsed = time.monotonic() - started
        rate = int(report.rows / elapsed) if elapsed > 0 else report.rows
        logger.info(
            "Done. Loading %.1fs, processing %.1fs, %d rows, %d emitted, %d skipped, "
            "%d errored (%d rows/sec)",
            load_seconds,
            elapsed,
            report.rows,
            report.emitted,
            report.skipped,
            report.errored,
            rate,
        )
        return report


def _until_decode_error(records: Iterator[Dict[str, Any]], report: FileReport) -> Iterator[Dict[str, Any]]:
    """Yield records until the decoder fails; a failure ends the file."""
    while True:
        try:
            record = next(records)
        except StopIteration:
            return
        except RecordDecodeError as e:
            report.errored += 1
            logger.warning(
                "Decode failed after %d record(s) of %s; remaining records skipped: %s",
                report.rows,
                report.path,
                e,
            )
            return
        yield record


def process_manifest(
    manifest: SyncManifest,
    context: BatchContext,
    store: Any,
    sink: EventSink,
    decoder: Decoder = read_records,
) -> BatchReport:
    return TableDispatcher(store, sink, decoder=decoder).process(manifest, context)
