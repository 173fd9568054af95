"""Main CLI entry point for the heap-segment-shipper.

This module provides a command-line interface using Typer to run the shipper
process. It wires the pipeline together:
1.  Loading configuration (environment and `.env`).
2.  Building the S3 object store (heap_segment_shipper.storage).
3.  Building the Segment sink, or a dry-run sink (heap_segment_shipper.shipper).
4.  Running the sync orchestrator over pending manifests
    (heap_segment_shipper.sync), optionally confirming each batch.
5.  Flushing and shutting down the sink.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

import typer
from dotenv import find_dotenv, load_dotenv

from .config import build_sync_options, get_settings
from .errors import ShipperError
from .shipper import build_sink
from .storage import S3ObjectStore, create_s3_client
from .sync import SyncRunner

app = typer.Typer(help="Heap Connect (S3) to Segment shipper CLI")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _confirm_batch(manifest_key: str) -> bool:
    return typer.confirm(f"Ready to process {manifest_key}. Continue?", default=True)


@app.callback()
def main() -> None:  # pragma: no cover - simple callback
    """heap-segment-shipper CLI.

    Use a subcommand like 'sync' to run a process.
    """
    env_file = find_dotenv(usecwd=True) or find_dotenv()
    if env_file:
        load_dotenv(env_file)


@app.command(help="Replay pending Heap dumps into Segment.")
def sync(
    dry_run: Optional[bool] = typer.Option(
        None,
        "--dry-run/--no-dry-run",
        help="Map and log events without sending them. Defaults to DRY_RUN from config/env.",
    ),
    prompt: Optional[bool] = typer.Option(
        None,
        "--prompt/--no-prompt",
        help="Confirm each batch before processing. Defaults to PROMPT from config/env.",
    ),
    single: Optional[bool] = typer.Option(
        None,
        "--single/--all",
        help="Stop after the first processed batch. Defaults to PROCESS_SINGLE_SYNC.",
    ),
    skip_before: Optional[datetime] = typer.Option(
        None, help="Drop track/page events earlier than this timestamp (UTC). Overrides SKIP_BEFORE."
    ),
    skip_table: Optional[List[str]] = typer.Option(
        None, help="Table name to suppress (repeatable). Added to SKIP_TABLES."
    ),
    skip_type: Optional[List[str]] = typer.Option(
        None, help="Table type to suppress (repeatable). Added to SKIP_TYPES."
    ),
) -> None:
    """Run the sync orchestrator once over the pending manifests."""
    try:
        settings = get_settings()
    except ShipperError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=2)
    logging.basicConfig(level=settings.LOG_LEVEL, format=LOG_FORMAT)
    log = logging.getLogger(__name__)

    extra: dict[str, list[str]] = {}
    if skip_table:
        extra["SKIP_TABLES"] = list(settings.SKIP_TABLES) + list(skip_table)
    if skip_type:
        extra["SKIP_TYPES"] = list(settings.SKIP_TYPES) + list(skip_type)
    if extra:
        # Keep the cached settings untouched
        settings = settings.model_copy(update=extra)
    try:
        options = build_sync_options(
            settings, process_single_sync=single, skip_before=skip_before
        )
    except ShipperError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=2)

    effective_prompt = settings.PROMPT if prompt is None else prompt
    effective_dry_run = settings.DRY_RUN if dry_run is None else dry_run

    store = S3ObjectStore(
        create_s3_client(
            settings.AWS_ACCESS_KEY_ID, settings.AWS_SECRET_ACCESS_KEY, settings.AWS_REGION
        ),
        settings.AWS_S3_BUCKET,
    )
    sink = build_sink(settings, dry_run=effective_dry_run)
    runner = SyncRunner(
        store,
        sink,
        options,
        confirm=_confirm_batch if effective_prompt else None,
    )
    try:
        processed = runner.run()
    except ShipperError as e:
        log.error("Sync aborted: %s", e)
        raise typer.Exit(code=1)
    finally:
        # Ensure queued events are flushed before a short-lived process exits
        sink.shutdown()

    typer.echo(
        f"Processed {len(runner.reports)} batch(es). dry_run={effective_dry_run} processed={processed}"
    )
    for report in runner.reports:
        typer.echo(
            f"  dump {report.dump_id}: {report.rows} rows, {report.emitted} emitted, "
            f"{report.skipped} skipped, {report.errored} errored in {report.elapsed_seconds:.1f}s"
        )


if __name__ == "__main__":  # pragma: no cover
    app()
