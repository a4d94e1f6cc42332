"""Command-line entry point: ``python -m listing_pipeline.app.cli <command>``."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from listing_pipeline.app.core.logging import configure_logging
from listing_pipeline.app.core.settings import settings
from listing_pipeline.app.db.session import Database
from listing_pipeline.app.parsers.registry import EXTRACTORS
from listing_pipeline.app.services.blob_store import LocalBlobStore
from listing_pipeline.app.services.fetch_client import FirecrawlClient
from listing_pipeline.app.services.orchestrator import IngestionOrchestrator
from listing_pipeline.app.services.queue_manager import QueueManager


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="listing-pipeline", description="Listing ingestion pipeline")
    ap.add_argument("--database-url", type=str, default=None, help="Overrides DATABASE_URL")
    ap.add_argument("--log-level", type=str, default=None, help="Overrides LOG_LEVEL")
    sub = ap.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables")

    enqueue = sub.add_parser("enqueue", help="Queue listing URLs directly")
    enqueue.add_argument("source", choices=sorted(EXTRACTORS))
    enqueue.add_argument("urls", nargs="+")

    discover = sub.add_parser("discover", help="Queue listing URLs found on an index page")
    discover.add_argument("source", choices=sorted(EXTRACTORS))
    discover.add_argument("index_url")

    run = sub.add_parser("run", help="Drain the queue")
    run.add_argument("--workers", type=int, default=None)
    run.add_argument("--max-items", type=int, default=None)
    run.add_argument("--source", action="append", dest="sources", choices=sorted(EXTRACTORS))

    sub.add_parser("sweep", help="Return stale processing items to pending")

    reset = sub.add_parser("reset-errors", help="Return errored items to pending")
    reset.add_argument("--source", choices=sorted(EXTRACTORS), default=None)

    sub.add_parser("status", help="Print queue status counts")
    return ap


def _queue(database: Database) -> QueueManager:
    return QueueManager(
        database,
        max_attempts=settings.max_attempts,
        retry_backoff=settings.retry_backoff_seconds,
        stale_after=settings.stale_after_seconds,
    )


def _orchestrator(database: Database) -> IngestionOrchestrator:
    blob_store = LocalBlobStore(settings.raw_page_dir) if settings.raw_page_dir else None
    fetcher = FirecrawlClient(timeout=settings.fetch_timeout_seconds)
    return IngestionOrchestrator(database, fetcher, queue=_queue(database), blob_store=blob_store)


async def _discover(database: Database, source: str, index_url: str) -> int:
    async with _orchestrator(database) as orchestrator:
        return await orchestrator.discover(source, index_url)


async def _run(database: Database, workers: Optional[int], max_items: Optional[int], sources) -> dict:
    async with _orchestrator(database) as orchestrator:
        summary = await orchestrator.run(worker_count=workers, max_items=max_items, sources=sources)
    return summary.as_dict()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    database = Database(args.database_url or settings.database_url)
    try:
        if args.command == "init-db":
            database.create_schema()
            print("Schema created.")
        elif args.command == "enqueue":
            added = _queue(database).enqueue(args.source, args.urls)
            print(f"Enqueued {added} of {len(args.urls)} URLs.")
        elif args.command == "discover":
            added = asyncio.run(_discover(database, args.source, args.index_url))
            print(f"Enqueued {added} new URLs from {args.index_url}.")
        elif args.command == "run":
            summary = asyncio.run(_run(database, args.workers, args.max_items, args.sources))
            summary.pop("outcomes", None)
            print(json.dumps(summary, indent=2))
            return 0 if summary["status"] != "failed" else 1
        elif args.command == "sweep":
            print(f"Swept {_queue(database).sweep_stale()} stale items.")
        elif args.command == "reset-errors":
            print(f"Reset {_queue(database).reset_errors(args.source)} errored items.")
        elif args.command == "status":
            print(json.dumps(_queue(database).counts(), indent=2))
    finally:
        database.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())
