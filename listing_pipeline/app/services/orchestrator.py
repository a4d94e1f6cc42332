from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Sequence

from listing_pipeline.app.core.rate_limit import SourceLimiter
from listing_pipeline.app.core.settings import Settings, settings as default_settings
from listing_pipeline.app.db import models
from listing_pipeline.app.db.session import Database
from listing_pipeline.app.identity.resolver import IdentityResolutionError, resolve_identity
from listing_pipeline.app.parsers.registry import EXTRACTORS
from listing_pipeline.app.services.blob_store import BlobStore
from listing_pipeline.app.services.fetch_client import FetchError, FetchRetryableError, PageFetcher
from listing_pipeline.app.services.ingest import UNCHANGED, upsert_listing
from listing_pipeline.app.services.queue_manager import (
    PENDING,
    SKIPPED_ALREADY_SOLD,
    ClaimedItem,
    QueueManager,
    QueueStateError,
)
from listing_pipeline.app.services.source_adapter import SourceAdapter

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    run_id: str
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    processed: int = 0
    written: int = 0
    skipped: int = 0
    failed: int = 0
    retried: int = 0
    swept: int = 0
    outcomes: Dict[int, str] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["completed_at"] = self.completed_at.isoformat() if self.completed_at else None
        return data


def _run_status(summary: RunSummary) -> str:
    if summary.failed == 0:
        return "success"
    if summary.written or summary.skipped:
        return "partial"
    return "failed"


class IngestionOrchestrator:
    """Drains the listing queue with a pool of asyncio workers.

    Only fetches suspend; extraction, resolution and database writes run
    synchronously inside the worker that claimed the item.
    """

    def __init__(
        self,
        database: Database,
        fetcher: PageFetcher,
        *,
        adapters: Optional[Mapping[str, SourceAdapter]] = None,
        queue: Optional[QueueManager] = None,
        limiter: Optional[SourceLimiter] = None,
        blob_store: Optional[BlobStore] = None,
        settings: Settings = default_settings,
    ):
        self.database = database
        self.fetcher = fetcher
        self.settings = settings
        self.adapters = dict(adapters) if adapters is not None else {
            source: SourceAdapter(extractor(), fetcher) for source, extractor in EXTRACTORS.items()
        }
        self.queue = queue or QueueManager(
            database,
            max_attempts=settings.max_attempts,
            retry_backoff=settings.retry_backoff_seconds,
            stale_after=settings.stale_after_seconds,
        )
        self.limiter = limiter or SourceLimiter(settings.per_source_concurrency, settings.per_source_rpm)
        self.blob_store = blob_store
        self.fetch_timeout = settings.fetch_timeout_seconds
        self._closed = False

    async def __aenter__(self) -> "IngestionOrchestrator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.fetcher.aclose()

    def _adapter(self, source: str) -> SourceAdapter:
        adapter = self.adapters.get(source)
        if adapter is None:
            raise ValueError(f"No adapter for source '{source}'")
        return adapter

    async def discover(self, source: str, index_url: str) -> int:
        adapter = self._adapter(source)
        async with self.limiter.slot(source):
            found = await asyncio.wait_for(adapter.discover(index_url), timeout=self.fetch_timeout)
        return self.queue.enqueue(source, found)

    async def run(
        self,
        worker_count: Optional[int] = None,
        max_items: Optional[int] = None,
        sources: Optional[Sequence[str]] = None,
    ) -> RunSummary:
        swept = self.queue.sweep_stale()
        summary = RunSummary(run_id=str(uuid.uuid4()), status="running", started_at=datetime.now(timezone.utc), swept=swept)
        self._create_run(summary)

        workers = max(1, worker_count or self.settings.worker_count)
        budget = {"remaining": max_items}
        tasks = [
            asyncio.create_task(self._worker(index, summary, budget, sources), name=f"ingest-worker-{index}")
            for index in range(workers)
        ]
        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            summary.status = "failed"
            self._finalize_run(summary, notes="cancelled")
            raise

        summary.status = _run_status(summary)
        self._finalize_run(summary)
        logger.info(
            "Run %s %s: processed=%d written=%d skipped=%d failed=%d retried=%d",
            summary.run_id, summary.status, summary.processed, summary.written,
            summary.skipped, summary.failed, summary.retried,
        )
        return summary

    async def _worker(
        self,
        index: int,
        summary: RunSummary,
        budget: Dict[str, Optional[int]],
        sources: Optional[Sequence[str]],
    ) -> None:
        while True:
            if budget["remaining"] is not None:
                if budget["remaining"] <= 0:
                    return
                budget["remaining"] -= 1
            item = self.queue.claim_next(sources)
            if item is None:
                return
            logger.debug("Worker %d processing %s", index, item.url)
            await self.process_item(item, summary)

    async def process_item(self, item: ClaimedItem, summary: RunSummary) -> str:
        """Run one claimed item through the pipeline and settle its queue status."""
        summary.processed += 1
        try:
            outcome = await self._handle(item)
        except asyncio.CancelledError:
            logger.warning("Item %s cancelled; left in processing for the stale sweep", item.id)
            raise
        except (FetchRetryableError, asyncio.TimeoutError) as exc:
            reason = str(exc) or f"fetch timed out after {self.fetch_timeout}s"
            status = self._fail(item, reason, retryable=True)
            if status == PENDING:
                summary.retried += 1
            else:
                summary.failed += 1
            outcome = status or "error"
        except (FetchError, IdentityResolutionError) as exc:
            self._fail(item, str(exc), retryable=False)
            summary.failed += 1
            outcome = "error"
        except Exception as exc:
            logger.exception("Unexpected failure processing %s", item.url)
            self._fail(item, f"unexpected error: {exc!r}", retryable=False)
            summary.failed += 1
            outcome = "error"
        else:
            if outcome == SKIPPED_ALREADY_SOLD or outcome == UNCHANGED:
                summary.skipped += 1
            else:
                summary.written += 1
        summary.outcomes[item.id] = outcome
        return outcome

    def _fail(self, item: ClaimedItem, reason: str, retryable: bool) -> Optional[str]:
        try:
            return self.queue.fail(item.id, reason, retryable=retryable)
        except QueueStateError:
            logger.error("Item %s changed state before its failure was recorded: %s", item.id, reason)
            return None

    async def _handle(self, item: ClaimedItem) -> str:
        decision = self.queue.decide(item.source, item.url, item.vin)
        if decision.skip:
            self.queue.complete(item.id, decision.reason)
            return decision.reason

        adapter = self._adapter(item.source)
        async with self.limiter.slot(item.source):
            draft = await asyncio.wait_for(adapter.fetch_draft(item.url), timeout=self.fetch_timeout)
        observed_at = datetime.now(timezone.utc)

        resolved = resolve_identity(draft)
        blob_key = None
        if self.blob_store is not None and draft.content:
            blob_key = await self.blob_store.put_text(self.blob_store.build_key(item.source, item.url), draft.content)

        # No await between the sold check and the write.
        sold = None
        with self.database.session_scope() as session:
            if resolved.vin:
                sold = self.queue.find_sold_listing_for_vin(
                    resolved.vin, exclude_source=item.source, exclude_url=item.url, session=session
                )
            if sold is None:
                result = upsert_listing(session, resolved, observed_at, raw_blob_key=blob_key)
            else:
                logger.info("%s: VIN %s already sold via %s", item.url, resolved.vin, sold.source_url)
                result = SKIPPED_ALREADY_SOLD
        self.queue.complete(item.id, result)
        return result

    def _create_run(self, summary: RunSummary) -> None:
        with self.database.session_scope() as session:
            session.add(
                models.IngestionRun(
                    id=uuid.UUID(summary.run_id),
                    started_at=summary.started_at,
                    status="running",
                )
            )

    def _finalize_run(self, summary: RunSummary, notes: Optional[str] = None) -> None:
        summary.completed_at = datetime.now(timezone.utc)
        with self.database.session_scope() as session:
            run = session.get(models.IngestionRun, uuid.UUID(summary.run_id))
            if run is None:
                return
            run.completed_at = summary.completed_at
            run.status = summary.status
            run.processed_count = summary.processed
            run.written_count = summary.written
            run.skipped_count = summary.skipped
            run.failed_count = summary.failed
            run.retried_count = summary.retried
            run.notes = notes
