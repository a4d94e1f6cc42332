"""Work queue for listing URLs plus the dedup checks that gate fetching.

Every status transition is a conditional UPDATE so two workers can never both
own an item: a claim only succeeds while the row is still ``pending``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from sqlalchemy import func, or_, select, update

from listing_pipeline.app.db import models
from listing_pipeline.app.db.session import Database
from listing_pipeline.app.parsers._listing_common import DiscoveredUrl

logger = logging.getLogger(__name__)

PENDING = "pending"
PROCESSING = "processing"
DONE = "done"
ERROR = "error"
STATUSES = (PENDING, PROCESSING, DONE, ERROR)

FETCH = "fetch"
SKIP = "skip"
SKIPPED_ALREADY_SOLD = "skipped — already sold"

CLAIM_CANDIDATES = 10


class QueueStateError(Exception):
    """Raised when an item is not in the state a transition requires."""


@dataclass(frozen=True)
class FetchDecision:
    action: str
    reason: Optional[str] = None

    @property
    def skip(self) -> bool:
        return self.action == SKIP


@dataclass(frozen=True)
class ClaimedItem:
    id: int
    source: str
    url: str
    vin: Optional[str]
    attempt_count: int


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QueueManager:
    def __init__(
        self,
        database: Database,
        *,
        max_attempts: int = 3,
        retry_backoff: float = 60.0,
        stale_after: float = 900.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.database = database
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff = retry_backoff
        self.stale_after = stale_after
        self.clock = clock

    def enqueue(self, source: str, discovered: Iterable[Union[DiscoveredUrl, str]]) -> int:
        """Add new URLs as pending items; URLs already queued for the source are ignored."""
        entries: Dict[str, Optional[str]] = {}
        for entry in discovered:
            if isinstance(entry, str):
                entries.setdefault(entry, None)
            else:
                entries.setdefault(entry.url, entry.vin)
        if not entries:
            return 0

        now = self.clock()
        with self.database.session_scope() as session:
            existing = set(
                session.execute(
                    select(models.QueueItem.url).where(
                        models.QueueItem.source == source,
                        models.QueueItem.url.in_(list(entries)),
                    )
                ).scalars()
            )
            added = 0
            for url, vin in entries.items():
                if url in existing:
                    continue
                session.add(
                    models.QueueItem(
                        source=source,
                        url=url,
                        vin=vin,
                        status=PENDING,
                        attempt_count=0,
                        discovered_at=now,
                    )
                )
                added += 1
        logger.info("Enqueued %d new %s URLs (%d already queued)", added, source, len(entries) - added)
        return added

    def decide(self, source: str, url: str, vin: Optional[str] = None) -> FetchDecision:
        with self.database.session_scope() as session:
            listing = session.execute(
                select(models.Listing).where(
                    models.Listing.source == source,
                    models.Listing.source_url == url,
                )
            ).scalar_one_or_none()
        if listing is not None and listing.sale_status == "sold" and listing.sale_date is not None:
            return FetchDecision(SKIP, SKIPPED_ALREADY_SOLD)
        if vin and self.find_sold_listing_for_vin(vin, exclude_source=source, exclude_url=url) is not None:
            return FetchDecision(SKIP, SKIPPED_ALREADY_SOLD)
        return FetchDecision(FETCH)

    def find_sold_listing_for_vin(
        self,
        vin: str,
        exclude_source: Optional[str] = None,
        exclude_url: Optional[str] = None,
        session=None,
    ) -> Optional[models.Listing]:
        """Earliest sold listing for the VIN; runs inside `session` when one is given."""
        stmt = select(models.Listing).where(
            models.Listing.vin == vin.upper(),
            models.Listing.sale_status == "sold",
            models.Listing.sale_date.is_not(None),
        )
        if exclude_source is not None and exclude_url is not None:
            stmt = stmt.where(
                or_(models.Listing.source != exclude_source, models.Listing.source_url != exclude_url)
            )
        stmt = stmt.order_by(models.Listing.id).limit(1)
        if session is not None:
            return session.execute(stmt).scalar_one_or_none()
        with self.database.session_scope() as session:
            return session.execute(stmt).scalar_one_or_none()

    def claim(self, item_id: int) -> Optional[ClaimedItem]:
        """Move one pending item to processing; None when another worker got it first."""
        now = self.clock()
        with self.database.session_scope() as session:
            return self._claim(session, item_id, now)

    def _claim(self, session, item_id: int, now: datetime) -> Optional[ClaimedItem]:
        result = session.execute(
            update(models.QueueItem)
            .where(
                models.QueueItem.id == item_id,
                models.QueueItem.status == PENDING,
                or_(models.QueueItem.next_attempt_at.is_(None), models.QueueItem.next_attempt_at <= now),
            )
            .values(
                status=PROCESSING,
                claimed_at=now,
                next_attempt_at=None,
                attempt_count=models.QueueItem.attempt_count + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        item = session.get(models.QueueItem, item_id, populate_existing=True)
        logger.debug("Claimed queue item %s (%s) attempt %d", item.id, item.url, item.attempt_count)
        return ClaimedItem(item.id, item.source, item.url, item.vin, item.attempt_count)

    def claim_next(self, sources: Optional[Sequence[str]] = None) -> Optional[ClaimedItem]:
        now = self.clock()
        with self.database.session_scope() as session:
            while True:
                stmt = select(models.QueueItem.id).where(
                    models.QueueItem.status == PENDING,
                    or_(models.QueueItem.next_attempt_at.is_(None), models.QueueItem.next_attempt_at <= now),
                )
                if sources:
                    stmt = stmt.where(models.QueueItem.source.in_(list(sources)))
                candidates = session.execute(
                    stmt.order_by(models.QueueItem.discovered_at, models.QueueItem.id).limit(CLAIM_CANDIDATES)
                ).scalars().all()
                if not candidates:
                    return None
                for item_id in candidates:
                    claimed = self._claim(session, item_id, now)
                    if claimed is not None:
                        return claimed

    def complete(self, item_id: int, outcome: Optional[str] = None) -> None:
        now = self.clock()
        with self.database.session_scope() as session:
            result = session.execute(
                update(models.QueueItem)
                .where(models.QueueItem.id == item_id, models.QueueItem.status == PROCESSING)
                .values(status=DONE, outcome=outcome, error_message=None, completed_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise QueueStateError(f"queue item {item_id} is not processing")
        logger.info("Queue item %s done: %s", item_id, outcome or "ok")

    def fail(self, item_id: int, reason: str, retryable: bool = False) -> str:
        """Record a failure; returns the item's new status.

        Retryable failures go back to pending with exponential backoff until
        ``max_attempts`` claims have been spent.
        """
        now = self.clock()
        with self.database.session_scope() as session:
            item = session.get(models.QueueItem, item_id)
            if item is None or item.status != PROCESSING:
                raise QueueStateError(f"queue item {item_id} is not processing")
            item.error_message = reason
            if retryable and item.attempt_count < self.max_attempts:
                delay = self.retry_backoff * (2 ** max(0, item.attempt_count - 1))
                item.status = PENDING
                item.claimed_at = None
                item.next_attempt_at = now + timedelta(seconds=delay)
                logger.warning(
                    "Queue item %s failed (attempt %d/%d), retrying in %.0fs: %s",
                    item_id, item.attempt_count, self.max_attempts, delay, reason,
                )
            else:
                item.status = ERROR
                item.completed_at = now
                logger.warning("Queue item %s failed permanently: %s", item_id, reason)
            return item.status

    def sweep_stale(self, now: Optional[datetime] = None) -> int:
        """Return processing items whose claim is older than the threshold to pending."""
        now = now or self.clock()
        cutoff = now - timedelta(seconds=self.stale_after)
        with self.database.session_scope() as session:
            result = session.execute(
                update(models.QueueItem)
                .where(models.QueueItem.status == PROCESSING, models.QueueItem.claimed_at < cutoff)
                .values(status=PENDING, claimed_at=None)
                .execution_options(synchronize_session=False)
            )
            swept = result.rowcount
        if swept:
            logger.info("Swept %d stale processing items back to pending", swept)
        return swept

    def reset_errors(self, source: Optional[str] = None) -> int:
        stmt = update(models.QueueItem).where(models.QueueItem.status == ERROR)
        if source:
            stmt = stmt.where(models.QueueItem.source == source)
        stmt = stmt.values(
            status=PENDING,
            attempt_count=0,
            error_message=None,
            next_attempt_at=None,
            claimed_at=None,
            completed_at=None,
        ).execution_options(synchronize_session=False)
        with self.database.session_scope() as session:
            reset = session.execute(stmt).rowcount
        logger.info("Reset %d errored items to pending", reset)
        return reset

    def counts(self) -> Dict[str, int]:
        with self.database.session_scope() as session:
            rows = session.execute(
                select(models.QueueItem.status, func.count()).group_by(models.QueueItem.status)
            ).all()
        histogram = {status: 0 for status in STATUSES}
        histogram.update({status: count for status, count in rows})
        return histogram

    def get(self, item_id: int) -> Optional[models.QueueItem]:
        with self.database.session_scope() as session:
            return session.get(models.QueueItem, item_id)

    def items(self, status: Optional[str] = None) -> List[models.QueueItem]:
        stmt = select(models.QueueItem).order_by(models.QueueItem.id)
        if status:
            stmt = stmt.where(models.QueueItem.status == status)
        with self.database.session_scope() as session:
            return list(session.execute(stmt).scalars())
