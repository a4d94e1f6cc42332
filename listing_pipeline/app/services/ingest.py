from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from listing_pipeline.app.db import models
from listing_pipeline.app.identity.resolver import ResolvedListing

logger = logging.getLogger(__name__)

INSERTED = "inserted"
UPDATED = "updated"
BACKFILLED = "backfilled"
UNCHANGED = "unchanged"

# The only columns a finalized sale may still receive, and only while null.
BACKFILL_FIELDS = ("vin", "mileage", "exterior_color", "interior_color")

MUTABLE_FIELDS = (
    "title",
    "vin",
    "model",
    "trim",
    "generation",
    "model_year",
    "price",
    "mileage",
    "exterior_color",
    "interior_color",
    "paint_to_sample",
    "transmission",
    "sale_status",
    "sale_date",
    "needs_review",
)


def _ensure_utc(dt: Optional[datetime]) -> datetime:
    if dt is None:
        return datetime.now(timezone.utc)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _warning_rows(resolved: ResolvedListing, observed_at: datetime):
    return [
        models.ResolutionWarning(field=warning.field, kind=warning.kind, message=warning.message, created_at=observed_at)
        for warning in resolved.warnings
    ]


def upsert_listing(
    session: Session,
    resolved: ResolvedListing,
    observed_at: Optional[datetime] = None,
    *,
    raw_blob_key: Optional[str] = None,
) -> str:
    """Write one resolved listing keyed by (source, source_url).

    Sold listings with a sale date are frozen: a later observation can only
    fill in ``BACKFILL_FIELDS`` that are still null. Active listings take the
    new values and record a :class:`PriceEvent` when the price moves.

    Returns:
        One of ``inserted``, ``updated``, ``backfilled`` or ``unchanged``.
    """
    observed_at = _ensure_utc(observed_at)
    listing = session.execute(
        select(models.Listing).where(
            models.Listing.source == resolved.source,
            models.Listing.source_url == resolved.source_url,
        )
    ).scalar_one_or_none()

    if listing is None:
        listing = models.Listing(
            source=resolved.source,
            source_url=resolved.source_url,
            raw_blob_key=raw_blob_key,
            discovered_at=observed_at,
            updated_at=observed_at,
            **{name: getattr(resolved, name) for name in MUTABLE_FIELDS},
        )
        listing.warnings = _warning_rows(resolved, observed_at)
        session.add(listing)
        session.flush()
        logger.debug("Inserted listing %s for %s", listing.id, resolved.source_url)
        return INSERTED

    if listing.sale_status == "sold" and listing.sale_date is not None:
        filled = []
        for name in BACKFILL_FIELDS:
            value = getattr(resolved, name)
            if getattr(listing, name) is None and value is not None:
                setattr(listing, name, value)
                filled.append(name)
        if not filled:
            return UNCHANGED
        listing.updated_at = observed_at
        session.flush()
        logger.info("Backfilled %s on sold listing %s", ", ".join(filled), listing.id)
        return BACKFILLED

    changed = [name for name in MUTABLE_FIELDS if getattr(listing, name) != getattr(resolved, name)]
    if not changed:
        return UNCHANGED

    if "price" in changed and listing.price is not None:
        session.add(
            models.PriceEvent(
                listing_id=listing.id,
                observed_at=observed_at,
                old_price=listing.price,
                new_price=resolved.price,
                delta=resolved.price - listing.price,
            )
        )
    for name in changed:
        setattr(listing, name, getattr(resolved, name))
    listing.warnings = _warning_rows(resolved, observed_at)
    if raw_blob_key:
        listing.raw_blob_key = raw_blob_key
    listing.updated_at = observed_at
    session.flush()
    logger.debug("Updated listing %s fields: %s", listing.id, ", ".join(changed))
    return UPDATED
