from __future__ import annotations

from datetime import date
from typing import Generator, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from listing_pipeline.app.services.listing_query import (
    SORT_OPTIONS,
    ListingFilters,
    search_listings,
    serialize_listing,
    summarize_listings,
)

MAX_PAGE_SIZE = 200
DEFAULT_PAGE_SIZE = 50

router = APIRouter()


def get_session(request: Request) -> Generator[Session, None, None]:
    yield from request.app.state.database.get_session()


def listing_filters(
    model: Optional[str] = None,
    trim: Optional[str] = None,
    generation: Optional[str] = None,
    source: Optional[str] = None,
    sale_status: Optional[str] = None,
    min_price: Optional[int] = None,
    max_price: Optional[int] = None,
    sold_from: Optional[date] = None,
    sold_to: Optional[date] = None,
    needs_review: Optional[bool] = None,
) -> ListingFilters:
    if min_price is not None and max_price is not None and min_price > max_price:
        raise HTTPException(status_code=400, detail="min_price must be <= max_price")
    return ListingFilters(
        model=model,
        trim=trim,
        generation=generation,
        source=source,
        sale_status=sale_status,
        min_price=min_price,
        max_price=max_price,
        sold_from=sold_from,
        sold_to=sold_to,
        needs_review=needs_review,
    )


@router.get("")
async def list_listings(
    page: int = 1,
    size: int = DEFAULT_PAGE_SIZE,
    sort: str = "sale_date_desc",
    filters: ListingFilters = Depends(listing_filters),
    db: Session = Depends(get_session),
):
    if page < 1 or size < 1:
        raise HTTPException(status_code=400, detail="page and size must be >= 1")
    if sort not in SORT_OPTIONS:
        raise HTTPException(status_code=400, detail=f"Unsupported sort option '{sort}'")
    size = min(size, MAX_PAGE_SIZE)

    rows = search_listings(db, filters, limit=size, offset=(page - 1) * size, sort=sort)
    summary = summarize_listings(db, filters)
    return {
        "page": page,
        "size": size,
        "total": summary.count,
        "rows": [serialize_listing(row) for row in rows],
        "applied_filters": {**filters.as_dict(), "sort": sort},
    }


@router.get("/summary")
async def listings_summary(
    filters: ListingFilters = Depends(listing_filters),
    db: Session = Depends(get_session),
):
    summary = summarize_listings(db, filters)
    return {
        "count": summary.count,
        "average_price": summary.average_price,
        "applied_filters": filters.as_dict(),
    }
