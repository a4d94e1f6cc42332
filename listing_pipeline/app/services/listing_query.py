from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from listing_pipeline.app.db import models

SORT_OPTIONS = {
    "sale_date_desc": lambda: (models.Listing.sale_date.desc().nulls_last(), models.Listing.id.desc()),
    "price_asc": lambda: (models.Listing.price.asc(), models.Listing.id),
    "price_desc": lambda: (models.Listing.price.desc(), models.Listing.id),
    "updated_desc": lambda: (models.Listing.updated_at.desc().nulls_last(), models.Listing.id.desc()),
}


@dataclass
class ListingFilters:
    model: Optional[str] = None
    trim: Optional[str] = None
    generation: Optional[str] = None
    source: Optional[str] = None
    sale_status: Optional[str] = None
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    sold_from: Optional[date] = None
    sold_to: Optional[date] = None
    needs_review: Optional[bool] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            key: value.isoformat() if isinstance(value, date) else value
            for key, value in self.__dict__.items()
        }


@dataclass(frozen=True)
class ListingSummary:
    count: int
    average_price: Optional[float]


def apply_filters(stmt: Select, filters: ListingFilters) -> Select:
    if filters.model:
        stmt = stmt.where(models.Listing.model == filters.model)
    if filters.trim:
        stmt = stmt.where(models.Listing.trim == filters.trim)
    if filters.generation:
        # "997" matches "997.1" and "997.2".
        if "." in filters.generation:
            stmt = stmt.where(models.Listing.generation == filters.generation)
        else:
            stmt = stmt.where(
                (models.Listing.generation == filters.generation)
                | models.Listing.generation.like(f"{filters.generation}.%")
            )
    if filters.source:
        stmt = stmt.where(models.Listing.source == filters.source)
    if filters.sale_status and filters.sale_status != "all":
        stmt = stmt.where(models.Listing.sale_status == filters.sale_status)
    if filters.min_price is not None:
        stmt = stmt.where(models.Listing.price >= filters.min_price)
    if filters.max_price is not None:
        stmt = stmt.where(models.Listing.price <= filters.max_price)
    if filters.sold_from is not None:
        stmt = stmt.where(models.Listing.sale_date >= filters.sold_from)
    if filters.sold_to is not None:
        stmt = stmt.where(models.Listing.sale_date <= filters.sold_to)
    if filters.needs_review is not None:
        stmt = stmt.where(models.Listing.needs_review.is_(filters.needs_review))
    return stmt


def search_listings(
    session: Session,
    filters: ListingFilters,
    *,
    limit: int = 50,
    offset: int = 0,
    sort: str = "sale_date_desc",
) -> List[models.Listing]:
    sort_fn = SORT_OPTIONS.get(sort)
    if sort_fn is None:
        raise ValueError(f"Unsupported sort option '{sort}'")
    stmt = apply_filters(select(models.Listing), filters).order_by(*sort_fn()).offset(offset).limit(limit)
    return list(session.execute(stmt).scalars())


def summarize_listings(session: Session, filters: ListingFilters) -> ListingSummary:
    stmt = apply_filters(select(func.count(models.Listing.id), func.avg(models.Listing.price)), filters)
    count, average = session.execute(stmt).one()
    return ListingSummary(count=count, average_price=round(float(average), 2) if average is not None else None)


def serialize_listing(listing: models.Listing) -> Dict[str, Any]:
    return {
        "id": listing.id,
        "source": listing.source,
        "source_url": listing.source_url,
        "title": listing.title,
        "vin": listing.vin,
        "model": listing.model,
        "trim": listing.trim,
        "generation": listing.generation,
        "model_year": listing.model_year,
        "price": listing.price,
        "mileage": listing.mileage,
        "exterior_color": listing.exterior_color,
        "interior_color": listing.interior_color,
        "paint_to_sample": listing.paint_to_sample,
        "transmission": listing.transmission,
        "sale_status": listing.sale_status,
        "sale_date": listing.sale_date.isoformat() if listing.sale_date else None,
        "needs_review": listing.needs_review,
    }
