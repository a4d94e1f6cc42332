from dataclasses import replace
from datetime import date, datetime, timezone

from sqlalchemy import select

from listing_pipeline.app.db import models
from listing_pipeline.app.identity.resolver import REJECTED, IdentityWarning, ResolvedListing
from listing_pipeline.app.services.ingest import BACKFILLED, INSERTED, UNCHANGED, UPDATED, upsert_listing

OBSERVED = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _resolved(**overrides):
    base = ResolvedListing(
        source="bring_a_trailer",
        source_url="https://bringatrailer.com/listing/2013-porsche-911-carrera-s-41/",
        title="2013 Porsche 911 Carrera S",
        model="911",
        model_year=2013,
        price=61_000,
        vin="WP0AB2A91DS120456",
        trim="Carrera S",
        generation="991.1",
        mileage=41_000,
    )
    return replace(base, **overrides)


def _upsert(database, resolved, observed_at=OBSERVED, **kwargs):
    with database.session_scope() as session:
        return upsert_listing(session, resolved, observed_at, **kwargs)


def _listing(database):
    with database.session_scope() as session:
        listing = session.execute(select(models.Listing)).scalar_one()
        warnings = [(w.field, w.kind) for w in listing.warnings]
        events = session.execute(select(models.PriceEvent)).scalars().all()
        return listing, warnings, events


def test_insert_then_price_change_records_event(database):
    assert _upsert(database, _resolved(), raw_blob_key="bring_a_trailer/abc.html") == INSERTED
    assert _upsert(database, _resolved(price=58_500)) == UPDATED

    listing, _, events = _listing(database)
    assert listing.price == 58_500
    assert listing.raw_blob_key == "bring_a_trailer/abc.html"
    assert len(events) == 1
    assert (events[0].old_price, events[0].new_price, events[0].delta) == (61_000, 58_500, -2_500)


def test_identical_observation_is_unchanged(database):
    _upsert(database, _resolved())

    assert _upsert(database, _resolved()) == UNCHANGED
    assert _listing(database)[2] == []


def test_warnings_are_replaced_on_update(database):
    _upsert(database, _resolved(warnings=[IdentityWarning("vin", REJECTED, "bad check")], needs_review=True))
    assert _listing(database)[1] == [("vin", REJECTED)]

    _upsert(database, _resolved())

    listing, warnings, _ = _listing(database)
    assert warnings == []
    assert listing.needs_review is False


def test_sold_listing_only_backfills_missing_fields(database):
    sold = _resolved(sale_status="sold", sale_date=date(2024, 3, 14), price=142_000, mileage=None, vin=None)
    assert _upsert(database, sold) == INSERTED

    later = replace(sold, price=150_000, mileage=27_000, vin="WP0AB2A91DS120456", trim="Carrera GTS")
    assert _upsert(database, later) == BACKFILLED

    listing, _, events = _listing(database)
    assert listing.price == 142_000
    assert listing.trim == "Carrera S"
    assert listing.mileage == 27_000
    assert listing.vin == "WP0AB2A91DS120456"
    assert events == []

    assert _upsert(database, replace(later, mileage=30_000)) == UNCHANGED
    assert _listing(database)[0].mileage == 27_000


def test_active_listing_can_become_sold(database):
    _upsert(database, _resolved())

    result = _upsert(database, _resolved(sale_status="sold", sale_date=date(2024, 3, 20), price=64_000))

    listing, _, events = _listing(database)
    assert result == UPDATED
    assert listing.sale_status == "sold"
    assert listing.sale_date == date(2024, 3, 20)
    assert len(events) == 1
