from datetime import date, datetime, timedelta, timezone

import pytest

from listing_pipeline.app.db import models
from listing_pipeline.app.db.session import Database


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'listings.db'}")
    db.create_schema()
    yield db
    db.dispose()


@pytest.fixture
def clock():
    return FakeClock()


SEED_LISTINGS = [
    ("bring_a_trailer", "911", "GT3", "997.1", 2008, 142_000, "sold", date(2024, 3, 14), False),
    ("cars_and_bids", "911", "GT3 RS", "991.2", 2019, 298_500, "sold", date(2024, 3, 3), False),
    ("bring_a_trailer", "911", "Carrera S", "991.1", 2013, 61_000, "active", None, True),
    ("classic_com", "718 Cayman", "GT4", "981", 2016, 118_000, "sold", date(2024, 2, 20), False),
    ("bring_a_trailer", "911", "GT3", "997.2", 2010, 130_000, "sold", date(2023, 11, 1), False),
]


@pytest.fixture
def seeded_database(database):
    with database.session_scope() as session:
        for n, (source, model, trim, generation, year, price, status, sold_on, review) in enumerate(SEED_LISTINGS):
            session.add(
                models.Listing(
                    source=source,
                    source_url=f"https://{source}.test/listing/{n}",
                    title=f"{year} Porsche {model} {trim}",
                    model=model,
                    trim=trim,
                    generation=generation,
                    model_year=year,
                    price=price,
                    sale_status=status,
                    sale_date=sold_on,
                    needs_review=review,
                )
            )
    return database
