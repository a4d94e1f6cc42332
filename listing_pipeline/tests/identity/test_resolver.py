import logging
from datetime import date

import pytest

from listing_pipeline.app.identity.resolver import (
    CONFLICT,
    MISSING,
    REJECTED,
    UNRESOLVED,
    IdentityResolutionError,
    resolve_identity,
)
from listing_pipeline.app.parsers._listing_common import SOLD, STRUCTURED, DraftListing, ExtractedFields


def _draft(rejected=None, errors=None, **values):
    fields = ExtractedFields()
    for name, value in values.items():
        fields.set(name, value, STRUCTURED)
    fields.rejected.update(rejected or {})
    fields.errors.extend(errors or [])
    return DraftListing(source="bring_a_trailer", url="https://bringatrailer.com/listing/test/", fields=fields)


def _kinds(resolved, field):
    return [warning.kind for warning in resolved.warnings if warning.field == field]


def test_invalid_vin_falls_back_to_title():
    resolved = resolve_identity(
        _draft(title="2008 Porsche 997 GT3", vin="WP0AC2A99XS000000", price=95_000)
    )

    assert resolved.vin is None
    assert resolved.model == "911"
    assert resolved.trim == "GT3"
    assert resolved.model_year == 2008
    assert resolved.generation == "997.1"
    assert not resolved.needs_review
    assert _kinds(resolved, "vin") == [REJECTED]


def test_valid_vin_wins_and_title_refinement_is_silent():
    resolved = resolve_identity(
        _draft(title="2018 Porsche 911 GT3 Touring", vin="WP0AC2A94JS183456", price=165_000)
    )

    assert resolved.vin == "WP0AC2A94JS183456"
    assert resolved.model_year == 2018
    assert resolved.trim == "GT3 Touring"
    assert resolved.generation == "991.2"
    assert resolved.warnings == []


def test_missing_vin_is_recorded():
    resolved = resolve_identity(_draft(title="2016 Porsche Cayman GT4", price=110_000))

    assert resolved.vin is None
    assert resolved.model == "718 Cayman"
    assert resolved.generation == "981"
    assert _kinds(resolved, "vin") == [MISSING]


def test_structured_model_is_refined_by_title():
    resolved = resolve_identity(_draft(title="2016 Porsche Cayman GT4", model="718", price=110_000))

    assert resolved.model == "718 Cayman"
    assert _kinds(resolved, "model") == []


def test_lower_priority_trim_conflict_is_kept_as_warning():
    resolved = resolve_identity(
        _draft(
            title="2008 Porsche 911 GT3",
            vin="WP0AC29978S792345",
            trim="Carrera S",
            price=142_000,
        )
    )

    assert resolved.trim == "GT3"
    assert resolved.generation == "997.1"
    assert _kinds(resolved, "trim") == [CONFLICT]
    assert "Carrera S" in resolved.warnings[0].message


def test_race_variant_on_road_vin_needs_review():
    resolved = resolve_identity(
        _draft(title="2014 Porsche 911 GT3 Cup", vin="WP0AC2A94ES183456", price=180_000)
    )

    assert resolved.trim == "GT3"
    assert resolved.generation == "991.1"
    assert resolved.needs_review
    assert _kinds(resolved, "trim") == [UNRESOLVED]


def test_bare_718_with_disagreeing_lines_is_unresolved():
    resolved = resolve_identity(_draft(title="2013 Porsche 718", price=45_000))

    assert resolved.model == "718"
    assert resolved.generation == ""
    assert resolved.needs_review
    assert _kinds(resolved, "generation") == [UNRESOLVED]
    assert "987.2" in resolved.warnings[-1].message


def test_special_edition_gap_is_unresolved():
    resolved = resolve_identity(_draft(title="2012 Porsche 911 GT3", price=120_000))

    assert resolved.generation == ""
    assert resolved.needs_review


def test_unsupported_title_model_raises():
    with pytest.raises(IdentityResolutionError) as exc:
        resolve_identity(_draft(title="2015 Porsche Cayenne GTS", price=40_000))

    assert exc.value.field == "model"
    assert "Cayenne" in exc.value.reason


def test_suv_vin_raises():
    with pytest.raises(IdentityResolutionError) as exc:
        resolve_identity(_draft(title="2015 Porsche Macan S", vin="WP1AB2A59FLA12345", price=30_000))

    assert exc.value.field == "model"


def test_no_model_signal_raises():
    with pytest.raises(IdentityResolutionError) as exc:
        resolve_identity(_draft(title="2015 Porsche", price=30_000))

    assert exc.value.field == "model"


def test_missing_price_carries_rejection_reason():
    with pytest.raises(IdentityResolutionError) as exc:
        resolve_identity(
            _draft(
                rejected={"price": "price 500 below minimum 1000"},
                title="2008 Porsche 911 GT3",
            )
        )

    assert exc.value.field == "price"
    assert exc.value.reason == "price 500 below minimum 1000"


def test_missing_year_raises():
    with pytest.raises(IdentityResolutionError) as exc:
        resolve_identity(_draft(title="Porsche 911 GT3", price=100_000))

    assert exc.value.field == "model_year"


def test_extraction_errors_raise():
    with pytest.raises(IdentityResolutionError) as exc:
        resolve_identity(
            _draft(
                errors=["sold listing has no parseable sale date"],
                title="2019 Porsche 911 GT3 RS",
                price=298_500,
            )
        )

    assert exc.value.field == "extraction"


def test_sale_date_only_kept_for_sold_listings():
    sold = resolve_identity(
        _draft(title="2008 Porsche 911 GT3", price=142_000, sale_status=SOLD, sale_date=date(2024, 3, 14))
    )
    active = resolve_identity(
        _draft(title="2008 Porsche 911 GT3", price=142_000, sale_status="active", sale_date=date(2024, 3, 14))
    )

    assert sold.sale_date == date(2024, 3, 14)
    assert active.sale_date is None


def test_colors_are_normalized():
    resolved = resolve_identity(
        _draft(
            title="2013 Porsche 911 Carrera S",
            price=61_000,
            exterior_color="Agate Grey Metallic",
            interior_color="Black Leather",
        )
    )

    assert resolved.exterior_color == "Agate Gray"
    assert resolved.interior_color == "Black Leather"
    assert resolved.generation == "991.1"
    assert not resolved.paint_to_sample


def test_paint_to_sample_is_flagged_and_stripped():
    resolved = resolve_identity(
        _draft(title="2019 Porsche 911 GT3 RS", price=240_000, exterior_color="Paint-to-Sample Gulf Blue")
    )

    assert resolved.exterior_color == "Gulf Blue"
    assert resolved.paint_to_sample


def test_generation_outside_vin_platform_is_unresolved():
    # Carrera line built on 996/997; a 2014 reading of year code E lands on 991.1.
    resolved = resolve_identity(
        _draft(title="2014 Porsche 911 Carrera", vin="WP0AA2990ES123456", price=70_000)
    )

    assert resolved.vin == "WP0AA2990ES123456"
    assert resolved.model_year == 2014
    assert resolved.generation == ""
    assert resolved.needs_review
    assert _kinds(resolved, "generation") == [UNRESOLVED]
    message = [w.message for w in resolved.warnings if w.field == "generation"][0]
    assert "outside VIN platform 996/997" in message


def test_year_code_reread_is_a_conflict_warning():
    resolved = resolve_identity(
        _draft(title="2014 Porsche 911 Carrera", vin="WP0AA2990ES123456", price=70_000)
    )

    assert _kinds(resolved, "model_year") == [CONFLICT]
    message = [w.message for w in resolved.warnings if w.field == "model_year"][0]
    assert "read as 2014" in message


def test_rejected_vin_is_logged_at_warning(caplog):
    caplog.set_level(logging.WARNING)

    resolve_identity(_draft(title="2008 Porsche 997 GT3", vin="WP0AC2A99XS000000", price=95_000))

    messages = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert any(" vin: " in message for message in messages)


def test_missing_vin_is_logged_at_warning(caplog):
    caplog.set_level(logging.WARNING)

    resolve_identity(_draft(title="2016 Porsche Cayman GT4", price=110_000))

    messages = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert any(message.endswith("vin: no VIN on listing") for message in messages)
