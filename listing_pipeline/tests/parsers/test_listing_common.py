import re
from datetime import date

import pytest

from listing_pipeline.app.parsers._listing_common import (
    ExtractorConfig,
    extract_with_config,
    parse_mileage,
    parse_price,
    parse_sale_date,
    parse_transmission,
    parse_vin,
)

CONFIG = ExtractorConfig(
    base_url="https://auctions.test",
    listing_url_pattern=re.compile(r"https://auctions\.test/lot/\d+"),
    sold_patterns=(re.compile(r"\bSold\b"),),
    active_patterns=(re.compile(r"\bBid now\b", re.IGNORECASE),),
    sold_price_patterns=(re.compile(r"Sold for \$([0-9,]+)"),),
    sale_date_patterns=(re.compile(r"Sold for \$[0-9,]+ on (\S+)"),),
    min_price=1000,
)


def test_price_sanity_bounds():
    assert parse_price("$95,000") == (95000, None)
    assert parse_price("USD 61,000") == (61000, None)
    assert parse_price("$0")[0] is None
    assert "positive" in parse_price("$0")[1]
    assert "negative" in parse_price("-$5,000")[1]
    assert parse_price("$500", min_price=1000) == (None, "price 500 below plausible minimum 1000")
    assert parse_price("call for price") == (None, None)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("27k Miles", 27000),
        ("12,345 mi.", 12345),
        ("8,950", 8950),
        ("1.5k miles", 1500),
    ],
)
def test_mileage_values(text, expected):
    assert parse_mileage(text) == (expected, None)


def test_mileage_rejections():
    assert "implausible" in parse_mileage("1,200,000 miles")[1]
    assert "negative" in parse_mileage("-5 miles")[1]
    assert parse_mileage("TMU")[0] is None
    assert parse_mileage("TMU")[1] == "mileage marked unknown"


def test_vin_shape_is_checked():
    assert parse_vin(" wp0ac29978s792345 ") == ("WP0AC29978S792345", None)
    value, reason = parse_vin("WP0AC2A99XS00000")
    assert value is None
    assert "invalid VIN" in reason
    assert parse_vin("WP0AC2I99XS000000")[0] is None


def test_sale_date_formats_and_floor():
    assert parse_sale_date("on 3/14/24") == (date(2024, 3, 14), None)
    assert parse_sale_date("03/14/2024") == (date(2024, 3, 14), None)
    assert parse_sale_date("Ended March 3, 2024") == (date(2024, 3, 3), None)
    assert parse_sale_date("2023-11-05") == (date(2023, 11, 5), None)
    assert parse_sale_date("12/31/1999")[0] is None
    assert "before 2000-01-01" in parse_sale_date("12/31/1999")[1]
    assert "unparseable" in parse_sale_date("02/30/2024")[1]


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Six-Speed Manual Transaxle", "Manual"),
        ("7-Speed PDK", "PDK"),
        ("Automatic (7-Speed PDK)", "PDK"),
        ("Tiptronic S", "Automatic"),
        ("6-speed", "Manual"),
    ],
)
def test_transmission_normalization(text, expected):
    assert parse_transmission(text) == (expected, None)


def test_structured_value_wins_over_pattern():
    content = """
    <h1>2015 Porsche 911 GT3</h1>
    <p>Price: $150,000</p>
    <p>Was advertised at $165,000 last year with 9,000 miles.</p>
    """
    fields = extract_with_config(content, CONFIG)

    assert fields.get("price") == 150000
    assert fields.confidence("price") == "structured"
    assert fields.get("mileage") == 9000
    assert fields.confidence("mileage") == "pattern"


def test_rejected_structured_value_falls_back_to_pattern():
    content = """
    <h1>2010 Porsche 911 GT3</h1>
    <dl><dt>Mileage</dt><dd>-10</dd></dl>
    <p>The odometer shows 12,345 miles. Bid now!</p>
    <p>Price: $120,000</p>
    """
    fields = extract_with_config(content, CONFIG)

    assert fields.get("mileage") == 12345
    assert fields.confidence("mileage") == "pattern"
    assert fields.get("sale_status") == "active"


def test_rejected_value_without_fallback_is_not_found():
    content = "<h1>2010 Porsche 911</h1><p>Price: $10</p><p>Bid now</p>"
    fields = extract_with_config(content, CONFIG)

    assert fields.get("price") is None
    assert fields.confidence("price") == "not_found"
    assert "below plausible minimum" in fields.rejected["price"]


def test_sold_marker_and_date_pattern():
    content = "<h1>2010 Porsche 911 GT3</h1><p>Sold for $110,000 on 4/2/23</p>"
    fields = extract_with_config(content, CONFIG)

    assert fields.get("sale_status") == "sold"
    assert fields.get("price") == 110000
    assert fields.get("sale_date") == date(2023, 4, 2)
    assert fields.is_valid


def test_active_marker_wins_without_explicit_sold_price():
    content = "<h1>2010 Porsche 911 GT3</h1><p>Sold examples nearby. Bid now</p><p>Price: $99,000</p>"
    fields = extract_with_config(content, CONFIG)

    assert fields.get("sale_status") == "active"


def test_empty_content_never_raises():
    fields = extract_with_config("", CONFIG)

    assert fields.values == {}
    assert fields.errors == ["empty page content"]
