"""Cars & Bids auction page extractor."""

from __future__ import annotations

import re

from ._listing_common import ExtractorConfig, FieldExtractor

SOLD_PRICE_PATTERNS = (
    re.compile(r"Sold\s+(?:after\s+\d+\s+bids?\s+)?for\s+\$\s*([0-9][0-9,]*)", re.IGNORECASE),
)
SOLD_PATTERNS = (
    re.compile(r"\bSold\s+(?:after|for)\b", re.IGNORECASE),
)
ACTIVE_PATTERNS = (
    re.compile(r"\bTime\s+Left\b", re.IGNORECASE),
    re.compile(r"\bHigh\s+Bid\b", re.IGNORECASE),
    re.compile(r"\bPlace\s+Bid\b", re.IGNORECASE),
)
SALE_DATE_PATTERNS = (
    re.compile(r"\bEnded\s+([A-Z][a-z]{2,8}\.? \d{1,2},? \d{4})"),
)

CONFIG = ExtractorConfig(
    base_url="https://carsandbids.com",
    listing_url_pattern=re.compile(r"https://carsandbids\.com/auctions/[A-Za-z0-9]+/[\w-]+"),
    sold_patterns=SOLD_PATTERNS,
    active_patterns=ACTIVE_PATTERNS,
    sold_price_patterns=SOLD_PRICE_PATTERNS,
    sale_date_patterns=SALE_DATE_PATTERNS,
    label_overrides={"price": ("high bid", "bid")},
    min_price=1000,
)


class CarsAndBidsExtractor(FieldExtractor):
    """Quick-facts ``dl`` on the auction page covers the structured fields."""

    source = "cars_and_bids"
    config = CONFIG
