"""Classic.com vehicle page extractor."""

from __future__ import annotations

import re

from ._listing_common import ExtractorConfig, FieldExtractor

SOLD_PRICE_PATTERNS = (
    re.compile(r"\bSold\s+for\s+\$\s*([0-9][0-9,]*)", re.IGNORECASE),
)
SOLD_PATTERNS = (
    re.compile(r"\bSold\b"),
)
ACTIVE_PATTERNS = (
    re.compile(r"\bFor\s+Sale\b", re.IGNORECASE),
    re.compile(r"\bAsking\b", re.IGNORECASE),
)
SALE_DATE_PATTERNS = (
    re.compile(r"\bSale\s+Date\s*:?\s*(\d{1,2}/\d{1,2}/\d{2,4}|[A-Z][a-z]{2,8}\.? \d{1,2},? \d{4})"),
    re.compile(r"\bSold\s+on\s+(\d{1,2}/\d{1,2}/\d{2,4}|[A-Z][a-z]{2,8}\.? \d{1,2},? \d{4})"),
)

CONFIG = ExtractorConfig(
    base_url="https://www.classic.com",
    listing_url_pattern=re.compile(r"https://www\.classic\.com/veh/[\w-]+/?"),
    sold_patterns=SOLD_PATTERNS,
    active_patterns=ACTIVE_PATTERNS,
    sold_price_patterns=SOLD_PRICE_PATTERNS,
    sale_date_patterns=SALE_DATE_PATTERNS,
    label_overrides={"price": ("asking",)},
    min_price=1000,
)


class ClassicComExtractor(FieldExtractor):
    """Classic.com publishes year/model/trim/generation in its vehicle specs table."""

    source = "classic_com"
    config = CONFIG
