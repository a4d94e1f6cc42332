"""Cars.com dealer listing extractor."""

from __future__ import annotations

import re
from typing import Iterable, List

from bs4 import BeautifulSoup

from ._listing_common import ExtractorConfig, FieldExtractor, Pair

SOLD_PATTERNS = (
    re.compile(r"\bThis\s+vehicle\s+(?:has\s+been|is)\s+sold\b", re.IGNORECASE),
    re.compile(r"\bNo\s+longer\s+available\b", re.IGNORECASE),
)
ACTIVE_PATTERNS = (
    re.compile(r"\bCheck\s+availability\b", re.IGNORECASE),
    re.compile(r"\bContact\s+seller\b", re.IGNORECASE),
)
SALE_DATE_PATTERNS = (
    re.compile(r"\bSold\s+on\s+(\d{1,2}/\d{1,2}/\d{2,4}|[A-Z][a-z]{2,8}\.? \d{1,2},? \d{4})", re.IGNORECASE),
)

CONFIG = ExtractorConfig(
    base_url="https://www.cars.com",
    listing_url_pattern=re.compile(r"https://www\.cars\.com/vehicledetail/[\w-]+/?"),
    sold_patterns=SOLD_PATTERNS,
    active_patterns=ACTIVE_PATTERNS,
    sale_date_patterns=SALE_DATE_PATTERNS,
    min_price=1000,
)


class CarsComExtractor(FieldExtractor):
    """Dealer listings; the headline price sits outside the basics list."""

    source = "cars_com"
    config = CONFIG

    def source_pairs(self, soup: BeautifulSoup) -> Iterable[Pair]:
        pairs: List[Pair] = []
        primary = soup.find(class_="primary-price")
        if primary is not None:
            pairs.append(("price", primary.get_text(" ")))
        return pairs
