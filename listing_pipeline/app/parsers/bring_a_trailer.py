"""Bring a Trailer auction page extractor."""

from __future__ import annotations

import re
from typing import Iterable, List

from bs4 import BeautifulSoup

from ._listing_common import ExtractorConfig, FieldExtractor, Pair

SOLD_PRICE_PATTERNS = (
    re.compile(r"Sold\s+for\s+(?:USD\s*)?\$\s*([0-9][0-9,]*)", re.IGNORECASE),
)
SOLD_PATTERNS = (
    re.compile(r"\bSold\s+for\b", re.IGNORECASE),
    re.compile(r"\bThis\s+auction\s+has\s+ended\b", re.IGNORECASE),
)
ACTIVE_PATTERNS = (
    re.compile(r"\bCurrent\s+Bid\b", re.IGNORECASE),
    re.compile(r"\bTime\s+Left\b", re.IGNORECASE),
    re.compile(r"\bPlace\s+Bid\b", re.IGNORECASE),
)
SALE_DATE_PATTERNS = (
    re.compile(r"Sold\s+for\s+(?:USD\s*)?\$\s*[0-9,]+\s+on\s+(\d{1,2}/\d{1,2}/\d{2,4})", re.IGNORECASE),
    re.compile(r"\bon\s+(\d{1,2}/\d{1,2}/\d{2,4})"),
)

CONFIG = ExtractorConfig(
    base_url="https://bringatrailer.com",
    listing_url_pattern=re.compile(r"https://bringatrailer\.com/listing/[\w-]+/?"),
    sold_patterns=SOLD_PATTERNS,
    active_patterns=ACTIVE_PATTERNS,
    sold_price_patterns=SOLD_PRICE_PATTERNS,
    sale_date_patterns=SALE_DATE_PATTERNS,
    label_overrides={"price": ("current bid",)},
    min_price=1000,
)

MILES_ITEM_RE = re.compile(r"^[\d,.]+k?\s*(?:Indicated\s+)?Miles\b", re.IGNORECASE)
PAINT_ITEM_RE = re.compile(r"^(.+?)\s+Paint$", re.IGNORECASE)
UPHOLSTERY_ITEM_RE = re.compile(r"^(.+?)\s+Upholstery$", re.IGNORECASE)
GEARBOX_ITEM_RE = re.compile(r"\b(Transaxle|Transmission|Gearbox|PDK)\b", re.IGNORECASE)


class BringATrailerExtractor(FieldExtractor):
    """The 'Listing Details' essentials list carries most attributes as bare
    phrases ('27k Miles', 'Guards Red Paint') rather than label/value pairs."""

    source = "bring_a_trailer"
    config = CONFIG

    def source_pairs(self, soup: BeautifulSoup) -> Iterable[Pair]:
        pairs: List[Pair] = []
        container = soup.find(class_="essentials")
        if container is None:
            return pairs
        for item in container.find_all("li"):
            text = " ".join(item.get_text(" ").split())
            if not text:
                continue
            if ":" in text:
                label, value = text.split(":", 1)
                pairs.append((label, value))
            elif MILES_ITEM_RE.match(text):
                pairs.append(("mileage", text))
            elif PAINT_ITEM_RE.match(text):
                pairs.append(("exterior color", PAINT_ITEM_RE.match(text).group(1)))
            elif UPHOLSTERY_ITEM_RE.match(text):
                pairs.append(("interior color", UPHOLSTERY_ITEM_RE.match(text).group(1)))
            elif GEARBOX_ITEM_RE.search(text):
                pairs.append(("transmission", text))
        return pairs
