"""Per-source extractor registry."""

from __future__ import annotations

from typing import Dict, Type

from ._listing_common import FieldExtractor
from .bring_a_trailer import BringATrailerExtractor
from .cars_and_bids import CarsAndBidsExtractor
from .cars_com import CarsComExtractor
from .classic_com import ClassicComExtractor

EXTRACTORS: Dict[str, Type[FieldExtractor]] = {
    extractor.source: extractor
    for extractor in (
        BringATrailerExtractor,
        CarsAndBidsExtractor,
        ClassicComExtractor,
        CarsComExtractor,
    )
}


def get_extractor(source: str) -> FieldExtractor:
    try:
        return EXTRACTORS[source]()
    except KeyError:
        raise ValueError(f"unknown source '{source}'; expected one of {sorted(EXTRACTORS)}") from None
