"""Common utilities for extracting listing attributes from marketplace pages."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urldefrag, urljoin

from bs4 import BeautifulSoup

VIN_RE = re.compile(r"\b[A-HJ-NPR-Z0-9]{17}\b", re.IGNORECASE)
PRICE_RE = re.compile(r"(?:USD\s*)?\$\s*([0-9][0-9,]*)(?:\.[0-9]{2})?", re.IGNORECASE)
BARE_NUMBER_RE = re.compile(r"^\s*(?:USD\s*)?([0-9][0-9,]*)(?:\.[0-9]{2})?\s*$", re.IGNORECASE)
MILEAGE_VALUE_RE = re.compile(r"(-\s*)?(\d{1,3}(?:,\d{3})+|\d+(?:\.\d+)?)\s*(k)?\b", re.IGNORECASE)
MILEAGE_TEXT_RE = re.compile(
    r"(?<![\d,$])(\d{1,3}(?:,\d{3})+|\d+(?:\.\d)?)\s*(k)?[\s-]*(?:miles?|mi\b)",
    re.IGNORECASE,
)
YEAR_VALUE_RE = re.compile(r"\b(19[5-9]\d|20[0-4]\d)\b")
DATE_TOKEN_RE = re.compile(
    r"(\d{1,2}/\d{1,2}/\d{4}|\d{1,2}/\d{1,2}/\d{2}|\d{4}-\d{2}-\d{2}|[A-Z][a-z]{2,8}\.? \d{1,2},? \d{4})"
)
LABEL_LINE_RE = re.compile(r"^([A-Za-z][A-Za-z .#/()-]{1,30}?)\s*:\s*(.+)$")
TRANSMISSION_TEXT_RE = re.compile(
    r"\b(PDK|Tiptronic|\w+-speed manual|manual transmission|manual gearbox|automatic transmission)\b",
    re.IGNORECASE,
)

DATE_FORMATS = (
    "%m/%d/%Y",
    "%m/%d/%y",
    "%Y-%m-%d",
    "%B %d, %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%b %d %Y",
    "%b. %d, %Y",
)
MIN_SALE_DATE = date(2000, 1, 1)
MAX_MILEAGE = 1_000_000

STRUCTURED = "structured"
PATTERN = "pattern"
NOT_FOUND = "not_found"

SOLD = "sold"
ACTIVE = "active"

DEFAULT_LABELS: Dict[str, Tuple[str, ...]] = {
    "price": ("price", "sale price", "asking price", "sold for", "sold price", "winning bid", "final price"),
    "mileage": ("mileage", "odometer", "miles"),
    "vin": ("vin", "chassis", "chassis no", "vin #"),
    "exterior_color": ("exterior color", "exterior", "exterior colour", "paint", "color"),
    "interior_color": ("interior color", "interior", "interior colour", "upholstery"),
    "transmission": ("transmission", "gearbox"),
    "sale_status": ("status", "auction status", "listing status"),
    "sale_date": ("sold on", "sale date", "date sold", "auction ended", "ended"),
    "year": ("year", "model year"),
    "model": ("model",),
    "trim": ("trim", "variant"),
    "generation": ("generation",),
}

Pair = Tuple[str, str]
Parsed = Tuple[Optional[Any], Optional[str]]


@dataclass(frozen=True)
class FieldValue:
    value: Any
    confidence: str


@dataclass
class ExtractedFields:
    """Partial attribute set for one listing page.

    Every field is either present with a confidence marker or absent. Values
    that failed sanity checks are absent and their reason is kept in
    ``rejected``. ``errors`` holds listing-level validation failures.
    """

    values: Dict[str, FieldValue] = field(default_factory=dict)
    rejected: Dict[str, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    def get(self, name: str, default: Any = None) -> Any:
        found = self.values.get(name)
        return found.value if found is not None else default

    def confidence(self, name: str) -> str:
        found = self.values.get(name)
        return found.confidence if found is not None else NOT_FOUND

    def set(self, name: str, value: Any, confidence: str) -> None:
        self.values[name] = FieldValue(value, confidence)
        self.rejected.pop(name, None)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class DiscoveredUrl:
    url: str
    vin: Optional[str] = None


@dataclass(frozen=True)
class ExtractorConfig:
    base_url: str
    listing_url_pattern: re.Pattern[str]
    sold_patterns: Sequence[re.Pattern[str]]
    active_patterns: Sequence[re.Pattern[str]] = ()
    sold_price_patterns: Sequence[re.Pattern[str]] = ()
    sale_date_patterns: Sequence[re.Pattern[str]] = ()
    label_overrides: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    min_price: int = 1

    def labels_for(self, name: str) -> Tuple[str, ...]:
        return tuple(self.label_overrides.get(name, ())) + DEFAULT_LABELS.get(name, ())


def _clean(text: Optional[str]) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def _normalize_label(label: str) -> str:
    return _clean(label).lower().strip(" :#")


def parse_price(text: str, *, min_price: int = 1) -> Parsed:
    match = PRICE_RE.search(text) or BARE_NUMBER_RE.match(text)
    if not match:
        return None, None
    if re.search(r"-\s*\$?\s*[0-9]", text[: match.end()]):
        return None, f"negative price '{_clean(text)}'"
    amount = int(match.group(1).replace(",", ""))
    if amount <= 0:
        return None, f"price must be positive, got {amount}"
    if amount < min_price:
        return None, f"price {amount} below plausible minimum {min_price}"
    return amount, None


def parse_mileage(text: str) -> Parsed:
    if re.search(r"\b(?:TMU|true mileage unknown|exempt)\b", text, re.IGNORECASE):
        return None, "mileage marked unknown"
    match = MILEAGE_VALUE_RE.search(text)
    if not match:
        return None, None
    if match.group(1):
        return None, f"negative mileage '{_clean(text)}'"
    miles = float(match.group(2).replace(",", ""))
    if match.group(3):
        miles *= 1000
    miles = int(round(miles))
    if miles >= MAX_MILEAGE:
        return None, f"implausible mileage {miles}"
    return miles, None


def parse_vin(text: str) -> Parsed:
    token = _clean(text).split(" ")[0].strip(".,;:()").upper() if _clean(text) else ""
    if not token:
        return None, None
    if not re.fullmatch(r"[A-HJ-NPR-Z0-9]{17}", token):
        return None, f"invalid VIN '{token}'"
    return token, None


def parse_transmission(text: str) -> Parsed:
    lowered = text.lower()
    if not lowered.strip():
        return None, None
    if "pdk" in lowered or "doppelkupplung" in lowered or "dual-clutch" in lowered:
        return "PDK", None
    if "tiptronic" in lowered or "automatic" in lowered or re.search(r"\bauto\b", lowered):
        return "Automatic", None
    if "manual" in lowered or "stick" in lowered or re.search(r"\b\w+-speed\b(?!.*auto)", lowered):
        return "Manual", None
    return None, f"unrecognised transmission '{_clean(text)}'"


def parse_sale_date(text: str) -> Parsed:
    match = DATE_TOKEN_RE.search(text)
    if not match:
        return None, None
    token = match.group(1)
    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(token, fmt).date()
        except ValueError:
            continue
        if parsed < MIN_SALE_DATE:
            return None, f"sale date {parsed.isoformat()} before {MIN_SALE_DATE.isoformat()}"
        return parsed, None
    return None, f"unparseable sale date '{token}'"


def parse_year(text: str) -> Parsed:
    match = YEAR_VALUE_RE.search(text)
    return (int(match.group(1)), None) if match else (None, None)


def parse_sale_status(text: str) -> Parsed:
    lowered = text.lower()
    if "not sold" in lowered or "reserve not met" in lowered:
        return ACTIVE, None
    if "sold" in lowered or "ended" in lowered:
        return SOLD, None
    if any(word in lowered for word in ("active", "live", "available", "for sale", "bidding")):
        return ACTIVE, None
    return None, None


def parse_text(text: str) -> Parsed:
    cleaned = _clean(text)
    if not cleaned:
        return None, None
    if len(cleaned) > 80:
        return None, f"value too long for a short field ({len(cleaned)} chars)"
    return cleaned, None


def structured_pairs(soup: BeautifulSoup, lines: Iterable[str]) -> List[Pair]:
    """Collect label/value pairs from definition lists, tables and 'Label: value' lines."""
    pairs: List[Pair] = []
    for dt in soup.find_all("dt"):
        dd = dt.find_next_sibling("dd")
        if dd is not None:
            pairs.append((dt.get_text(" "), dd.get_text(" ")))
    for th in soup.find_all("th"):
        td = th.find_next_sibling("td")
        if td is not None:
            pairs.append((th.get_text(" "), td.get_text(" ")))
    for line in lines:
        match = LABEL_LINE_RE.match(line)
        if match:
            pairs.append((match.group(1), match.group(2)))
    return pairs


def page_lines(soup: BeautifulSoup) -> List[str]:
    lines = []
    for raw in soup.get_text("\n").splitlines():
        line = _clean(raw)
        if line:
            lines.append(line)
    return lines


def page_title(soup: BeautifulSoup) -> Optional[str]:
    heading = soup.find("h1")
    if heading is not None and _clean(heading.get_text(" ")):
        return _clean(heading.get_text(" "))
    meta = soup.find("meta", attrs={"property": "og:title"})
    if meta is not None and _clean(meta.get("content")):
        return _clean(meta.get("content"))
    if soup.title is not None and _clean(soup.title.get_text()):
        return _clean(soup.title.get_text())
    return None


FIELD_PARSERS: Dict[str, Callable[[str], Parsed]] = {
    "mileage": parse_mileage,
    "vin": parse_vin,
    "exterior_color": parse_text,
    "interior_color": parse_text,
    "transmission": parse_transmission,
    "sale_status": parse_sale_status,
    "sale_date": parse_sale_date,
    "year": parse_year,
    "model": parse_text,
    "trim": parse_text,
    "generation": parse_text,
}


def _apply_structured(
    result: ExtractedFields,
    name: str,
    candidates: Sequence[str],
    parser: Callable[[str], Parsed],
) -> None:
    for candidate in candidates:
        value, reason = parser(candidate)
        if value is not None:
            result.set(name, value, STRUCTURED)
            return
        if reason:
            result.rejected[name] = reason


def _first_pattern(patterns: Sequence[re.Pattern[str]], text: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1) if match.groups() else match.group(0)
    return None


def _pattern_fallback(result: ExtractedFields, text: str, config: ExtractorConfig) -> None:
    if "price" not in result.values:
        token = _first_pattern(config.sold_price_patterns, text)
        if token is None:
            match = PRICE_RE.search(text)
            token = match.group(0) if match else None
        if token is not None:
            value, reason = parse_price(token if "$" in token else f"${token}", min_price=config.min_price)
            if value is not None:
                result.set("price", value, PATTERN)
            elif reason:
                result.rejected["price"] = reason

    if "mileage" not in result.values:
        for match in MILEAGE_TEXT_RE.finditer(text):
            value, reason = parse_mileage(match.group(0))
            if value is not None:
                result.set("mileage", value, PATTERN)
                break
            if reason:
                result.rejected["mileage"] = reason

    if "vin" not in result.values:
        for match in VIN_RE.finditer(text):
            value, reason = parse_vin(match.group(0))
            if value is not None:
                result.set("vin", value, PATTERN)
                break

    if "transmission" not in result.values:
        match = TRANSMISSION_TEXT_RE.search(text)
        if match:
            value, _ = parse_transmission(match.group(1))
            if value is not None:
                result.set("transmission", value, PATTERN)

    if "sale_status" not in result.values:
        if any(pattern.search(text) for pattern in config.sold_price_patterns):
            result.set("sale_status", SOLD, PATTERN)
        elif any(pattern.search(text) for pattern in config.active_patterns):
            result.set("sale_status", ACTIVE, PATTERN)
        elif any(pattern.search(text) for pattern in config.sold_patterns):
            result.set("sale_status", SOLD, PATTERN)

    if result.get("sale_status") == SOLD and "sale_date" not in result.values:
        token = _first_pattern(config.sale_date_patterns, text)
        if token is not None:
            value, reason = parse_sale_date(token)
            if value is not None:
                result.set("sale_date", value, PATTERN)
            elif reason:
                result.rejected["sale_date"] = reason


def extract_with_config(
    content: str,
    config: ExtractorConfig,
    *,
    extra_pairs: Callable[[BeautifulSoup], Iterable[Pair]] = lambda soup: (),
) -> ExtractedFields:
    """Run structured extraction, then per-field pattern fallback."""
    result = ExtractedFields()
    if not content or not content.strip():
        result.errors.append("empty page content")
        return result

    soup = BeautifulSoup(content, "html.parser")
    lines = page_lines(soup)
    text = "\n".join(lines)

    title = page_title(soup)
    if title:
        result.set("title", title, STRUCTURED)

    by_label: Dict[str, List[str]] = {}
    for label, value in list(extra_pairs(soup)) + structured_pairs(soup, lines):
        by_label.setdefault(_normalize_label(label), []).append(_clean(value))

    price_candidates = [
        value for label in config.labels_for("price") for value in by_label.get(label, [])
    ]
    _apply_structured(
        result,
        "price",
        price_candidates,
        lambda raw: parse_price(raw, min_price=config.min_price),
    )
    for name, parser in FIELD_PARSERS.items():
        candidates = [value for label in config.labels_for(name) for value in by_label.get(label, [])]
        _apply_structured(result, name, candidates, parser)

    _pattern_fallback(result, text, config)

    if result.get("sale_status") == SOLD and "sale_date" not in result.values:
        result.errors.append("sold listing has no parseable sale date")
    return result


def discover_with_config(
    content: str, config: ExtractorConfig, base_url: Optional[str] = None
) -> List[DiscoveredUrl]:
    """Return listing URLs linked from an index/search page, in page order."""
    if not content:
        return []
    soup = BeautifulSoup(content, "html.parser")
    found: List[DiscoveredUrl] = []
    seen = set()
    for anchor in soup.find_all("a", href=True):
        url, _ = urldefrag(urljoin(base_url or config.base_url, anchor["href"]))
        url = url.split("?", 1)[0]
        if not config.listing_url_pattern.fullmatch(url) or url in seen:
            continue
        seen.add(url)
        found.append(DiscoveredUrl(url=url, vin=_vin_hint(anchor)))
    return found


def _vin_hint(anchor) -> Optional[str]:
    node = anchor
    for _ in range(3):
        if node is None or not hasattr(node, "get"):
            break
        candidate = node.get("data-vin")
        if candidate:
            value, _ = parse_vin(candidate)
            return value
        node = node.parent
    return None


@dataclass
class DraftListing:
    """Raw extraction result for one listing URL, before identity resolution."""

    source: str
    url: str
    fields: ExtractedFields
    content: Optional[str] = None


class FieldExtractor:
    """Base extractor; subclasses set ``source`` and ``config``.

    Subclasses add source-specific label/value pairs by overriding
    :meth:`source_pairs`.
    """

    source: str = ""
    config: ExtractorConfig

    def source_pairs(self, soup: BeautifulSoup) -> Iterable[Pair]:
        return ()

    def extract_fields(self, content: str) -> ExtractedFields:
        return extract_with_config(content, self.config, extra_pairs=self.source_pairs)

    def discover_listing_urls(self, content: str, base_url: Optional[str] = None) -> List[DiscoveredUrl]:
        return discover_with_config(content, self.config, base_url)
