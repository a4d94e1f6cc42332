"""Porsche VIN decoding.

Decoding is table driven and side-effect free: the same VIN and year hint
always produce the same :class:`DecodedVIN`.

Layout of a Porsche VIN (1-indexed)::

    1-3   WMI            WP0 sports cars, WP1 SUVs
    4     body           A coupe, B targa, C cabriolet/roadster, Z race
    5     engine/variant
    6     restraint code (ignored)
    7-8   model line     99 = 996/997, A9 = 991/992, 98 = 986/987, A8 = 981/982
    9     check digit
    10    model year
    11    plant
    12-17 serial
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .generations import generation_platform, normalize_generation

VIN_LENGTH = 17
VIN_ALPHABET_RE = re.compile(r"^[A-HJ-NPR-Z0-9]+$")
VIN_RE = re.compile(r"^[A-HJ-NPR-Z0-9]{17}$")

# Model years drift at most one year from the calendar year printed in titles.
YEAR_PLAUSIBILITY_WINDOW = 1

WMI_CODES = {
    "WP0": "sports_car",
    "WP1": "suv",
}

# Position 10 cycles every 30 years; index 0 is 1980 (or 2010).
YEAR_CODES = "ABCDEFGHJKLMNPRSTVWXY123456789"
FIRST_CYCLE_START = 1980
CYCLE_LENGTH = 30

TRANSLITERATION = {
    **{str(d): d for d in range(10)},
    "A": 1, "B": 2, "C": 3, "D": 4, "E": 5, "F": 6, "G": 7, "H": 8,
    "J": 1, "K": 2, "L": 3, "M": 4, "N": 5, "P": 7, "R": 9,
    "S": 2, "T": 3, "U": 4, "V": 5, "W": 6, "X": 7, "Y": 8, "Z": 9,
}
CHECK_WEIGHTS = (8, 7, 6, 5, 4, 3, 2, 10, 0, 9, 8, 7, 6, 5, 4, 3, 2)


@dataclass(frozen=True)
class VinPattern:
    model: str
    body_style: Optional[str] = None
    engine: Optional[str] = None


@dataclass(frozen=True)
class ModelLine:
    model: str
    platforms: Tuple[str, ...]


MODEL_LINES: Dict[str, ModelLine] = {
    "99": ModelLine("911", ("996", "997")),
    "A9": ModelLine("911", ("991", "992")),
    "98": ModelLine("718", ("986", "987")),
    "A8": ModelLine("718", ("981", "982")),
}

# Keyed by positions 4, 5, 7 and 8.
VIN_PATTERNS: Dict[str, VinPattern] = {
    # 996 / 997
    "AA99": VinPattern("911", "Coupe", "Carrera"),
    "AB99": VinPattern("911", "Coupe", "Carrera S"),
    "AC99": VinPattern("911", "Coupe", "GT3"),
    "AD99": VinPattern("911", "Coupe", "Turbo"),
    "AE99": VinPattern("911", "Coupe", "GT2"),
    "BA99": VinPattern("911", "Targa", "Targa 4"),
    "BB99": VinPattern("911", "Targa", "Targa 4S"),
    "CA99": VinPattern("911", "Cabriolet", "Carrera"),
    "CB99": VinPattern("911", "Cabriolet", "Carrera S"),
    "CD99": VinPattern("911", "Cabriolet", "Turbo"),
    # 991 / 992
    "AAA9": VinPattern("911", "Coupe", "Carrera"),
    "ABA9": VinPattern("911", "Coupe", "Carrera S"),
    "ACA9": VinPattern("911", "Coupe", "GT3"),
    "ADA9": VinPattern("911", "Coupe", "Turbo"),
    "AEA9": VinPattern("911", "Coupe", "GT2 RS"),
    "AFA9": VinPattern("911", "Coupe", "GT3 RS"),
    "BAA9": VinPattern("911", "Targa", "Targa 4"),
    "BBA9": VinPattern("911", "Targa", "Targa 4S"),
    "CAA9": VinPattern("911", "Cabriolet", "Carrera"),
    "CBA9": VinPattern("911", "Cabriolet", "Carrera S"),
    "CDA9": VinPattern("911", "Cabriolet", "Turbo"),
    # 986 / 987
    "AA98": VinPattern("718 Cayman", "Coupe", "Base"),
    "AB98": VinPattern("718 Cayman", "Coupe", "S"),
    "CA98": VinPattern("718 Boxster", "Roadster", "Base"),
    "CB98": VinPattern("718 Boxster", "Roadster", "S"),
    # 981 / 982
    "AAA8": VinPattern("718 Cayman", "Coupe", "Base"),
    "ABA8": VinPattern("718 Cayman", "Coupe", "S"),
    "ACA8": VinPattern("718 Cayman", "Coupe", "GT4"),
    "AEA8": VinPattern("718 Cayman", "Coupe", "GT4 RS"),
    "CAA8": VinPattern("718 Boxster", "Roadster", "Base"),
    "CBA8": VinPattern("718 Boxster", "Roadster", "S"),
    "CCA8": VinPattern("718 Boxster", "Roadster", "Spyder"),
    "CEA8": VinPattern("718 Boxster", "Roadster", "Spyder RS"),
}

RACE_CHASSIS_PREFIX = "ZZZ"


@dataclass(frozen=True)
class DecodedVIN:
    vin: str
    valid: bool
    model: Optional[str] = None
    model_year: Optional[int] = None
    generation: str = ""
    body_style: Optional[str] = None
    engine: Optional[str] = None
    platforms: Tuple[str, ...] = ()
    vehicle_type: Optional[str] = None
    race_chassis: bool = False
    year_warning: Optional[str] = None
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def model_known(self) -> bool:
        return self.valid and bool(self.model)


def clean_vin(vin: Optional[str]) -> str:
    return (vin or "").strip().upper()


def is_valid_vin(vin: Optional[str]) -> bool:
    """Structural check only: length and alphabet."""
    return bool(VIN_RE.match(clean_vin(vin)))


def check_digit(vin: str) -> str:
    total = sum(TRANSLITERATION[char] * weight for char, weight in zip(vin, CHECK_WEIGHTS))
    remainder = total % 11
    return "X" if remainder == 10 else str(remainder)


def _invalid(vin: str, *errors: str) -> DecodedVIN:
    return DecodedVIN(vin=vin, valid=False, errors=tuple(errors))


def _year_candidates(code: str) -> Optional[Tuple[int, int]]:
    index = YEAR_CODES.find(code)
    if index < 0:
        return None
    first = FIRST_CYCLE_START + index
    return first, first + CYCLE_LENGTH


def _decode_year(vin: str, year_hint: Optional[int]) -> Tuple[Optional[int], Optional[str], Optional[str]]:
    """Return (year, error, warning) for position 10."""
    code = vin[9]
    candidates = _year_candidates(code)
    if candidates is None:
        return None, f"invalid model year code '{code}'", None

    older, newer = candidates
    # Position 7 is numeric for 1980-2009 model years and alphabetic afterwards.
    preferred, other = (older, newer) if vin[6].isdigit() else (newer, older)
    if year_hint is None or abs(preferred - year_hint) <= YEAR_PLAUSIBILITY_WINDOW:
        return preferred, None, None
    if abs(other - year_hint) <= YEAR_PLAUSIBILITY_WINDOW:
        return other, None, f"model year code '{code}' read as {other} to match listing year {year_hint}"
    return None, (
        f"model year code '{code}' ({older}/{newer}) conflicts with listing year {year_hint}"
    ), None


def decode_vin(vin: Optional[str], year_hint: Optional[int] = None) -> DecodedVIN:
    """Decode a candidate VIN.

    Args:
        vin: Raw VIN text of any length or casing.
        year_hint: Model year signal from elsewhere in the listing (title or
            structured field). Used to pick between the two 30-year cycle
            candidates and to reject VINs whose year cannot match the listing.

    Returns:
        A :class:`DecodedVIN`. Invalid results carry ``errors`` and never a
        model or year.
    """
    cleaned = clean_vin(vin)
    if len(cleaned) != VIN_LENGTH:
        return _invalid(cleaned, f"invalid VIN length: {len(cleaned)} (expected {VIN_LENGTH})")
    if not VIN_ALPHABET_RE.match(cleaned):
        bad = sorted({char for char in cleaned if not VIN_ALPHABET_RE.match(char)})
        return _invalid(cleaned, f"invalid VIN characters: {', '.join(bad)}")

    vehicle_type = WMI_CODES.get(cleaned[:3])
    if vehicle_type is None:
        return _invalid(cleaned, f"unknown manufacturer code: {cleaned[:3]}")

    model_year, year_error, year_warning = _decode_year(cleaned, year_hint)
    if year_error:
        return _invalid(cleaned, year_error)

    warnings = []
    if year_warning:
        warnings.append(year_warning)
    expected_check = check_digit(cleaned)
    if cleaned[8] != expected_check:
        warnings.append(f"check digit '{cleaned[8]}' does not match computed '{expected_check}'")

    if vehicle_type != "sports_car":
        warnings.append(f"manufacturer code {cleaned[:3]} is not a sports car line")
        return DecodedVIN(
            vin=cleaned,
            valid=True,
            model_year=model_year,
            vehicle_type=vehicle_type,
            year_warning=year_warning,
            warnings=tuple(warnings),
        )

    if cleaned[3:6] == RACE_CHASSIS_PREFIX:
        return DecodedVIN(
            vin=cleaned,
            valid=True,
            model="911",
            model_year=model_year,
            body_style="Race",
            vehicle_type=vehicle_type,
            race_chassis=True,
            year_warning=year_warning,
            warnings=tuple(warnings),
        )

    line = MODEL_LINES.get(cleaned[6:8])
    pattern = VIN_PATTERNS.get(cleaned[3] + cleaned[4] + cleaned[6:8])
    if pattern is None and line is None:
        warnings.append(f"model pattern {cleaned[3:8]} not recognised")
        return DecodedVIN(
            vin=cleaned,
            valid=True,
            model_year=model_year,
            vehicle_type=vehicle_type,
            year_warning=year_warning,
            warnings=tuple(warnings),
        )

    model = pattern.model if pattern else line.model
    engine = pattern.engine if pattern else None
    platforms = line.platforms if line else ()

    generation = normalize_generation(model, model_year, engine)
    if generation and platforms and generation_platform(generation) not in platforms:
        warnings.append(
            f"generation {generation} for {model_year} is outside VIN platform {'/'.join(platforms)}"
        )
        generation = ""

    return DecodedVIN(
        vin=cleaned,
        valid=True,
        model=model,
        model_year=model_year,
        generation=generation,
        body_style=pattern.body_style if pattern else None,
        engine=engine,
        platforms=platforms,
        vehicle_type=vehicle_type,
        year_warning=year_warning,
        warnings=tuple(warnings),
    )
