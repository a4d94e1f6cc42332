"""Keyword inference from free-text listing titles."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

YEAR_RE = re.compile(r"(?<![\d,.$])\b(19[5-9]\d|20[0-4]\d)\b(?![,\d]|-?[Mm]ile)")
GENERATION_RE = re.compile(r"(?<![\d,.$])\b(99[1-7](?:\.[12])?|98[1-7](?:\.[12])?|964|993)\b(?![,\d]|-?[Mm]ile)")

# Ordered most specific first.
TRIM_PATTERNS: Sequence[Tuple[re.Pattern[str], str]] = tuple(
    (re.compile(pattern, re.IGNORECASE), trim)
    for pattern, trim in (
        (r"\bGT3[\s-]?Cup\b", "GT3 Cup"),
        (r"\bGT3[\s-]?R\b(?![\s-]?S)", "GT3 R"),
        (r"\bGT4[\s-]?Clubsport\b", "GT4 Clubsport"),
        (r"\bGT3[\s-]?RS\b", "GT3 RS"),
        (r"\bGT2[\s-]?RS\b", "GT2 RS"),
        (r"\bGT4[\s-]?RS\b", "GT4 RS"),
        (r"\bSpyder[\s-]?RS\b", "Spyder RS"),
        (r"\bGT3[\s-]?Touring\b", "GT3 Touring"),
        (r"\bGT3\b", "GT3"),
        (r"\bGT2\b", "GT2"),
        (r"\bGT4\b", "GT4"),
        (r"\bTurbo[\s-]?S\b", "Turbo S"),
        (r"\bTurbo\b", "Turbo"),
        (r"\bSport[\s-]?Classic\b", "Sport Classic"),
        (r"\bS/T\b", "S/T"),
        (r"\bCarrera[\s-]?4[\s-]?GTS\b", "Carrera 4 GTS"),
        (r"\bCarrera[\s-]?GTS\b", "Carrera GTS"),
        (r"\bCarrera[\s-]?4S\b", "Carrera 4S"),
        (r"\bCarrera[\s-]?S\b", "Carrera S"),
        (r"\bCarrera[\s-]?4\b", "Carrera 4"),
        (r"\bCarrera[\s-]?T\b", "Carrera T"),
        (r"\bCarrera\b", "Carrera"),
        (r"\bTarga[\s-]?4S\b", "Targa 4S"),
        (r"\bTarga[\s-]?4\b", "Targa 4"),
        (r"\bSpeedster\b", "Speedster"),
        (r"\bSpyder\b", "Spyder"),
        (r"\bGTS\b", "GTS"),
        (r"\b(?:Cayman|Boxster)[\s-]+S\b", "S"),
    )
)

MODEL_KEYWORDS: Sequence[Tuple[re.Pattern[str], str]] = (
    (re.compile(r"\b911\b"), "911"),
    (re.compile(r"\bCayman\b", re.IGNORECASE), "718 Cayman"),
    (re.compile(r"\bBoxster\b", re.IGNORECASE), "718 Boxster"),
)

# Trims that only exist on one model line.
TRIM_MODELS = {
    "GT3 Cup": "911",
    "GT3 R": "911",
    "GT3 RS": "911",
    "GT3 Touring": "911",
    "GT3": "911",
    "GT2 RS": "911",
    "GT2": "911",
    "Turbo S": "911",
    "Turbo": "911",
    "Sport Classic": "911",
    "S/T": "911",
    "Carrera": "911",
    "Carrera S": "911",
    "Carrera 4": "911",
    "Carrera 4S": "911",
    "Carrera T": "911",
    "Carrera GTS": "911",
    "Carrera 4 GTS": "911",
    "Targa 4": "911",
    "Targa 4S": "911",
    "Speedster": "911",
    "GT4": "718 Cayman",
    "GT4 RS": "718 Cayman",
    "GT4 Clubsport": "718 Cayman",
    "Spyder": "718 Boxster",
    "Spyder RS": "718 Boxster",
}

UNSUPPORTED_MODEL_RE = re.compile(r"\b(Cayenne|Macan|Panamera|Taycan|Carrera GT(?![S234\w])|918 Spyder)\b", re.IGNORECASE)


@dataclass(frozen=True)
class TitleSignals:
    year: Optional[int] = None
    model: Optional[str] = None
    trim: Optional[str] = None
    generation: Optional[str] = None
    unsupported_model: Optional[str] = None


def match_trim(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    for pattern, trim in TRIM_PATTERNS:
        if pattern.search(text):
            return trim
    return None


def match_model(text: Optional[str]) -> Optional[str]:
    """Map free text ('Cayman GT4', '718 Boxster S', '911') to a model name."""
    if not text:
        return None
    for pattern, model in MODEL_KEYWORDS:
        if pattern.search(text):
            return model
    trim = match_trim(text)
    if trim:
        return TRIM_MODELS.get(trim)
    if re.search(r"\b718\b", text):
        return "718"
    return None


def parse_title(title: Optional[str]) -> TitleSignals:
    if not title:
        return TitleSignals()

    unsupported = UNSUPPORTED_MODEL_RE.search(title)
    year_match = YEAR_RE.search(title)
    generation_match = GENERATION_RE.search(title)
    return TitleSignals(
        year=int(year_match.group(1)) if year_match else None,
        model=match_model(title),
        trim=match_trim(title),
        generation=generation_match.group(1) if generation_match else None,
        unsupported_model=unsupported.group(1) if unsupported else None,
    )
