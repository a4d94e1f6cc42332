"""Paint and upholstery name cleanup."""

from __future__ import annotations

import re
from typing import Optional

PAINT_TO_SAMPLE_RE = re.compile(r"\b(?:PTS|paint[\s-]to[\s-]sample)\b", re.IGNORECASE)
FINISH_SUFFIX_RE = re.compile(r"\s+(?:metallic|paint|pearl)\s*$", re.IGNORECASE)

# Generic or misspelled names mapped to the factory color name.
COLOR_ALIASES = {
    "white": "Carrara White",
    "pure white": "Carrara White",
    "carrara white": "Carrara White",
    "black": "Jet Black",
    "jet black": "Jet Black",
    "basalt black": "Basalt Black",
    "silver": "GT Silver",
    "gt silver": "GT Silver",
    "rhodium silver": "Rhodium Silver",
    "arctic grey": "Arctic Gray",
    "arctic gray": "Arctic Gray",
    "agate grey": "Agate Gray",
    "agate gray": "Agate Gray",
    "slate gray": "Slate Grey",
    "slate grey": "Slate Grey",
    "chalk": "Chalk",
    "crayon": "Crayon",
    "guards red": "Guards Red",
    "carmine red": "Carmine Red",
    "blue": "Sapphire Blue",
    "sapphire blue": "Sapphire Blue",
    "gentian blue": "Gentian Blue",
    "gemini blue": "Gentian Blue",
    "miami blue": "Miami Blue",
    "shark blue": "Shark Blue",
    "racing yellow": "Racing Yellow",
    "speed yellow": "Speed Yellow",
    "lava orange": "Lava Orange",
    "python green": "Python Green",
}


def is_paint_to_sample(color: Optional[str]) -> bool:
    return bool(color and PAINT_TO_SAMPLE_RE.search(color))


def normalize_color(color: Optional[str], *, interior: bool = False) -> Optional[str]:
    """Return a cleaned color name, or None for blank input.

    Exterior names are mapped onto factory paint names; interior names are
    only cleaned.
    """
    if not color:
        return None
    cleaned = PAINT_TO_SAMPLE_RE.sub(" ", color)
    cleaned = re.sub(r"\s+", " ", cleaned).strip(" -:,")
    cleaned = FINISH_SUFFIX_RE.sub("", cleaned).strip()
    if not cleaned:
        return None
    if interior:
        return cleaned
    return COLOR_ALIASES.get(cleaned.lower(), cleaned)
