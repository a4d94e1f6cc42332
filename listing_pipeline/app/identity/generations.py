"""Model-year to generation code tables for the Porsche sports car lines."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

# (code, first model year, last model year or None for the current generation)
YearRange = Tuple[str, int, Optional[int]]

FAMILY_GENERATIONS: Dict[str, Sequence[YearRange]] = {
    "911": (
        ("964", 1989, 1994),
        ("993", 1995, 1998),
        ("996", 1999, 2004),
        ("997.1", 2005, 2008),
        ("997.2", 2009, 2011),
        ("991.1", 2012, 2016),
        ("991.2", 2017, 2019),
        ("992.1", 2020, 2024),
        ("992.2", 2025, None),
    ),
    "Boxster": (
        ("986", 1997, 2004),
        ("987.1", 2005, 2008),
        ("987.2", 2009, 2012),
        ("981", 2013, 2016),
        ("982", 2017, None),
    ),
    # The Cayman launched a year after the Boxster and switched to the 981
    # platform one model year later (MY2013 Cayman is still a 987.2).
    "Cayman": (
        ("987.1", 2006, 2008),
        ("987.2", 2009, 2013),
        ("981", 2014, 2016),
        ("982", 2017, None),
    ),
}

# GT and special-edition cars ran on their own model-year cadence. When a trim
# has an entry here it replaces the family table; years outside it are gaps.
TRIM_GENERATIONS: Dict[Tuple[str, str], Sequence[YearRange]] = {
    ("911", "GT3"): (
        ("996", 2004, 2005),
        ("997.1", 2007, 2009),
        ("997.2", 2010, 2011),
        ("991.1", 2014, 2016),
        ("991.2", 2018, 2019),
        ("992.1", 2022, 2024),
        ("992.2", 2025, None),
    ),
    ("911", "GT3 Touring"): (
        ("991.2", 2018, 2019),
        ("992.1", 2022, 2024),
        ("992.2", 2025, None),
    ),
    ("911", "GT3 RS"): (
        ("997.1", 2007, 2009),
        ("997.2", 2010, 2011),
        ("991.1", 2016, 2016),
        ("991.2", 2019, 2019),
        ("992.1", 2023, None),
    ),
    ("911", "GT2 RS"): (
        ("997.2", 2011, 2011),
        ("991.2", 2018, 2019),
    ),
    ("Cayman", "GT4"): (
        ("981", 2016, 2016),
        ("982", 2020, None),
    ),
    ("Cayman", "GT4 RS"): (
        ("982", 2022, None),
    ),
    ("Boxster", "Spyder"): (
        ("987.2", 2011, 2012),
        ("981", 2016, 2016),
        ("982", 2020, None),
    ),
    ("Boxster", "Spyder RS"): (
        ("982", 2024, None),
    ),
}

MODEL_FAMILIES = {
    "911": "911",
    "718 CAYMAN": "Cayman",
    "CAYMAN": "Cayman",
    "718 BOXSTER": "Boxster",
    "BOXSTER": "Boxster",
    "718 SPYDER": "Boxster",
}

# Model names that do not identify one body-style line.
AMBIGUOUS_FAMILIES = {
    "718": ("Boxster", "Cayman"),
}


@dataclass(frozen=True)
class GenerationMatch:
    code: str
    candidates: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def ambiguous(self) -> bool:
        return not self.code and len(set(self.candidates)) > 1


def model_family(model: Optional[str]) -> Optional[str]:
    if not model:
        return None
    return MODEL_FAMILIES.get(" ".join(model.split()).upper())


def _lookup(table: Sequence[YearRange], year: int) -> str:
    for code, first, last in table:
        if year >= first and (last is None or year <= last):
            return code
    return ""


def _family_code(family: str, year: int, trim: Optional[str]) -> str:
    if trim:
        exception = TRIM_GENERATIONS.get((family, trim))
        if exception is not None:
            return _lookup(exception, year)
    return _lookup(FAMILY_GENERATIONS[family], year)


def resolve_generation(model: Optional[str], year: Optional[int], trim: Optional[str] = None) -> GenerationMatch:
    """Resolve a generation code, reporting ambiguity across co-produced lines."""
    if not model or not year:
        return GenerationMatch("")

    family = model_family(model)
    if family is not None:
        return GenerationMatch(_family_code(family, year, trim))

    shared = AMBIGUOUS_FAMILIES.get(" ".join(model.split()).upper())
    if shared is None:
        return GenerationMatch("")

    candidates = tuple(_family_code(name, year, trim) for name in shared)
    resolved = {code for code in candidates if code}
    if len(resolved) == 1 and all(candidates):
        return GenerationMatch(resolved.pop(), candidates)
    return GenerationMatch("", candidates)


def normalize_generation(model: Optional[str], year: Optional[int], trim: Optional[str] = None) -> str:
    """Return the generation code for a model/year, or "" when none applies."""
    return resolve_generation(model, year, trim).code


def generation_platform(code: str) -> str:
    """Strip the mid-cycle suffix: '997.2' -> '997'."""
    return code.split(".", 1)[0] if code else ""
