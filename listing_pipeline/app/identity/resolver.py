"""Resolve a listing's model / year / trim / generation from competing signals.

Priority, highest first:

1. values decoded from a valid VIN whose model line is recognised,
2. explicit structured fields published by the source,
3. year and keyword inference from the free-text title.

Lower-priority values that disagree are kept as ``conflict`` warnings.
Known refinements (a title trim that is a more specific version of the VIN
trim) are accepted silently. Anything the tables cannot settle is flagged
for review instead of being defaulted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List, Optional, Sequence, Tuple

from listing_pipeline.app.parsers._listing_common import SOLD, DraftListing
from .colors import is_paint_to_sample, normalize_color
from .generations import generation_platform, resolve_generation
from .titles import UNSUPPORTED_MODEL_RE, match_model, match_trim, parse_title
from .vin_decoder import DecodedVIN, decode_vin

logger = logging.getLogger(__name__)

CONFLICT = "conflict"
REJECTED = "rejected"
MISSING = "missing"
UNRESOLVED = "unresolved"

SUPPORTED_MODELS = ("911", "718 Cayman", "718 Boxster", "718")

# VIN trim -> title/field trims that only narrow it down.
TRIM_REFINEMENTS = {
    "GT3": ("GT3 Touring",),
    "Carrera": ("Carrera 4", "Carrera T", "Carrera GTS", "Carrera 4 GTS", "Speedster"),
    "Carrera S": ("Carrera 4S", "Carrera GTS", "Carrera 4 GTS", "Sport Classic"),
    "Turbo": ("Turbo S",),
    "Targa 4S": ("Targa 4 GTS",),
    "Base": ("T", "Style Edition"),
    "S": ("GTS",),
}

# Track-only variants that share a road car's name but not its VIN pattern.
RACE_TRIMS = ("GT3 Cup", "GT3 R", "GT4 Clubsport")

Candidate = Tuple[str, Optional[object]]


class IdentityResolutionError(Exception):
    """Listing cannot be given an identity; the item fails without a write."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


@dataclass(frozen=True)
class IdentityWarning:
    field: str
    kind: str
    message: str


@dataclass
class ResolvedListing:
    source: str
    source_url: str
    title: str
    model: str
    model_year: int
    price: int
    vin: Optional[str] = None
    trim: Optional[str] = None
    generation: str = ""
    mileage: Optional[int] = None
    exterior_color: Optional[str] = None
    interior_color: Optional[str] = None
    paint_to_sample: bool = False
    transmission: Optional[str] = None
    sale_status: str = "active"
    sale_date: Optional[date] = None
    needs_review: bool = False
    warnings: List[IdentityWarning] = field(default_factory=list)


def _model_refines(current: object, candidate: object) -> bool:
    return current == "718" and isinstance(candidate, str) and candidate.startswith("718 ")


def _trim_refines(current: object, candidate: object) -> bool:
    return candidate in TRIM_REFINEMENTS.get(current, ())


def _generation_compatible(current: object, candidate: object) -> bool:
    if not isinstance(current, str) or not isinstance(candidate, str):
        return False
    if "." in current and "." in candidate:
        return current == candidate
    return generation_platform(current) == generation_platform(candidate)


def _pick(
    name: str,
    candidates: Sequence[Candidate],
    warnings: List[IdentityWarning],
    refines: Callable[[object, object], bool] = lambda current, candidate: False,
) -> Optional[object]:
    winner: Optional[object] = None
    winner_source = ""
    for source, value in candidates:
        if value is None or value == "":
            continue
        if winner is None:
            winner, winner_source = value, source
        elif value == winner or refines(value, winner):
            continue
        elif refines(winner, value):
            winner = value
        else:
            warnings.append(
                IdentityWarning(
                    name,
                    CONFLICT,
                    f"{source} value '{value}' disagrees with {winner_source} value '{winner}'",
                )
            )
    return winner


def _check_race_variant(
    decoded: Optional[DecodedVIN],
    lower_trims: Sequence[Optional[str]],
    warnings: List[IdentityWarning],
) -> bool:
    if decoded is None:
        return False
    named = [trim for trim in lower_trims if trim]
    race_named = [trim for trim in named if trim in RACE_TRIMS]
    if race_named and not decoded.race_chassis:
        warnings.append(
            IdentityWarning(
                "trim",
                UNRESOLVED,
                f"race variant '{race_named[0]}' named but VIN {decoded.vin} decodes as a road car",
            )
        )
        return True
    if decoded.race_chassis and named and not race_named:
        warnings.append(
            IdentityWarning(
                "trim",
                UNRESOLVED,
                f"race chassis VIN {decoded.vin} listed as road trim '{named[0]}'",
            )
        )
        return True
    return False


def resolve_identity(draft: DraftListing, decoded: Optional[DecodedVIN] = None) -> ResolvedListing:
    """Turn a :class:`DraftListing` into a :class:`ResolvedListing`.

    Raises:
        IdentityResolutionError: extraction failed validation, the model line is
            unsupported or cannot be determined, or price / model year is missing.
    """
    fields = draft.fields
    if fields.errors:
        raise IdentityResolutionError("extraction", "; ".join(fields.errors))

    title = fields.get("title") or ""
    signals = parse_title(title)
    warnings: List[IdentityWarning] = []

    for name, reason in fields.rejected.items():
        warnings.append(IdentityWarning(name, REJECTED, reason))

    structured_year = fields.get("year")
    year_hint = structured_year or signals.year

    raw_vin = fields.get("vin")
    if decoded is None and raw_vin:
        decoded = decode_vin(raw_vin, year_hint)

    if decoded is None:
        if "vin" not in fields.rejected:
            warnings.append(IdentityWarning("vin", MISSING, "no VIN on listing"))
    elif not decoded.valid:
        warnings.append(IdentityWarning("vin", REJECTED, "; ".join(decoded.errors) or "invalid VIN"))
        decoded = None
    else:
        for note in decoded.warnings:
            logger.debug("VIN %s: %s", decoded.vin, note)
        if decoded.year_warning:
            warnings.append(IdentityWarning("model_year", CONFLICT, decoded.year_warning))
        if decoded.vehicle_type != "sports_car":
            raise IdentityResolutionError("model", f"unsupported model line for VIN {decoded.vin}")

    use_vin = decoded is not None and decoded.model_known

    structured_model_text = fields.get("model")
    if not use_vin:
        unsupported = signals.unsupported_model
        if structured_model_text and UNSUPPORTED_MODEL_RE.search(structured_model_text):
            unsupported = UNSUPPORTED_MODEL_RE.search(structured_model_text).group(1)
        if unsupported:
            raise IdentityResolutionError("model", f"unsupported model line '{unsupported}'")

    model = _pick(
        "model",
        [
            ("vin", decoded.model if use_vin else None),
            ("structured", match_model(structured_model_text)),
            ("title", signals.model),
        ],
        warnings,
        _model_refines,
    )
    if model is None or model not in SUPPORTED_MODELS:
        raise IdentityResolutionError("model", "no VIN model and no recognisable model in fields or title")

    model_year = _pick(
        "model_year",
        [
            ("vin", decoded.model_year if decoded is not None else None),
            ("structured", structured_year),
            ("title", signals.year),
        ],
        warnings,
    )
    if model_year is None:
        raise IdentityResolutionError("model_year", "missing model year")

    price = fields.get("price")
    if price is None:
        raise IdentityResolutionError("price", fields.rejected.get("price", "missing price"))

    structured_trim_text = fields.get("trim")
    structured_trim = match_trim(structured_trim_text) or structured_trim_text
    model_text_trim = match_trim(structured_model_text)
    title_trim = signals.trim

    needs_review = False
    vin_trim = decoded.engine if use_vin else None
    if _check_race_variant(decoded, [structured_trim, model_text_trim, title_trim], warnings):
        needs_review = True
        if not decoded.race_chassis:
            structured_trim, model_text_trim, title_trim = (
                None if trim in RACE_TRIMS else trim for trim in (structured_trim, model_text_trim, title_trim)
            )

    trim = _pick(
        "trim",
        [
            ("vin", vin_trim),
            ("structured", structured_trim),
            ("structured model", model_text_trim),
            ("title", title_trim),
        ],
        warnings,
        _trim_refines,
    )

    match = resolve_generation(model, model_year, trim)
    generation = match.code
    platform_note = None
    if use_vin and decoded.platforms and generation and generation_platform(generation) not in decoded.platforms:
        platform_note = (
            f"generation {generation} for {model_year} is outside VIN platform {'/'.join(decoded.platforms)}"
        )
        generation = ""
    if generation:
        structured_generation = fields.get("generation")
        _pick(
            "generation",
            [("resolved", generation), ("structured", structured_generation), ("title", signals.generation)],
            warnings,
            _generation_compatible,
        )
    else:
        needs_review = True
        if platform_note:
            message = platform_note
        elif match.ambiguous:
            message = f"model '{model}' {model_year} matches several generations: {', '.join(match.candidates)}"
        else:
            message = f"no generation for {model} {trim or ''} {model_year}".replace("  ", " ")
        warnings.append(IdentityWarning("generation", UNRESOLVED, message))

    sale_status = fields.get("sale_status") or "active"
    resolved = ResolvedListing(
        source=draft.source,
        source_url=draft.url,
        title=title,
        vin=decoded.vin if decoded is not None else None,
        model=model,
        trim=trim,
        generation=generation,
        model_year=model_year,
        price=price,
        mileage=fields.get("mileage"),
        exterior_color=normalize_color(fields.get("exterior_color")),
        interior_color=normalize_color(fields.get("interior_color"), interior=True),
        paint_to_sample=is_paint_to_sample(fields.get("exterior_color")),
        transmission=fields.get("transmission"),
        sale_status=sale_status,
        sale_date=fields.get("sale_date") if sale_status == SOLD else None,
        needs_review=needs_review,
        warnings=warnings,
    )
    for warning in warnings:
        logger.warning("%s %s: %s", draft.url, warning.field, warning.message)
    return resolved
