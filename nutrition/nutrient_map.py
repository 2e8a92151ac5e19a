"""
Nutrient Mapper — column rows → canonical nutrient records.

Per nutrition row the per-serve and per-100g column texts are parsed:
  - energy: kJ and kcal are told apart per column (AU labels print both,
    often in the same cell: "1250kJ (300Cal)")
  - sodium: milligrams; a gram reading ("0.3g") is scaled ×1000
  - fibre: a missing unit is accepted as grams (common OCR dropout); mg/kJ/
    kcal/cal readings are refused
  - everything else: first number in the column text

validate_readings() turns readings into NutrientRecords via the
cross-column check + plausibility ceilings in scoring/confidence.py.

merge_nutrient_sources() is the single precedence rule between the two
ranked sources: the column table ("flat") wins, the line rule readings
("parsed") fill gaps, and implausible values are vetoed from either.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from .columns import ColumnRow, match_nutrient_key
from .ocr_types import NUTRIENT_KEYS, NUTRIENT_UNITS, ColumnReading, NutrientMap
from .ocr_utils import normalize_line_for_extraction
from .scoring.confidence import cross_validate, is_plausible, is_serving_detected

log = logging.getLogger(__name__)

COLUMN_KEY_TO_NUTRIENT: Dict[str, str] = {
    "protein": "protein_g",
    "fat_total": "fat_g",
    "carbohydrate": "carbs_g",
    "sugars": "sugars_g",
    "fibre": "fibre_g",
    "sodium": "sodium_mg",
}

_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")
_ENERGY_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(kj|kcal|cal)\b", re.IGNORECASE)
_NON_GRAM_UNIT_RE = re.compile(r"(mg|kj|kcal|cal)\b", re.IGNORECASE)
_GRAM_RE = re.compile(r"\d\s*g\b|\bg\b", re.IGNORECASE)


# -----------------------------
# Column text parsers
# -----------------------------

def parse_value(text: str) -> Optional[float]:
    m = _NUMBER_RE.search(normalize_line_for_extraction(text or ""))
    return float(m.group(1)) if m else None


def parse_energy(text: str) -> Dict[str, float]:
    """{"energy_kj": …, "energy_kcal": …} for whichever units the cell prints."""
    out: Dict[str, float] = {}
    for m in _ENERGY_RE.finditer(normalize_line_for_extraction(text or "")):
        key = "energy_kj" if m.group(2).lower() == "kj" else "energy_kcal"
        out.setdefault(key, float(m.group(1)))
    return out


def parse_fibre(text: str) -> Optional[float]:
    text = normalize_line_for_extraction(text or "")
    value = parse_value(text)
    if value is None:
        return None
    if _GRAM_RE.search(text) or not _NON_GRAM_UNIT_RE.search(text):
        return value
    return None


def parse_sodium(text: str) -> Optional[float]:
    """Milligrams; a cell printed in grams ("0.3g") is scaled ×1000."""
    text = normalize_line_for_extraction(text or "")
    value = parse_value(text)
    if value is None:
        return None
    if _GRAM_RE.search(text):
        return round(value * 1000.0, 4)
    return value


def map_column_rows(rows: Sequence[ColumnRow]) -> Dict[str, ColumnReading]:
    """First row per canonical key wins; later duplicates only fill gaps."""
    readings: Dict[str, ColumnReading] = {}

    for row in rows:
        key = row.key or match_nutrient_key(row.label_text)
        if not key:
            continue

        if key == "energy":
            per_serve = parse_energy(row.per_serve_text)
            per_100g = parse_energy(row.per_100g_text)
            for nk in ("energy_kj", "energy_kcal"):
                if nk not in per_serve and nk not in per_100g:
                    continue
                reading = readings.setdefault(nk, ColumnReading())
                if reading.per_serve is None:
                    reading.per_serve = per_serve.get(nk)
                if reading.per_100g is None:
                    reading.per_100g = per_100g.get(nk)
            continue

        nk = COLUMN_KEY_TO_NUTRIENT.get(key)
        if nk is None or nk in readings:
            continue

        if key == "fibre":
            readings[nk] = ColumnReading(
                per_serve=parse_fibre(row.per_serve_text),
                per_100g=parse_fibre(row.per_100g_text),
            )
        elif key == "sodium":
            readings[nk] = ColumnReading(
                per_serve=parse_sodium(row.per_serve_text),
                per_100g=parse_sodium(row.per_100g_text),
            )
        else:
            readings[nk] = ColumnReading(
                per_serve=parse_value(row.per_serve_text),
                per_100g=parse_value(row.per_100g_text),
            )

    return readings


# -----------------------------
# Validation + merge
# -----------------------------

@dataclass
class ValidationOutcome:
    nutrients: NutrientMap = field(default_factory=dict)
    rejected: List[Dict[str, object]] = field(default_factory=list)


def validate_readings(
    readings: Dict[str, ColumnReading],
    serving_size: Optional[float],
) -> ValidationOutcome:
    """
    Per-serve records from column readings.

    A missing per-serve value is derived from per-100g × serving / 100 when
    the serving size was detected (Low, nothing to cross-check against).
    """
    outcome = ValidationOutcome()

    for key in NUTRIENT_KEYS:
        reading = readings.get(key)
        if reading is None:
            continue

        per_serve = reading.per_serve
        if per_serve is None:
            if reading.per_100g is None or not is_serving_detected(serving_size):
                continue
            per_serve = round(reading.per_100g * float(serving_size) / 100.0, 2)  # type: ignore[arg-type]
            tier = "Low"
        else:
            tier = cross_validate(per_serve, reading.per_100g, serving_size)
            if tier is None:
                outcome.rejected.append({
                    "key": key,
                    "reason": "CROSS_COLUMN_DEVIATION",
                    "per_serve": per_serve,
                    "per_100g": reading.per_100g,
                    "serving_size": serving_size,
                })
                log.info("rejected %s: per_serve=%s per_100g=%s serving=%s",
                         key, per_serve, reading.per_100g, serving_size)
                continue

        if not is_plausible(key, per_serve):
            outcome.rejected.append({"key": key, "reason": "IMPLAUSIBLE", "per_serve": per_serve})
            log.info("rejected %s: implausible per-serve value %s", key, per_serve)
            continue

        outcome.nutrients[key] = {
            "value": per_serve,
            "unit": NUTRIENT_UNITS[key],
            "confidence": tier,
        }

    return outcome


def merge_nutrient_sources(
    flat: NutrientMap,
    parsed: NutrientMap,
    rejected: Optional[List[Dict[str, object]]] = None,
    vetoed: Iterable[str] = (),
) -> NutrientMap:
    """
    flat wins, parsed fills gaps, implausible values vetoed.

    Keys in `vetoed` (cross-column rejections) are not refilled from parsed:
    the line reading comes from the same printed row.
    """
    vetoed = set(vetoed)
    out: NutrientMap = {}
    for key in NUTRIENT_KEYS:
        if key in vetoed:
            continue
        for source, records in (("flat", flat), ("parsed", parsed)):
            rec = records.get(key)
            if rec is None:
                continue
            if not is_plausible(key, rec["value"]):
                if rejected is not None:
                    rejected.append({"key": key, "reason": "IMPLAUSIBLE", "source": source,
                                     "per_serve": rec["value"]})
                continue
            out[key] = rec
            break
    return out
