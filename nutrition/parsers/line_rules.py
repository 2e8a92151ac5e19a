# nutrition/parsers/line_rules.py
"""
Line Rule Table — ordered, declarative same-line nutrient rules.

Each rule is (pattern → extraction strategy → confidence tier) and can be
exercised on its own via match_rule(). apply_line_rules() walks the lines
top to bottom; for each canonical key the first line matched by the first
rule for that key wins.

The pattern captures the value (and the unit, when printed) right after the
nutrient word. Percent readings never match.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from ..ocr_types import Confidence, NutrientRecord
from ..ocr_utils import normalize_line_for_extraction

_NUM = r"(?<![\d.])(?P<value>\d+(?:\.\d+)?)"
# value not continued by more digits and not followed by a percent sign
_VALUE_TAIL = r"(?![\d.])\s*(?P<unit>{units}){optional}(?![a-z%\d])"


def _rx(label: str, units: str, gap: str = r"[^\d%]{0,24}?", unit_required: bool = False) -> re.Pattern:
    # a required unit lets the gap skip past readings in other units ("1250 kJ 300 kcal")
    tail = _VALUE_TAIL.format(units=units, optional="" if unit_required else "?")
    return re.compile(rf"{label}{gap}{_NUM}" + tail, re.IGNORECASE)


@dataclass(frozen=True)
class LineRule:
    """
    name:          rule id (tests, debug)
    key:           canonical nutrient key
    pattern:       regex with named groups value / unit
    unit:          canonical unit of the emitted record
    tier:          confidence when the expected unit is printed
    missing_unit_tier: confidence when no unit is printed (None → unit required)
    scale:         printed unit → multiplier into `unit` (also lowers tier to Med)
    """
    name: str
    key: str
    pattern: re.Pattern
    unit: str
    tier: Confidence = "High"
    missing_unit_tier: Optional[Confidence] = None
    scale: Dict[str, float] = field(default_factory=dict)


LINE_RULES: Tuple[LineRule, ...] = (
    LineRule("energy_kj", "energy_kj", _rx(r"\benergy\b", r"kj", gap=r"[^%]{0,24}?", unit_required=True), "kJ"),
    LineRule("energy_kcal", "energy_kcal", _rx(r"\benergy\b", r"kcal|cal", gap=r"[^%]{0,40}?", unit_required=True),
             "kcal"),
    LineRule("calories", "energy_kcal", _rx(r"\bcalories\b(?!\s+from)", r"kcal|cal"), "kcal",
             missing_unit_tier="Med"),
    LineRule("protein_same_line", "protein_g", _rx(r"\bprotein\b", r"mg|g"), "g",
             missing_unit_tier="Med", scale={"mg": 0.001}),
    LineRule("fat_total", "fat_g", _rx(r"\bfat\b(?:,?\s*total)?", r"mg|g"), "g",
             missing_unit_tier="Med", scale={"mg": 0.001}),
    LineRule("carbohydrate", "carbs_g", _rx(r"\bcarb(?:ohydrates?|s)\b", r"mg|g"), "g",
             missing_unit_tier="Med", scale={"mg": 0.001}),
    LineRule("sugars", "sugars_g", _rx(r"\bsugars?\b", r"mg|g"), "g",
             missing_unit_tier="Med", scale={"mg": 0.001}),
    LineRule("fibre", "fibre_g", _rx(r"\b(?:dietary\s+)?fib(?:re|er)\b", r"mg|g"), "g",
             missing_unit_tier="Med", scale={"mg": 0.001}),
    LineRule("sodium", "sodium_mg", _rx(r"\bsodium\b", r"mg|g", unit_required=True), "mg",
             scale={"g": 1000.0}),
)

_SATURATED_RE = re.compile(r"satur|\bsat\b|\btrans\b", re.IGNORECASE)


def match_rule(rule: LineRule, line: str) -> Optional[NutrientRecord]:
    text = normalize_line_for_extraction(line)
    if rule.key == "fat_g" and _SATURATED_RE.search(text):
        return None

    m = rule.pattern.search(text)
    if not m:
        return None

    value = float(m.group("value"))
    printed = m.group("unit")
    if not printed:
        if rule.missing_unit_tier is None:
            return None
        return {"value": value, "unit": rule.unit, "confidence": rule.missing_unit_tier}

    printed = "kJ" if printed.lower() == "kj" else printed.lower()
    if printed == "cal":
        printed = "kcal"
    if printed == rule.unit:
        return {"value": value, "unit": rule.unit, "confidence": rule.tier}
    if printed in rule.scale:
        return {"value": round(value * rule.scale[printed], 4), "unit": rule.unit, "confidence": "Med"}
    return None


def apply_line_rules(lines: Iterable[str]) -> Dict[str, NutrientRecord]:
    out: Dict[str, NutrientRecord] = {}
    for line in lines:
        for rule in LINE_RULES:
            if rule.key in out:
                continue
            rec = match_rule(rule, line)
            if rec is not None:
                out[rule.key] = rec
    return out
