# nutrition/parsers/unit_vocab.py
"""
Shared Unit Vocabulary

Single source of truth for unit spelling, value+unit patterns and the small
word lists (fillers, headings) used by the candidate extractor, the label
attacher and the row grouper.
"""

from __future__ import annotations

import re
from typing import Dict, FrozenSet, Optional, Tuple


# Raw unit spellings accepted in OCR text. Longest-first so the alternation
# never stops at a prefix ("kcal" before "cal", "mg" before "g").
UNIT_SPELLINGS: Tuple[str, ...] = (
    "kcal",
    "mcg",
    "µg",
    "ug",
    "kj",
    "kg",
    "mg",
    "ml",
    "cal",
    "g",
    "%",
)

# Canonical units that survive extraction ("%" is dropped by policy)
RECOGNIZED_UNITS: FrozenSet[str] = frozenset(
    {"mg", "g", "kg", "mcg", "kJ", "kcal", "cal", "ml"}
)

_UNIT_ALT = "|".join(re.escape(u) for u in UNIT_SPELLINGS)
_NUMBER = r"(\d+(?:\.\d+)?)"

# "300mg", "13 g", "<1g" as one token
COMBINED_TOKEN_RE = re.compile(rf"^[<~]?{_NUMBER}\s*({_UNIT_ALT})$", re.IGNORECASE)

# bare number token: "300", "5.89", "<1"
BARE_NUMBER_RE = re.compile(rf"^[<~]?{_NUMBER}$")

# bare unit token: "mg", "kJ", "%"
BARE_UNIT_RE = re.compile(rf"^({_UNIT_ALT})$", re.IGNORECASE)

# line-wide sweep for the regex fallback mode
LINE_VALUE_UNIT_RE = re.compile(rf"{_NUMBER}\s*({_UNIT_ALT})(?![a-z])", re.IGNORECASE)

ANY_NUMBER_RE = re.compile(_NUMBER)

# units used by the column classifier to decide a token is "numeric with unit"
COLUMN_UNIT_RE = re.compile(r"(g|mg|kj|kcal|cal)\b", re.IGNORECASE)

_UNIT_CANON: Dict[str, str] = {
    "kj": "kJ",
    "kcal": "kcal",
    "µg": "mcg",
    "μg": "mcg",
    "ug": "mcg",
    "mcg": "mcg",
}


def normalize_unit(unit: str) -> str:
    """kj → kJ, kcal, µg/ug → mcg, everything else lower-cased."""
    s = (unit or "").strip()
    if not s:
        return ""
    low = s.lower()
    if low in _UNIT_CANON:
        return _UNIT_CANON[low]
    if s in _UNIT_CANON:
        return _UNIT_CANON[s]
    return low


def match_combined(text: str) -> Optional[Tuple[float, str]]:
    m = COMBINED_TOKEN_RE.match((text or "").strip())
    if not m:
        return None
    return float(m.group(1)), normalize_unit(m.group(2))


def match_bare_number(text: str) -> Optional[float]:
    m = BARE_NUMBER_RE.match((text or "").strip())
    return float(m.group(1)) if m else None


def is_bare_unit(text: str) -> bool:
    return bool(BARE_UNIT_RE.match((text or "").strip()))


# ────────────────────────────────────────────────
# Label vocabulary
# ────────────────────────────────────────────────

# Leading words that never start a real nutrient label
FILLER_WORDS: FrozenSet[str] = frozenset(
    {"of", "which", "incl", "incl.", "including", "less", "-", "–", "—"}
)

# Tokens allowed inside a label run without being words themselves
CONNECTOR_RE = re.compile(r"^[,\-–—:/&]+$")

# Leading "1." / "(2)" / "3)" line-number artifacts
LINE_NUMBER_RE = re.compile(r"^\(?\d{1,2}[.)]\s*")

TRAILING_PUNCT_RE = re.compile(r"[\s,:;.\-–—/]+$")

# Whole-line section headings (noise filter, exact match on lowered text)
SECTION_HEADINGS: FrozenSet[str] = frozenset(
    {
        "nutrition facts",
        "nutrition information",
        "nutritional information",
        "nutrition information panel",
        "nutrition info",
    }
)

# Group keys that are headings, not data rows (row grouper)
NON_DATA_HEADINGS: FrozenSet[str] = SECTION_HEADINGS | frozenset(
    {
        "per serving",
        "per serve",
        "per 100g",
        "per 100 g",
        "per 100ml",
        "avg quantity",
        "average quantity",
        "quantity per serving",
        "quantity per serve",
        "amount per serving",
        "daily value",
        "% daily value",
        "servings per package",
        "servings per container",
        "servings per pack",
    }
)

COLUMN_HEADER_LABEL_RE = re.compile(r"per\s*100|per\s*serv", re.IGNORECASE)


__all__ = [
    "UNIT_SPELLINGS",
    "RECOGNIZED_UNITS",
    "COMBINED_TOKEN_RE",
    "BARE_NUMBER_RE",
    "BARE_UNIT_RE",
    "LINE_VALUE_UNIT_RE",
    "ANY_NUMBER_RE",
    "COLUMN_UNIT_RE",
    "normalize_unit",
    "match_combined",
    "match_bare_number",
    "is_bare_unit",
    "FILLER_WORDS",
    "CONNECTOR_RE",
    "LINE_NUMBER_RE",
    "TRAILING_PUNCT_RE",
    "SECTION_HEADINGS",
    "NON_DATA_HEADINGS",
    "COLUMN_HEADER_LABEL_RE",
]
