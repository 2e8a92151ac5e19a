"""
Nutrition OCR Utils — small text + stats helpers shared by every stage.

- clean_text(): quote/whitespace normalization for display text
- normalize_line_for_extraction(): thousands separators + "O mg" typo fix
- median(): used by the line reconstructor for the height tolerance
"""

from __future__ import annotations

import re
from typing import List


# =============================
# Text normalization
# =============================

# 2,000 → 2000 only when exactly three digits follow (keeps "5,5" decimals)
_THOUSANDS_RE = re.compile(r"(\d),(?=\d{3}\b)")

# "Omg" / "O mg": letter O read in place of zero
_O_MG_RE = re.compile(r"\bO\s*mg\b", re.IGNORECASE)

_DIGIT_RE = re.compile(r"\d")


def clean_text(s: str) -> str:
    s = (s or "").strip()
    s = re.sub(r"[‘’“”]", "'", s)
    s = re.sub(r"\s+", " ", s)
    return s


def normalize_line_for_extraction(line: str) -> str:
    s = _THOUSANDS_RE.sub(r"\1", line or "")
    s = _O_MG_RE.sub("0mg", s)
    return s


def has_digit(s: str) -> bool:
    return bool(_DIGIT_RE.search(s or ""))


def normalize_key(label: str) -> str:
    """Trim, collapse whitespace, lowercase."""
    return re.sub(r"\s+", " ", (label or "").strip()).lower()


# =============================
# Small stats helpers
# =============================

def median(values: List[float]) -> float:
    if not values:
        return 0.0
    vals = sorted(values)
    n = len(vals)
    mid = n // 2
    if n % 2:
        return float(vals[mid])
    return float((vals[mid - 1] + vals[mid]) / 2.0)
