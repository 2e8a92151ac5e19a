"""
Value-Unit Candidate Extractor

Two modes, picked by what the payload carries:

Token mode (bounding boxes present), per reconstructed line:
  - "300mg" style token → one candidate anchored at that token
  - bare number followed by a bare unit token ("13" "g") → split candidate
    anchored at the number
  - "Calories 90": when the line mentions calories and no cal/kcal candidate
    was captured on it, the first bare number after the Calories token is
    emitted with an empty unit

Regex mode (no geometry): the same unit grammar swept across each line with
the same calories rule; candidates carry no token_index.

Percent candidates are dropped at the end of this stage, always.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence, Set, Tuple, Union

from .ocr_types import Line, ValueUnitCandidate
from .ocr_utils import normalize_line_for_extraction
from .parsers.unit_vocab import (
    ANY_NUMBER_RE,
    LINE_VALUE_UNIT_RE,
    is_bare_unit,
    match_bare_number,
    match_combined,
    normalize_unit,
)

log = logging.getLogger(__name__)

_CALORIES_RE = re.compile(r"calories", re.IGNORECASE)
_WRAP_CHARS = "()[]{},;:*"
_CAL_UNITS = ("cal", "kcal")


def _core(text: str) -> str:
    """Token text for matching: normalized, wrapping punctuation stripped."""
    return normalize_line_for_extraction(text).strip(_WRAP_CHARS)


def _bare_value(texts: List[str], i: int) -> Optional[float]:
    value = match_bare_number(texts[i])
    if value is None and texts[i] in ("O", "o") and i + 1 < len(texts) and texts[i + 1].lower() == "mg":
        return 0.0
    return value


def _candidate(raw: str, value: float, unit: str, line: str, line_index: int,
               token_index: Optional[int] = None,
               char_index: Optional[int] = None) -> ValueUnitCandidate:
    cand: ValueUnitCandidate = {
        "raw": raw,
        "value": value,
        "unit": unit,
        "line": line,
        "line_index": line_index,
    }
    if token_index is not None:
        cand["token_index"] = token_index
    if char_index is not None:
        cand["char_index"] = char_index
    return cand


# -----------------------------
# Token mode
# -----------------------------

def extract_from_token_line(line: Line, line_index: int) -> List[ValueUnitCandidate]:
    texts = [_core(t.text) for t in line.tokens]
    out: List[ValueUnitCandidate] = []
    anchored: Set[int] = set()

    for i, text in enumerate(texts):
        combined = match_combined(text)
        if combined is not None:
            value, unit = combined
            out.append(_candidate(text, value, unit, line.text, line_index, i))
            anchored.add(i)
            continue

        value = _bare_value(texts, i)
        if value is not None and i + 1 < len(texts) and is_bare_unit(texts[i + 1]):
            unit = normalize_unit(texts[i + 1])
            out.append(_candidate(f"{text} {texts[i + 1]}", value, unit, line.text, line_index, i))
            anchored.add(i)

    has_cal_like = any(c["unit"] in _CAL_UNITS for c in out)
    if not has_cal_like and _CALORIES_RE.search(line.text):
        start = next((i for i, t in enumerate(texts) if _CALORIES_RE.search(t)), None)
        if start is not None:
            for j in range(start + 1, len(texts)):
                value = match_bare_number(texts[j])
                if value is None:
                    continue
                if j not in anchored:
                    out.append(_candidate(texts[j], value, "", line.text, line_index, j))
                break

    return out


# -----------------------------
# Regex fallback mode
# -----------------------------

def extract_from_text_line(line: str, line_index: int) -> List[ValueUnitCandidate]:
    norm = normalize_line_for_extraction(line)
    out: List[ValueUnitCandidate] = []
    spans: List[Tuple[int, int]] = []

    for m in LINE_VALUE_UNIT_RE.finditer(norm):
        out.append(_candidate(m.group(0), float(m.group(1)), normalize_unit(m.group(2)), line, line_index,
                              char_index=m.start()))
        spans.append(m.span())

    has_cal_like = any(c["unit"] in _CAL_UNITS for c in out)
    cal = _CALORIES_RE.search(norm)
    if not has_cal_like and cal:
        num = ANY_NUMBER_RE.search(norm, cal.end())
        if num and not any(a <= num.start() < b for a, b in spans):
            out.append(_candidate(num.group(1), float(num.group(1)), "", line, line_index,
                                  char_index=num.start(1)))

    return out


def drop_percent_candidates(cands: List[ValueUnitCandidate]) -> List[ValueUnitCandidate]:
    return [c for c in cands if c["unit"] != "%" and "%" not in c["raw"]]


def extract_candidates(lines: Sequence[Union[Line, str]]) -> List[ValueUnitCandidate]:
    """Token mode for Line objects, regex mode for plain strings."""
    out: List[ValueUnitCandidate] = []
    for idx, line in enumerate(lines):
        if isinstance(line, Line):
            out.extend(extract_from_token_line(line, idx))
        else:
            out.extend(extract_from_text_line(line, idx))

    kept = drop_percent_candidates(out)
    log.debug("candidates: lines=%d raw=%d kept=%d", len(lines), len(out), len(kept))
    return kept
