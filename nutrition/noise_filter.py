"""
Noise Filter — drops boilerplate lines before candidate extraction.

Two independent predicates on the normalized line text:
  1. Daily-value noise: DV tables, "caloric needs" footnotes, "calories per
     gram" legends, "Calories: 2,000 2,500" headers, "less than" rows.
  2. Header noise: avg-quantity / per-100 column headers and the bare section
     heading ("Nutrition Facts", "Nutrition Information").

Daily Value percentages are not modelled at all; percent candidates are also
dropped later in the extractor, independent of this line-level pass.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple

from .ocr_utils import normalize_line_for_extraction
from .parsers.unit_vocab import SECTION_HEADINGS

log = logging.getLogger(__name__)


# (reason, pattern); order only affects which reason is reported
_DAILY_VALUE_RULES: Tuple[Tuple[str, re.Pattern], ...] = (
    ("DAILY_VALUE", re.compile(r"percent\s+daily\s+values?|daily\s+values?", re.I)),
    ("CALORIC_NEEDS", re.compile(r"caloric\s+needs", re.I)),
    ("CALORIES_PER_GRAM", re.compile(r"calories\s+per\s+gram", re.I)),
    ("CALORIES_HEADER", re.compile(r"\bcalories\s*:", re.I)),
    ("LESS_THAN", re.compile(r"\bless\s+than\b", re.I)),
)

_HEADER_RULES: Tuple[Tuple[str, re.Pattern], ...] = (
    ("COLUMN_HEADER", re.compile(r"\bav(?:g|erage)\.?\s+quantity\b", re.I)),
    ("COLUMN_HEADER", re.compile(r"\bper\s*100\s*(?:g|ml|mg)?\b", re.I)),
)


def daily_value_reason(line: str) -> Optional[str]:
    text = normalize_line_for_extraction(line)
    for reason, rx in _DAILY_VALUE_RULES:
        if rx.search(text):
            return reason
    return None


def header_reason(line: str) -> Optional[str]:
    text = normalize_line_for_extraction(line)
    key = re.sub(r"\s+", " ", text.strip().lower()).rstrip(":")
    if key in SECTION_HEADINGS:
        return "SECTION_HEADING"
    for reason, rx in _HEADER_RULES:
        if rx.search(text):
            return reason
    return None


def is_daily_value_noise(line: str) -> bool:
    return daily_value_reason(line) is not None


def is_header_noise(line: str) -> bool:
    return header_reason(line) is not None


def noise_reason(line: str) -> Optional[str]:
    return daily_value_reason(line) or header_reason(line)


def filter_noise_lines(lines: List[str]) -> Tuple[List[int], List[Dict[str, str]]]:
    """
    Returns (kept_indices, dropped) where dropped entries are
    {"line": ..., "reason": ...} for the debug payload.
    """
    kept: List[int] = []
    dropped: List[Dict[str, str]] = []
    for i, line in enumerate(lines):
        reason = noise_reason(line)
        if reason:
            dropped.append({"line": line, "reason": reason})
            continue
        kept.append(i)
    if dropped:
        log.debug("noise filter: kept=%d dropped=%d", len(kept), len(dropped))
    return kept, dropped
