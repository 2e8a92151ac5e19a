"""
Row Grouper — one LabelRow per distinct normalized label.

Group key = trimmed, whitespace-collapsed, lower-cased label. Keys that are
headings, contain a digit, or carry no letters/digits at all are discarded.

Within a group the primary is the minimum of
    (line_index, unit_rank(key, unit), |value|)
and everything else is kept as alternates (diagnostics only). The same
physical number is often read twice in nearby forms; the absolute-unit
reading wins, except for calories where the bare printed count wins.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Sequence, Tuple

from .ocr_types import LabeledValueUnitCandidate, LabelRow
from .ocr_utils import has_digit, normalize_key
from .parsers.unit_vocab import COLUMN_HEADER_LABEL_RE, NON_DATA_HEADINGS

log = logging.getLogger(__name__)

_CALORIES_UNIT_RANK: Dict[str, int] = {"": 0, "kcal": 1, "cal": 2}
_DEFAULT_UNIT_RANK: Dict[str, int] = {
    "mg": 0,
    "g": 1,
    "kJ": 2,
    "kcal": 3,
    "cal": 4,
    "ml": 5,
    "": 6,
}
_ALNUM_RE = re.compile(r"[A-Za-z0-9]")


def unit_rank(label_key: str, unit: str) -> int:
    if label_key == "calories":
        return _CALORIES_UNIT_RANK.get(unit, len(_CALORIES_UNIT_RANK))
    return _DEFAULT_UNIT_RANK.get(unit, len(_DEFAULT_UNIT_RANK))


def is_discarded_key(key: str) -> bool:
    if not key or not _ALNUM_RE.search(key):
        return True
    if has_digit(key):
        return True
    if key in NON_DATA_HEADINGS or COLUMN_HEADER_LABEL_RE.search(key):
        return True
    return False


def _position(cand: LabeledValueUnitCandidate) -> int:
    """Left-to-right position in its line: token index, else regex match offset."""
    return cand.get("token_index", cand.get("char_index", 0))


def _rank(key: str, cand: LabeledValueUnitCandidate) -> Tuple[int, int, float]:
    return (cand["line_index"], unit_rank(key, cand["unit"]), abs(cand["value"]))


def group_label_rows(candidates: Sequence[LabeledValueUnitCandidate]) -> List[LabelRow]:
    groups: Dict[str, List[LabeledValueUnitCandidate]] = {}
    for cand in candidates:
        key = normalize_key(cand["label"])
        if is_discarded_key(key):
            continue
        groups.setdefault(key, []).append(cand)

    rows: List[LabelRow] = []
    for key, members in groups.items():
        # stable sort: ties keep extraction order, so the primary is unique
        ranked = sorted(members, key=lambda c: _rank(key, c))
        primary = ranked[0]
        rows.append({
            "label": primary["label"],
            "primary": primary,
            "alternates": ranked[1:],
        })

    rows.sort(key=lambda r: (r["primary"]["line_index"], _position(r["primary"])))
    log.debug("row grouper: candidates=%d rows=%d", len(candidates), len(rows))
    return rows
