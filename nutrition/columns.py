"""
Column Classifier — dual-column (per serve / per 100 g) label tables.

Label attachment only works inside one reading line, so side-by-side
columns need geometry:

1. numeric tokens carrying a recognized unit (never %) are clustered on their
   normalized x-center: a left-to-right sweep opens a cluster whenever the
   gap to the running cluster mean exceeds CLUSTER_GAP, then the closest
   adjacent pair is merged until at most MAX_COLUMNS remain
2. every token of every reconstructed line is placed in a band by x-center:
   < LABEL_BAND label, < PER_SERVE_BAND per-serve, else per-100g; % tokens
   are discarded
3. a row counts as a nutrition row when its text has a digit and a unit and
   none of the header words (avg, average, quantity, daily, intake)
4. the label band text is mapped to a nutrient key by ordered rules, first
   match wins
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .ocr_types import Line, Token
from .parsers.unit_vocab import COLUMN_UNIT_RE

log = logging.getLogger(__name__)

# -----------------------------
# Tunable heuristics
# -----------------------------

CLUSTER_GAP = 0.08
MAX_COLUMNS = 3
LABEL_BAND = 0.33
PER_SERVE_BAND = 0.66
MIN_VALUE_COLUMNS = 2

_HEADER_WORDS_RE = re.compile(r"avg|average|quantity|daily|intake", re.IGNORECASE)
_DIGIT_RE = re.compile(r"\d")

# Ordered label → key rules (first match wins)
NUTRIENT_KEY_RULES: Tuple[Tuple[str, re.Pattern], ...] = (
    ("energy", re.compile(r"^energy")),
    ("protein", re.compile(r"^protein")),
    ("fat_total", re.compile(r"^(?:total\s+)?fat\b(?!.*satur)")),
    ("saturated", re.compile(r"satur")),
    ("carbohydrate", re.compile(r"^(?:total\s+)?carb(?:ohydrates?|s)\b")),
    ("sugars", re.compile(r"sugars")),
    ("fibre", re.compile(r"fib(?:re|er)")),
    ("sodium", re.compile(r"sodium")),
)


@dataclass
class ColumnCluster:
    id: int
    x_min: float
    x_max: float
    mean_x: float
    token_count: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "x_min": round(self.x_min, 4),
            "x_max": round(self.x_max, 4),
            "mean_x": round(self.mean_x, 4),
            "token_count": self.token_count,
        }


@dataclass
class ColumnRow:
    y: float
    label_text: str
    per_serve_text: str
    per_100g_text: str
    key: Optional[str] = None

    def has_both_values(self) -> bool:
        return bool(_DIGIT_RE.search(self.per_serve_text) and _DIGIT_RE.search(self.per_100g_text))

    def combined_text(self) -> str:
        return f"{self.label_text} {self.per_serve_text} {self.per_100g_text}"

    def to_dict(self) -> Dict[str, object]:
        return {
            "y": round(self.y, 2),
            "label_text": self.label_text,
            "per_serve_text": self.per_serve_text,
            "per_100g_text": self.per_100g_text,
            "key": self.key,
        }


@dataclass
class ColumnLayout:
    clusters: List[ColumnCluster] = field(default_factory=list)
    rows: List[ColumnRow] = field(default_factory=list)
    nutrition_rows: List[ColumnRow] = field(default_factory=list)

    @property
    def is_dual_column(self) -> bool:
        # ragged single-column labels also spread values over several x-clusters;
        # at least one row must carry a reading in both value bands
        if len(self.clusters) < MIN_VALUE_COLUMNS:
            return False
        return any(r.has_both_values() for r in self.nutrition_rows)


# -----------------------------
# Geometry helpers
# -----------------------------

def _page_width(tokens: Sequence[Token]) -> float:
    for t in tokens:
        if t.page_width:
            return float(t.page_width)
    return max((t.x_max for t in tokens), default=0.0) or 1.0


def is_numeric_token(token: Token) -> bool:
    text = token.text
    if "%" in text:
        return False
    return bool(_DIGIT_RE.search(text)) and bool(COLUMN_UNIT_RE.search(text))


def cluster_columns(xs: Sequence[float]) -> List[ColumnCluster]:
    """Sweep + nearest-pair merge over normalized x-centers."""
    if not xs:
        return []

    groups: List[List[float]] = []
    means: List[float] = []
    for x in sorted(xs):
        if not groups or abs(x - means[-1]) > CLUSTER_GAP:
            groups.append([x])
            means.append(x)
        else:
            groups[-1].append(x)
            means[-1] = sum(groups[-1]) / len(groups[-1])

    while len(groups) > MAX_COLUMNS:
        merge_idx = min(range(len(groups) - 1), key=lambda i: abs(means[i] - means[i + 1]))
        merged = groups[merge_idx] + groups[merge_idx + 1]
        groups[merge_idx:merge_idx + 2] = [merged]
        means[merge_idx:merge_idx + 2] = [sum(merged) / len(merged)]

    return [
        ColumnCluster(id=i, x_min=min(g), x_max=max(g), mean_x=means[i], token_count=len(g))
        for i, g in enumerate(groups)
    ]


def classify_row(tokens: Sequence[Token], page_width: float) -> Tuple[str, str, str]:
    label: List[str] = []
    per_serve: List[str] = []
    per_100g: List[str] = []
    for t in tokens:
        if "%" in t.text:
            continue
        x = t.x_mid / page_width
        if x < LABEL_BAND:
            label.append(t.text)
        elif x < PER_SERVE_BAND:
            per_serve.append(t.text)
        else:
            per_100g.append(t.text)
    return " ".join(label), " ".join(per_serve), " ".join(per_100g)


def is_likely_nutrition_row(row: ColumnRow) -> bool:
    text = row.combined_text().lower()
    if not _DIGIT_RE.search(text):
        return False
    if not COLUMN_UNIT_RE.search(text):
        return False
    if _HEADER_WORDS_RE.search(text):
        return False
    return True


def match_nutrient_key(label_text: str) -> Optional[str]:
    s = re.sub(r"\s+", " ", (label_text or "").strip().lower())
    s = re.sub(r"^[^a-z]+", "", s)
    for key, rx in NUTRIENT_KEY_RULES:
        if rx.search(s):
            return key
    return None


def classify_columns(tokens: Sequence[Token], lines: Sequence[Line]) -> ColumnLayout:
    if not tokens:
        return ColumnLayout()

    width = _page_width(tokens)
    numeric_xs = [t.x_mid / width for t in tokens if is_numeric_token(t)]
    layout = ColumnLayout(clusters=cluster_columns(numeric_xs))

    for line in lines:
        label, per_serve, per_100g = classify_row(line.tokens, width)
        row = ColumnRow(y=line.y_ref, label_text=label, per_serve_text=per_serve, per_100g_text=per_100g)
        layout.rows.append(row)
        if is_likely_nutrition_row(row):
            row.key = match_nutrient_key(row.label_text)
            layout.nutrition_rows.append(row)

    log.debug(
        "column classifier: clusters=%d rows=%d nutrition_rows=%d",
        len(layout.clusters), len(layout.rows), len(layout.nutrition_rows),
    )
    return layout
