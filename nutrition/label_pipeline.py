"""
Nutrition Label Pipeline — OCR payload → rows, nutrients, serving meta.

Stage order:

    payload ─► tokens ─► lines ─► noise filter ─┬─► candidates ─► labels ─► rows
                                                ├─► column classifier ─► readings ─► validate ─┐
                                                └─► line rules ──────────────────────────────────┴─► merge
    all lines ─► serving meta

extract_label() is a pure function of its input: no module-level state, no
I/O. The only exception it raises is contracts.OcrPayloadError, at the
boundary, for payloads that are not one of the supported shapes.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from . import config
from .candidates import extract_candidates
from .columns import ColumnLayout, classify_columns
from .contracts import parse_ocr_payload
from .label_attach import attach_labels
from .layout.line_builder import build_lines, split_full_text
from .noise_filter import filter_noise_lines
from .nutrient_map import map_column_rows, merge_nutrient_sources, validate_readings
from .ocr_types import (
    FlatOcrPayload,
    LabelData,
    LabeledValueUnitCandidate,
    LabelResult,
    LabelRow,
    Line,
    NutrientMap,
    OcrPayload,
    ServingMeta,
    StructuredOcrPayload,
    Token,
    ValueUnitCandidate,
)
from .parsers.line_rules import apply_line_rules
from .row_grouper import group_label_rows
from .scoring.confidence import resolve_serving_size
from .serving import extract_serving_meta
from .tokens import normalize_tokens

log = logging.getLogger(__name__)


@dataclass
class _Stages:
    tokens: List[Token] = field(default_factory=list)
    all_lines: List[Union[Line, str]] = field(default_factory=list)
    lines: List[Union[Line, str]] = field(default_factory=list)
    dropped: List[Dict[str, str]] = field(default_factory=list)
    candidates: List[ValueUnitCandidate] = field(default_factory=list)
    labeled: List[LabeledValueUnitCandidate] = field(default_factory=list)
    rows: List[LabelRow] = field(default_factory=list)


def _line_text(line: Union[Line, str]) -> str:
    return line.text if isinstance(line, Line) else line


def coerce_payload(raw: Any) -> OcrPayload:
    """
    Accepts an already-parsed payload, a plain list of line strings (no
    geometry), or anything contracts.parse_ocr_payload() understands.
    """
    if isinstance(raw, (FlatOcrPayload, StructuredOcrPayload)):
        return raw
    if isinstance(raw, (list, tuple)) and all(isinstance(s, str) for s in raw):
        return FlatOcrPayload(full_text="\n".join(raw), items=())
    return parse_ocr_payload(raw)


def _run_front(raw: Any) -> _Stages:
    payload = coerce_payload(raw)
    st = _Stages()

    st.tokens = normalize_tokens(payload)
    if st.tokens:
        st.all_lines = list(build_lines(st.tokens))
    else:
        st.all_lines = list(split_full_text(payload.full_text))

    kept_idx, st.dropped = filter_noise_lines([_line_text(l) for l in st.all_lines])
    st.lines = [st.all_lines[i] for i in kept_idx]

    st.candidates = extract_candidates(st.lines)
    st.labeled = attach_labels(st.candidates, st.lines)
    st.rows = group_label_rows(st.labeled)
    return st


# -----------------------------
# Stage entry points
# -----------------------------

def extract_value_unit_candidates(raw: Any) -> List[ValueUnitCandidate]:
    return _run_front(raw).candidates


def extract_labeled_value_unit_candidates(raw: Any) -> List[LabeledValueUnitCandidate]:
    return _run_front(raw).labeled


def extract_label_rows(raw: Any) -> List[LabelRow]:
    return _run_front(raw).rows


def build_label_data(nutrients: NutrientMap, serving: ServingMeta) -> LabelData:
    """Per-serve LabelData; an undetected serving size resolves to the sentinel 1."""
    size = serving.get("serving_size")
    value = resolve_serving_size(size["value"] if size else None)
    unit = size["unit"] if size else ""
    return {
        "basis": "per_serve",
        "serving_size": {"value": value, "unit": unit},
        "nutrients": dict(nutrients),
    }


def _column_nutrients(st: _Stages, serving_value: Optional[float]):
    geometric = [l for l in st.lines if isinstance(l, Line)]
    if not st.tokens or not geometric:
        return ColumnLayout(), {}, None

    layout = classify_columns(st.tokens, geometric)
    if not layout.is_dual_column:
        return layout, {}, None

    readings = map_column_rows(layout.nutrition_rows)
    return layout, readings, validate_readings(readings, serving_value)


# -----------------------------
# Full pipeline
# -----------------------------

def extract_label(raw: Any, *, debug: Optional[bool] = None) -> LabelResult:
    """
    Run every stage over one OCR payload.

    Returns {lines, rows, nutrients, serving, label} and, when debug is on
    (argument, or NUTRI_DEBUG=1), a diagnostic `debug` block.
    """
    if debug is None:
        debug = config.DEBUG_DEFAULT

    st = _run_front(raw)

    serving = extract_serving_meta(st.all_lines)
    size = serving["serving_size"]
    serving_value = size["value"] if size else None

    layout, readings, outcome = _column_nutrients(st, serving_value)
    flat: NutrientMap = outcome.nutrients if outcome else {}
    rejected: List[Dict[str, object]] = list(outcome.rejected) if outcome else []

    parsed = apply_line_rules(_line_text(l) for l in st.lines)
    vetoed = [r["key"] for r in rejected if r["reason"] == "CROSS_COLUMN_DEVIATION"]
    nutrients = merge_nutrient_sources(flat, parsed, rejected, vetoed=vetoed)

    log.debug(
        "label pipeline: tokens=%d lines=%d rows=%d flat=%d parsed=%d nutrients=%d rejected=%d",
        len(st.tokens), len(st.lines), len(st.rows), len(flat), len(parsed),
        len(nutrients), len(rejected),
    )

    result: LabelResult = {
        "lines": [_line_text(l) for l in st.lines],
        "rows": st.rows,
        "nutrients": nutrients,
        "serving": serving,
        "label": build_label_data(nutrients, serving),
    }

    if debug:
        result["debug"] = {
            "tokens": [asdict(t) for t in st.tokens],
            "all_lines": [_line_text(l) for l in st.all_lines],
            "dropped_lines": st.dropped,
            "candidates": st.labeled,
            "columns": [c.to_dict() for c in layout.clusters],
            "column_rows": [r.to_dict() for r in layout.rows],
            "nutrition_rows": [r.to_dict() for r in layout.nutrition_rows],
            "parsed_nutrients": {
                k: {"per_serve": r.per_serve, "per_100g": r.per_100g, "source": r.source}
                for k, r in readings.items()
            },
            "sources": {"flat": flat, "parsed": parsed},
            "rejected": rejected,
        }

    return result


def extract_label_lines(raw: Any) -> Sequence[str]:
    """Kept (noise-filtered) line texts only."""
    return [_line_text(l) for l in _run_front(raw).lines]
