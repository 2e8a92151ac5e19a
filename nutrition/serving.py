"""
Serving Meta Resolver.

Independent of the nutrient rows: scans normalized lines for

    "Serving size … 60 g"          → serving_size {value, unit}
    "Servings per package … 8"     → servings_per_pack
    "8 servings per container"     → servings_per_pack (US order)

First match of each wins; absent → None.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

from .ocr_types import Line, ServingMeta, ServingSize
from .ocr_utils import normalize_line_for_extraction

_SERVING_SIZE_RE = re.compile(
    r"serving\s*size\b.{0,40}?(?<![\d.])(\d+(?:\.\d+)?)\s*(g|ml)\b",
    re.IGNORECASE,
)
_SERVINGS_PER_RE = re.compile(
    r"servings?\s*per\s*(?:package|pack|container)\b[^\d]{0,30}?(\d+(?:\.\d+)?)",
    re.IGNORECASE,
)
_SERVINGS_PER_REVERSED_RE = re.compile(
    r"(\d+(?:\.\d+)?)\s*servings?\s*per\s*(?:package|pack|container)\b",
    re.IGNORECASE,
)


def _line_text(line) -> str:
    return line.text if isinstance(line, Line) else str(line or "")


def match_serving_size(text: str) -> Optional[ServingSize]:
    m = _SERVING_SIZE_RE.search(normalize_line_for_extraction(text))
    if not m:
        return None
    return {"value": float(m.group(1)), "unit": m.group(2).lower()}


def match_servings_per_pack(text: str) -> Optional[float]:
    text = normalize_line_for_extraction(text)
    m = _SERVINGS_PER_RE.search(text) or _SERVINGS_PER_REVERSED_RE.search(text)
    return float(m.group(1)) if m else None


def extract_serving_meta(lines: Iterable) -> ServingMeta:
    """Lines may be Line objects or plain strings."""
    meta: ServingMeta = {"serving_size": None, "servings_per_pack": None}
    for line in lines:
        text = _line_text(line)
        if meta["serving_size"] is None:
            meta["serving_size"] = match_serving_size(text)
        if meta["servings_per_pack"] is None:
            meta["servings_per_pack"] = match_servings_per_pack(text)
        if meta["serving_size"] is not None and meta["servings_per_pack"] is not None:
            break
    return meta
