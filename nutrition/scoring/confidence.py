"""
Confidence Scoring — cross-column validation + plausibility ceilings.

A per-serve value read from the label table starts at "Low". When the same
nutrient also has a per-100g reading and the serving size is known (≥ 5),
the two columns are checked against each other:

    expected100 = per_serve / serving_size × 100
    deviation   = |per_100g − expected100| / expected100

  deviation > REJECT_DEVIATION  → rejected (implausible OCR, not imprecision)
  deviation < AGREE_DEVIATION   → upgraded to "Med" (self-consistent)
  otherwise                     → stays "Low"

Independently, a fixed per-serve ceiling vetoes values no real label prints.
Serving sizes below MIN_SERVING_SIZE mean "not detected" and resolve to 1.
"""

from __future__ import annotations

import math
from typing import Dict, Optional

from ..ocr_types import Confidence

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

REJECT_DEVIATION = 0.8
AGREE_DEVIATION = 0.3
MIN_SERVING_SIZE = 5.0
SERVING_SENTINEL = 1.0

# Per-serve ceilings, in each key's canonical unit
PLAUSIBILITY_CEILINGS: Dict[str, float] = {
    "energy_kj": 10000.0,
    "energy_kcal": 2500.0,
    "protein_g": 100.0,
    "carbs_g": 100.0,
    "fat_g": 100.0,
    "sugars_g": 100.0,
    "fibre_g": 60.0,
    "sodium_mg": 5000.0,
}


# ---------------------------------------------------------------------------
# Serving size sentinel
# ---------------------------------------------------------------------------

def is_serving_detected(serving_size: Optional[float]) -> bool:
    return serving_size is not None and serving_size >= MIN_SERVING_SIZE


def resolve_serving_size(serving_size: Optional[float]) -> float:
    """< 5 g/ml (or missing) → 1, to be hidden rather than shown as a reading."""
    if not is_serving_detected(serving_size):
        return SERVING_SENTINEL
    return float(serving_size)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Cross-validation
# ---------------------------------------------------------------------------

def expected_per_100(per_serve: float, serving_size: float) -> float:
    return per_serve / serving_size * 100.0


def relative_deviation(per_serve: float, per_100g: float, serving_size: float) -> float:
    expected = expected_per_100(per_serve, serving_size)
    if expected == 0:
        return 0.0 if per_100g == 0 else math.inf
    return abs(per_100g - expected) / expected


def cross_validate(
    per_serve: float,
    per_100g: Optional[float],
    serving_size: Optional[float],
    base: Confidence = "Low",
) -> Optional[Confidence]:
    """
    Returns the confidence tier for per_serve, or None when the pair is
    inconsistent enough to reject. Without a usable per-100g reading or a
    detected serving size the base tier is returned unchanged.
    """
    if per_100g is None or not is_serving_detected(serving_size):
        return base

    deviation = relative_deviation(per_serve, per_100g, float(serving_size))  # type: ignore[arg-type]
    if deviation > REJECT_DEVIATION:
        return None
    if deviation < AGREE_DEVIATION and base == "Low":
        return "Med"
    return base


def is_plausible(key: str, value: float) -> bool:
    if value is None or not math.isfinite(value) or value < 0:
        return False
    ceiling = PLAUSIBILITY_CEILINGS.get(key)
    return ceiling is None or value <= ceiling
