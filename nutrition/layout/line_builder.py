"""
Line Builder — tokens → reading-order lines.

Online single-link clustering on vertical centers:
- y tolerance = max(6, 0.6 × median token height) (median falls back to 10)
- tokens visited in (y_mid, x_min) order
- each token joins the cluster with the closest running-average y_ref when
  within tolerance, otherwise opens a new cluster
- clusters sorted by final y_ref, tokens by x_min, text joined by one space

Deterministic for a fixed token order. When no token has geometry the caller
falls back to split_full_text().
"""

from __future__ import annotations

import logging
from typing import List

from ..ocr_types import Line, Token
from ..ocr_utils import median

log = logging.getLogger(__name__)

# -----------------------------
# Tunable heuristics
# -----------------------------

MIN_Y_TOL = 6.0
Y_TOL_HEIGHT_RATIO = 0.6
FALLBACK_MEDIAN_HEIGHT = 10.0


class _LineAcc:
    __slots__ = ("y_ref", "tokens")

    def __init__(self, token: Token) -> None:
        self.y_ref = token.y_mid
        self.tokens: List[Token] = [token]

    def add(self, token: Token) -> None:
        self.tokens.append(token)
        n = len(self.tokens)
        self.y_ref = (self.y_ref * (n - 1) + token.y_mid) / n


def line_tolerance(tokens: List[Token]) -> float:
    med_h = median([t.height for t in tokens if t.height > 0]) or FALLBACK_MEDIAN_HEIGHT
    return max(MIN_Y_TOL, Y_TOL_HEIGHT_RATIO * med_h)


def build_lines(tokens: List[Token]) -> List[Line]:
    if not tokens:
        return []

    y_tol = line_tolerance(tokens)
    ordered = sorted(tokens, key=lambda t: (t.y_mid, t.x_min))

    clusters: List[_LineAcc] = []
    for tok in ordered:
        best_idx = -1
        best_dy = float("inf")
        for i, acc in enumerate(clusters):
            dy = abs(tok.y_mid - acc.y_ref)
            if dy < best_dy:
                best_dy = dy
                best_idx = i

        if best_idx != -1 and best_dy <= y_tol:
            clusters[best_idx].add(tok)
        else:
            clusters.append(_LineAcc(tok))

    lines: List[Line] = []
    for acc in sorted(clusters, key=lambda a: a.y_ref):
        toks = tuple(sorted(acc.tokens, key=lambda t: t.x_min))
        text = " ".join(" ".join(t.text for t in toks).split())
        lines.append(Line(tokens=toks, text=text, y_ref=acc.y_ref))

    log.debug("line builder: tokens=%d lines=%d y_tol=%.2f", len(tokens), len(lines), y_tol)
    return lines


def split_full_text(full_text: str) -> List[str]:
    """Geometry-less fallback: one line per newline, trimmed, empties dropped."""
    return [s.strip() for s in (full_text or "").splitlines() if s.strip()]
